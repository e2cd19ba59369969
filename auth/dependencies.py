"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session cookie is the only credential. Resolution order:
  1. Read the cookie named Settings.session_cookie_name.
  2. Verify its itsdangerous signature (tampered values are Anonymous).
  3. AuthService.load_principal(): session row -> user JOIN role.

The resolved principal is cached on request.state for the rest of the
request only. Nothing survives across requests except the session row.

try_get_principal() is the soft variant (returns None when Anonymous).
get_principal() wraps it and raises UnauthenticatedError (401).
require_roles(*roles) wraps get_principal() and applies auth.permissions.authorize().

Layer rule: no imports from league/. auth/dependencies.py may import from
fastapi (for Request) because this module is part of the FastAPI dependency
injection system.
"""

from __future__ import annotations

from fastapi import Request

from auth.models import Principal
from auth.permissions import authorize
from auth.sessions import unsign_session_id
from core.config import get_settings
from core.errors import UnauthenticatedError

_UNSET = object()


def get_session_id(request: Request) -> str | None:
    """Return the verified session id carried by the request cookie, if any."""
    settings = get_settings()
    raw = request.cookies.get(settings.session_cookie_name)
    if not raw:
        return None
    return unsign_session_id(raw, settings.secret_key)


def try_get_principal(request: Request) -> Principal | None:
    """Return the authenticated Principal, or None for an anonymous request.

    Never raises for a missing or invalid cookie -- callers that need a hard
    401 should use get_principal().
    """
    cached = getattr(request.state, "principal", _UNSET)
    if cached is not _UNSET:
        return cached
    principal = request.app.state.auth_service.load_principal(get_session_id(request))
    request.state.principal = principal
    return principal


def get_principal(request: Request) -> Principal:
    """Require authentication. Raises UnauthenticatedError (401) if anonymous.

    Use as a FastAPI dependency:
        @router.post("/teams")
        def route(principal: Principal = Depends(get_principal)): ...
    """
    principal = try_get_principal(request)
    if principal is None:
        raise UnauthenticatedError("Not authenticated")
    return principal


def require_roles(*roles: str, message: str | None = None):
    """Build a dependency that admits only principals holding one of roles.

    Use as a FastAPI dependency:
        @router.delete("/teams/{team_id}")
        def route(principal: Principal = Depends(require_roles(ADMIN, COACH))): ...
    """

    def dependency(request: Request) -> Principal:
        return authorize(try_get_principal(request), roles, message)

    return dependency
