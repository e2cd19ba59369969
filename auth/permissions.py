"""
auth/permissions.py -- Role-based authorization gate.

authorize() is a pure predicate over (principal, required roles). It has no
knowledge of cookies, sessions or HTTP, so the same check guards routes (via
auth/dependencies.require_roles) and service methods (AuthService.update_user).

Role checks are whitelist based: the principal's role must be one of the
named roles. There is no deny list.
"""

from __future__ import annotations

from collections.abc import Iterable

from auth.models import Principal
from core.errors import ForbiddenError, UnauthenticatedError

DEFAULT_FORBIDDEN_MESSAGE = "Forbidden: insufficient role."


def authorize(principal: Principal | None, required_roles: Iterable[str], message: str | None = None) -> Principal:
    """Return the principal if its role is in required_roles.

    An empty required_roles means "any authenticated principal".

    Raises:
        UnauthenticatedError: principal is None.
        ForbiddenError:       principal's role is not in required_roles.
    """
    if principal is None:
        raise UnauthenticatedError("Not authenticated")
    allowed = frozenset(required_roles)
    if allowed and principal.role_name not in allowed:
        raise ForbiddenError(message or DEFAULT_FORBIDDEN_MESSAGE)
    return principal
