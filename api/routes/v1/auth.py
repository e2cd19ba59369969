"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /auth/register          -- create local account; sets session cookie; 201
  POST /auth/login             -- password login; sets session cookie
  GET  /auth/google            -- redirect to Google consent screen
  GET  /auth/google/callback   -- resolve Google identity; sets cookie; redirects
  POST /auth/logout            -- destroy session; clears cookie
  GET  /auth/status            -- current principal or 401
  GET  /auth/providers         -- list enabled OAuth providers (public)

Security:
  [H2] POST /login and /register are rate-limited per IP (LOGIN_RATE_LIMIT);
       over the limit is 429 rate_limited with Retry-After.
  [C1] AuthService.authenticate_local() provides timing equalization.
  [C2] Every successful login passes the caller's current session id to
       establish_session() so it is destroyed, never reused.
  [M5] Cache-Control: no-store on responses that set the session cookie.

Route handlers do not build error responses. AuthService raises
core.errors.AppError subclasses and api/main.py renders them.
"""

from __future__ import annotations

import asyncio
import logging

from authlib.integrations.starlette_client import OAuthError
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from api.limiter import limiter, login_rate_limit
from api.models import (
    LoginRequest,
    MessageResponse,
    OAuthProviderInfo,
    PrincipalResponse,
    RegisterRequest,
    UserResponse,
)
from auth.dependencies import get_session_id, try_get_principal
from auth.models import Principal, User
from auth.oauth import GOOGLE, get_enabled_providers, google_profile_from_token
from auth.service import AuthService
from auth.sessions import clear_session_cookie, set_session_cookie
from core.config import get_settings
from core.errors import ExternalIdentityError

logger = logging.getLogger("courtstats.api")

# Auth policy:
# - POST /auth/register, /auth/login:      public, rate limited
# - GET  /auth/google, /google/callback:   public
# - GET  /auth/providers:                  public
# - POST /auth/logout:                     requires a session (401 "Not logged in")
# - GET  /auth/status:                     requires a session (401 "Not authenticated")
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _session_response(request: Request, response, user: User):
    """Open a fresh session for user and attach its cookie to response."""
    record = _service(request).establish_session(user, previous_sid=get_session_id(request))
    set_session_cookie(response, record.sid, get_settings())
    response.headers["Cache-Control"] = "no-store"  # [M5]
    return response


def _user_payload(user: User) -> dict:
    return UserResponse(**user.public()).model_dump()


# ---------------------------------------------------------------------------
# Local credentials
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=UserResponse, status_code=201)
@limiter.limit(login_rate_limit)  # [H2] must be BELOW @router so the router registers the limited function
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local account and log the caller in (registration implies login)."""
    user = _service(request).register_local(body.email, body.name, body.password, body.role_id)
    resp = JSONResponse(status_code=201, content=_user_payload(user))
    return _session_response(request, resp, user)


@router.post("/auth/login", response_model=UserResponse)
@limiter.limit(login_rate_limit)  # [H2]
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the session cookie.

    401 messages distinguish a wrong password from an account that only has
    an external identity ("log in using your original method").
    """
    user = _service(request).authenticate_local(body.email, body.password)
    resp = JSONResponse(status_code=200, content=_user_payload(user))
    return _session_response(request, resp, user)


# ---------------------------------------------------------------------------
# Google OAuth
# ---------------------------------------------------------------------------


def _failure_redirect() -> RedirectResponse:
    return RedirectResponse(get_settings().oauth_failure_redirect, status_code=302)


@router.get("/auth/google")
async def google_login(request: Request):
    """Redirect the browser to Google's consent screen.

    authlib stores the OAuth state in the Starlette session so the callback
    can verify it.
    """
    client = request.app.state.oauth.create_client(GOOGLE)
    if client is None:
        logger.warning("Google login requested but the provider is not configured")
        return _failure_redirect()
    redirect_uri = get_settings().google_callback_url or str(request.url_for("google_callback"))
    return await client.authorize_redirect(request, redirect_uri)


@router.get("/auth/google/callback", name="google_callback")
async def google_callback(request: Request):
    """Handle Google's redirect back, then log the resolved user in.

    Flow:
      1. Exchange the authorization code (authlib checks the state).
      2. Extract the profile -- no email means ExternalIdentityError.
      3. AuthService.resolve_external(): match by Google id, link by email,
         or create with the default role.
      4. Establish the session, set the cookie, redirect to the success URL.

    Identity failures redirect to OAUTH_FAILURE_REDIRECT. A missing default
    role is a ConfigurationError and surfaces as a 500.
    """
    client = request.app.state.oauth.create_client(GOOGLE)
    if client is None:
        return _failure_redirect()

    try:
        token = await client.authorize_access_token(request)
    except OAuthError:
        logger.exception("Google token exchange failed")
        return _failure_redirect()

    service = _service(request)
    try:
        profile = google_profile_from_token(token)
        user = await asyncio.to_thread(service.resolve_external, profile)
    except ExternalIdentityError as exc:
        logger.warning("Google login rejected: %s", exc.message)
        return _failure_redirect()

    resp = RedirectResponse(get_settings().oauth_success_redirect, status_code=302)
    previous_sid = get_session_id(request)
    record = await asyncio.to_thread(service.establish_session, user, previous_sid)
    set_session_cookie(resp, record.sid, get_settings())
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@router.get("/auth/providers", response_model=list[OAuthProviderInfo])
async def list_providers() -> list[OAuthProviderInfo]:
    """Return the configured OAuth providers. Empty when none are set up."""
    return [OAuthProviderInfo(**p) for p in get_enabled_providers()]


# ---------------------------------------------------------------------------
# Session state
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, principal: Principal | None = Depends(try_get_principal)) -> JSONResponse:
    """Destroy the server-side session and tell the client to drop the cookie."""
    _service(request).logout(principal, get_session_id(request))
    resp = JSONResponse(content=MessageResponse(message="Logged out successfully").model_dump())
    clear_session_cookie(resp, get_settings())
    return resp


@router.get("/auth/status", response_model=PrincipalResponse)
def status(request: Request, principal: Principal | None = Depends(try_get_principal)) -> PrincipalResponse:
    """Return the current principal, or 401 "Not authenticated"."""
    current = _service(request).status(principal)
    return PrincipalResponse(
        id=current.id,
        email=current.email,
        name=current.name,
        role_id=current.role_id,
        role_name=current.role_name,
    )
