"""
auth/oauth.py -- Authlib OAuth/OIDC provider configuration.

build_oauth() returns an authlib registry with Google registered only when
both client ID and secret are configured. The lifespan in api/main.py stores
the registry on app.state.oauth so tests can swap in a mock.

Security notes:
  OAuth state parameter (CSRF protection) is handled by authlib automatically
  via Starlette SessionMiddleware. The session stores the state between the
  authorization redirect and the callback -- never trust state from query
  params alone.

  google_profile_from_token() does not reject unverified emails on its own.
  It records email_verified on the profile and auth/service.py decides: a
  verified email is required before an existing account is linked (see
  Settings.oauth_link_requires_verified_email).

Supported providers:
  google -- Authorization code flow; OIDC discovery.

Layer rule: no imports from api/ or league/. Import from core/ is allowed --
core/ is the kernel layer.
"""

from __future__ import annotations

import logging

from authlib.integrations.starlette_client import OAuth

from auth.models import ExternalProfile
from core.config import Settings, get_settings
from core.errors import ExternalIdentityError

logger = logging.getLogger("courtstats.auth.oauth")

GOOGLE = "google"
_GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"


# ---------------------------------------------------------------------------
# Authlib OAuth registry
# ---------------------------------------------------------------------------


def is_google_enabled(settings: Settings | None = None) -> bool:
    cfg = settings or get_settings()
    return bool(cfg.google_client_id and cfg.google_client_secret)


def build_oauth(settings: Settings | None = None) -> OAuth:
    """Return an OAuth registry holding every configured provider."""
    cfg = settings or get_settings()
    registry = OAuth()
    if is_google_enabled(cfg):
        registry.register(
            name=GOOGLE,
            client_id=cfg.google_client_id,
            client_secret=cfg.google_client_secret,
            server_metadata_url=_GOOGLE_DISCOVERY_URL,
            client_kwargs={"scope": "openid email profile"},
        )
        logger.info("Google OAuth provider registered")
    else:
        logger.info("Google OAuth disabled (GOOGLE_CLIENT_ID / GOOGLE_CLIENT_SECRET not set)")
    return registry


# ---------------------------------------------------------------------------
# Provider metadata
# ---------------------------------------------------------------------------


def get_enabled_providers(settings: Settings | None = None) -> list[dict]:
    """Return {"name", "label"} for every configured OAuth provider.

    Used by GET /auth/providers so a login page knows which buttons to render.
    """
    providers: list[dict] = []
    if is_google_enabled(settings):
        providers.append({"name": GOOGLE, "label": "Google"})
    return providers


# ---------------------------------------------------------------------------
# Profile extraction
# ---------------------------------------------------------------------------


def google_profile_from_token(token: dict) -> ExternalProfile:
    """Build an ExternalProfile from the token authlib returns after code exchange.

    Google's id_token claims arrive parsed under token["userinfo"] and carry
    sub (stable subject id), email, email_verified and name.

    Raises:
        ExternalIdentityError: if the userinfo, subject or email is missing.
    """
    userinfo = token.get("userinfo") or {}
    subject = userinfo.get("sub")
    email = (userinfo.get("email") or "").strip()
    if not subject or not email:
        raise ExternalIdentityError("Email not provided by Google.")
    return ExternalProfile(
        provider=GOOGLE,
        external_id=str(subject),
        email=email,
        display_name=userinfo.get("name") or userinfo.get("given_name"),
        email_verified=bool(userinfo.get("email_verified", False)),
    )
