"""
auth/sessions.py -- Server-side session store and session cookie helpers.

The session table is the source of truth. The cookie carries only the
session id, signed with SECRET_KEY (itsdangerous Signer) so a tampered or
forged value is rejected before any database lookup. No user data or role
claim ever travels in the cookie.

Expiry is an absolute Unix timestamp per row (REAL). get() treats an
expired row as absent and deletes it; purge_expired() sweeps the rest and
runs from the background task started in api/main.py.

Usage:
    sessions = SessionStore(engine, max_age_seconds=30 * 24 * 3600)
    record = sessions.create(user_id)
    set_session_cookie(response, record.sid, settings)
    sessions.get(record.sid)       # -> SessionRecord or None
    sessions.destroy(record.sid)   # -> True
"""

from __future__ import annotations

import secrets
import time
from datetime import datetime, timezone

from itsdangerous import BadSignature, Signer
from sqlalchemy.engine import Engine

from auth.models import SessionRecord
from core.config import Settings
from core.database import user_sessions as _sessions

_SIGNER_SALT = "courtstats.session"


class SessionStore:
    def __init__(self, engine: Engine, max_age_seconds: int) -> None:
        self.engine = engine
        self.max_age_seconds = max_age_seconds

    def create(self, user_id: int) -> SessionRecord:
        """Allocate a fresh unguessable session id bound to user_id."""
        record = SessionRecord(
            sid=secrets.token_urlsafe(32),
            user_id=user_id,
            expires_at=time.time() + self.max_age_seconds,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        with self.engine.connect() as conn:
            conn.execute(
                _sessions.insert().values(
                    sid=record.sid,
                    user_id=record.user_id,
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                )
            )
            conn.commit()
        return record

    def get(self, sid: str) -> SessionRecord | None:
        """Return the live session for sid, or None if absent or expired."""
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.sid == sid)).fetchone()
        if row is None:
            return None
        if row.expires_at <= time.time():
            self.destroy(sid)
            return None
        return SessionRecord(sid=row.sid, user_id=row.user_id, expires_at=row.expires_at, created_at=row.created_at)

    def destroy(self, sid: str) -> bool:
        """Delete one session. Returns True if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.sid == sid))
            conn.commit()
        return result.rowcount > 0

    def destroy_for_user(self, user_id: int) -> int:
        """Delete every session belonging to user_id. Returns the count removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.user_id == user_id))
            conn.commit()
        return result.rowcount

    def purge_expired(self) -> int:
        """Delete all sessions past their expiry. Returns number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= time.time()))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Cookie signing
# ---------------------------------------------------------------------------


def _signer(secret_key: str) -> Signer:
    return Signer(secret_key, salt=_SIGNER_SALT)


def sign_session_id(sid: str, secret_key: str) -> str:
    return _signer(secret_key).sign(sid).decode("utf-8")


def unsign_session_id(value: str, secret_key: str) -> str | None:
    """Return the sid inside a signed cookie value, or None if the signature is bad."""
    try:
        return _signer(secret_key).unsign(value).decode("utf-8")
    except BadSignature:
        return None


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, sid: str, settings: Settings) -> None:
    """Write the signed session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation.
    secure: only sent over HTTPS when SECURE_COOKIES=true (set in production).
    max_age: matches the server-side session lifetime.
    """
    response.set_cookie(
        settings.session_cookie_name,
        value=sign_session_id(sid, settings.secret_key),
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
        max_age=settings.session_max_age_seconds,
    )


def clear_session_cookie(response, settings: Settings) -> None:
    response.delete_cookie(
        settings.session_cookie_name,
        httponly=True,
        samesite="lax",
        secure=settings.secure_cookies,
    )
