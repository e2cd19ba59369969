"""
core/errors.py -- Application error taxonomy and database error translation.

Every failure a caller can act on is an AppError subclass carrying the HTTP
status and a machine-readable code. api/main.py owns the single exception
handler that turns these into the {"message", "code"} envelope, so services
and dependencies raise plain Python exceptions and never build responses.

Driver-level integrity failures (unique, foreign key, check) are translated
at the service boundary by translate_integrity_error(). Raw driver errors
never reach the client.

Layer rule: core/ is the kernel. No imports from api/, auth/, or league/.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError

# PostgreSQL SQLSTATE class 23 codes we distinguish.
_UNIQUE_VIOLATION = "23505"
_FOREIGN_KEY_VIOLATION = "23503"
_CHECK_VIOLATION = "23514"


class AppError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class AuthenticationError(AppError):
    """Credentials were presented but did not verify."""

    status_code = 401
    code = "bad_credentials"


class ExternalIdentityError(AuthenticationError):
    """The OAuth provider profile cannot be turned into an account."""

    code = "external_identity_error"


class UnauthenticatedError(AppError):
    """No principal is attached to the request."""

    status_code = 401
    code = "unauthenticated"


class NotLoggedInError(UnauthenticatedError):
    code = "not_logged_in"


class ForbiddenError(AppError):
    status_code = 403
    code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "not_found"


class ConflictError(AppError):
    status_code = 409
    code = "conflict"


class InfrastructureError(AppError):
    status_code = 500
    code = "internal_error"


class ConfigurationError(InfrastructureError):
    code = "configuration_error"


def integrity_kind(exc: IntegrityError) -> Optional[str]:
    """Classify an IntegrityError as "unique", "foreign_key", "check" or None.

    PostgreSQL drivers expose the SQLSTATE (psycopg 3: sqlstate, psycopg2:
    pgcode). SQLite only offers the message text.
    """
    orig = exc.orig
    state = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if state == _UNIQUE_VIOLATION:
        return "unique"
    if state == _FOREIGN_KEY_VIOLATION:
        return "foreign_key"
    if state == _CHECK_VIOLATION:
        return "check"

    text = str(orig).upper()
    if "UNIQUE CONSTRAINT FAILED" in text:
        return "unique"
    if "FOREIGN KEY CONSTRAINT FAILED" in text:
        return "foreign_key"
    if "CHECK CONSTRAINT FAILED" in text:
        return "check"
    return None


def translate_integrity_error(
    exc: IntegrityError,
    *,
    unique: Optional[AppError] = None,
    foreign_key: Optional[AppError] = None,
    check: Optional[AppError] = None,
) -> AppError:
    """Return the AppError the caller registered for this kind of violation.

    Kinds the caller did not anticipate surface as InfrastructureError: they
    point at a schema/code mismatch, not at bad input.
    """
    mapping = {"unique": unique, "foreign_key": foreign_key, "check": check}
    kind = integrity_kind(exc)
    translated = mapping.get(kind) if kind else None
    if translated is not None:
        return translated
    return InfrastructureError("Database constraint violation.")
