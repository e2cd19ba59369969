"""
auth/service.py -- Identity resolution and session lifecycle.

AuthService is constructed once in the api/main.py lifespan with its
collaborators injected (user store, session store, password hasher) and is
reached by route handlers through app.state.auth_service. There is no module
level mutable state.

Session lifecycle:
  Anonymous --(register_local | authenticate_local | resolve_external)-->
      establish_session() --> Authenticated
  Authenticated --(logout | expiry | session row gone)--> Anonymous

Error contract:
  Every method raises core.errors.AppError subclasses. Database uniqueness,
  foreign key and check violations are translated here, at the service
  boundary. Uniqueness is never pre-checked: the insert is attempted and the
  constraint violation is the authoritative conflict signal, so concurrent
  duplicate registrations cannot both succeed.

Security notes:
  [C1] authenticate_local() always runs one bcrypt check, even for unknown
       emails, so response time does not reveal whether an account exists.
  [C2] establish_session() destroys the caller's previous session before
       allocating a new id. A session id is never reused across logins.
  [H1] resolve_external() links a provider identity to an existing account
       only when the provider asserts email_verified (configurable). A link
       without that assertion is logged at WARNING for security review.

Layer rule: no imports from api/ or league/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import ADMIN, ExternalProfile, Principal, Role, SessionRecord, User
from auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from auth.permissions import authorize
from auth.sessions import SessionStore
from auth.store import UserStore
from core.errors import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    ExternalIdentityError,
    ForbiddenError,
    InfrastructureError,
    NotFoundError,
    NotLoggedInError,
    UnauthenticatedError,
    ValidationError,
    translate_integrity_error,
)

logger = logging.getLogger("courtstats.auth")

MIN_PASSWORD_LENGTH = 6

BAD_CREDENTIALS_MESSAGE = "Incorrect email or password."
ORIGINAL_METHOD_MESSAGE = "Please log in using your original method (e.g., Google)."


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def _validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long.")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes long.")


def _validate_email(email: str) -> None:
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValidationError("Invalid email address.")


class AuthService:
    """Resolves credentials to users and manages server-side sessions."""

    def __init__(
        self,
        users: UserStore,
        sessions: SessionStore,
        hasher: PasswordHasher,
        default_role_name: str = "Player",
        link_requires_verified_email: bool = True,
    ) -> None:
        self.users = users
        self.sessions = sessions
        self.hasher = hasher
        self.default_role_name = default_role_name
        self.link_requires_verified_email = link_requires_verified_email

    # ------------------------------------------------------------------
    # Identity resolution
    # ------------------------------------------------------------------

    def register_local(self, email: str | None, name: str | None, password: str | None, role_id: int | None) -> User:
        """Create a local email/password account.

        The caller establishes the session afterwards (registration implies login).

        Raises:
            ValidationError: missing field, short password, unknown role_id.
            ConflictError:   the email is already registered.
        """
        email = normalize_email(email)
        name = (name or "").strip()
        if not email or not name or not password or not role_id:
            raise ValidationError("Missing required fields: email, name, password, role_id")
        _validate_password(password)
        _validate_email(email)

        user = User(email=email, name=name, role_id=role_id, password_hash=self.hasher.hash(password))
        user.id = self._insert_user(user)
        logger.info("Registered local user id=%s role_id=%s", user.id, role_id)
        return self._reload(user.id)

    def authenticate_local(self, email: str | None, password: str | None) -> User:
        """Verify email/password and return the matching user.

        Raises:
            ValidationError:     email or password missing.
            AuthenticationError: unknown email, wrong password, or an account
                                 with no local password (distinct message).
        """
        email = normalize_email(email)
        if not email or not password:
            raise ValidationError("Missing required fields: email, password")

        user = self._db(self.users.get_by_email, email)
        if user is None:
            self.hasher.verify_dummy(password)  # [C1]
            logger.info("Login failed: unknown email")
            raise AuthenticationError(BAD_CREDENTIALS_MESSAGE)
        if not user.has_password:
            self.hasher.verify_dummy(password)  # [C1]
            logger.info("Login refused for user id=%s: external identity only", user.id)
            raise AuthenticationError(ORIGINAL_METHOD_MESSAGE)
        if not self.hasher.verify(password, user.password_hash):
            logger.info("Login failed for user id=%s: bad password", user.id)
            raise AuthenticationError(BAD_CREDENTIALS_MESSAGE)
        return user

    def resolve_external(self, profile: ExternalProfile) -> User:
        """Map a provider profile onto exactly one user, linking or creating as needed.

        Order: external id match, then email match (link), then create.

        Raises:
            ExternalIdentityError: no email, email owned by an account linked
                                   to a different identity, or unverified email
                                   when linking requires verification.
            ConfigurationError:    the default role for new accounts is missing.
        """
        user = self._db(self.users.get_by_external_id, profile.external_id)
        if user is not None:
            return user

        email = normalize_email(profile.email)
        if not email:
            raise ExternalIdentityError(f"Email not provided by {profile.provider.capitalize()}.")

        existing = self._db(self.users.get_by_email, email)
        if existing is not None:
            return self._link(existing, profile)
        return self._create_external(profile, email)

    def _link(self, user: User, profile: ExternalProfile) -> User:
        if user.external_id is not None:
            # Account already bound to another identity at this provider.
            logger.warning(
                "%s login rejected: user id=%s is linked to a different external identity",
                profile.provider,
                user.id,
            )
            raise ExternalIdentityError("This email is already linked to a different account.")
        if not profile.email_verified:
            if self.link_requires_verified_email:
                logger.warning("%s login rejected: unverified email matches user id=%s", profile.provider, user.id)
                raise ExternalIdentityError("Email is not verified by the identity provider.")
            logger.warning(  # [H1]
                "SECURITY REVIEW: linking %s identity to user id=%s without a verified email",
                profile.provider,
                user.id,
            )

        linked = self._db(self.users.link_external_id, user.id, profile.external_id)
        if not linked:
            # Lost a race with another callback; whoever won is authoritative.
            current = self._db(self.users.get_by_id, user.id)
            if current is None or current.external_id != profile.external_id:
                raise ExternalIdentityError("This email is already linked to a different account.")
            return current
        logger.info("Linked %s identity to user id=%s", profile.provider, user.id)
        return self._reload(user.id)

    def _create_external(self, profile: ExternalProfile, email: str) -> User:
        role = self._db(self.users.get_role_by_name, self.default_role_name)
        if role is None:
            raise ConfigurationError(
                f"Default role {self.default_role_name!r} does not exist; cannot create accounts from OAuth logins."
            )
        user = User(
            email=email,
            name=(profile.display_name or "").strip() or email.split("@")[0],
            role_id=role.id,
            external_id=profile.external_id,
        )
        try:
            user.id = self.users.create_user(user)
        except IntegrityError as exc:
            # Concurrent first login for the same identity: the winner's row stands.
            winner = self._db(self.users.get_by_external_id, profile.external_id)
            if winner is not None:
                return winner
            raise ConflictError(f"User with email {email} already exists.") from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error creating user.") from exc
        logger.info("Created user id=%s from %s login", user.id, profile.provider)
        return self._reload(user.id)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def establish_session(self, user: User, previous_sid: str | None = None) -> SessionRecord:
        """Anonymous -> Authenticated. Returns the new session to put in the cookie."""
        if previous_sid:
            self._db(self.sessions.destroy, previous_sid)  # [C2]
        record = self._db(self.sessions.create, user.id)
        logger.info("Session established for user id=%s", user.id)
        return record

    def load_principal(self, sid: str | None) -> Principal | None:
        """Rehydrate the principal for a session id; None means Anonymous."""
        if not sid:
            return None
        record = self._db(self.sessions.get, sid)
        if record is None:
            return None
        return self._db(self.users.get_principal, record.user_id)

    def logout(self, principal: Principal | None, sid: str | None) -> None:
        """Authenticated -> Anonymous.

        Raises:
            NotLoggedInError: no active principal (including a second logout).
        """
        if principal is None or not sid:
            raise NotLoggedInError("Not logged in")
        self._db(self.sessions.destroy, sid)
        logger.info("Logged out user id=%s", principal.id)

    def status(self, principal: Principal | None) -> Principal:
        if principal is None:
            raise UnauthenticatedError("Not authenticated")
        return principal

    def purge_expired_sessions(self) -> int:
        removed = self._db(self.sessions.purge_expired)
        if removed:
            logger.info("Purged %d expired sessions", removed)
        return removed

    # ------------------------------------------------------------------
    # User administration
    # ------------------------------------------------------------------

    def list_users(self) -> list[User]:
        return self._db(self.users.list_users)

    def get_user(self, user_id: int) -> User:
        user = self._db(self.users.get_by_id, user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def create_user_admin(
        self,
        email: str | None,
        name: str | None,
        role_id: int | None,
        password: str | None = None,
        external_id: str | None = None,
    ) -> User:
        """Pre-provision an account. Needs a password, an external id, or both."""
        email = normalize_email(email)
        name = (name or "").strip()
        if not email or not name or not role_id:
            raise ValidationError("Missing required fields: email, name, role_id")
        _validate_email(email)
        if not password and not external_id:
            raise ValidationError("A password or an external_id is required.")
        digest = None
        if password:
            _validate_password(password)
            digest = self.hasher.hash(password)

        user = User(email=email, name=name, role_id=role_id, password_hash=digest, external_id=external_id or None)
        user.id = self._insert_user(user)
        logger.info("Admin created user id=%s role_id=%s", user.id, role_id)
        return self._reload(user.id)

    def update_user(
        self,
        actor: Principal,
        user_id: int,
        *,
        email: str | None = None,
        name: str | None = None,
        role_id: int | None = None,
    ) -> User:
        """Update profile fields. Admins may edit anyone; users only themselves.

        role_id changes are Admin only and sign the target out everywhere, so
        the new role starts with a fresh login.
        """
        if actor.id != user_id:
            authorize(actor, [ADMIN])
        if role_id is not None and not actor.has_role(ADMIN):
            raise ForbiddenError("Forbidden: Only Admins can change a user's role.")

        changes: dict = {}
        if email is not None:
            changes["email"] = normalize_email(email)
            _validate_email(changes["email"])
        if name is not None:
            if not name.strip():
                raise ValidationError("Name cannot be empty.")
            changes["name"] = name.strip()
        if role_id is not None:
            changes["role_id"] = role_id
        if not changes:
            raise ValidationError("No update fields provided.")

        try:
            updated = self.users.update_user(user_id, **changes)
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc,
                unique=ConflictError("Cannot update: email already in use."),
                foreign_key=ValidationError(f"Role with ID {role_id} does not exist."),
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error updating user.") from exc
        if not updated:
            raise NotFoundError("User not found.")
        if "role_id" in changes:
            revoked = self._db(self.sessions.destroy_for_user, user_id)
            logger.info("Role of user id=%s changed by id=%s; revoked %d session(s)", user_id, actor.id, revoked)
        return self._reload(user_id)

    def delete_user(self, user_id: int) -> None:
        """Delete a user. Their sessions and player record go with them."""
        deleted = self._db(self.users.delete_user, user_id)
        if not deleted:
            raise NotFoundError("User not found.")
        logger.info("Deleted user id=%s", user_id)

    # ------------------------------------------------------------------
    # Role administration
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        return self._db(self.users.list_roles)

    def get_role(self, role_id: int) -> Role:
        role = self._db(self.users.get_role, role_id)
        if role is None:
            raise NotFoundError("Role not found.")
        return role

    def create_role(self, name: str | None) -> Role:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Missing required field: name")
        try:
            role_id = self.users.create_role(name)
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc, unique=ConflictError(f"Role with name '{name}' already exists.")
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error creating role.") from exc
        logger.info("Created role id=%s name=%s", role_id, name)
        return Role(id=role_id, name=name)

    def update_role(self, role_id: int, name: str | None) -> Role:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Missing required field: name")
        try:
            updated = self.users.update_role(role_id, name)
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc, unique=ConflictError(f"Role with name '{name}' already exists.")
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error updating role.") from exc
        if not updated:
            raise NotFoundError("Role not found.")
        return Role(id=role_id, name=name)

    def delete_role(self, role_id: int) -> None:
        try:
            deleted = self.users.delete_role(role_id)
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc,
                foreign_key=ConflictError(f"Cannot delete role ID {role_id} because it is referenced by users."),
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error deleting role.") from exc
        if not deleted:
            raise NotFoundError("Role not found.")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _insert_user(self, user: User) -> int:
        try:
            return self.users.create_user(user)
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc,
                unique=self._duplicate_user(user),
                foreign_key=ValidationError(f"Role with ID {user.role_id} does not exist."),
                check=ValidationError("A password or an external_id is required."),
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error creating user.") from exc

    def _duplicate_user(self, user: User) -> ConflictError:
        """Name the unique column that collided: email first, then external_id."""
        if user.external_id and self._db(self.users.get_by_email, user.email) is None:
            return ConflictError(f"User with external_id {user.external_id} already exists.")
        return ConflictError(f"User with email {user.email} already exists.")

    def _reload(self, user_id: int) -> User:
        user = self._db(self.users.get_by_id, user_id)
        if user is None:
            raise InfrastructureError("User not found after write.")
        return user

    @staticmethod
    def _db(fn, *args, **kwargs):
        """Call a store method, surfacing driver failures as InfrastructureError."""
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception("Database error in %s", getattr(fn, "__name__", "store call"))
            raise InfrastructureError("Database error.") from exc
