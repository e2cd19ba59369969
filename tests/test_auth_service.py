"""
tests/test_auth_service.py -- Unit tests for AuthService.

These run against a single-threaded in-memory engine (the engine fixture)
and call the service directly, without HTTP.

Coverage:
  - register_local(): normalization, validation messages, conflict translation
  - authenticate_local(): success, wrong password, unknown email, no password
  - resolve_external(): match by id, link by email, create, rejection paths,
    missing default role
  - establish_session() rotation, load_principal(), logout(), status()
  - Concurrent duplicate registration: exactly one winner
  - Role changes revoke the target's sessions; duplicate external ids are named as such
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import delete, update

from auth.models import ExternalProfile, Principal, User
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from conftest import PASSWORD, ROLE_IDS, make_engine
from core.database import roles, users
from core.errors import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    ExternalIdentityError,
    ForbiddenError,
    NotLoggedInError,
    UnauthenticatedError,
    ValidationError,
)


def _service(engine, **kwargs) -> AuthService:
    return AuthService(
        users=UserStore(engine),
        sessions=SessionStore(engine, max_age_seconds=3600),
        hasher=PasswordHasher(rounds=4),
        **kwargs,
    )


@pytest.fixture
def service(engine) -> AuthService:
    return _service(engine)


def _profile(sub: str = "g-1", email: str | None = "g@x.com", verified: bool = True, name: str | None = "G User"):
    return ExternalProfile(provider="google", external_id=sub, email=email, display_name=name, email_verified=verified)


# ---------------------------------------------------------------------------
# register_local
# ---------------------------------------------------------------------------


class TestRegisterLocal:
    def test_creates_user_with_hash(self, service: AuthService) -> None:
        user = service.register_local("  Alice@X.com ", "Alice", PASSWORD, ROLE_IDS["Coach"])
        assert user.id is not None
        assert user.email == "alice@x.com"
        assert user.role_id == ROLE_IDS["Coach"]
        assert user.password_hash and user.password_hash != PASSWORD
        assert user.external_id is None

    @pytest.mark.parametrize(
        "email,name,password,role_id",
        [
            (None, "A", PASSWORD, 3),
            ("a@x.com", "", PASSWORD, 3),
            ("a@x.com", "A", None, 3),
            ("a@x.com", "A", PASSWORD, None),
        ],
    )
    def test_missing_fields(self, service: AuthService, email, name, password, role_id) -> None:
        with pytest.raises(ValidationError, match="Missing required fields"):
            service.register_local(email, name, password, role_id)

    def test_short_password(self, service: AuthService) -> None:
        with pytest.raises(ValidationError, match="at least 6 characters"):
            service.register_local("a@x.com", "A", "12345", 3)

    def test_password_over_72_bytes(self, service: AuthService) -> None:
        with pytest.raises(ValidationError, match="72 bytes"):
            service.register_local("a@x.com", "A", "é" * 40, 3)

    def test_invalid_email(self, service: AuthService) -> None:
        with pytest.raises(ValidationError, match="Invalid email address."):
            service.register_local("not-an-email", "A", PASSWORD, 3)

    def test_duplicate_email(self, service: AuthService) -> None:
        service.register_local("a@x.com", "A", PASSWORD, 3)
        with pytest.raises(ConflictError, match="User with email a@x.com already exists."):
            service.register_local("A@x.com", "Other", PASSWORD, 3)

    def test_unknown_role(self, service: AuthService) -> None:
        with pytest.raises(ValidationError, match="Role with ID 77 does not exist."):
            service.register_local("a@x.com", "A", PASSWORD, 77)


# ---------------------------------------------------------------------------
# authenticate_local
# ---------------------------------------------------------------------------


class TestAuthenticateLocal:
    def test_success_returns_same_user(self, service: AuthService) -> None:
        created = service.register_local("a@x.com", "A", PASSWORD, 3)
        assert service.authenticate_local("A@X.COM", PASSWORD).id == created.id

    def test_wrong_password(self, service: AuthService) -> None:
        service.register_local("a@x.com", "A", PASSWORD, 3)
        with pytest.raises(AuthenticationError, match="Incorrect email or password."):
            service.authenticate_local("a@x.com", "wrong-one")

    def test_unknown_email_same_message(self, service: AuthService) -> None:
        with pytest.raises(AuthenticationError) as info:
            service.authenticate_local("ghost@x.com", PASSWORD)
        assert info.value.message == "Incorrect email or password."

    def test_external_only_account(self, service: AuthService) -> None:
        service.resolve_external(_profile())
        with pytest.raises(AuthenticationError, match="original method"):
            service.authenticate_local("g@x.com", PASSWORD)

    def test_missing_password(self, service: AuthService) -> None:
        with pytest.raises(ValidationError):
            service.authenticate_local("a@x.com", "")


# ---------------------------------------------------------------------------
# resolve_external
# ---------------------------------------------------------------------------


class TestResolveExternal:
    def test_creates_default_role_user(self, service: AuthService) -> None:
        user = service.resolve_external(_profile())
        assert user.external_id == "g-1"
        assert user.role_id == ROLE_IDS["Player"]
        assert user.name == "G User"
        assert user.password_hash is None

    def test_missing_display_name_falls_back_to_local_part(self, service: AuthService) -> None:
        assert service.resolve_external(_profile(name=None)).name == "g"

    def test_is_idempotent(self, service: AuthService) -> None:
        first = service.resolve_external(_profile())
        second = service.resolve_external(_profile())
        assert first.id == second.id
        assert service.users.count_users() == 1

    def test_links_verified_email(self, service: AuthService) -> None:
        local = service.register_local("g@x.com", "Local", PASSWORD, ROLE_IDS["Coach"])
        linked = service.resolve_external(_profile())
        assert linked.id == local.id
        assert linked.external_id == "g-1"
        assert linked.role_id == ROLE_IDS["Coach"]
        assert linked.password_hash == local.password_hash

    def test_rejects_unverified_link(self, service: AuthService) -> None:
        local = service.register_local("g@x.com", "Local", PASSWORD, 3)
        with pytest.raises(ExternalIdentityError, match="not verified"):
            service.resolve_external(_profile(verified=False))
        assert service.users.get_by_id(local.id).external_id is None

    def test_unverified_link_allowed_when_configured(self, engine, caplog) -> None:
        service = _service(engine, link_requires_verified_email=False)
        local = service.register_local("g@x.com", "Local", PASSWORD, 3)
        with caplog.at_level("WARNING", logger="courtstats.auth"):
            linked = service.resolve_external(_profile(verified=False))
        assert linked.id == local.id
        assert "SECURITY REVIEW" in caplog.text

    def test_email_bound_to_other_identity(self, service: AuthService) -> None:
        service.resolve_external(_profile(sub="g-1"))
        with pytest.raises(ExternalIdentityError, match="different account"):
            service.resolve_external(_profile(sub="g-2"))

    def test_missing_email(self, service: AuthService) -> None:
        with pytest.raises(ExternalIdentityError, match="Email not provided by Google."):
            service.resolve_external(_profile(email=None))

    def test_missing_default_role(self, engine) -> None:
        with engine.connect() as conn:
            conn.execute(delete(roles).where(roles.c.name == "Player"))
            conn.commit()
        service = _service(engine)
        with pytest.raises(ConfigurationError):
            service.resolve_external(_profile())
        assert service.users.count_users() == 0

    def test_custom_default_role(self, engine) -> None:
        service = _service(engine, default_role_name="Guest")
        assert service.resolve_external(_profile()).role_id == ROLE_IDS["Guest"]


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    def test_establish_and_load(self, service: AuthService) -> None:
        user = service.register_local("a@x.com", "A", PASSWORD, ROLE_IDS["Coach"])
        record = service.establish_session(user)
        principal = service.load_principal(record.sid)
        assert principal == Principal(id=user.id, email="a@x.com", name="A", role_id=2, role_name="Coach")

    def test_establish_destroys_previous(self, service: AuthService) -> None:
        user = service.register_local("a@x.com", "A", PASSWORD, 3)
        first = service.establish_session(user)
        second = service.establish_session(user, previous_sid=first.sid)
        assert first.sid != second.sid
        assert service.load_principal(first.sid) is None
        assert service.load_principal(second.sid) is not None

    def test_role_change_is_seen_on_next_request(self, engine, service: AuthService) -> None:
        user = service.register_local("a@x.com", "A", PASSWORD, ROLE_IDS["Player"])
        record = service.establish_session(user)
        with engine.connect() as conn:
            conn.execute(update(users).where(users.c.id == user.id).values(role_id=ROLE_IDS["Admin"]))
            conn.commit()
        assert service.load_principal(record.sid).role_name == "Admin"

    def test_load_unknown_sid(self, service: AuthService) -> None:
        assert service.load_principal(None) is None
        assert service.load_principal("no-such-session") is None

    def test_logout_then_logout_again(self, service: AuthService) -> None:
        user = service.register_local("a@x.com", "A", PASSWORD, 3)
        record = service.establish_session(user)
        principal = service.load_principal(record.sid)
        service.logout(principal, record.sid)
        assert service.load_principal(record.sid) is None
        with pytest.raises(NotLoggedInError, match="Not logged in"):
            service.logout(service.load_principal(record.sid), record.sid)

    def test_status_requires_principal(self, service: AuthService) -> None:
        with pytest.raises(UnauthenticatedError, match="Not authenticated"):
            service.status(None)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


class TestAdministration:
    def _principal(self, user: User, role_name: str) -> Principal:
        return Principal(id=user.id, email=user.email, name=user.name, role_id=user.role_id, role_name=role_name)

    def test_admin_can_change_role(self, service: AuthService) -> None:
        admin = service.register_local("admin@x.com", "Admin", PASSWORD, ROLE_IDS["Admin"])
        target = service.register_local("p@x.com", "P", PASSWORD, ROLE_IDS["Player"])
        updated = service.update_user(self._principal(admin, "Admin"), target.id, role_id=ROLE_IDS["Coach"])
        assert updated.role_id == ROLE_IDS["Coach"]

    def test_coach_cannot_edit_others(self, service: AuthService) -> None:
        coach = service.register_local("c@x.com", "C", PASSWORD, ROLE_IDS["Coach"])
        target = service.register_local("p@x.com", "P", PASSWORD, ROLE_IDS["Player"])
        with pytest.raises(ForbiddenError):
            service.update_user(self._principal(coach, "Coach"), target.id, name="X")

    def test_empty_update(self, service: AuthService) -> None:
        user = service.register_local("p@x.com", "P", PASSWORD, 3)
        with pytest.raises(ValidationError, match="No update fields provided."):
            service.update_user(self._principal(user, "Player"), user.id)

    def test_admin_create_requires_credential(self, service: AuthService) -> None:
        with pytest.raises(ValidationError, match="password or an external_id"):
            service.create_user_admin("n@x.com", "N", 3)

    def test_duplicate_role_name(self, service: AuthService) -> None:
        with pytest.raises(ConflictError, match="Role with name 'Coach' already exists."):
            service.create_role("Coach")

    def test_delete_referenced_role(self, service: AuthService) -> None:
        service.register_local("p@x.com", "P", PASSWORD, ROLE_IDS["Player"])
        with pytest.raises(ConflictError, match="referenced by users"):
            service.delete_role(ROLE_IDS["Player"])


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


def test_concurrent_duplicate_registration_has_one_winner(tmp_path) -> None:
    """N simultaneous registrations of one email: one account, N-1 conflicts."""
    engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
    service = _service(engine)

    def attempt(i: int):
        try:
            return service.register_local("race@x.com", f"Racer {i}", PASSWORD, 3)
        except ConflictError as exc:
            return exc

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(attempt, range(8)))

    winners = [r for r in results if isinstance(r, User)]
    losers = [r for r in results if isinstance(r, ConflictError)]
    assert len(winners) == 1, f"Expected exactly one winner, got {len(winners)}"
    assert len(losers) == 7
    assert service.users.count_users() == 1
    engine.dispose()


# ---------------------------------------------------------------------------
# Role changes and duplicate identities
# ---------------------------------------------------------------------------


class TestRoleChangeAndDuplicates:
    def _admin(self, service: AuthService) -> Principal:
        admin = service.register_local("admin@x.com", "Admin", PASSWORD, ROLE_IDS["Admin"])
        return Principal(id=admin.id, email=admin.email, name=admin.name, role_id=admin.role_id, role_name="Admin")

    def test_role_change_revokes_sessions(self, service: AuthService) -> None:
        admin = self._admin(service)
        target = service.register_local("p@x.com", "P", PASSWORD, ROLE_IDS["Player"])
        first = service.establish_session(target)
        second = service.establish_session(target)

        service.update_user(admin, target.id, role_id=ROLE_IDS["Coach"])

        assert service.load_principal(first.sid) is None
        assert service.load_principal(second.sid) is None
        fresh = service.establish_session(service.get_user(target.id))
        assert service.load_principal(fresh.sid).role_name == "Coach"

    def test_profile_change_keeps_sessions(self, service: AuthService) -> None:
        target = service.register_local("p@x.com", "P", PASSWORD, ROLE_IDS["Player"])
        record = service.establish_session(target)
        me = service.load_principal(record.sid)

        service.update_user(me, target.id, name="Renamed")

        assert service.load_principal(record.sid).name == "Renamed"

    def test_duplicate_external_id_names_external_id(self, service: AuthService) -> None:
        service.create_user_admin("first@x.com", "First", 3, external_id="g-77")
        with pytest.raises(ConflictError) as info:
            service.create_user_admin("second@x.com", "Second", 3, external_id="g-77")
        assert info.value.message == "User with external_id g-77 already exists."

    def test_duplicate_email_with_external_id_names_email(self, service: AuthService) -> None:
        service.create_user_admin("first@x.com", "First", 3, external_id="g-1")
        with pytest.raises(ConflictError) as info:
            service.create_user_admin("first@x.com", "Again", 3, external_id="g-2")
        assert info.value.message == "User with email first@x.com already exists."
