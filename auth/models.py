"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Mirrors the
approach in league/models.py -- dataclasses own domain shape; stores and
services do the work.

Layer rule: no imports from api/ or league/.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

# Role names seeded by core.database.init_schema().
ADMIN = "Admin"
COACH = "Coach"
PLAYER = "Player"
GUEST = "Guest"


@dataclass
class Role:
    name: str
    id: int | None = None


@dataclass
class User:
    """A person who can sign in to CourtStats.

    password_hash is None for accounts created by an OAuth login. external_id
    is None until the account is linked to a provider identity. The database
    CHECK constraint guarantees at least one of the two is set.
    """

    email: str
    name: str
    role_id: int
    id: int | None = None
    password_hash: str | None = None
    external_id: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def has_password(self) -> bool:
        return self.password_hash is not None

    def public(self) -> dict:
        """Return the record as a dict with the password hash stripped."""
        data = asdict(self)
        data.pop("password_hash")
        return data


@dataclass
class SessionRecord:
    """Server-side session row. The cookie carries only the signed sid."""

    sid: str
    user_id: int
    expires_at: float  # Unix epoch seconds
    created_at: str | None = None


@dataclass(frozen=True)
class Principal:
    """The authenticated identity attached to a single request.

    Rebuilt from Session -> User -> Role on every request and never stored.
    """

    id: int
    email: str
    name: str
    role_id: int
    role_name: str

    def has_role(self, *role_names: str) -> bool:
        return self.role_name in role_names


@dataclass(frozen=True)
class ExternalProfile:
    """Identity claims asserted by an OAuth provider after code exchange."""

    provider: str
    external_id: str
    email: str | None
    display_name: str | None = None
    email_verified: bool = False
