"""
auth/store.py -- SQLAlchemy Core persistence layer for users and roles.

Pattern: Repository + Data Mapper (same as league/store.py).
UserStore is the repository; _row_to_user / _row_to_role / _row_to_principal
are the mappers. Service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Uniqueness (email, external_id, role name) and the "has a credential" CHECK
  are enforced by the database. This module lets sqlalchemy.exc.IntegrityError
  propagate; auth/service.py translates it into the AppError taxonomy. Never
  pre-check-then-insert -- the constraint is the authoritative conflict signal.

Layer rule: no imports from api/ or league/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from auth.models import Principal, Role, User
from core.database import roles as _roles
from core.database import users as _users

# Columns a caller may change through update_user(). Anything else raises.
_UPDATABLE_USER_FIELDS = frozenset({"email", "name", "role_id", "password_hash", "external_id"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class UserStore:
    """Repository for User and Role entities.

    Usage:
        store = UserStore(engine)
        uid = store.create_user(User(email="a@x.com", name="A", role_id=3, password_hash=digest))
        user = store.get_by_email("a@x.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError on a duplicate email or
        external_id, an unknown role_id, or a row with no credential.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    name=user.name,
                    password_hash=user.password_hash,
                    external_id=user.external_id,
                    role_id=user.role_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email. Callers pass the normalized (lowercased) form."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_external_id(self, external_id: str) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.external_id == external_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def link_external_id(self, user_id: int, external_id: str) -> bool:
        """Attach an external identity to an existing account.

        The WHERE clause only matches rows whose external_id is still NULL, so
        two concurrent callbacks cannot both re-link the same account. Returns
        True if a row was updated.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.update()
                .where((_users.c.id == user_id) & (_users.c.external_id.is_(None)))
                .values(external_id=external_id, updated_at=_now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def list_users(self) -> list[User]:
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user and stamp updated_at.

        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _UPDATABLE_USER_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {sorted(unknown)!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Delete a user. Sessions and the player row cascade; coached teams are unset."""
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def count_users(self) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(_users)).scalar() or 0

    def get_principal(self, user_id: int) -> Principal | None:
        """Load a user joined with its role in a single query."""
        stmt = (
            select(
                _users.c.id,
                _users.c.email,
                _users.c.name,
                _users.c.role_id,
                _roles.c.name.label("role_name"),
            )
            .select_from(_users.join(_roles, _users.c.role_id == _roles.c.id))
            .where(_users.c.id == user_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).fetchone()
        return _row_to_principal(row) if row is not None else None

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def get_role(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def create_role(self, name: str) -> int:
        """Insert a role. Raises IntegrityError on a duplicate name."""
        with self.engine.connect() as conn:
            result = conn.execute(_roles.insert().values(name=name))
            conn.commit()
            return result.inserted_primary_key[0]

    def update_role(self, role_id: int, name: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(name=name))
            conn.commit()
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role. Raises IntegrityError while any user references it."""
        with self.engine.connect() as conn:
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        role_id=row.role_id,
        password_hash=row.password_hash,
        external_id=row.external_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row) -> Role:
    return Role(id=row.id, name=row.name)


def _row_to_principal(row) -> Principal:
    return Principal(
        id=row.id,
        email=row.email,
        name=row.name,
        role_id=row.role_id,
        role_name=row.role_name,
    )
