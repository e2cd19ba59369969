"""
core/database.py -- Shared SQLAlchemy Core schema and engine factory.

Every table lives on one MetaData so cross-table foreign keys (users -> roles,
players -> teams, user_sessions -> users) resolve at create_all() time. Stores
in auth/ and league/ import the Table objects from here and receive an Engine
from the caller; none of them create engines of their own.

Engine policy:
  PostgreSQL -- a bare postgresql:// URL is normalized to the psycopg 3 driver.
      pool_pre_ping recycles connections the server dropped.
  SQLite     -- check_same_thread disabled (TestClient and uvicorn run sync
      routes in a thread pool). foreign_keys and WAL pragmas are set on every
      new DBAPI connection because SQLite does not persist them.

Layer rule: core/ is the kernel. No imports from api/, auth/, or league/.
"""

from __future__ import annotations

import logging

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("courtstats.db")

# Seeded on every startup. Ids are fixed so clients may hard-code them.
DEFAULT_ROLES: tuple[tuple[int, str], ...] = (
    (1, "Admin"),
    (2, "Coach"),
    (3, "Player"),
    (4, "Guest"),
)

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

roles = Table(
    "roles",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
)

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text),  # NULL for external-identity-only users
    Column("external_id", String(255), unique=True),  # OAuth subject; NULLs never collide
    Column("role_id", Integer, ForeignKey("roles.id"), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    CheckConstraint(
        "password_hash IS NOT NULL OR external_id IS NOT NULL",
        name="ck_users_has_credential",
    ),
)

user_sessions = Table(
    "user_sessions",
    metadata,
    Column("sid", String(64), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", Float, nullable=False, index=True),  # Unix epoch seconds
)

teams = Table(
    "teams",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("coach_id", Integer, ForeignKey("users.id", ondelete="SET NULL")),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

players = Table(
    "players",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("team_id", Integer, ForeignKey("teams.id", ondelete="SET NULL")),
    Column("is_captain", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# SQLite pragmas
# ---------------------------------------------------------------------------


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable foreign key enforcement and WAL journaling per connection.

    SQLite ignores FOREIGN KEY clauses (including ON DELETE CASCADE) unless
    the pragma is on for the connection issuing the statement.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


# ---------------------------------------------------------------------------
# Engine factory
# ---------------------------------------------------------------------------


def normalize_database_url(url: str) -> str:
    """Pin PostgreSQL URLs to the psycopg 3 driver; leave others untouched."""
    parsed = make_url(url.strip())
    if parsed.drivername in ("postgres", "postgresql"):
        parsed = parsed.set(drivername="postgresql+psycopg")
    return parsed.render_as_string(hide_password=False)


def create_db_engine(url: str) -> Engine:
    """Build the process-wide Engine (connection pool) for the given URL."""
    normalized = normalize_database_url(url)
    if normalized.startswith("sqlite"):
        engine = create_engine(normalized, connect_args={"check_same_thread": False})
        event.listen(engine, "connect", _set_sqlite_pragmas)
    else:
        engine = create_engine(normalized, pool_pre_ping=True)
    logger.info("Database engine created (%s)", make_url(normalized).get_backend_name())
    return engine


def init_schema(engine: Engine) -> None:
    """Create missing tables and seed the fixed role set. Idempotent."""
    metadata.create_all(engine)
    with engine.connect() as conn:
        rows = conn.execute(select(roles.c.id, roles.c.name)).fetchall()
        taken_ids = {r.id for r in rows}
        taken_names = {r.name for r in rows}
        missing = [{"id": rid, "name": name} for rid, name in DEFAULT_ROLES if name not in taken_names]
        if missing:
            for row in missing:
                if row["id"] not in taken_ids:
                    conn.execute(roles.insert().values(**row))
            if engine.dialect.name == "postgresql":
                # Explicit ids bypass the sequence; move it past the seeded range.
                conn.execute(text("SELECT setval(pg_get_serial_sequence('roles', 'id'), (SELECT MAX(id) FROM roles))"))
            for row in missing:
                if row["id"] in taken_ids:
                    # Id reused by an operator-created role; let the sequence pick one.
                    conn.execute(roles.insert().values(name=row["name"]))
            logger.info("Seeded roles: %s", ", ".join(r["name"] for r in missing))
        conn.commit()


def check_connection(engine: Engine) -> bool:
    """Return True if a trivial query succeeds. Used by the health endpoint."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return False
