"""
tests/conftest.py -- Shared test fixtures for CourtStats tests.

This module provides:
  - make_engine(): in-memory engine with schema and seeded roles
  - _patch_lifespan(): wires a test engine into app.state, bypassing real startup
  - app_client: module-scoped TestClient against the real FastAPI app
  - client: the same TestClient with tables, cookies and the OAuth mock reset
  - register(): helper that registers (and therefore logs in) a user

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the API fixtures because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit tests that stay on one thread use plain :memory:.

Environment variables must be set before any core/auth/api import so
get_settings() sees them: DEBUG auto-generates SECRET_KEY, BCRYPT_ROUNDS=4
keeps hashing fast, and a generous LOGIN_RATE_LIMIT keeps slowapi out of the
way of tests that log in many times.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: Set before any core/auth/api import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import delete
from sqlalchemy.engine import Engine

from api.main import _stop_task, app, build_services
from core.database import DEFAULT_ROLES, create_db_engine, init_schema, players, roles, teams, user_sessions, users

ROLE_IDS = {name: rid for rid, name in DEFAULT_ROLES}
PASSWORD = "secret1"

# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def make_engine(url: str = "sqlite:///:memory:") -> Engine:
    engine = create_db_engine(url)
    init_schema(engine)
    return engine


def reset_tables(engine: Engine) -> None:
    """Remove every row except the seeded roles."""
    seeded = [rid for rid, _ in DEFAULT_ROLES]
    with engine.connect() as conn:
        conn.execute(delete(players))
        conn.execute(delete(teams))
        conn.execute(delete(user_sessions))
        conn.execute(delete(users))
        conn.execute(delete(roles).where(roles.c.id.not_in(seeded)))
        conn.commit()


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine into app.state through the same build_services()
    the real lifespan uses, and mocks the OAuth registry to prevent network
    calls. The purge_task is a long-sleeping coroutine so shutdown can
    cancel and await a real asyncio.Task via _stop_task().
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_services(app, engine)
        app.state.oauth = MagicMock()
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        await _stop_task(app.state.purge_task)

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory engine for unit tests (single thread)."""
    eng = make_engine()
    yield eng
    eng.dispose()


@pytest.fixture(scope="module")
def app_client(request) -> Generator[TestClient, None, None]:
    """One TestClient per test module, backed by its own shared-memory DB."""
    suffix = request.module.__name__.rsplit(".", 1)[-1]
    eng = make_engine(f"sqlite:///file:test_{suffix}?mode=memory&cache=shared&uri=true")
    app.router.lifespan_context = _patch_lifespan(eng)
    with TestClient(app, raise_server_exceptions=True) as tc:
        yield tc
    eng.dispose()


@pytest.fixture
def client(app_client: TestClient) -> TestClient:
    """The module TestClient with empty tables, no cookies and a fresh OAuth mock."""
    reset_tables(app_client.app.state.engine)
    app_client.cookies.clear()
    app_client.app.state.oauth = MagicMock()
    return app_client


def register(
    client: TestClient,
    email: str = "a@x.com",
    role: str = "Player",
    password: str = PASSWORD,
    name: str | None = None,
):
    """POST /auth/register. On success the client holds the new session cookie."""
    return client.post(
        "/auth/register",
        json={"email": email, "name": name or email.split("@")[0], "password": password, "role_id": ROLE_IDS[role]},
    )


def login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})
