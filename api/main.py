"""
api/main.py -- FastAPI application entry point for CourtStats.

Exposes authentication (/auth) and the team/player/user/role resources
(/api) over HTTP, backed by one SQLAlchemy engine per process.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter
  3. SessionMiddleware  -- authlib's OAuth state between redirect and callback

Lifespan handles startup (engine, schema, stores, services, OAuth registry,
session purge task) and shutdown (cancel purge task, dispose engine)
symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.players import router as players_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.teams import router as teams_router
from api.routes.v1.users import router as users_router
from auth.oauth import build_oauth
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from core.config import get_settings
from core.database import check_connection, create_db_engine, init_schema
from core.errors import AppError
from league.service import LeagueService
from league.store import LeagueStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("courtstats.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired sessions every interval_seconds.

    Expired sessions are already ignored on read; this only keeps the table
    small. A cancel() that lands while a purge is running in its worker thread
    waits for that purge to finish before unwinding, so shutdown never
    disposes the engine under an in-flight statement.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        purge = asyncio.ensure_future(asyncio.to_thread(app.state.auth_service.purge_expired_sessions))
        try:
            await asyncio.shield(purge)
        except asyncio.CancelledError:
            try:
                await purge
            except AppError:
                logger.exception("Session purge failed during shutdown")
            raise
        except AppError:
            logger.exception("Session purge failed; retrying next cycle")


async def _stop_task(task: asyncio.Task) -> None:
    """Cancel a background task and wait until it has unwound."""
    task.cancel()
    with suppress(asyncio.CancelledError):
        await task


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


def build_services(app: FastAPI, engine) -> None:
    """Wire stores and services onto app.state around an existing engine."""
    settings = get_settings()
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.session_store = SessionStore(engine, settings.session_max_age_seconds)
    app.state.auth_service = AuthService(
        users=app.state.user_store,
        sessions=app.state.session_store,
        hasher=PasswordHasher(settings.bcrypt_rounds),
        default_role_name=settings.oauth_default_role,
        link_requires_verified_email=settings.oauth_link_requires_verified_email,
    )
    app.state.league_service = LeagueService(LeagueStore(engine))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine and schema first -- every store needs the tables.
      2. Stores and services second -- they only hold the engine.
      3. Purge task last -- references app.state.auth_service.
    """
    settings = get_settings()
    logger.info("CourtStats API starting up")
    engine = create_db_engine(settings.database_url)
    init_schema(engine)
    build_services(app, engine)
    app.state.oauth = build_oauth(settings)
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))
    logger.info("Auth initialized (google_oauth=%s)", bool(settings.google_client_id))

    yield

    await _stop_task(app.state.purge_task)
    engine.dispose()
    logger.info("CourtStats API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="CourtStats API",
    description="School tennis team statistics: teams, players, users and roles behind session authentication.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Starlette makes the LAST add_middleware() call the outermost layer, so the
# registrations below run innermost-first: Session -> SlowAPI -> CORS.
# ---------------------------------------------------------------------------

# SessionMiddleware is required by authlib to store the OAuth state value
# between the authorization redirect and the callback. It uses its own cookie
# ("session"), separate from the server-side session cookie.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type"],
    max_age=3600,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(roles_router, prefix="/api", tags=["Roles"])
app.include_router(users_router, prefix="/api", tags=["Users"])
app.include_router(teams_router, prefix="/api", tags=["Teams"])
app.include_router(players_router, prefix="/api", tags=["Players"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope ({"message", "code"})
# so API clients can parse errors uniformly.
# ---------------------------------------------------------------------------


def _error(status_code: int, message: str, code: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, code=code, detail=detail).model_dump(exclude_none=True),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render service-layer errors with their own status and code."""
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return _error(exc.status_code, exc.message, exc.code, exc.detail)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "Too many requests.", "rate_limited", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the request body or query params fail schema validation."""
    return _error(400, "Request validation failed.", "validation_error", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404, 405, ...)."""
    return _error(exc.status_code, str(exc.detail), f"http_{exc.status_code}")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "An unexpected error occurred.", "internal_error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit applied -- health checks must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    db_ok = check_connection(request.app.state.engine)
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
