"""
api/main.py -- FastAPI application entry point for BizRecords.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the engine, creates the schema, seeds role reference rows
(and the bootstrap admin when configured), and wires every auth and records
component into app.state. Shutdown disposes of the connection pool.

Failure mapping:
  auth/ and records/ raise core.errors types. bizrecords_error_handler()
  below is the only place a failure type becomes an HTTP status.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.customers import router as customers_router
from api.routes.v1.dashboard import router as dashboard_router
from api.routes.v1.users import router as users_router
from auth.credentials import CredentialVerifier
from auth.sessions import SessionAuthenticator
from auth.store import IdentityStore
from auth.tokens import SessionIssuer, hash_password
from core.config import get_settings
from core.database import create_db_engine, init_schema
from core.errors import (
    BizRecordsError,
    Conflict,
    Forbidden,
    InvalidCredentials,
    InvalidOperation,
    InvalidOrExpiredToken,
    MissingCredential,
    NotFound,
    Unavailable,
    ValidationFailed,
)
from records.accessor import CustomerAccessor, IdentityAccessor

API_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("bizrecords.api")

# ---------------------------------------------------------------------------
# Failure taxonomy -> HTTP status
# ---------------------------------------------------------------------------

ERROR_STATUS: dict[type[BizRecordsError], int] = {
    MissingCredential: 401,
    InvalidCredentials: 401,
    InvalidOrExpiredToken: 403,
    Forbidden: 403,
    NotFound: 404,
    Conflict: 409,
    InvalidOperation: 400,
    ValidationFailed: 422,
    Unavailable: 503,
}

# Seconds a client should wait before retrying after a 503.
_RETRY_AFTER_SECONDS = 5


def status_for(exc: BizRecordsError) -> int:
    """Resolve the status for a failure, walking the MRO for subclasses."""
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def wire_components(app: FastAPI, engine: Engine) -> None:
    """Build every auth and records component over one engine and attach them.

    Shared by the real lifespan and the test fixtures so both run the same
    object graph.
    """
    store = IdentityStore(engine)
    issuer = SessionIssuer()
    app.state.engine = engine
    app.state.identity_store = store
    app.state.issuer = issuer
    app.state.verifier = CredentialVerifier(store)
    app.state.authenticator = SessionAuthenticator(store, issuer)
    app.state.customers = CustomerAccessor(engine)
    app.state.identities = IdentityAccessor(engine)


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine and schema first -- every component needs the tables.
      2. Role reference rows before the bootstrap admin, whose role_id
         points at them.
      3. Components last, all sharing the one engine.
    """
    settings = get_settings()
    logger.info("BizRecords API starting up")
    engine = create_db_engine(settings.database_url, timeout_seconds=settings.db_timeout_seconds)
    init_schema(engine)

    store = IdentityStore(engine)
    store.ensure_roles()
    if settings.bootstrap_admin_password:
        store.seed_admin(
            settings.bootstrap_admin_username,
            settings.bootstrap_admin_email,
            hash_password(settings.bootstrap_admin_password),
        )
    elif not store.has_users():
        logger.warning("No users exist and BOOTSTRAP_ADMIN_PASSWORD is not set -- nobody can log in")

    wire_components(app, engine)
    logger.info("Auth and records components initialized")

    yield

    engine.dispose()
    logger.info("BizRecords API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="BizRecords API",
    description="Customer and user records with role-based access control.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them:
# TrustedHost -> CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(customers_router, prefix="/api/v1", tags=["Customers"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])
app.include_router(dashboard_router, prefix="/api/v1", tags=["Dashboard"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(BizRecordsError)
async def bizrecords_error_handler(request: Request, exc: BizRecordsError) -> JSONResponse:
    """Map a typed failure to its status. Identical on every endpoint."""
    response = _error_response(status_for(exc), exc.code, exc.message, exc.detail)
    if isinstance(exc, Unavailable):
        response.headers["Retry-After"] = str(_RETRY_AFTER_SECONDS)
    if isinstance(exc, InvalidCredentials):
        response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients exactly how many seconds to wait before retrying.
    slowapi stores this on the exception as exc.retry_after (int seconds).
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error_response(429, "rate_limited", "Too many requests.", str(exc))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error_response(422, ValidationFailed.code, ValidationFailed.default_message, str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured envelope for routing-level errors (unknown path, wrong method)."""
    return _error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    Security note: the raw exception is written to the log only, never to the
    response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied -- health
# checks from load balancers and monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and a database round-trip check."""
    database = "ok"
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Health check database probe failed: %s", exc)
        database = "unavailable"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": database},
    )
