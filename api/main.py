"""
api/main.py -- FastAPI application entry point for Quillblog.

The user-facing blog service: session-based login (local password or Google),
post pages that forward to the posts API, and a small JSON auth API.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests       -- method, path, status, latency for every request
  2. SessionMiddleware  -- signed session cookie carrying the opaque session
                           id and authlib's OAuth state

Lifespan handles startup (engine + schema, service wiring, session purge
task) and shutdown (cancel purge task, close HTTP client, dispose engine)
symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.middleware.sessions import SessionMiddleware

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import StoreUnavailable
from auth.oauth import FederatedAuthenticator
from auth.oauth import oauth as oauth_registry
from auth.passwords import LocalAuthenticator
from auth.reconcile import IdentityReconciler
from auth.sessions import SessionManager
from auth.store import CredentialStore, SessionStore, create_store_engine, init_schema, ping
from core.config import get_settings
from posts.client import PostsClient

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("quillblog.api")

_settings = get_settings()

_PURGE_INTERVAL_SECONDS = 60 * 60

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired server-side sessions every hour.

    A store outage is logged and retried on the next tick; it must not kill
    the task for the rest of the process lifetime.
    """
    while True:
        await asyncio.sleep(_PURGE_INTERVAL_SECONDS)
        try:
            removed = await app.state.session_store.purge_expired()
        except StoreUnavailable:
            logger.warning("Session purge skipped: credential store unavailable")
            continue
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def wire_services(app: FastAPI, engine: AsyncEngine, registry, posts: PostsClient) -> None:
    """Attach every auth component to app.state.

    Shared by the real lifespan and the test lifespan so both build the
    object graph the same way.
    """
    users = CredentialStore(engine)
    sessions = SessionStore(engine)
    app.state.engine = engine
    app.state.credential_store = users
    app.state.session_store = sessions
    app.state.local_auth = LocalAuthenticator(users)
    app.state.federated_auth = FederatedAuthenticator(registry, "google")
    app.state.reconciler = IdentityReconciler(users)
    app.state.session_manager = SessionManager(sessions, users, _settings.session_ttl_seconds)
    app.state.posts = posts


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine + schema first -- every auth component needs the tables.
      2. Services second -- wired onto app.state for the routes.
      3. Purge task last -- references app.state.session_store.
    """
    logger.info("Quillblog starting up")
    engine = create_store_engine(
        _settings.database_url,
        pool_size=_settings.db_pool_size,
        max_overflow=_settings.db_max_overflow,
    )
    await init_schema(engine)
    logger.info("Credential store initialized")
    posts = PostsClient(_settings.posts_api_url, timeout=_settings.posts_api_timeout)
    wire_services(app, engine, oauth_registry, posts)
    logger.info("Auth initialized (google_oauth=%s)", _settings.google_enabled)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    await posts.aclose()
    await engine.dispose()
    logger.info("Quillblog shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Quillblog",
    description="Blog front end with local and Google sign-in.",
    version=VERSION,
    lifespan=lifespan,
)

# The cookie holds only the opaque session id and authlib's OAuth state;
# it is signed with SESSION_SECRET so the client cannot forge an id.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.session_secret,
    max_age=_settings.session_ttl_seconds,
    same_site="lax",
    https_only=_settings.secure_cookies,
)


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
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
    )


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
    """Answer with a generic 500 when the credential store is down.

    The driver error goes to the log for operators, never to the client.
    """
    logger.error("Credential store unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(code="store_unavailable", message="Service temporarily unavailable.")
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged only, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error=ErrorDetail(code="internal_error", message="An unexpected error occurred.")).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    database = "ok" if await ping(request.app.state.engine) else "error"
    return HealthResponse(
        status="healthy" if database == "ok" else "degraded",
        version=VERSION,
        components={"app": "ok", "database": database},
    )
