"""
api/main.py -- FastAPI application entry point for the tzlev auth core.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware      -- CORS headers for allowed browser origins
  2. SlowAPIMiddleware   -- per-route rate limits from api.limiter
  3. SessionMiddleware   -- signed cookie carrying the session id and OAuth state

Lifespan builds every collaborator explicitly -- key-value store, user store,
cache, sessions, OAuth client, services -- and hangs them on app.state.
Nothing is a module-level singleton, so tests swap any of them by wiring
their own instances through wire_services().
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.preferences import router as preferences_router
from auth.oauth import GoogleOAuthClient
from auth.service import AuthService
from auth.sessions import SessionStore
from auth.store import UserStore
from auth.users import UserService
from cache.preferences import PreferenceService
from cache.store import CacheManager
from core.config import Settings, get_settings
from core.errors import StoreError, TzlevError
from core.kv import KeyValueStore

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tzlev.api")

_settings = get_settings()


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def wire_services(
    app: FastAPI,
    kv: KeyValueStore,
    user_store: UserStore,
    settings: Settings,
    oauth: GoogleOAuthClient | None = None,
) -> None:
    """Build the cache, session and auth layers on top of kv and user_store.

    Cache and sessions share the connection but not the namespace.
    """
    cache = CacheManager(kv, prefix=settings.cache_prefix)
    sessions = SessionStore(kv, prefix=settings.session_prefix, ttl=settings.session_ttl_seconds)
    users = UserService(user_store, cache, profile_ttl=settings.user_cache_ttl_seconds)

    app.state.kv = kv
    app.state.user_store = user_store
    app.state.cache = cache
    app.state.sessions = sessions
    app.state.users = users
    app.state.auth = AuthService(users, sessions, oauth)
    app.state.preferences = PreferenceService(cache, academic_year_ttl=settings.academic_year_ttl_seconds)


def _google_client(settings: Settings) -> GoogleOAuthClient | None:
    if not settings.google_enabled:
        logger.info("Google OAuth not configured -- password login only")
        return None
    logger.info("Google OAuth provider registered")
    return GoogleOAuthClient(settings.google_client_id, settings.google_client_secret, settings.google_redirect_uri)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store connections on startup and close them on shutdown.

    A Redis outage at startup is logged, not fatal: requests will fail with
    503 until the store comes back, and /health reports it.
    """
    logger.info("tzlev API starting up")
    kv = KeyValueStore.from_settings(_settings)
    try:
        kv.ping()
        logger.info("Key-value store connection established")
    except StoreError:
        logger.error("Key-value store unreachable at startup (%s:%d)", _settings.redis_host, _settings.redis_port)
    user_store = UserStore(_settings.database_url)
    wire_services(app, kv, user_store, _settings, _google_client(_settings))

    yield

    app.state.kv.close()
    app.state.user_store.close()
    logger.info("tzlev API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="tzlev auth API",
    description="Session-backed password and Google login.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the existing stack, so the LAST call is the
# outermost layer. Registered innermost-first: Session -> SlowAPI -> CORS.
# ---------------------------------------------------------------------------

# The session cookie carries only the opaque session id and the in-flight
# OAuth state. It is signed with SECRET_KEY, so a client cannot mint an id.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie=_settings.session_cookie_name,
    max_age=_settings.session_ttl_seconds,
    same_site="lax",
    https_only=_settings.secure_cookies,
)

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://localhost:5173", "http://127.0.0.1"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE"],
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(preferences_router, prefix="/api/v1", tags=["Preferences"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every error leaves through error_response() so clients parse one envelope:
#   {"error": {"code": ..., "message": ..., "detail": ...}}
# ---------------------------------------------------------------------------


def error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(TzlevError)
async def tzlev_error_handler(request: Request, exc: TzlevError) -> JSONResponse:
    """Render a domain error from its class attributes only.

    exc.message (which may name the subject or the internal cause) goes to the
    log, never to the client.
    """
    if isinstance(exc, StoreError):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.error_code, exc.public_message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "unknown")
    response = error_response(429, "rate_limited", "Too many login attempts. Try again later.", detail=str(exc.detail))
    response.headers["Retry-After"] = "60"
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """422 for a malformed body or query string; the field errors go in detail."""
    fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
    return error_response(422, "validation_error", "Request validation failed.", detail=fields or None)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured dict details (raised by the gate and routes) pass through as the error body."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback is logged; the client sees a fixed message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth -- load balancers must be able to poll it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness plus the reachability of the database and key-value store."""
    components = {"app": "ok", "database": "ok", "store": "ok"}
    try:
        request.app.state.user_store.ping()
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    try:
        request.app.state.kv.ping()
    except StoreError:
        components["store"] = "error"
    status = "healthy" if all(v == "ok" for v in components.values()) else "degraded"
    return HealthResponse(status=status, version=VERSION, components=components)
