"""
api/main.py -- FastAPI application entry point for Userbase.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds every service once from Settings and hangs them on app.state:
  account_store, hasher, tokens, gate, account_service
and starts the background purge task; shutdown cancels the task and disposes
the engine.

Error envelope:
  Every failure leaves as {success: false, message, code}. ServiceError
  subclasses carry their own status; request validation becomes 400; anything
  unexpected is logged with a traceback and returned as a bare 500.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import HealthResponse
from api.responses import error_response
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.profile import router as profile_router
from auth.gate import AccessGate
from auth.passwords import PasswordHasher
from auth.service import AccountService, ConfirmationNotifier
from auth.sessions import ForceLogoutCounter
from auth.store import AccountStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from core.errors import ServiceError

__version__ = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("userbase.api")

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def build_services(
    app: FastAPI,
    settings: Settings,
    store: AccountStore,
    notifier: ConfirmationNotifier | None = None,
) -> None:
    """Construct the auth services from settings and attach them to app.state.

    Shared by the real lifespan and the test lifespan so both wire the same
    object graph.
    """
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds, max_concurrency=settings.hash_concurrency)
    tokens = TokenService(settings)
    counter = ForceLogoutCounter(store)
    app.state.settings = settings
    app.state.account_store = store
    app.state.hasher = hasher
    app.state.tokens = tokens
    app.state.gate = AccessGate(tokens, store)
    app.state.account_service = AccountService(
        store,
        hasher,
        tokens,
        counter,
        confirmation_ttl=settings.confirmation_ttl_seconds,
        notifier=notifier,
    )


# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: float) -> None:
    """Purge expired ephemeral records every `interval` seconds.

    The purge is a blocking DB call, so it runs in a worker thread. Failures
    are logged and the loop keeps going; CancelledError from task.cancel()
    during shutdown propagates out of asyncio.sleep and ends the task.
    """
    while True:
        await asyncio.sleep(interval)
        try:
            await asyncio.to_thread(app.state.account_store.purge_expired)
        except Exception:
            logger.exception("Expired record purge failed")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime."""
    settings = get_settings()
    logger.info("Userbase API starting up")
    store = AccountStore(settings.database_url)
    build_services(app, settings, store)
    logger.info("Account store initialized")
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    store.close()
    logger.info("Userbase API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Userbase API",
    description="User accounts: registration, login/logout, profiles, and admin management.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


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

app.include_router(auth_router, prefix="/api/v1/users", tags=["Auth"])
app.include_router(admin_router, prefix="/api/v1/users", tags=["Admin"])
app.include_router(profile_router, prefix="/api/v1/users", tags=["Profile"])


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc.status_code, exc.message, exc.code)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After so clients know how long to back off."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = error_response(429, "Too many requests.", "rate_limited")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 naming the first offending field."""
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg', 'invalid value')}" if field else first.get("msg", message)
    return error_response(400, message, "validation_error")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404 route, 405 method) in the standard envelope."""
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return error_response(exc.status_code, message, f"http_{exc.status_code}")


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error", "internal_error")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth: load balancers must always reach it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and a database round-trip check."""
    db_ok = request.app.state.account_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
