"""
api/main.py -- FastAPI application entry point for AuthRotor.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan handles startup (settings, engine, stores, token issuer, services)
and shutdown (engine dispose) symmetrically. Everything a route needs hangs
off app.state; tests replace the lifespan to inject in-memory databases.
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
from sqlalchemy import text

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.clock import SystemClock
from auth.errors import AuthError, ErrorKind
from auth.passwords import BcryptPasswordVerifier
from auth.services import build_auth_services
from auth.store import SqlRefreshTokenStore, UserStore, create_db_engine
from auth.tokens import JwtTokenIssuer
from core.config import get_settings

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("authrotor.api")

# ErrorKind -> HTTP status. The only place this mapping lives.
_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.validation_error: 400,
    ErrorKind.already_exists: 409,
    ErrorKind.authentication_failed: 401,
    ErrorKind.invalid_refresh_token: 401,
    ErrorKind.concurrency_conflict: 409,
    ErrorKind.integrity_error: 500,
    ErrorKind.not_found: 404,
}


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the auth object graph once per process.

    The signing key is read from settings here and nowhere else; the issuer
    keeps it for the lifetime of the process.
    """
    settings = get_settings()
    logger.info("AuthRotor API starting up")
    engine = create_db_engine(settings.database_url)
    clock = SystemClock()
    app.state.settings = settings
    app.state.engine = engine
    app.state.services = build_auth_services(
        users=UserStore(engine),
        passwords=BcryptPasswordVerifier(),
        tokens=JwtTokenIssuer(
            settings.secret_key,
            settings.access_token_expire_seconds,
            settings.refresh_token_expire_seconds,
            clock,
        ),
        refresh_tokens=SqlRefreshTokenStore(engine),
        clock=clock,
        default_role=settings.default_role,
    )
    logger.info(
        "Auth initialized (access_ttl=%ds, refresh_ttl=%ds)",
        settings.access_token_expire_seconds,
        settings.refresh_token_expire_seconds,
    )

    yield

    engine.dispose()
    logger.info("AuthRotor API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="AuthRotor API",
    description="Credential verification, token issuance and refresh-token rotation.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
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


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure leaves the API in one envelope: {"error": {code, message, detail}}.
# ---------------------------------------------------------------------------


def _error(
    status_code: int,
    code: str,
    message: str,
    detail: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail))
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map a service failure to its HTTP status.

    IntegrityError is a server-side inconsistency, not a client mistake; the
    service has already logged it at ERROR. It surfaces as a 500 carrying its
    kind as the code.
    """
    headers = None
    if exc.kind in (ErrorKind.authentication_failed, ErrorKind.invalid_refresh_token):
        headers = {"Cache-Control": "no-store"}
    return _error(_STATUS_BY_KIND.get(exc.kind, 400), exc.kind.value, exc.message, headers=headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit on %s from %s", request.url.path, request.client.host if request.client else "?")
    retry_after = int(getattr(exc, "retry_after", 60))
    return _error(429, "rate_limited", "Too many requests.", str(exc), headers={"Retry-After": str(retry_after)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies (wrong types, missing fields, over-long values)."""
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    # get_current_user raises with a ready-made {"code", "message"} detail.
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail), headers=exc.headers)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort. The traceback goes to the log, never to the client."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined here (not in a router) so it is always reachable. No rate limit:
# load balancer probes must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"], response_model=HealthResponse)
def health(request: Request) -> HealthResponse:
    """Return liveness plus a database round-trip check."""
    components = {"app": "ok"}
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        components["database"] = "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    status = "healthy" if components["database"] == "ok" else "degraded"
    return HealthResponse(status=status, version=__version__, components=components)
