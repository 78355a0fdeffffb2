"""
api/main.py -- FastAPI application entry point for the inspection gateway.

Run with:  uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- browser origins = union of the role allow-lists;
                              credentials allowed for the auth_token cookie
  3. log_requests          -- method, path, status, latency, client address

Per-request order on protected routes (declared through Depends):
  rate-limit tier -> session validator -> role gate -> handler

Lifespan builds the auth components once (configure_auth) and parks them on
app.state. Request code reaches them through request.app.state and never
reads Settings directly.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from api.limiter import TieredRateLimiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.dashboard import router as dashboard_router
from api.routes.users import router as users_router
from auth.errors import AuthError
from auth.policy import AuthConfig
from auth.session import SessionValidator
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import Settings, get_settings, split_csv

VERSION = "1.0.0"

_settings = get_settings()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("inspectgate.api")


# ---------------------------------------------------------------------------
# Auth wiring
# ---------------------------------------------------------------------------


def configure_auth(app: FastAPI, settings: Settings, store: AccountStore) -> AuthConfig:
    """Build the auth components from settings and attach them to app.state.

    The same AuthConfig instance is shared by reference between the issuer,
    the validator and the cookie helpers.
    """
    config = AuthConfig.from_settings(settings)
    issuer = TokenIssuer(config)
    app.state.auth_config = config
    app.state.account_store = store
    app.state.token_issuer = issuer
    app.state.session_validator = SessionValidator(config, issuer, store)
    app.state.rate_limiter = TieredRateLimiter(config.rate_limits, settings.rate_limit_storage_uri)
    return config


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the account store on startup and dispose of it on shutdown."""
    settings = get_settings()
    logger.info("Inspection gateway starting up")
    store = AccountStore(settings.database_url)
    config = configure_auth(app, settings, store)
    logger.info(
        "Auth initialized (roles=%s, secure_cookies=%s, has_accounts=%s)",
        ",".join(r.value for r in config.policies),
        config.secure_cookies,
        store.has_accounts(),
    )

    yield

    store.close()
    logger.info("Inspection gateway shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Inspection Gateway API",
    description="Authentication, session and authorization core for the inspection-management backend.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=split_csv(_settings.allowed_hosts),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=AuthConfig.from_settings(_settings).cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH"],
    allow_headers=["Content-Type", "Authorization", "X-Platform", "X-Device-Info"],
    max_age=3600,
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

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])
app.include_router(dashboard_router, prefix="/api", tags=["Dashboard"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every failure uses the same ErrorResponse envelope so clients can parse
# errors without choosing a schema by status code.
# ---------------------------------------------------------------------------


def _debug(request: Request) -> bool:
    config = getattr(request.app.state, "auth_config", None)
    return bool(config and config.debug)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render an auth-core rejection. 5xx detail is shown only in debug mode."""
    detail = exc.detail
    if exc.status_code >= 500:
        logger.error("Upstream failure on %s %s: %s", request.method, request.url.path, exc.detail)
        if not _debug(request):
            detail = None
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=exc.message, detail=detail)).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with a structured error when the body or query fails validation."""
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str([{"loc": e.get("loc"), "msg": e.get("msg")} for e in exc.errors()]),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured dict details are passed through as the error field."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors. Internals leak only in debug mode."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
                detail=f"{type(exc).__name__}: {exc}" if _debug(request) else None,
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint -- no auth, no rate limit
# ---------------------------------------------------------------------------


@app.get("/api/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version and a database round-trip check."""
    components = {"app": "ok"}
    try:
        request.app.state.account_store.ping()
        components["database"] = "ok"
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        components["database"] = "error"
    return HealthResponse(version=VERSION, components=components)
