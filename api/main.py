"""
api/main.py -- FastAPI application entry point for the SIWES auth service.

Run with:  uvicorn api.main:app --reload
           python main.py serve

Middleware, in the order added (Starlette wraps the last one outermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers for the dashboard origins
  3. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the collaborators once and parks them on app.state:
  settings   -- core.config.Settings
  user_store -- auth.store.UserStore (connected with bounded retry)
  tokens     -- auth.tokens.TokenService
  workflow   -- auth.workflow.AuthWorkflow
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.dependencies import get_current_user
from auth.errors import AuthError
from auth.models import User
from auth.store import connect_store
from auth.tokens import TokenService
from auth.workflow import AuthWorkflow
from core.config import get_settings

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
logger = logging.getLogger("siwes.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build collaborators on startup and release the DB pool on shutdown.

    The workflow receives Settings explicitly; nothing below this point reads
    the environment.
    """
    logger.info("SIWES auth API starting up")
    settings = get_settings()
    app.state.settings = settings
    app.state.user_store = connect_store(
        settings.database_url,
        retries=settings.db_connect_retries,
        delay=settings.db_connect_retry_delay,
    )
    app.state.tokens = TokenService(settings)
    app.state.workflow = AuthWorkflow(app.state.user_store, app.state.tokens, settings)
    logger.info("Auth workflow initialized")

    yield

    app.state.user_store.close()
    logger.info("SIWES auth API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SIWES Auth API",
    description="Authentication and password-reset workflow for the SIWES management system.",
    version=VERSION,
    lifespan=lifespan,
    # Built-in /docs and /redoc are replaced by auth-protected equivalents below.
    docs_url=None,
    redoc_url=None,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=_settings.allowed_hosts,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH"],
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

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])
app.include_router(users_router, prefix="/api/v1", tags=["Users"])


# ---------------------------------------------------------------------------
# Auth-protected API documentation
# ---------------------------------------------------------------------------


@app.get("/docs", include_in_schema=False)
async def docs(user: User = Depends(get_current_user)):
    """Swagger UI -- requires authentication."""
    return get_swagger_ui_html(openapi_url="/openapi.json", title="SIWES Auth API")


@app.get("/redoc", include_in_schema=False)
async def redoc(user: User = Depends(get_current_user)):
    """ReDoc UI -- requires authentication."""
    return get_redoc_html(openapi_url="/openapi.json", title="SIWES Auth API")


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same failure envelope so clients can read
# `message` without inspecting status codes.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, code=code, detail=detail).model_dump(exclude_none=True),
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render workflow failures (bad credentials, expired token, ...) as 4xx."""
    return _error(exc.status_code, exc.code, exc.message)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests, please try again later.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with the first validation message up front."""
    errors = exc.errors()
    message = "Validation error"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ())[1:])
        message = f"{field}: {first.get('msg', 'invalid')}" if field else first.get("msg", message)
    return _error(422, "validation_error", message, str(errors))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Structured error for FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with detail={"code", "message"}.
    """
    if isinstance(exc.detail, dict):
        return _error(
            exc.status_code,
            exc.detail.get("code", f"http_{exc.status_code}"),
            exc.detail.get("message", ""),
        )
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors (database down, hashing failure).

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# No rate limit and no auth: load balancers must always reach it.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    db_ok = request.app.state.user_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
