"""
api/main.py -- FastAPI application entry point for Gatehouse.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. CORSMiddleware    -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware -- enforces per-route rate limits from api.limiter
  3. log_requests      -- one access-log line per request

Lifespan opens the account store and installs the mailer on startup and
disposes the store's engine on shutdown.

Every error leaves through one of the exception handlers below and is
rendered as the same ErrorResponse envelope. Status and message come from
core.errors; 5xx messages are replaced by a generic one and the underlying
error is logged together with the acting account id when the auth gate ran.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.users import router as users_router
from auth.mail import LoggingMailer
from auth.store import AccountStore
from core.config import get_settings
from core.errors import (
    HttpMethodNotAllowedError,
    NotFoundError,
    OperationError,
    ValidationError,
    error_code,
    error_to_status,
    public_message,
)

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatehouse.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the account store and mailer on startup; dispose them on shutdown."""
    logger.info("Gatehouse API starting up (environment=%s)", _settings.environment)
    app.state.account_store = AccountStore(db_url=_settings.database_url)
    app.state.mailer = LoggingMailer()
    logger.info("Account store initialized")

    yield

    app.state.account_store.close()
    logger.info("Gatehouse API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatehouse API",
    description="Accounts, sign-in, session tokens, password reset and email verification.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
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
# Exception handlers
# ---------------------------------------------------------------------------


def _acting_account_id(request: Request) -> str | None:
    account = getattr(request.state, "account", None)
    return account.id if account is not None else None


def _error_response(
    request: Request,
    exc: BaseException,
    status: int,
    code: str,
    message: str,
    details: object = None,
    headers: dict | None = None,
) -> JSONResponse:
    account_id = _acting_account_id(request)
    if status >= 500:
        logger.error(
            "%s %s failed: %s (account=%s)",
            request.method,
            request.url.path,
            exc,
            account_id,
            exc_info=(type(exc), exc, exc.__traceback__),
        )
    else:
        logger.info(
            "%s %s rejected %d %s: %s (account=%s)",
            request.method,
            request.url.path,
            status,
            code,
            message,
            account_id,
        )
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, details=details)).model_dump(
            exclude_none=True
        ),
        headers=headers,
    )


@app.exception_handler(OperationError)
async def operation_error_handler(request: Request, exc: OperationError) -> JSONResponse:
    status = error_to_status(exc)
    details = exc.details if status < 500 else None
    return _error_response(request, exc, status, error_code(exc), public_message(exc, status), details)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Schema or type failures in the request are ValidationError (400)."""
    return _error_response(
        request,
        exc,
        ValidationError.status,
        error_code(exc),
        "Request validation failed.",
        jsonable_encoder(exc.errors()),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Map routing-level HTTP errors onto the taxonomy (unknown path, wrong method)."""
    if exc.status_code == 404:
        error: OperationError = NotFoundError()
    elif exc.status_code == 405:
        error = HttpMethodNotAllowedError()
    else:
        return _error_response(request, exc, exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    return _error_response(request, exc, error.status, error.code, error.message, headers=exc.headers)


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with Retry-After when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    return _error_response(
        request,
        exc,
        429,
        "rate_limited",
        "Too many requests.",
        headers={"Retry-After": str(retry_after)},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for anything outside the taxonomy.

    Type and encoding errors still read as 400; everything else is a 500
    whose message stays in the server log.
    """
    status = error_to_status(exc)
    return _error_response(request, exc, status, error_code(exc, status), public_message(exc, status))


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return API liveness, version and database reachability."""
    database_ok = request.app.state.account_store.ping()
    return HealthResponse(
        version=__version__,
        components={"app": "ok", "database": "ok" if database_ok else "error"},
    )
