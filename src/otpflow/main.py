"""FastAPI application entrypoint."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from otpflow.api.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from otpflow.api.router import api_router
from otpflow.config import settings
from otpflow.database import close_db
from otpflow.errors import AuthError, RateLimitError
from otpflow.schemas import ErrorResponse
from otpflow.services.codes import KeyedLock
from otpflow.services.delivery import ConsoleCodeSender
from otpflow.services.rate_limit import FixedWindowRateLimiter, rate_limit_headers
from otpflow.services.tokens import TokenIssuer
from otpflow.stores import InMemoryAuthStore

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "VALIDATION_ERROR",
    401: "UNAUTHORIZED",
    404: "NOT_FOUND",
    429: "RATE_LIMIT_EXCEEDED",
}

# Initialize Sentry for error tracking
if settings.sentry_dsn:
    import sentry_sdk

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        send_default_pii=False,
    )
    logger.info("Sentry initialized")


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    from otpflow.logging import setup_logging

    setup_logging()
    if settings.echo_codes:
        logger.warning("OTP_DELIVERY=echo: verification codes are returned in API responses")
    yield
    await close_db()


def init_state(app: FastAPI) -> None:
    """Create the process-wide services owned by the application."""
    app.state.rate_limiter = FixedWindowRateLimiter()
    app.state.token_issuer = TokenIssuer.from_settings(settings)
    app.state.code_sender = ConsoleCodeSender()
    app.state.code_locks = KeyedLock()
    app.state.memory_store = InMemoryAuthStore()


def error_response(
    status_code: int,
    error: str,
    code: str,
    details: object | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorResponse(error=error, code=code, details=jsonable_encoder(details))
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


app = FastAPI(
    title="otpflow API",
    description="Passwordless email/phone sign-in with one-time codes",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/api/docs" if settings.debug_enabled else None,
    redoc_url="/api/redoc" if settings.debug_enabled else None,
    openapi_url="/api/openapi.json" if settings.debug_enabled else None,
)
init_state(app)


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render flow errors as the error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")

    headers = None
    if isinstance(exc, RateLimitError) and exc.result is not None:
        headers = rate_limit_headers(exc.result)

    return error_response(exc.status_code, exc.message, exc.code, exc.details, headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, "Validation failed", "VALIDATION_ERROR", exc.errors())


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR")
    return error_response(exc.status_code, str(exc.detail), code, headers=exc.headers)


# Security headers on every response, including errors
app.add_middleware(SecurityHeadersMiddleware)  # type: ignore[arg-type]

# Request ID middleware for distributed tracing
app.add_middleware(RequestIDMiddleware)  # type: ignore[arg-type]

# CORS middleware
app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Accept", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Retry-After"],
)

app.include_router(api_router, prefix="/api")


if __name__ == "__main__":
    import uvicorn

    from otpflow.logging import get_uvicorn_log_config

    uvicorn.run(
        "otpflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_config=get_uvicorn_log_config(),
    )
