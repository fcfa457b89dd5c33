"""FastAPI application configuration and setup.

Main entry point for the HTTP API with CORS, middleware,
rate limiting, and lifecycle management.
"""

import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from src import __version__
from src.api.rate_limit import MAX_REQUEST_BODY_BYTES, limiter
from src.api.routes import api_router
from src.api.utils import _correlation_id, envelope_error, get_correlation_id
from src.exceptions import ErrorCode, LatchkeyError, PasskeyError
from src.logging_config import configure_logging
from src.settings import Settings, get_settings
from src.storage import close_db, init_db

# Singleton app instance
_app: FastAPI | None = None

# Headers the browser client sends on protocol calls
CORS_ALLOWED_HEADERS = [
    "Content-Type",
    "Authorization",
    "apikey",
    "x-client-info",
    "X-Correlation-ID",
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    - Startup: configure logging, initialize the database engine
    - Shutdown: close database connections
    """
    settings = get_settings()
    configure_logging()

    if settings.environment != "testing":
        await init_db()

    yield

    await close_db()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    Args:
        settings: Optional settings override (uses get_settings() if not provided)

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()

    app = FastAPI(
        title="Latchkey",
        description="WebAuthn passkey relying party",
        version=__version__,
        docs_url="/api/docs" if settings.debug else None,
        redoc_url="/api/redoc" if settings.debug else None,
        openapi_url="/api/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_get_allowed_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=CORS_ALLOWED_HEADERS,
    )

    # Process-wide flood guard; protocol ceilings live in the database
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _flood_guard_handler)
    app.add_middleware(SlowAPIMiddleware)

    # Add request body size limit middleware (prevents DoS via oversized payloads)
    app.middleware("http")(_body_size_limit_middleware)

    # Add security headers middleware
    app.middleware("http")(_security_headers_middleware)

    # Add correlation ID middleware (must be before routes)
    app.middleware("http")(_correlation_middleware)

    # Add request tracing middleware (lazy import to avoid circular dependency)
    from src.api.middleware import RequestTracingMiddleware

    app.add_middleware(RequestTracingMiddleware)

    app.include_router(api_router, prefix="/api/v1")

    _register_exception_handlers(app)

    return app


def _get_allowed_origins(settings: Settings) -> list[str]:
    """Get allowed CORS origins.

    Priority:
    1. Explicit ALLOWED_ORIGINS env var (comma-separated)
    2. The WebAuthn origin allow-list
    3. ``*`` in development and testing
    """
    if settings.allowed_origins:
        return [o.strip() for o in settings.allowed_origins.split(",") if o.strip()]

    webauthn_origins = [
        o.strip().rstrip("/") for o in settings.webauthn_allowed_origins.split(",") if o.strip()
    ]
    if webauthn_origins:
        return webauthn_origins

    if settings.environment in ("development", "testing"):
        return ["*"]
    return []


def _flood_guard_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Envelope for the process-local limiter.

    Sync on purpose: SlowAPIMiddleware calls the handler without awaiting.
    """
    structlog.get_logger().warning(
        "Flood guard tripped",
        path=request.url.path,
        limit=str(exc.detail),
    )
    return envelope_error(
        ErrorCode.RATE_LIMITED,
        "Too many requests. Please try again later.",
        429,
    )


async def _body_size_limit_middleware(request: Request, call_next):
    """Reject requests whose declared body exceeds MAX_REQUEST_BODY_BYTES."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_BODY_BYTES:
        return envelope_error(
            ErrorCode.INVALID_INPUT,
            f"Request body too large. Maximum size is {MAX_REQUEST_BODY_BYTES} bytes.",
            413,
        )

    return await call_next(request)


async def _security_headers_middleware(request: Request, call_next):
    """Middleware to add security-related HTTP headers.

    Adds headers that protect against common web vulnerabilities:
    - XSS, MIME sniffing, clickjacking, referrer leakage
    - HSTS for transport security (production/staging)
    - CSP to restrict resource loading
    """
    settings = get_settings()
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    if settings.environment in ("production", "staging"):
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

    # JSON-only API
    response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

    # Ceremony options and login tokens must never be cached
    if request.url.path.startswith("/api/"):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    return response


async def _correlation_middleware(request: Request, call_next):
    """Generate or propagate the X-Correlation-ID of each request."""
    correlation_id = request.headers.get("X-Correlation-ID")
    if not correlation_id:
        correlation_id = str(uuid.uuid4())

    _correlation_id.set(correlation_id)

    response = await call_next(request)
    response.headers["X-Correlation-ID"] = correlation_id
    return response


def _status_error_code(status_code: int) -> ErrorCode:
    if status_code == 401:
        return ErrorCode.UNAUTHORIZED
    if status_code == 429:
        return ErrorCode.RATE_LIMITED
    if 400 <= status_code < 500:
        return ErrorCode.INVALID_INPUT
    return ErrorCode.UNKNOWN_ERROR


def _register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as a ``{"success": false, "error": ...}`` envelope."""
    logger = structlog.get_logger()

    @app.exception_handler(PasskeyError)
    async def passkey_error_handler(request: Request, exc: PasskeyError) -> JSONResponse:
        logger.info(
            "Passkey error",
            code=str(exc.code),
            path=request.url.path,
            correlation_id=get_correlation_id(),
        )
        return envelope_error(exc.code, exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = "Invalid request."
        if errors:
            first = errors[0]
            location = ".".join(str(part) for part in first.get("loc", ()))
            message = f"{location}: {first.get('msg')}" if location else str(first.get("msg"))
        return envelope_error(ErrorCode.INVALID_INPUT, message, 400)

    @app.exception_handler(LatchkeyError)
    async def latchkey_error_handler(request: Request, exc: LatchkeyError) -> JSONResponse:
        correlation_id = exc.correlation_id or get_correlation_id() or str(uuid.uuid4())
        logger.error(
            "Latchkey error",
            error_type=exc.__class__.__name__,
            correlation_id=correlation_id,
            exc_info=exc,
        )
        return envelope_error(
            ErrorCode.UNKNOWN_ERROR,
            f"An error occurred. Correlation ID: {correlation_id}",
            500,
            correlation_id=correlation_id,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        return envelope_error(_status_error_code(exc.status_code), str(exc.detail), exc.status_code)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        settings = get_settings()
        correlation_id = get_correlation_id() or str(uuid.uuid4())
        logger.exception(
            "Unhandled exception",
            correlation_id=correlation_id,
            exc_info=exc,
        )
        detail = str(exc) if settings.debug else "Internal server error"
        return envelope_error(
            ErrorCode.UNKNOWN_ERROR, detail, 500, correlation_id=correlation_id
        )


def get_app() -> FastAPI:
    """Get or create the singleton FastAPI application."""
    global _app
    if _app is None:
        _app = create_app()
    return _app


# For uvicorn: use "src.api.main:get_app" with --factory flag,
# or "src.api.main:app" which lazily initializes on first access.
def __getattr__(name: str) -> Any:
    """Create the app only when ``app`` is accessed, not at import time."""
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
