"""
KEYWARD REST API - Main Application.

FastAPI-based authentication service: accounts, session tokens, TOTP
two-factor authentication and single-use recovery codes.

Usage:
    # Development
    uvicorn keyward.api.main:app --reload --port 8000

    # Production
    uvicorn keyward.api.main:app --host 0.0.0.0 --port 8000 --workers 4
"""
import os
import time
import uuid
import asyncio
import logging
import contextvars
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .routes import auth_router, twofa_router, recovery_router, health_router
from .deps import AuthRateLimiter, connect_redis
from ..auth.errors import AuthServiceError, UpstreamUnavailable
from ..auth.service import AuthService
from ..auth.tokens import SessionIssuer
from ..database.auth_db import AuthDB
from ..utils.config import AppConfig

# Configure logging with request context support
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv(
    "LOG_FORMAT",
    "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s"
)

request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Add the current request_id to log records."""
    def filter(self, record):
        if not hasattr(record, 'request_id'):
            record.request_id = request_id_var.get()
        return True


logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format=LOG_FORMAT,
)
# Filters on handlers so records from every logger pass through them
for _handler in logging.getLogger().handlers:
    _handler.addFilter(RequestIdFilter())
logger = logging.getLogger(__name__)

# API metadata
API_TITLE = "KEYWARD API"
API_DESCRIPTION = """
**Authentication and two-factor service**

- **Accounts** - Registration and password login
- **Session tokens** - Signed bearer tokens, 24 hour lifetime
- **TOTP 2FA** - Authenticator app enrollment and verification
- **Recovery codes** - 16 single-use codes per batch

## Authentication

Endpoints managing the caller's own 2FA and recovery codes require a
Bearer token.

1. Register: `POST /auth/register`
2. Login: `POST /auth/login`
3. Use token: `Authorization: Bearer <token>`

## Rate Limits

Unauthenticated endpoints are limited per client IP.
"""

ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "AUTH_FAILED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
}

# Added to every response
SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Cache-Control": "no-store",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}


def _error_content(error: str, detail: Optional[str], code: str, request: Request) -> dict:
    return {
        "error": error,
        "detail": detail,
        "code": code,
        "request_id": getattr(request.state, "request_id", None),
    }


def _internal_error_response(request: Request) -> JSONResponse:
    """Generic 500; the exception itself is only logged."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_content("Internal Server Error", None, "INTERNAL_ERROR", request),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Builds the process-scoped resources on startup (unless they were
    injected) and releases them on shutdown.
    """
    config: AppConfig = getattr(app.state, "config", None) or AppConfig.from_env()
    app.state.config = config
    logger.info(f"Starting KEYWARD API v{config.version} ({config.app_env})")

    owns_db = getattr(app.state, "db", None) is None
    if owns_db:
        app.state.db = AuthDB(config.database_url)
        try:
            app.state.db.init_schema()
        except UpstreamUnavailable as e:
            # Requests report 503 until the database is reachable
            logger.warning(f"Database initialization skipped: {e}")

    if getattr(app.state, "auth_service", None) is None:
        sessions = SessionIssuer(
            config.jwt_secret,
            algorithm=config.jwt_algorithm,
            ttl=timedelta(hours=config.session_ttl_hours),
        )
        app.state.auth_service = AuthService(app.state.db, sessions, totp_issuer=config.totp_issuer)

    if getattr(app.state, "auth_rate_limiter", None) is None:
        app.state.auth_rate_limiter = AuthRateLimiter(connect_redis(config))

    yield

    # Shutdown
    logger.info("Shutting down KEYWARD API")
    if owns_db:
        app.state.db.dispose()


def create_app(
    config: Optional[AppConfig] = None,
    db: Optional[AuthDB] = None,
    auth_service: Optional[AuthService] = None,
    rate_limiter: Optional[AuthRateLimiter] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Settings; read from the environment at startup if omitted.
        db: Pre-built credential store (e.g. for tests).
        auth_service: Pre-built service; built from ``db`` if omitted.
        rate_limiter: Pre-built limiter; Redis-backed when configured.

    Returns:
        Configured FastAPI instance.
    """
    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=config.version if config else os.getenv("APP_VERSION", "0.1.0"),
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.config = config
    app.state.db = db
    app.state.auth_service = auth_service
    app.state.auth_rate_limiter = rate_limiter

    # CORS middleware
    if config is not None:
        allowed_origins = config.cors_origins
    else:
        allowed_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request tracking, timeout and security headers middleware
    @app.middleware("http")
    async def add_request_tracking_and_security(request: Request, call_next):
        """
        Tag the request with an id, bound its duration and decorate the
        response, including the 500 and 504 responses built here.

        On timeout the handler's worker thread is not interrupted and may
        still finish its work, so a 504 does not mean the operation was
        not applied (a registration, for one, can still commit).
        """
        # Generate or extract request ID for tracing
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.time()
        config = request.app.state.config
        timeout = config.request_timeout_seconds if config is not None else None

        try:
            try:
                response = await asyncio.wait_for(call_next(request), timeout=timeout)
            except asyncio.TimeoutError:
                logger.error(f"{request.method} {request.url.path} timed out after {timeout}s")
                response = JSONResponse(
                    status_code=status.HTTP_504_GATEWAY_TIMEOUT,
                    content=_error_content(
                        "Gateway Timeout", "Request timed out", "REQUEST_TIMEOUT", request
                    ),
                )
            except Exception as e:
                logger.error(f"Request failed: {type(e).__name__}", exc_info=True)
                response = _internal_error_response(request)

            process_time = (time.time() - start_time) * 1000

            # Request tracking headers
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"

            # Log request completion (skip health checks to reduce noise)
            if not request.url.path.startswith("/health"):
                logger.info(
                    f"{request.method} {request.url.path} "
                    f"-> {response.status_code} ({process_time:.1f}ms)"
                )

            response.headers.update(SECURITY_HEADERS)
            return response
        finally:
            request_id_var.reset(token)

    # Exception handlers
    @app.exception_handler(AuthServiceError)
    async def auth_service_exception_handler(request: Request, exc: AuthServiceError):
        if exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message} {exc.context}")
        else:
            logger.info(f"{exc.code}: {exc.message} {exc.context}")

        headers = {}
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers["WWW-Authenticate"] = "Bearer"

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_content(exc.title, exc.public_message, exc.code, request),
            headers=headers,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_content(
                "Too Many Requests" if exc.status_code == 429 else "HTTP Error",
                str(exc.detail),
                ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
                request,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = []
        for error in exc.errors():
            loc = " -> ".join(str(l) for l in error["loc"])
            errors.append(f"{loc}: {error['msg']}")

        return JSONResponse(
            status_code=422,
            content=_error_content("Validation Error", "; ".join(errors), "VALIDATION_ERROR", request),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {type(exc).__name__}", exc_info=True)
        return _internal_error_response(request)

    # Include routers
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(twofa_router)
    app.include_router(recovery_router)

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "name": API_TITLE,
            "version": app.version,
            "docs": "/docs",
            "health": "/health",
        }

    return app


# Create app instance; configuration is read from the environment at startup
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "keyward.api.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info",
    )
