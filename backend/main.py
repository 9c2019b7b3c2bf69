# main.py - Productitask API
# Features:
# - Application factory with explicitly constructed settings, logger and storage
# - Request correlation IDs
# - Rate limiting
# - Security headers
# - Uniform JSON error envelope
# - Health check with storage verification

import time
import traceback
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import AuthService
from config import Settings, load_settings
from entities import build_services
from errors import AppError, RateLimitError
from logging_system import (
    LogCategory, RequestContext, build_logger, reset_current_context, set_current_context,
)
from rate_limit import RateLimitMiddleware, SlidingWindowRateLimiter, retry_after_header
from responses import error_response, ok
from routers import auth as auth_router
from routers import meetings, notes, projects, tags, tasks
from storage import build_storage
from validation import format_validation_errors

API_VERSION = "1.0.0"

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    429: "RATE_LIMITED",
    503: "SERVICE_UNAVAILABLE",
}


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    logger = app.state.logger
    logger.setup()
    logger.info(f"Starting Productitask API v{API_VERSION}", metadata=settings.summary())
    await app.state.storage.init()
    logger.info("Storage initialised", metadata={"backend": app.state.storage.name})
    yield
    logger.info("Shutting down Productitask API")
    await app.state.storage.close()
    logger.shutdown()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()
    logger = build_logger(settings)
    storage = build_storage(settings)
    services = build_services(storage, logger)

    app = FastAPI(
        title="Productitask",
        description="Personal productivity API: tasks, projects, meetings, notes and tags",
        version=API_VERSION,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = settings
    app.state.logger = logger
    app.state.storage = storage
    app.state.services = services
    app.state.auth = AuthService(settings, services, logger)

    # ============================================================
    # MIDDLEWARE (last added runs first)
    # ============================================================

    app.add_middleware(
        RateLimitMiddleware,
        limiter=SlidingWindowRateLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds),
        logger=logger,
    )

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = "camera=(), microphone=(), geolocation=()"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        context = RequestContext.create(
            request.headers.get("X-Request-ID") or str(uuid.uuid4()),
            request.headers.get("X-Correlation-ID"),
        )
        request.state.request_id = context.request_id
        request.state.correlation_id = context.correlation_id
        token = set_current_context(context)
        start = time.perf_counter()
        try:
            response = await call_next(request)
            duration = time.perf_counter() - start
            response.headers["X-Request-ID"] = context.request_id
            response.headers["X-Correlation-ID"] = context.correlation_id
            response.headers["X-Response-Time"] = f"{duration:.4f}s"
            logger.response(request.method, request.url.path, response.status_code, duration * 1000)
            return response
        finally:
            reset_current_context(token)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID", "X-Correlation-ID"],
        expose_headers=["X-Request-ID", "X-Correlation-ID", "Retry-After"],
    )

    # ============================================================
    # EXCEPTION HANDLERS
    # ============================================================

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(
                exc.message,
                category=LogCategory.SYSTEM,
                error=exc,
                metadata={"code": exc.code, "raw": getattr(exc, "raw", None)},
            )
        headers = None
        if isinstance(exc, RateLimitError) and exc.retry_after is not None:
            headers = {"Retry-After": retry_after_header(exc.retry_after)}
        return error_response(exc.status_code, exc.to_error(), _request_id(request), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        error = {
            "code": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "details": format_validation_errors(exc),
        }
        return error_response(400, error, _request_id(request))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        error = {
            "code": HTTP_ERROR_CODES.get(exc.status_code, "HTTP_ERROR"),
            "message": exc.detail if isinstance(exc.detail, str) else "Request failed",
        }
        return error_response(exc.status_code, error, _request_id(request), headers=getattr(exc, "headers", None))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", category=LogCategory.SYSTEM, error=exc)
        error = {"code": "INTERNAL_ERROR", "message": "Internal server error"}
        if not settings.is_production:
            error["message"] = str(exc) or error["message"]
            error["details"] = {
                "type": type(exc).__name__,
                "stack": traceback.format_exception(type(exc), exc, exc.__traceback__),
            }
        return error_response(500, error, _request_id(request))

    # ============================================================
    # ROUTERS
    # ============================================================

    app.include_router(auth_router.router)
    app.include_router(tasks.router)
    app.include_router(projects.router)
    app.include_router(meetings.router)
    app.include_router(notes.router)
    app.include_router(tags.router)

    @app.get("/api/health", tags=["Health"])
    async def health_check(request: Request):
        """Health check with storage connectivity verification"""
        storage = request.app.state.storage
        reachable = await storage.ping()
        return ok({
            "status": "healthy" if reachable else "degraded",
            "version": API_VERSION,
            "environment": settings.environment,
            "storage": storage.name,
            "database": "connected" if reachable else "unreachable",
        })

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
    )
