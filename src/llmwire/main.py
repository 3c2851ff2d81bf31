"""
Main FastAPI application for llmwire.

This module creates and configures the FastAPI application with all
middleware, routes, and error handlers.
"""

from __future__ import annotations

import math
import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .api import v1_router
from .auth import CodexOAuthManager
from .core import (
    LlmError,
    LlmwireError,
    Settings,
    generate_request_id,
    get_logger,
    get_settings,
    log_error,
    log_request,
    setup_logging,
)
from .drivers import LlmDriver, create_fallback_driver, driver_configs_from_settings
from .models import HealthResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger = get_logger(__name__)
    settings: Settings = app.state.settings

    # Initialize logging
    setup_logging(settings.logging)

    logger.info(
        "Starting llmwire",
        version=settings.app_version,
        environment=settings.environment
    )

    if getattr(app.state, "oauth_manager", None) is None:
        app.state.oauth_manager = CodexOAuthManager(settings)
    app.state.oauth_manager.restore()

    if getattr(app.state, "driver", None) is None:
        app.state.driver = create_fallback_driver(driver_configs_from_settings(settings))

    yield

    # Shutdown
    logger.info("Shutting down llmwire")
    await app.state.oauth_manager.shutdown()
    await app.state.driver.aclose()


def create_app(
    settings: Optional[Settings] = None,
    oauth_manager: Optional[CodexOAuthManager] = None,
    driver: Optional[LlmDriver] = None,
) -> FastAPI:
    """Create and configure FastAPI application."""
    settings = settings or get_settings()

    # Create FastAPI app
    app = FastAPI(
        title=settings.app_name,
        description=settings.app_description,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )
    app.state.settings = settings
    app.state.oauth_manager = oauth_manager
    app.state.driver = driver

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.server.cors_origins,
        allow_credentials=True,
        allow_methods=settings.server.cors_methods,
        allow_headers=settings.server.cors_headers,
    )

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Include API routers
    app.include_router(v1_router)

    # Add health check endpoint
    @app.get("/health", response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(version=settings.app_version, providers=settings.llm.providers)

    # Add error handlers
    @app.exception_handler(LlmwireError)
    async def llmwire_error_handler(request: Request, exc: LlmwireError):
        """Handle llmwire errors."""
        headers = {}
        if isinstance(exc, LlmError) and exc.retryable:
            retry_after_ms = exc.details.get("retry_after_ms", 0)
            headers["Retry-After"] = str(max(1, math.ceil(retry_after_ms / 1000)))
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=headers
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions."""
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "message": exc.detail,
                    "type": "http_error"
                }
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle general exceptions."""
        logger = get_logger(__name__)
        log_error(
            logger,
            exc,
            context={
                "method": request.method,
                "url": str(request.url),
                "client": request.client.host if request.client else "unknown"
            }
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "message": "Internal server error",
                    "type": "internal_error"
                }
            }
        )

    return app


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for logging HTTP requests."""

    def __init__(self, app):
        super().__init__(app)
        self.logger = get_logger(__name__)

    async def dispatch(self, request: Request, call_next):
        """Process request with logging."""
        start_time = time.time()
        client_ip = request.client.host if request.client else "unknown"
        request_id = request.headers.get("x-request-id") or generate_request_id()
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
            log_request(
                self.logger,
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=(time.time() - start_time) * 1000,
                client_ip=client_ip,
            )
        except Exception as e:
            self.logger.error(
                "Request processing failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers["X-Request-ID"] = request_id
        return response


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "llmwire.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=settings.server.reload,
        log_level=settings.logging.level.lower(),
        access_log=False,  # We handle logging ourselves
    )
