"""
FastAPI application entry point.

This module initializes the FastAPI application with all middleware,
exception handlers, and routers. The pipeline services container is built
in the lifespan handler and shut down when the application stops.
"""

import logging
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tweetcast import __version__
from tweetcast.api.v1 import api_router
from tweetcast.container import PipelineServices
from tweetcast.core.config import get_settings
from tweetcast.core.exceptions import TweetcastException
from tweetcast.core.logging_config import configure_logging

logger = logging.getLogger(__name__)


def create_app(services: PipelineServices | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Prebuilt service container. When omitted, one is built
                  from settings at startup and shut down with the app.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(settings)
        owned = services is None
        app.state.services = services or PipelineServices.build(settings)
        logger.info(f"Starting Tweetcast API v{__version__} in {settings.environment} mode")

        yield

        logger.info("Shutting down Tweetcast API")
        if owned:
            app.state.services.shutdown()

    app = FastAPI(
        title=settings.app_name,
        description="Tweets to podcast job pipeline",
        version=__version__,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
        lifespan=lifespan,
    )

    # Register exception handlers
    register_exception_handlers(app)

    # Register middleware
    register_middleware(app)

    # Include API routers
    app.include_router(api_router, prefix=settings.api_v1_prefix)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Root endpoint returning API information."""
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs",
        }

    return app


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(TweetcastException)
    async def tweetcast_exception_handler(
        request: Request,
        exc: TweetcastException,
    ) -> JSONResponse:
        """Handle Tweetcast-specific exceptions."""
        if exc.status_code >= 500:
            logger.error(
                f"{exc.code}: {exc.message}",
                extra={"request_id": getattr(request.state, "request_id", None)},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        settings = get_settings()

        logger.exception(
            f"Unhandled exception: {exc}",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )

        # In development, include the error details
        if settings.is_development:
            details = {"error_type": type(exc).__name__, "error": str(exc)}
        else:
            details = {}

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": {
                    "code": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                    "details": details,
                }
            },
        )


def register_middleware(app: FastAPI) -> None:
    """
    Register application middleware.

    Args:
        app: FastAPI application instance
    """

    @app.middleware("http")
    async def add_request_id(request: Request, call_next: Any) -> Any:
        """Add unique request ID to each request."""
        request_id = str(uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id

        return response

    @app.middleware("http")
    async def add_process_time(request: Request, call_next: Any) -> Any:
        """Add processing time header to response."""
        start_time = datetime.now(UTC)
        response = await call_next(request)
        process_time = (datetime.now(UTC) - start_time).total_seconds()
        response.headers["X-Process-Time"] = str(process_time)
        return response


# Create the application instance
app = create_app()
