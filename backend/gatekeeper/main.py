"""Gatekeeper Backend - FastAPI Application Factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from gatekeeper.api.auth import router as auth_router
from gatekeeper.api.errors import register_exception_handlers
from gatekeeper.api.health import router as health_router
from gatekeeper.api.router import api_router
from gatekeeper.core import settings
from gatekeeper.core.database import engine
from gatekeeper.core.lifespan import shutdown, startup
from gatekeeper.core.logging import get_logger
from gatekeeper.middleware import (
    AuthenticationMiddleware,
    LocaleMiddleware,
    RateLimitMiddleware,
    SecurityHeadersMiddleware,
)

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    tasks = await startup(logger)

    yield

    logger.info("Shutting down...")
    await shutdown(logger, tasks)
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="Access-control core: tokens, devices, rate limits and permissions",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
    )

    register_exception_handlers(app)

    # Starlette runs middleware in reverse order of addition: the last one
    # added is outermost. Request order is
    # CORS -> security headers -> rate limit -> authentication -> locale.
    app.add_middleware(LocaleMiddleware)
    app.add_middleware(AuthenticationMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        enabled=settings.rate_limit_enabled,
        exclude_paths=["/health"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    # CORS must be outermost so its headers are present on 401 and 429 too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "Accept",
            "Accept-Language",
            "X-Locale",
            "X-Request-ID",
        ],
        expose_headers=[
            "X-Locale",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
            "Retry-After",
        ],
    )

    if settings.enable_metrics:
        from prometheus_fastapi_instrumentator import Instrumentator

        Instrumentator(
            excluded_handlers=["/health", "/metrics"],
        ).instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(api_router)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint with API information."""
        return {
            "name": settings.app_name,
            "version": settings.app_version,
        }

    return app


# Application instance
app = create_app()
