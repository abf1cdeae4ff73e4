"""
FastAPI Main Application
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from sso_gateway.api import api_router
from sso_gateway.common.exceptions import register_exception_handlers
from sso_gateway.common.logging import LoggingMiddleware, setup_logging
from sso_gateway.core.redis import RedisClient
from sso_gateway.core.session import RedisSessionStore
from sso_gateway.core.settings import Settings
from sso_gateway.core.settings import settings as default_settings
from sso_gateway.gateway import Gateway, build_gateway


async def _check_redis_connection():
    """Quickly check Redis connectivity on startup."""
    try:
        if await RedisClient.health_check():
            logger.info("   Redis connection check: OK")
        else:
            logger.error("   Redis connection check failed: sessions cannot be saved")
    except Exception as e:
        logger.error(f"   Redis connection check failed: {e}")


def create_app(settings: Optional[Settings] = None, gateway: Optional[Gateway] = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: defaults to the env-derived settings
        gateway: pre-built components (tests); built from settings when None
    """
    settings = settings or (gateway.settings if gateway else default_settings)
    setup_logging(settings.log_level, settings.log_dir)
    gateway = gateway or build_gateway(settings)
    uses_redis = isinstance(gateway.store, RedisSessionStore)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator:
        """Application Lifecycle"""
        logger.info(f"Starting {settings.app_name} v{settings.app_version}")
        logger.info(f"   Environment: {settings.environment}")
        logger.info(f"   Providers: {', '.join(gateway.registry) or 'none'}")

        if uses_redis and settings.redis_url:
            await RedisClient.init(settings.redis_url, settings.redis_pool_size)
            await _check_redis_connection()

        yield

        if uses_redis:
            await RedisClient.close()
        logger.info("Application shutdown")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Session-based OAuth2/OpenID gateway: provider login, callback, refresh and logout.",
        docs_url="/docs" if settings.debug or settings.environment == "development" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.gateway = gateway
    app.state.debug = settings.debug

    # Exception handling
    register_exception_handlers(app)

    # Add logging middleware
    app.add_middleware(LoggingMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.base_path)

    @app.get("/", tags=["Root"])
    async def root():
        """Root path, health check"""
        return {
            "status": "ok",
            "providers": list(gateway.registry),
        }

    return app


def run():
    """Console entry point."""
    import uvicorn

    uvicorn.run(
        "sso_gateway.main:create_app",
        factory=True,
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
    )


if __name__ == "__main__":
    run()
