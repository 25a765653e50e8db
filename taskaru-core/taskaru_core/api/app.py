"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from fastapi import FastAPI

from ..background import PeriodicTask
from ..config import SecuritySettings, get_settings
from ..logging_config import configure_logging
from .components import SERVICE_NAME, SecurityComponents, build_components, sweep_jobs
from .errors import register_error_handlers
from .middleware import SecurityHeadersMiddleware
from .routes import create_security_router

logger = structlog.get_logger(__name__)


def create_app(
    components: Optional[SecurityComponents] = None,
    settings: Optional[SecuritySettings] = None,
    prefix: str = "/api",
) -> FastAPI:
    """
    Create and return a fully configured FastAPI application.

    Args:
        components: Prebuilt components (tests); built from settings otherwise
        settings: Settings to build components from (defaults to the environment)
        prefix: Mount point for the security routes
    """
    if components is None:
        settings = settings or get_settings()
        configure_logging(
            SERVICE_NAME,
            level=settings.log_level,
            json_output=settings.is_production,
        )
        components = build_components(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        tasks = [PeriodicTask(name, func, interval) for name, func, interval in sweep_jobs(components)]
        for task in tasks:
            task.start()
        logger.info("Security service started", environment=components.settings.environment)

        yield

        for task in tasks:
            await task.stop()
        await components.aclose()
        logger.info("Security service stopped")

    app = FastAPI(title="Taskaru Security API", lifespan=lifespan)
    app.state.components = components

    app.add_middleware(
        SecurityHeadersMiddleware,
        enable_hsts=components.settings.is_production,
    )
    register_error_handlers(app)
    app.include_router(create_security_router(), prefix=prefix)
    return app
