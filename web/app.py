"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers and
dependency injection configured. Routes are thin proxies to the core
services in meshforge.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from meshforge import __version__
from meshforge.config import configure_logging, get_settings
from meshforge.context import load_context
from meshforge.db import create_all_tables, get_engine, get_session_factory
from web.routers import builds, config, health, plugins, targets, webhook


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Configures logging, initializes database tables and loads the static
    registries on startup.
    """
    settings = get_settings()
    configure_logging(settings)
    engine = get_engine(settings.db_url)
    create_all_tables(engine)
    app.state.session_factory = get_session_factory(engine)
    app.state.context = load_context(settings)
    yield
    engine.dispose()


def include_routers(application: FastAPI) -> None:
    """Mount every API router on an application."""
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(builds.router, prefix="/builds", tags=["builds"])
    application.include_router(webhook.router, tags=["webhook"])
    application.include_router(plugins.router, prefix="/plugins", tags=["plugins"])
    application.include_router(targets.router, prefix="/targets", tags=["targets"])


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application.
    """
    application = FastAPI(
        title="Meshforge API",
        description="HTTP API for custom firmware builds, plugin resolution "
        "and target compatibility",
        version=__version__,
        lifespan=lifespan,
    )
    include_routers(application)
    return application


# Create the default application instance
app = create_app()
