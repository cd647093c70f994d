"""Router modules for FastAPI web API."""

from web.routers import builds, config, health, plugins, targets, webhook

__all__ = ["builds", "config", "health", "plugins", "targets", "webhook"]
