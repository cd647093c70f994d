"""FastAPI web application for meshforge.

This module provides the HTTP API over the core services: build
requests and queries, the compiler status webhook, plugin resolution and
target compatibility.

All business logic is delegated to core modules in meshforge/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
