"""FastAPI web application for appwrap.

This module provides the HTTP API and the server-rendered GUI. All
business logic is delegated to core modules in appwrap/.
"""

from web.app import app, create_app

__all__ = ["app", "create_app"]
