"""Router modules for FastAPI web API."""

from web.routers import builds, config, gui, health, push

__all__ = ["builds", "config", "gui", "health", "push"]
