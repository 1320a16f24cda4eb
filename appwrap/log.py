"""Logging setup and filters.

Applied from both entrypoints (the CLI callback and the web app lifespan),
so every helper here is safe to call more than once.
"""

from __future__ import annotations

import logging
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_HANDLER_NAME = "appwrap"


class SuppressHealthCheckAccessLog(logging.Filter):
    """Drop uvicorn access log records for the health check endpoint."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 (filter)
        # uvicorn access args: (client_addr, method, full_path, http_version, status)
        args: Any = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2])
            if path == "/health" or path.startswith("/health?"):
                return False
        return True


def configure_logging(level: str = "INFO") -> None:
    """Configure the appwrap logger hierarchy.

    Installs one stream handler on the ``appwrap`` and ``web`` loggers and
    sets their level. Repeated calls only update the level.

    Args:
        level: Logging level name (DEBUG, INFO, ...).
    """
    for name in ("appwrap", "web"):
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if not any(h.get_name() == _HANDLER_NAME for h in logger.handlers):
            handler = logging.StreamHandler()
            handler.set_name(_HANDLER_NAME)
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            logger.addHandler(handler)


def install_uvicorn_access_log_filters() -> None:
    """Install the health check filter on uvicorn's access logger."""
    access_logger = logging.getLogger("uvicorn.access")
    for existing in access_logger.filters:
        if isinstance(existing, SuppressHealthCheckAccessLog):
            return
    access_logger.addFilter(SuppressHealthCheckAccessLog())


__all__ = [
    "LOG_FORMAT",
    "SuppressHealthCheckAccessLog",
    "configure_logging",
    "install_uvicorn_access_log_filters",
]
