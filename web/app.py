"""FastAPI application factory and main app.

This module creates the FastAPI application with all routers, CORS, and
error handlers configured. Long-lived collaborators (database session
factory, provider clients, status source) are created once in the lifespan
and stored on ``app.state`` for the dependencies in web.deps.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import (
    http_exception_handler,
    request_validation_exception_handler,
)
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException

from appwrap import __version__
from appwrap.builds.status import create_status_source
from appwrap.config import Settings, get_settings
from appwrap.db import create_all_tables, get_engine, get_session_factory
from appwrap.eas.client import EasClient
from appwrap.log import configure_logging
from appwrap.push.service import PushClient
from web.routers import builds, config, gui, health, push

logger = logging.getLogger(__name__)

API_PREFIX = "/api/"


def init_state(application: FastAPI, settings: Settings) -> None:
    """Create the database and clients for an application.

    Args:
        application: FastAPI application whose state is populated.
        settings: Settings to build the collaborators from.
    """
    engine = get_engine(settings.db_url)
    create_all_tables(engine)

    eas_client: EasClient | None = None
    if settings.provider_configured:
        token, _ = settings.require_provider()
        eas_client = EasClient(
            token,
            base_url=settings.eas_api_url,
            timeout=settings.provider_timeout,
        )
    else:
        logger.warning(
            "EXPO_TOKEN or EAS_PROJECT_ID not set; build submission is disabled"
        )

    push_token = settings.expo_push_access_token
    application.state.settings = settings
    application.state.engine = engine
    application.state.session_factory = get_session_factory(engine)
    application.state.eas_client = eas_client
    application.state.push_client = PushClient(
        url=settings.push_api_url,
        access_token=push_token.get_secret_value() if push_token else None,
        timeout=settings.provider_timeout,
    )
    application.state.status_source = create_status_source(settings, eas_client)
    logger.info("Status mode: %s", settings.status_mode)


def close_state(application: FastAPI) -> None:
    """Release the clients and engine created by init_state."""
    eas_client = getattr(application.state, "eas_client", None)
    if eas_client is not None:
        eas_client.close()
    push_client = getattr(application.state, "push_client", None)
    if push_client is not None:
        push_client.close()
    engine = getattr(application.state, "engine", None)
    if engine is not None:
        engine.dispose()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager.

    Initializes logging, database tables and provider clients on startup.
    """
    settings = get_settings()
    configure_logging(settings.log_level)
    init_state(app, settings)
    try:
        yield
    finally:
        close_state(app)


def _is_api_request(request: Request) -> bool:
    return request.url.path.startswith(API_PREFIX)


async def _http_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, HTTPException)
    if _is_api_request(request):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )
    return await http_exception_handler(request, exc)


async def _validation_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, RequestValidationError)
    if _is_api_request(request):
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "errors": ["Request body must be a JSON object"],
            },
        )
    return await request_validation_exception_handler(request, exc)


async def _unexpected_error_handler(request: Request, exc: Exception) -> Response:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"},
    )


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        use_lifespan: Whether to attach the startup lifespan. Tests that
            populate ``app.state`` themselves pass False.

    Returns:
        Configured FastAPI application.
    """
    settings = get_settings()
    application = FastAPI(
        title="appwrap API",
        description="Wrap a website into an Android app built on Expo EAS",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )
    application.add_exception_handler(HTTPException, _http_error_handler)
    application.add_exception_handler(RequestValidationError, _validation_error_handler)
    application.add_exception_handler(Exception, _unexpected_error_handler)

    # Include routers
    application.include_router(health.router, tags=["health"])
    application.include_router(config.router, prefix="/config", tags=["config"])
    application.include_router(builds.router, prefix="/api/build", tags=["builds"])
    application.include_router(push.router, prefix="/api/push", tags=["push"])
    application.include_router(gui.router, prefix="/ui", tags=["gui"])

    return application


# Create the default application instance
app = create_app()
