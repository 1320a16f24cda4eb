"""Web GUI router for server-rendered HTML pages.

This module provides the /ui routes: the build form with recent builds, and
a build status page whose script polls GET /api/build/{id}. Routes call the
service modules directly, following the same patterns as the JSON routers.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

from fastapi import APIRouter, Form, HTTPException, Request
from fastapi import status as http_status
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from appwrap import __version__
from appwrap.builds.service import (
    BuildNotFoundError,
    BuildValidationError,
    list_builds,
    submit_build,
)
from appwrap.builds.status import StatusUnavailableError
from appwrap.config import ConfigurationError
from appwrap.eas.client import ProviderError
from appwrap.types import BuildType
from web.deps import AppSettings, DbSession, Eas, Status
from web.routers.builds import build_to_dict

logger = logging.getLogger(__name__)

router = APIRouter()

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))


def _render_index(
    request: Request,
    db: Any,
    form: dict[str, str] | None = None,
    errors: dict[str, str] | None = None,
    error: str | None = None,
    status_code: int = http_status.HTTP_200_OK,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request=request,
        name="index.html",
        context={
            "version": __version__,
            "form": form or {"buildType": BuildType.APK.value},
            "errors": errors or {},
            "error": error,
            "build_types": [t.value for t in BuildType],
            "builds": list_builds(db, limit=10),
        },
        status_code=status_code,
    )


@router.get("/", response_class=HTMLResponse, name="gui_index")
def index(request: Request, db: DbSession) -> HTMLResponse:
    """Render the build form and recent builds."""
    return _render_index(request, db)


@router.post("/build", response_class=HTMLResponse, name="gui_start_build")
def start_build(
    request: Request,
    db: DbSession,
    settings: AppSettings,
    client: Eas,
    website_url: Annotated[str, Form(alias="websiteUrl")] = "",
    app_name: Annotated[str, Form(alias="appName")] = "",
    package_name: Annotated[str, Form(alias="packageName")] = "",
    build_type: Annotated[str, Form(alias="buildType")] = "",
) -> Any:
    """Handle the build form; redirect to the status page on success."""
    form = {
        "websiteUrl": website_url,
        "appName": app_name,
        "packageName": package_name,
        "buildType": build_type,
    }
    try:
        build = submit_build(db, form, client, settings)
    except BuildValidationError as e:
        return _render_index(
            request,
            db,
            form=form,
            errors={err.field: err.message for err in e.errors},
            status_code=http_status.HTTP_400_BAD_REQUEST,
        )
    except ConfigurationError as e:
        logger.error("Build submission refused: %s", e)
        return _render_index(
            request,
            db,
            form=form,
            error="The build service is not configured. Please try again later.",
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    except ProviderError as e:
        logger.error("Failed to trigger EAS build: %s", e)
        return _render_index(
            request,
            db,
            form=form,
            error="Failed to start build. Please try again.",
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return RedirectResponse(
        url=request.url_for("gui_build_status", build_id=build.local_id),
        status_code=http_status.HTTP_303_SEE_OTHER,
    )


@router.get("/build/{build_id}", response_class=HTMLResponse, name="gui_build_status")
def build_status(
    request: Request,
    build_id: str,
    db: DbSession,
    settings: AppSettings,
    source: Status,
) -> HTMLResponse:
    """Render the build status page."""
    build: dict[str, Any] | None
    try:
        build = build_to_dict(source.get_status(db, build_id), demo=source.synthetic)
    except BuildNotFoundError:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail=f"Build not found: {build_id}",
        ) from None
    except StatusUnavailableError:
        # The page's poller retries
        build = None

    return templates.TemplateResponse(
        request=request,
        name="build_status.html",
        context={
            "version": __version__,
            "build_id": build_id,
            "build": build,
            "poll_interval_ms": int(settings.poll_interval * 1000),
            "poll_max_attempts": settings.poll_max_attempts,
        },
    )
