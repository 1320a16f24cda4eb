"""Build endpoints.

- POST /api/build - Validate and start a wrapper build
- GET /api/build/{id} - Current status of a build
- OPTIONS on both - CORS preflight
"""

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Response
from fastapi import status as http_status
from fastapi.responses import JSONResponse

from appwrap.builds.models import BuildRecord, as_utc
from appwrap.builds.service import (
    BuildNotFoundError,
    BuildValidationError,
    format_duration,
    submit_build,
)
from appwrap.builds.status import StatusUnavailableError
from appwrap.config import ConfigurationError
from appwrap.eas.client import ProviderError
from web.deps import AppSettings, DbSession, Eas, Status

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


def _isoformat(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


def build_to_dict(
    build: BuildRecord, demo: bool = False, now: datetime | None = None
) -> dict[str, Any]:
    """Convert a build record to the status response contract."""
    data: dict[str, Any] = {
        "success": True,
        "id": build.local_id,
        "status": build.status,
        "websiteUrl": build.website_url,
        "appName": build.app_name,
        "packageName": build.package_name,
        "buildType": build.build_type,
        "startedAt": _isoformat(build.started_at),
        "duration": format_duration(build.duration_seconds(now)),
        "logs": [
            {
                "timestamp": _isoformat(entry.timestamp),
                "message": entry.message,
                "severity": entry.severity,
            }
            for entry in build.logs
        ],
    }
    if build.finished_at is not None:
        data["finishedAt"] = _isoformat(build.finished_at)
    if build.download_url:
        data["downloadUrl"] = build.download_url
    if build.provider_detail_url:
        data["providerDetailUrl"] = build.provider_detail_url
    if build.error_message:
        data["errorMessage"] = build.error_message
    if demo:
        data["demo"] = True
    return data


def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


@router.options("", include_in_schema=False)
@router.options("/{build_id}", include_in_schema=False)
def build_preflight() -> Response:
    """Answer CORS preflight requests."""
    return Response(status_code=http_status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post("", status_code=http_status.HTTP_201_CREATED)
def start_build_endpoint(
    db: DbSession,
    settings: AppSettings,
    client: Eas,
    payload: dict[str, Any] = Body(...),
) -> Any:
    """Start a wrapper build.

    Args:
        db: Database session.
        settings: Application settings.
        client: EAS client (None without credentials).
        payload: websiteUrl, appName, packageName, buildType.

    Returns:
        Local build id, provider job id, and initial status.
    """
    try:
        build = submit_build(db, payload, client, settings)
    except BuildValidationError as e:
        return JSONResponse(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            content={"success": False, "errors": e.messages},
        )
    except ConfigurationError as e:
        logger.error("Build submission refused: %s", e)
        return _error(
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Server misconfiguration",
            code=e.code,
        )
    except ProviderError as e:
        logger.error("Failed to trigger EAS build: %s", e)
        detail = e.status_text or "build provider unavailable"
        return _error(
            http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            f"Failed to start build: {detail}",
            code=e.code,
        )

    return {
        "success": True,
        "buildId": build.local_id,
        "providerJobId": build.provider_job_id,
        "message": "Build started successfully on Expo Cloud",
        "status": build.status,
    }


@router.get("")
def missing_build_id_endpoint() -> JSONResponse:
    """Reject status requests without a build id."""
    return _error(http_status.HTTP_400_BAD_REQUEST, "Build ID is required")


@router.get("/{build_id}")
def get_build_status_endpoint(
    build_id: str,
    db: DbSession,
    source: Status,
) -> Any:
    """Get the current status of a build.

    Args:
        build_id: Local build ID.
        db: Database session.
        source: Status source selected at startup.

    Returns:
        Build status with metadata and logs.
    """
    if not build_id.strip():
        return _error(http_status.HTTP_400_BAD_REQUEST, "Build ID is required")

    try:
        build = source.get_status(db, build_id)
    except BuildNotFoundError:
        return _error(
            http_status.HTTP_404_NOT_FOUND, "Build not found", code="build_not_found"
        )
    except StatusUnavailableError as e:
        return _error(
            http_status.HTTP_503_SERVICE_UNAVAILABLE,
            str(e),
            id=build_id,
            status="unavailable",
            code=e.code,
            retryable=e.retryable,
        )

    return build_to_dict(build, demo=source.synthetic)
