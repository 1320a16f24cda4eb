"""Configuration endpoints."""

from typing import Any

from fastapi import APIRouter

from web.deps import AppSettings

router = APIRouter()


@router.get("")
def get_config(settings: AppSettings) -> dict[str, Any]:
    """Get effective configuration.

    Credentials are reported only as configured / not configured.

    Returns:
        Current configuration as JSON.
    """
    return {
        "db_url": settings.db_url,
        "log_level": settings.log_level,
        "status_mode": settings.status_mode,
        "provider_configured": settings.provider_configured,
        "eas_project_id": settings.eas_project_id,
        "eas_api_url": settings.eas_api_url,
        "push_api_url": settings.push_api_url,
        "push_access_token_configured": settings.expo_push_access_token is not None,
        "provider_timeout": settings.provider_timeout,
        "poll_interval": settings.poll_interval,
        "poll_max_attempts": settings.poll_max_attempts,
    }
