"""Build service module.

This module provides the high-level build API:
- submit_build(): validate a request, start the provider job, persist a record
- get_build() / list_builds(): record lookup by local identifier

A record is only created after the provider accepted the job, so a failed
submission never leaves a queued build without a provider counterpart.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from appwrap.builds.models import BuildRecord, utcnow
from appwrap.builds.validation import parse_build_request, validate_build_request
from appwrap.config import ConfigurationError, get_settings
from appwrap.types import BuildStatus, FieldError, LogSeverity

if TYPE_CHECKING:
    from appwrap.config import Settings
    from appwrap.eas.client import EasClient

logger = logging.getLogger(__name__)

# URL-safe alphabet (64 symbols); 12 symbols give 72 bits of randomness
LOCAL_ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-"
LOCAL_ID_LENGTH = 12

QUEUED_LOG_MESSAGE = "Build queued on Expo EAS"

APP_VERSION = "1.0.0"
APP_BUILD_VERSION = "1"


class BuildNotFoundError(Exception):
    """Raised when a build is not found."""

    def __init__(self, build_id: str, code: str = "build_not_found") -> None:
        super().__init__(f"Build not found: {build_id}")
        self.build_id = build_id
        self.code = code


class BuildValidationError(Exception):
    """Raised when a build request fails validation.

    Attributes:
        errors: Every field error found, never just the first.
    """

    def __init__(self, errors: list[FieldError], code: str = "validation") -> None:
        super().__init__("; ".join(e.message for e in errors))
        self.errors = errors
        self.code = code

    @property
    def messages(self) -> list[str]:
        """Error messages in field order."""
        return [e.message for e in self.errors]


def generate_local_id(length: int = LOCAL_ID_LENGTH) -> str:
    """Generate an opaque client-facing build identifier."""
    return "".join(secrets.choice(LOCAL_ID_ALPHABET) for _ in range(length))


def build_detail_url(job_id: str, settings: Settings | None = None) -> str:
    """Return the provider page URL for a build job."""
    if settings is None:
        settings = get_settings()
    return settings.build_detail_url_template.format(job_id=job_id)


def format_duration(seconds: int) -> str:
    """Format elapsed seconds as '<m>m <s>s'."""
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes}m {secs}s"


def submit_build(
    session: Session,
    payload: Mapping[str, Any],
    client: EasClient | None,
    settings: Settings | None = None,
) -> BuildRecord:
    """Validate a build request and start it on the provider.

    Configuration is checked before the provider is contacted, so a
    deployment without credentials never reaches it.

    Args:
        session: Database session.
        payload: Raw request body (websiteUrl, appName, packageName, buildType).
        client: EAS client; None when the deployment has no credentials.
        settings: Application settings.

    Returns:
        The persisted BuildRecord.

    Raises:
        ConfigurationError: If EAS credentials are missing.
        BuildValidationError: If the request is invalid.
        ProviderError: If the provider rejects or fails the job creation.
    """
    if settings is None:
        settings = get_settings()

    errors = validate_build_request(payload)
    if errors:
        raise BuildValidationError(errors)
    request = parse_build_request(payload)

    _, project_id = settings.require_provider()
    if client is None:
        raise ConfigurationError(
            "Server misconfiguration: EAS client not initialized",
            code="provider_not_configured",
        )

    job = client.create_build(
        project_id=project_id,
        profile=request.build_profile,
        env={
            "APP_NAME": request.app_name,
            "APP_PACKAGE": request.package_name,
            "WEBSITE_URL": request.website_url,
        },
        metadata={
            "appVersion": APP_VERSION,
            "appBuildVersion": APP_BUILD_VERSION,
            "credentialsSource": "remote",
        },
    )

    initial_status = job.mapped_status
    if initial_status is None:
        logger.warning(
            "Unrecognized initial status %r for EAS build %s; recording as queued",
            job.status,
            job.id,
        )
        initial_status = BuildStatus.QUEUED

    build = BuildRecord(
        local_id=generate_local_id(),
        provider_job_id=job.id,
        status=BuildStatus.QUEUED.value,
        website_url=request.website_url,
        app_name=request.app_name,
        package_name=request.package_name,
        build_type=request.build_type.value,
        build_profile=request.build_profile,
        started_at=utcnow(),
        provider_detail_url=build_detail_url(job.id, settings),
    )
    build.add_log(QUEUED_LOG_MESSAGE, LogSeverity.INFO)
    build.status = initial_status.value
    if initial_status.is_terminal:
        build.finished_at = utcnow()
        if initial_status == BuildStatus.FINISHED:
            build.download_url = job.artifact_url
        else:
            build.error_message = job.error_message

    session.add(build)
    session.flush()

    logger.info(
        "Created build %s for EAS job %s (%s, profile=%s)",
        build.local_id,
        job.id,
        request.package_name,
        request.build_profile,
    )
    return build


def get_build(session: Session, build_id: str) -> BuildRecord:
    """Get a build record by local ID.

    Args:
        session: Database session.
        build_id: Local build ID.

    Returns:
        BuildRecord instance.

    Raises:
        BuildNotFoundError: If build not found.
    """
    build = session.get(BuildRecord, build_id)
    if build is None:
        raise BuildNotFoundError(build_id)
    return build


def get_build_or_none(session: Session, build_id: str) -> BuildRecord | None:
    """Get a build record by local ID, or None if not found."""
    return session.get(BuildRecord, build_id)


def list_builds(
    session: Session,
    status: BuildStatus | None = None,
    limit: int = 20,
) -> list[BuildRecord]:
    """List build records, newest first.

    Args:
        session: Database session.
        status: Filter by status.
        limit: Maximum results to return.

    Returns:
        List of BuildRecord instances.
    """
    stmt = select(BuildRecord)

    if status is not None:
        stmt = stmt.where(BuildRecord.status == status.value)

    stmt = stmt.order_by(BuildRecord.started_at.desc()).limit(limit)

    return list(session.execute(stmt).scalars().all())


__all__ = [
    "LOCAL_ID_ALPHABET",
    "LOCAL_ID_LENGTH",
    "QUEUED_LOG_MESSAGE",
    "BuildNotFoundError",
    "BuildValidationError",
    "build_detail_url",
    "format_duration",
    "generate_local_id",
    "get_build",
    "get_build_or_none",
    "list_builds",
    "submit_build",
]
