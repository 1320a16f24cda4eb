"""Build status sources.

A status source answers "what is the state of build <id>?". Exactly one
source is selected when the application starts:

- EasStatusSource mirrors the provider. It is a passive mirror: the only
  transitions it applies are the ones the provider reports, and a record
  that reached finished or error is never queried or changed again.
- DemoStatusSource synthesizes a completed build for any identifier. It
  keeps a deployment without provider credentials browsable and labels
  every record it returns as a demo.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import update
from sqlalchemy.orm import Session

from appwrap.builds.models import BuildLogEntry, BuildRecord, utcnow
from appwrap.builds.service import build_detail_url, get_build
from appwrap.eas.client import (
    ProviderError,
    ProviderJob,
    ProviderJobNotFoundError,
)
from appwrap.types import BUILD_PROFILES, BuildStatus, BuildType, LogSeverity

if TYPE_CHECKING:
    from appwrap.config import Settings
    from appwrap.eas.client import EasClient

logger = logging.getLogger(__name__)

# Progress order; the mirror never moves a record backwards
STATUS_ORDER: dict[BuildStatus, int] = {
    BuildStatus.QUEUED: 0,
    BuildStatus.BUILDING: 1,
    BuildStatus.FINISHED: 2,
    BuildStatus.ERROR: 2,
}

TRANSITION_LOGS: dict[BuildStatus, tuple[str, LogSeverity]] = {
    BuildStatus.BUILDING: ("Build started on Expo EAS", LogSeverity.INFO),
    BuildStatus.FINISHED: ("Build completed successfully", LogSeverity.SUCCESS),
    BuildStatus.ERROR: ("Build failed", LogSeverity.ERROR),
}


class StatusUnavailableError(Exception):
    """Raised when the current status of a build cannot be determined.

    The record itself exists; only the provider lookup failed.
    """

    def __init__(
        self,
        build_id: str,
        message: str,
        code: str = "status_unavailable",
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.build_id = build_id
        self.code = code
        self.retryable = retryable


class StatusSource(ABC):
    """Strategy for resolving the current state of a build."""

    #: Whether records returned by this source are synthetic
    synthetic: bool = False

    @abstractmethod
    def get_status(self, session: Session, build_id: str) -> BuildRecord:
        """Return the current record for a build.

        Raises:
            BuildNotFoundError: If the build is unknown.
            StatusUnavailableError: If the status cannot be determined now.
        """


class EasStatusSource(StatusSource):
    """Mirror build status from Expo Application Services."""

    def __init__(self, client: EasClient | None) -> None:
        self.client = client

    def get_status(self, session: Session, build_id: str) -> BuildRecord:
        build = get_build(session, build_id)
        if build.is_terminal():
            return build

        if self.client is None:
            raise StatusUnavailableError(
                build_id,
                "Build status unavailable: provider is not configured",
                code="provider_not_configured",
            )

        try:
            job = self.client.get_build(build.provider_job_id)
        except ProviderJobNotFoundError as e:
            logger.error(
                "EAS has no job %s for build %s", build.provider_job_id, build_id
            )
            raise StatusUnavailableError(
                build_id,
                "Build status unavailable: provider has no record of this build",
                code=e.code,
            ) from e
        except ProviderError as e:
            logger.warning("Status lookup for build %s failed: %s", build_id, e)
            raise StatusUnavailableError(
                build_id,
                "Build status temporarily unavailable",
                code=e.code,
                retryable=e.retryable,
            ) from e

        apply_provider_job(session, build, job)
        return build


def apply_provider_job(session: Session, build: BuildRecord, job: ProviderJob) -> bool:
    """Advance a record to the status the provider reports.

    The write is a compare-and-set on (local_id, previously seen status), so
    two concurrent polls of the same build apply a transition once.

    Args:
        session: Database session.
        build: Record to advance.
        job: Provider's current view of the job.

    Returns:
        True if the record changed.
    """
    if build.is_terminal():
        return False

    new_status = job.mapped_status
    if new_status is None:
        logger.warning(
            "Ignoring unrecognized EAS status %r for build %s",
            job.status,
            build.local_id,
        )
        return False

    previous = build.status
    if STATUS_ORDER[new_status] <= STATUS_ORDER[BuildStatus(previous)]:
        return False

    now = utcnow()
    values: dict[str, object] = {"status": new_status.value}
    message, severity = TRANSITION_LOGS[new_status]
    if new_status == BuildStatus.FINISHED:
        values["finished_at"] = now
        values["download_url"] = job.artifact_url
    elif new_status == BuildStatus.ERROR:
        values["finished_at"] = now
        values["error_message"] = job.error_message
        if job.error_message:
            message = f"{message}: {job.error_message}"

    result = session.execute(
        update(BuildRecord)
        .where(
            BuildRecord.local_id == build.local_id,
            BuildRecord.status == previous,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    # Reload from the row either way: ours or a concurrent writer's
    session.expire(build)
    if result.rowcount != 1:
        return False

    build.logs.append(
        BuildLogEntry(timestamp=now, message=message, severity=severity.value)
    )
    session.flush()

    logger.info("Build %s: %s -> %s", build.local_id, previous, new_status.value)
    return True


# Offsets (seconds from start) and messages of the synthetic demo timeline
DEMO_TIMELINE: tuple[tuple[int, str, LogSeverity], ...] = (
    (0, "Build queued successfully", LogSeverity.INFO),
    (2, "Preparing build environment...", LogSeverity.INFO),
    (5, "Processing app configuration...", LogSeverity.INFO),
    (8, "Starting EAS Cloud build...", LogSeverity.INFO),
    (15, "Compiling JavaScript bundle...", LogSeverity.INFO),
    (22, "Building Android package...", LogSeverity.INFO),
    (27, "Signing application...", LogSeverity.INFO),
    (30, "Build completed successfully!", LogSeverity.SUCCESS),
)
DEMO_DURATION = timedelta(seconds=DEMO_TIMELINE[-1][0])


class DemoStatusSource(StatusSource):
    """Synthesize a completed demo build for any identifier.

    Nothing is read from or written to the database.
    """

    synthetic = True

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def get_status(self, session: Session, build_id: str) -> BuildRecord:
        return make_demo_build(build_id, self.settings)


def make_demo_build(
    build_id: str, settings: Settings, now: datetime | None = None
) -> BuildRecord:
    """Build a transient, finished demo record.

    Args:
        build_id: Identifier requested by the client.
        settings: Application settings (for the detail link).
        now: Finish time; defaults to now.

    Returns:
        Unpersisted BuildRecord in the finished state.
    """
    finished_at = now or utcnow()
    started_at = finished_at - DEMO_DURATION
    build = BuildRecord(
        local_id=build_id,
        provider_job_id=build_id,
        status=BuildStatus.FINISHED.value,
        website_url="https://example.com",
        app_name="Demo App",
        package_name="com.demo.app",
        build_type=BuildType.APK.value,
        build_profile=BUILD_PROFILES[BuildType.APK],
        started_at=started_at,
        finished_at=finished_at,
        download_url=f"https://expo.dev/artifacts/eas/{build_id}.apk",
        provider_detail_url=build_detail_url(build_id, settings),
    )
    build.logs = [
        BuildLogEntry(
            timestamp=started_at + timedelta(seconds=offset),
            message=message,
            severity=severity.value,
        )
        for offset, message, severity in DEMO_TIMELINE
    ]
    return build


def create_status_source(settings: Settings, client: EasClient | None) -> StatusSource:
    """Select the status source for this deployment.

    Args:
        settings: Application settings; status_mode picks the source.
        client: EAS client, or None without provider credentials.

    Returns:
        The configured StatusSource.
    """
    if settings.status_mode == "demo":
        logger.warning("Build status runs in demo mode; records are synthetic")
        return DemoStatusSource(settings)
    if client is None:
        logger.warning("EAS credentials missing; build status lookups will fail")
    return EasStatusSource(client)


__all__ = [
    "DEMO_TIMELINE",
    "DemoStatusSource",
    "EasStatusSource",
    "StatusSource",
    "StatusUnavailableError",
    "apply_provider_job",
    "create_status_source",
    "make_demo_build",
]
