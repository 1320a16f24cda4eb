"""Build ORM models.

This module defines the BuildRecord and BuildLogEntry models that replace
a process-wide in-memory build registry. Records are keyed by the local
identifier handed to clients and are never deleted.
"""

from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from appwrap.db import Base
from appwrap.types import BuildStatus, LogSeverity


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class BuildRecord(Base):
    """ORM model for one wrapper build submission.

    The record mirrors a job on the build provider. Its status is only
    advanced from what the provider reports, and once terminal the status,
    download URL, and logs never change again.

    Attributes:
        local_id: Opaque client-facing identifier (primary key).
        provider_job_id: Identifier assigned by the build provider.
        status: Build status (queued, building, finished, error).
        website_url: Website wrapped by the app.
        app_name: Display name of the app.
        package_name: Android package identifier.
        build_type: Artifact type (apk, aab).
        build_profile: Provider build profile used for the job.
        started_at: Timestamp of submission.
        finished_at: Timestamp a terminal status was first observed.
        download_url: Artifact URL, present only for finished builds.
        provider_detail_url: Link to the provider's build page.
        error_message: Provider error message for failed builds.
    """

    __tablename__ = "builds"

    local_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    provider_job_id: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True
    )

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BuildStatus.QUEUED.value, index=True
    )

    # Request snapshot
    website_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    app_name: Mapped[str] = mapped_column(String(64), nullable=False)
    package_name: Mapped[str] = mapped_column(String(255), nullable=False)
    build_type: Mapped[str] = mapped_column(String(8), nullable=False)
    build_profile: Mapped[str] = mapped_column(String(32), nullable=False)

    # Timing
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    finished_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Outputs
    download_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    provider_detail_url: Mapped[str | None] = mapped_column(
        String(2048), nullable=True
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    logs: Mapped[list["BuildLogEntry"]] = relationship(
        "BuildLogEntry",
        back_populates="build",
        cascade="all, delete-orphan",
        order_by="BuildLogEntry.id",
    )

    def __repr__(self) -> str:
        """Return string representation of BuildRecord."""
        return (
            f"<BuildRecord(local_id='{self.local_id}', "
            f"provider_job_id='{self.provider_job_id}', status='{self.status}')>"
        )

    @property
    def build_status(self) -> BuildStatus:
        """Status as an enum member."""
        return BuildStatus(self.status)

    def is_terminal(self) -> bool:
        """Check if this build reached finished or error."""
        return self.build_status.is_terminal

    def add_log(
        self,
        message: str,
        severity: LogSeverity = LogSeverity.INFO,
        timestamp: datetime | None = None,
    ) -> "BuildLogEntry":
        """Append a log entry.

        Args:
            message: Log message.
            severity: Entry severity.
            timestamp: Entry time; defaults to now.

        Returns:
            The new entry.

        Raises:
            ValueError: If the build is already terminal.
        """
        if self.status and self.is_terminal():
            raise ValueError(f"Build {self.local_id} is terminal; logs are frozen")
        entry = BuildLogEntry(
            timestamp=timestamp or utcnow(),
            message=message,
            severity=severity.value,
        )
        self.logs.append(entry)
        return entry

    def duration_seconds(self, now: datetime | None = None) -> int:
        """Elapsed seconds from start to finish (or to now while running)."""
        end = self.finished_at if self.finished_at is not None else (now or utcnow())
        delta = as_utc(end) - as_utc(self.started_at)
        return max(int(delta.total_seconds()), 0)


class BuildLogEntry(Base):
    """ORM model for an append-only build log line.

    Attributes:
        id: Primary key; also defines log order.
        build_id: Foreign key to BuildRecord.local_id.
        timestamp: When the event was observed.
        message: Human-readable text.
        severity: info, success, warning, or error.
    """

    __tablename__ = "build_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    build_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("builds.local_id"), nullable=False, index=True
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(
        String(16), nullable=False, default=LogSeverity.INFO.value
    )

    build: Mapped["BuildRecord"] = relationship("BuildRecord", back_populates="logs")

    def __repr__(self) -> str:
        """Return string representation of BuildLogEntry."""
        return f"<BuildLogEntry(id={self.id}, severity='{self.severity}')>"


__all__ = ["BuildLogEntry", "BuildRecord", "as_utc", "utcnow"]
