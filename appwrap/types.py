"""Shared type definitions for appwrap.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass
from enum import Enum


class BuildStatus(str, Enum):
    """Status of a wrapper build, mirrored from the provider."""

    QUEUED = "queued"
    BUILDING = "building"
    FINISHED = "finished"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transitions are permitted."""
        return self in (BuildStatus.FINISHED, BuildStatus.ERROR)


class BuildType(str, Enum):
    """Android artifact type."""

    APK = "apk"
    AAB = "aab"


class LogSeverity(str, Enum):
    """Severity of a build log entry."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# Fixed policy: which EAS build profile (eas.json) produces each artifact type
BUILD_PROFILES: dict[BuildType, str] = {
    BuildType.APK: "preview",
    BuildType.AAB: "production",
}


@dataclass(frozen=True)
class BuildRequest:
    """A validated wrapper build request."""

    website_url: str
    app_name: str
    package_name: str
    build_type: BuildType

    @property
    def build_profile(self) -> str:
        """EAS build profile for this request's build type."""
        return BUILD_PROFILES[self.build_type]


@dataclass(frozen=True)
class FieldError:
    """A validation failure scoped to one input field."""

    field: str
    message: str

    def __str__(self) -> str:
        return self.message


__all__ = [
    "BUILD_PROFILES",
    "BuildRequest",
    "BuildStatus",
    "BuildType",
    "FieldError",
    "LogSeverity",
]
