"""Build request validation.

Every field is checked independently so a client sees all problems with a
request at once. Validation is pure: no I/O and no exceptions for any input.
"""

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlsplit

from appwrap.types import BuildRequest, BuildType, FieldError

APP_NAME_MAX_LENGTH = 30

# Reverse-domain notation: at least two segments, each [a-z][a-z0-9_]*
PACKAGE_NAME_PATTERN = re.compile(r"[a-z][a-z0-9_]*(?:\.[a-z][a-z0-9_]*)+")

FORBIDDEN_HOST_CHARS = re.compile(r'[\s\x00-\x1f\x7f<>^|"{}\\%#/?@\[\]:]')

BUILD_TYPES = frozenset(t.value for t in BuildType)


def _validate_website_url(value: Any) -> FieldError | None:
    if value is None or value == "":
        return FieldError("websiteUrl", "Website URL is required")
    if not isinstance(value, str):
        return FieldError("websiteUrl", "Invalid URL format")
    try:
        parts = urlsplit(value.strip())
        # Raises for non-numeric or out-of-range ports
        parts.port
    except ValueError:
        return FieldError("websiteUrl", "Invalid URL format")
    if not parts.scheme or not parts.netloc or not parts.hostname:
        return FieldError("websiteUrl", "Invalid URL format")
    # Bracketed IPv6 literals are checked by urlsplit itself
    if "[" not in parts.netloc and FORBIDDEN_HOST_CHARS.search(parts.hostname):
        return FieldError("websiteUrl", "Invalid URL format")
    # urlsplit lowercases the scheme token
    if parts.scheme != "https":
        return FieldError("websiteUrl", "URL must use HTTPS protocol")
    return None


def _validate_app_name(value: Any) -> FieldError | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return FieldError("appName", "App name is required")
    if not isinstance(value, str):
        return FieldError("appName", "App name must be text")
    if len(value) > APP_NAME_MAX_LENGTH:
        return FieldError(
            "appName", f"App name must be {APP_NAME_MAX_LENGTH} characters or less"
        )
    return None


def _validate_package_name(value: Any) -> FieldError | None:
    if value is None or value == "":
        return FieldError("packageName", "Package name is required")
    if not isinstance(value, str) or not PACKAGE_NAME_PATTERN.fullmatch(value):
        return FieldError(
            "packageName", "Invalid package name format. Use: com.company.appname"
        )
    return None


def _validate_build_type(value: Any) -> FieldError | None:
    if value is None or value == "":
        return FieldError("buildType", "Build type is required")
    if not isinstance(value, str) or value not in BUILD_TYPES:
        return FieldError("buildType", 'Build type must be "apk" or "aab"')
    return None


def validate_build_request(payload: Mapping[str, Any]) -> list[FieldError]:
    """Validate a raw build request.

    Args:
        payload: Request body with websiteUrl, appName, packageName, buildType.

    Returns:
        One FieldError per invalid field, in field order; empty if valid.
    """
    checks = (
        _validate_website_url(payload.get("websiteUrl")),
        _validate_app_name(payload.get("appName")),
        _validate_package_name(payload.get("packageName")),
        _validate_build_type(payload.get("buildType")),
    )
    return [error for error in checks if error is not None]


def parse_build_request(payload: Mapping[str, Any]) -> BuildRequest:
    """Convert an already validated payload into a BuildRequest.

    Args:
        payload: Request body that passed validate_build_request.

    Returns:
        BuildRequest instance.
    """
    return BuildRequest(
        website_url=str(payload["websiteUrl"]).strip(),
        app_name=str(payload["appName"]),
        package_name=str(payload["packageName"]),
        build_type=BuildType(payload["buildType"]),
    )


__all__ = [
    "APP_NAME_MAX_LENGTH",
    "PACKAGE_NAME_PATTERN",
    "parse_build_request",
    "validate_build_request",
]
