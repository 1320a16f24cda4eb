"""Tests for builds/validation.py module."""

import pytest

from appwrap.builds.validation import (
    APP_NAME_MAX_LENGTH,
    parse_build_request,
    validate_build_request,
)
from appwrap.types import BuildType


def valid_payload(**overrides):
    """Return a valid build request body with optional overrides."""
    payload = {
        "websiteUrl": "https://example.com",
        "appName": "Example",
        "packageName": "com.example.app",
        "buildType": "apk",
    }
    payload.update(overrides)
    return payload


def messages(payload):
    """Validation messages for a payload."""
    return [e.message for e in validate_build_request(payload)]


class TestValidRequests:
    """Requests that must pass."""

    def test_valid_payload(self) -> None:
        """A fully valid payload yields no errors."""
        assert validate_build_request(valid_payload()) == []

    def test_aab_accepted(self) -> None:
        """aab is a valid build type."""
        assert validate_build_request(valid_payload(buildType="aab")) == []

    def test_url_with_path_and_query(self) -> None:
        """HTTPS URLs with path, port and query are accepted."""
        url = "https://shop.example.com:8443/store?ref=app#top"
        assert validate_build_request(valid_payload(websiteUrl=url)) == []

    def test_uppercase_scheme_accepted(self) -> None:
        """The scheme check is case-insensitive."""
        assert validate_build_request(valid_payload(websiteUrl="HTTPS://example.com")) == []

    def test_name_at_max_length(self) -> None:
        """A name of exactly the maximum length is accepted."""
        name = "a" * APP_NAME_MAX_LENGTH
        assert validate_build_request(valid_payload(appName=name)) == []

    @pytest.mark.parametrize(
        "package",
        ["com.example.app", "a.b", "com.example_co.app2", "org.x1.y_2.z"],
    )
    def test_package_names_accepted(self, package: str) -> None:
        """Reverse-domain package names with two or more segments pass."""
        assert validate_build_request(valid_payload(packageName=package)) == []


class TestWebsiteUrl:
    """websiteUrl checks."""

    def test_missing(self) -> None:
        """A missing URL is reported as required."""
        payload = valid_payload()
        del payload["websiteUrl"]
        assert messages(payload) == ["Website URL is required"]

    def test_empty(self) -> None:
        """An empty URL is reported as required."""
        assert messages(valid_payload(websiteUrl="")) == ["Website URL is required"]

    @pytest.mark.parametrize("url", ["http://example.com", "ftp://x.com"])
    def test_non_https_rejected(self, url: str) -> None:
        """Other schemes are rejected with the HTTPS message."""
        assert messages(valid_payload(websiteUrl=url)) == ["URL must use HTTPS protocol"]

    @pytest.mark.parametrize(
        "url",
        [
            "not a url",
            "example.com",
            "https://",
            "//x.y",
            "https://exa mple.com",
            "https://x.com:abc",
            "https://x.com:99999",
            "https://<bad>.com",
        ],
    )
    def test_unparseable(self, url: str) -> None:
        """Strings that are not absolute URLs are rejected."""
        assert messages(valid_payload(websiteUrl=url)) == ["Invalid URL format"]

    def test_non_string(self) -> None:
        """Non-string values are rejected as invalid format."""
        assert messages(valid_payload(websiteUrl=42)) == ["Invalid URL format"]


class TestAppName:
    """appName checks."""

    def test_missing(self) -> None:
        """A missing name is reported as required."""
        assert messages(valid_payload(appName=None)) == ["App name is required"]

    def test_blank(self) -> None:
        """A whitespace-only name counts as missing."""
        assert messages(valid_payload(appName="   ")) == ["App name is required"]

    def test_too_long(self) -> None:
        """Names over the limit are rejected."""
        name = "a" * (APP_NAME_MAX_LENGTH + 1)
        assert messages(valid_payload(appName=name)) == [
            "App name must be 30 characters or less"
        ]

    @pytest.mark.parametrize("char", ["é", "店", "🚀"])
    def test_length_counts_characters(self, char: str) -> None:
        """The limit counts characters, not encoded bytes."""
        assert validate_build_request(
            valid_payload(appName=char * APP_NAME_MAX_LENGTH)
        ) == []
        assert messages(valid_payload(appName=char * (APP_NAME_MAX_LENGTH + 1))) == [
            "App name must be 30 characters or less"
        ]

    def test_non_string(self) -> None:
        """Non-string names are rejected."""
        assert messages(valid_payload(appName=123)) == ["App name must be text"]


class TestPackageName:
    """packageName checks."""

    def test_missing(self) -> None:
        """A missing package name is reported as required."""
        assert messages(valid_payload(packageName="")) == ["Package name is required"]

    @pytest.mark.parametrize(
        "package",
        [
            "example",
            "Com.example.app",
            "com.Example.app",
            "com..app",
            "com.example.",
            ".com.example",
            "1com.example",
            "com.1example",
            "com.example-app",
        ],
    )
    def test_invalid(self, package: str) -> None:
        """Anything outside reverse-domain notation is rejected."""
        assert messages(valid_payload(packageName=package)) == [
            "Invalid package name format. Use: com.company.appname"
        ]


class TestBuildType:
    """buildType checks."""

    def test_missing(self) -> None:
        """A missing build type is reported as required."""
        payload = valid_payload()
        del payload["buildType"]
        assert messages(payload) == ["Build type is required"]

    @pytest.mark.parametrize("build_type", ["ipa", "APK", "zip", 1])
    def test_invalid(self, build_type) -> None:
        """Only the exact values apk and aab are accepted."""
        assert messages(valid_payload(buildType=build_type)) == [
            'Build type must be "apk" or "aab"'
        ]


class TestAggregation:
    """All field errors are reported together."""

    def test_all_fields_invalid(self) -> None:
        """Every invalid field contributes one message, in field order."""
        errors = validate_build_request({})
        assert [e.field for e in errors] == [
            "websiteUrl",
            "appName",
            "packageName",
            "buildType",
        ]

    def test_two_fields_invalid(self) -> None:
        """Two bad fields produce exactly two messages."""
        payload = valid_payload(websiteUrl="http://example.com", packageName="bad")
        assert messages(payload) == [
            "URL must use HTTPS protocol",
            "Invalid package name format. Use: com.company.appname",
        ]


class TestParseBuildRequest:
    """Test parse_build_request."""

    def test_parse(self) -> None:
        """A valid payload becomes a BuildRequest."""
        request = parse_build_request(valid_payload(buildType="aab"))
        assert request.website_url == "https://example.com"
        assert request.app_name == "Example"
        assert request.package_name == "com.example.app"
        assert request.build_type is BuildType.AAB
        assert request.build_profile == "production"
