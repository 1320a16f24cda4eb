"""Tests for builds/service.py module.

Tests build service operations with a mocked EAS client.
"""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from appwrap.builds.models import BuildRecord, utcnow
from appwrap.builds.service import (
    LOCAL_ID_ALPHABET,
    LOCAL_ID_LENGTH,
    QUEUED_LOG_MESSAGE,
    BuildNotFoundError,
    BuildValidationError,
    format_duration,
    generate_local_id,
    get_build,
    get_build_or_none,
    list_builds,
    submit_build,
)
from appwrap.config import ConfigurationError, Settings
from appwrap.db import Base
from appwrap.eas.client import ProviderError, ProviderJob
from appwrap.types import BuildStatus


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine("sqlite:///:memory:", echo=False)
    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def session_factory(engine):
    """Create a session factory for testing."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """Create a session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    """Settings with provider credentials."""
    return Settings(
        expo_token="test-token",
        eas_project_id="proj-123",
        build_detail_url_template="https://expo.test/builds/{job_id}",
    )


@pytest.fixture
def eas_client():
    """Mocked EAS client whose jobs start queued."""
    client = MagicMock()
    client.create_build.return_value = ProviderJob(id="job-1", status="IN_QUEUE")
    return client


@pytest.fixture
def payload():
    """Valid build request body."""
    return {
        "websiteUrl": "https://example.com",
        "appName": "Example",
        "packageName": "com.example.app",
        "buildType": "apk",
    }


class TestGenerateLocalId:
    """Tests for generate_local_id."""

    def test_length_and_alphabet(self) -> None:
        """Ids use the fixed length and URL-safe alphabet."""
        local_id = generate_local_id()
        assert len(local_id) == LOCAL_ID_LENGTH
        assert set(local_id) <= set(LOCAL_ID_ALPHABET)

    def test_unique(self) -> None:
        """Consecutive ids differ."""
        ids = {generate_local_id() for _ in range(200)}
        assert len(ids) == 200


class TestFormatDuration:
    """Tests for format_duration."""

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(0, "0m 0s"), (59, "0m 59s"), (60, "1m 0s"), (754, "12m 34s"), (-5, "0m 0s")],
    )
    def test_format(self, seconds: int, expected: str) -> None:
        """Durations render as minutes and seconds."""
        assert format_duration(seconds) == expected


class TestSubmitBuild:
    """Tests for submit_build."""

    def test_submit_creates_record(self, session, payload, eas_client, settings):
        """A valid request creates one queued record with one log entry."""
        build = submit_build(session, payload, eas_client, settings)
        session.commit()

        stored = session.get(BuildRecord, build.local_id)
        assert stored is not None
        assert stored.provider_job_id == "job-1"
        assert stored.status == "queued"
        assert stored.website_url == "https://example.com"
        assert stored.app_name == "Example"
        assert stored.package_name == "com.example.app"
        assert stored.build_type == "apk"
        assert stored.build_profile == "preview"
        assert stored.provider_detail_url == "https://expo.test/builds/job-1"
        assert [e.message for e in stored.logs] == [QUEUED_LOG_MESSAGE]
        assert stored.logs[0].severity == "info"

    def test_submit_sends_provider_request(self, session, payload, eas_client, settings):
        """The provider receives project, profile, env and metadata."""
        submit_build(session, payload, eas_client, settings)

        eas_client.create_build.assert_called_once()
        kwargs = eas_client.create_build.call_args.kwargs
        assert kwargs["project_id"] == "proj-123"
        assert kwargs["profile"] == "preview"
        assert kwargs["env"] == {
            "APP_NAME": "Example",
            "APP_PACKAGE": "com.example.app",
            "WEBSITE_URL": "https://example.com",
        }
        assert kwargs["metadata"]["credentialsSource"] == "remote"

    def test_aab_uses_production_profile(self, session, payload, eas_client, settings):
        """AAB builds are submitted with the production profile."""
        payload["buildType"] = "aab"
        build = submit_build(session, payload, eas_client, settings)

        assert build.build_profile == "production"
        assert eas_client.create_build.call_args.kwargs["profile"] == "production"

    def test_initial_status_copied(self, session, payload, eas_client, settings):
        """The provider's initial status is mapped, not assumed."""
        eas_client.create_build.return_value = ProviderJob(
            id="job-2", status="IN_PROGRESS"
        )
        build = submit_build(session, payload, eas_client, settings)
        assert build.status == "building"
        assert len(build.logs) == 1

    def test_unknown_initial_status_is_queued(
        self, session, payload, eas_client, settings
    ):
        """Unrecognized initial statuses are recorded as queued."""
        eas_client.create_build.return_value = ProviderJob(id="job-3", status="MYSTERY")
        build = submit_build(session, payload, eas_client, settings)
        assert build.status == "queued"

    def test_validation_errors_skip_provider(self, session, eas_client, settings):
        """Invalid requests never reach the provider or the database."""
        with pytest.raises(BuildValidationError) as exc_info:
            submit_build(session, {"websiteUrl": "http://x.com"}, eas_client, settings)

        assert len(exc_info.value.errors) == 4
        assert exc_info.value.messages[0] == "URL must use HTTPS protocol"
        eas_client.create_build.assert_not_called()
        assert list_builds(session) == []

    def test_missing_config_skips_provider(self, session, payload, eas_client):
        """Missing credentials raise before the provider is contacted."""
        settings = Settings(expo_token="test-token", eas_project_id=None)
        settings.eas_project_id = None

        with pytest.raises(ConfigurationError):
            submit_build(session, payload, eas_client, settings)

        eas_client.create_build.assert_not_called()
        assert list_builds(session) == []

    def test_missing_client_is_configuration_error(self, session, payload, settings):
        """A deployment without an EAS client cannot submit."""
        with pytest.raises(ConfigurationError):
            submit_build(session, payload, None, settings)

    def test_provider_error_creates_no_record(
        self, session, payload, eas_client, settings
    ):
        """Provider failures leave no record behind."""
        eas_client.create_build.side_effect = ProviderError(
            "Failed to start build: Unauthorized - bad token",
            code="provider_rejected",
            status_code=401,
            status_text="Unauthorized",
        )

        with pytest.raises(ProviderError):
            submit_build(session, payload, eas_client, settings)

        assert list_builds(session) == []

    def test_ids_unique_across_submissions(
        self, session, payload, eas_client, settings
    ):
        """Each submission gets its own local id."""
        first = submit_build(session, payload, eas_client, settings)
        second = submit_build(session, payload, eas_client, settings)
        assert first.local_id != second.local_id


class TestGetBuild:
    """Tests for get_build and get_build_or_none."""

    def test_get_build(self, session, payload, eas_client, settings):
        """Existing builds are returned by local id."""
        build = submit_build(session, payload, eas_client, settings)
        assert get_build(session, build.local_id) is build

    def test_get_build_not_found(self, session):
        """Unknown ids raise BuildNotFoundError."""
        with pytest.raises(BuildNotFoundError) as exc_info:
            get_build(session, "nope")
        assert exc_info.value.build_id == "nope"

    def test_get_build_or_none(self, session):
        """Unknown ids return None."""
        assert get_build_or_none(session, "nope") is None


class TestListBuilds:
    """Tests for list_builds."""

    def test_newest_first_and_filter(self, session, payload, eas_client, settings):
        """Builds are listed newest first and can be filtered by status."""
        older = submit_build(session, payload, eas_client, settings)
        older.started_at = utcnow() - timedelta(minutes=5)
        eas_client.create_build.return_value = ProviderJob(
            id="job-2", status="IN_PROGRESS"
        )
        newer = submit_build(session, payload, eas_client, settings)
        session.flush()

        assert [b.local_id for b in list_builds(session)] == [
            newer.local_id,
            older.local_id,
        ]
        building = list_builds(session, status=BuildStatus.BUILDING)
        assert [b.local_id for b in building] == [newer.local_id]
        assert len(list_builds(session, limit=1)) == 1
