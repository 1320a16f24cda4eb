"""Tests for builds/status.py module.

Covers the provider mirror (transitions, terminal immutability and the
compare-and-set write) and the demo source.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from appwrap.builds.models import BuildRecord
from appwrap.builds.service import BuildNotFoundError, submit_build
from appwrap.builds.status import (
    DEMO_TIMELINE,
    DemoStatusSource,
    EasStatusSource,
    StatusUnavailableError,
    apply_provider_job,
    create_status_source,
    make_demo_build,
)
from appwrap.config import Settings
from appwrap.db import Base
from appwrap.eas.client import (
    ProviderError,
    ProviderJob,
    ProviderJobNotFoundError,
    ProviderTimeoutError,
)


@pytest.fixture
def session_factory(tmp_path):
    """Session factory over a file database shared between sessions."""
    engine = create_engine(f"sqlite:///{tmp_path / 'status.db'}", echo=False)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


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
    return Settings(expo_token="test-token", eas_project_id="proj-123")


@pytest.fixture
def eas_client():
    """Mocked EAS client."""
    client = MagicMock()
    client.create_build.return_value = ProviderJob(id="job-1", status="IN_QUEUE")
    return client


@pytest.fixture
def build(session, eas_client, settings) -> BuildRecord:
    """A committed queued build."""
    record = submit_build(
        session,
        {
            "websiteUrl": "https://example.com",
            "appName": "Example",
            "packageName": "com.example.app",
            "buildType": "apk",
        },
        eas_client,
        settings,
    )
    session.commit()
    return record


def job(status: str, **kwargs) -> ProviderJob:
    """Provider job for job-1 in the given status."""
    return ProviderJob(id="job-1", status=status, **kwargs)


class TestApplyProviderJob:
    """Tests for apply_provider_job."""

    def test_queued_to_building(self, session, build):
        """A building report advances the record and appends one log."""
        assert apply_provider_job(session, build, job("IN_PROGRESS")) is True

        assert build.status == "building"
        assert [e.message for e in build.logs] == [
            "Build queued on Expo EAS",
            "Build started on Expo EAS",
        ]

    def test_same_status_is_noop(self, session, build):
        """Reporting the current status changes nothing."""
        assert apply_provider_job(session, build, job("IN_QUEUE")) is False
        assert len(build.logs) == 1

    def test_finished_sets_download_url(self, session, build):
        """Finishing records the artifact URL and finish time."""
        apply_provider_job(
            session, build, job("FINISHED", artifact_url="https://cdn.test/app.apk")
        )

        assert build.status == "finished"
        assert build.download_url == "https://cdn.test/app.apk"
        assert build.finished_at is not None
        assert build.logs[-1].message == "Build completed successfully"
        assert build.logs[-1].severity == "success"

    def test_error_records_message(self, session, build):
        """Failures keep the provider's error message."""
        apply_provider_job(
            session, build, job("ERRORED", error_message="Gradle build failed")
        )

        assert build.status == "error"
        assert build.error_message == "Gradle build failed"
        assert build.download_url is None
        assert build.logs[-1].message == "Build failed: Gradle build failed"
        assert build.logs[-1].severity == "error"

    def test_queued_straight_to_finished(self, session, build):
        """Intermediate states the poller missed are not required."""
        assert apply_provider_job(session, build, job("FINISHED")) is True
        assert build.status == "finished"
        assert len(build.logs) == 2

    def test_never_moves_backwards(self, session, build):
        """A stale queued report does not undo building."""
        apply_provider_job(session, build, job("IN_PROGRESS"))
        assert apply_provider_job(session, build, job("IN_QUEUE")) is False
        assert build.status == "building"

    def test_terminal_is_frozen(self, session, build):
        """Once finished, later reports change nothing."""
        apply_provider_job(
            session, build, job("FINISHED", artifact_url="https://cdn.test/app.apk")
        )
        logs_before = [e.message for e in build.logs]

        assert apply_provider_job(session, build, job("ERRORED")) is False

        assert build.status == "finished"
        assert build.download_url == "https://cdn.test/app.apk"
        assert [e.message for e in build.logs] == logs_before

    def test_unknown_status_ignored(self, session, build):
        """Unrecognized provider values leave the record as is."""
        assert apply_provider_job(session, build, job("WARP_SPEED")) is False
        assert build.status == "queued"

    def test_concurrent_transition_applied_once(self, session_factory, build):
        """Two sessions applying the same transition write one log entry."""
        first = session_factory()
        second = session_factory()
        try:
            copy_a = first.get(BuildRecord, build.local_id)
            copy_b = second.get(BuildRecord, build.local_id)
            # Both sessions observed the queued status
            assert copy_a.status == copy_b.status == "queued"

            assert apply_provider_job(first, copy_a, job("IN_PROGRESS")) is True
            first.commit()

            assert apply_provider_job(second, copy_b, job("IN_PROGRESS")) is False
            second.commit()
        finally:
            first.close()
            second.close()

        with session_factory() as check:
            stored = check.get(BuildRecord, build.local_id)
            assert stored.status == "building"
            assert [e.message for e in stored.logs].count(
                "Build started on Expo EAS"
            ) == 1


class TestEasStatusSource:
    """Tests for EasStatusSource."""

    def test_polls_provider_and_advances(self, session, build, eas_client):
        """Non-terminal builds are refreshed from the provider."""
        eas_client.get_build.return_value = job("IN_PROGRESS")
        source = EasStatusSource(eas_client)

        result = source.get_status(session, build.local_id)

        eas_client.get_build.assert_called_once_with("job-1")
        assert result.status == "building"
        assert source.synthetic is False

    def test_terminal_not_polled(self, session, build, eas_client):
        """Terminal builds are served without contacting the provider."""
        apply_provider_job(session, build, job("FINISHED"))
        session.commit()
        source = EasStatusSource(eas_client)

        result = source.get_status(session, build.local_id)

        eas_client.get_build.assert_not_called()
        assert result.status == "finished"

    def test_unknown_build(self, session, eas_client):
        """Unknown ids raise BuildNotFoundError without provider calls."""
        with pytest.raises(BuildNotFoundError):
            EasStatusSource(eas_client).get_status(session, "does-not-exist")
        eas_client.get_build.assert_not_called()

    def test_provider_job_missing(self, session, build, eas_client):
        """A provider 404 is reported as unavailable, not as a status."""
        eas_client.get_build.side_effect = ProviderJobNotFoundError("job-1")

        with pytest.raises(StatusUnavailableError) as exc_info:
            EasStatusSource(eas_client).get_status(session, build.local_id)

        assert exc_info.value.code == "provider_job_not_found"
        assert exc_info.value.retryable is False
        assert build.status == "queued"

    def test_provider_timeout_is_retryable(self, session, build, eas_client):
        """Timeouts are reported as retryable."""
        eas_client.get_build.side_effect = ProviderTimeoutError("slow")

        with pytest.raises(StatusUnavailableError) as exc_info:
            EasStatusSource(eas_client).get_status(session, build.local_id)
        assert exc_info.value.retryable is True

    def test_provider_error(self, session, build, eas_client):
        """Other provider failures are reported as unavailable."""
        eas_client.get_build.side_effect = ProviderError("boom", status_code=500)

        with pytest.raises(StatusUnavailableError):
            EasStatusSource(eas_client).get_status(session, build.local_id)
        assert build.status == "queued"

    def test_no_client(self, session, build):
        """Without a client, running builds cannot be refreshed."""
        with pytest.raises(StatusUnavailableError) as exc_info:
            EasStatusSource(None).get_status(session, build.local_id)
        assert exc_info.value.code == "provider_not_configured"


class TestDemoStatusSource:
    """Tests for the demo source."""

    def test_any_id_is_finished(self, session, settings):
        """Every id resolves to a finished demo record."""
        source = DemoStatusSource(settings)
        result = source.get_status(session, "anything")

        assert source.synthetic is True
        assert result.local_id == "anything"
        assert result.status == "finished"
        assert result.app_name == "Demo App"
        assert result.download_url == "https://expo.dev/artifacts/eas/anything.apk"

    def test_nothing_persisted(self, session, settings):
        """Demo records are never written to the database."""
        DemoStatusSource(settings).get_status(session, "demo-1")
        session.flush()
        assert session.get(BuildRecord, "demo-1") is None

    def test_timeline(self, settings):
        """The demo log follows the fixed timeline and lasts 30 seconds."""
        now = datetime(2024, 1, 1, 12, 0, 30, tzinfo=timezone.utc)
        record = make_demo_build("demo-2", settings, now=now)

        assert [e.message for e in record.logs] == [m for _, m, _ in DEMO_TIMELINE]
        assert record.logs[0].timestamp == now - timedelta(seconds=30)
        assert record.logs[-1].severity == "success"
        assert record.duration_seconds() == 30


class TestCreateStatusSource:
    """Tests for create_status_source."""

    def test_eas_mode(self, settings, eas_client):
        """eas mode mirrors the provider."""
        source = create_status_source(settings, eas_client)
        assert isinstance(source, EasStatusSource)
        assert source.client is eas_client

    def test_demo_mode(self, settings):
        """demo mode synthesizes records."""
        settings.status_mode = "demo"
        assert isinstance(create_status_source(settings, None), DemoStatusSource)
