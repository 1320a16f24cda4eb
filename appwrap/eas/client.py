"""Expo Application Services (EAS) REST client.

This module handles:
- Build job creation (POST /v2/builds)
- Build job retrieval (GET /v2/builds/{id})
- Mapping the provider's status vocabulary onto BuildStatus

Transport errors and non-success responses are raised as ProviderError;
request timeouts as ProviderTimeoutError, which callers treat as transient.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from appwrap.types import BuildStatus

logger = logging.getLogger(__name__)

# Default EAS API base URL
EAS_API_BASE = "https://api.expo.dev"

# Timeout for provider requests (seconds)
DEFAULT_TIMEOUT = 30.0

ANDROID_PLATFORM = "android"

_STATUS_MAP: dict[str, BuildStatus] = {
    "new": BuildStatus.QUEUED,
    "in_queue": BuildStatus.QUEUED,
    "queued": BuildStatus.QUEUED,
    "in_progress": BuildStatus.BUILDING,
    "building": BuildStatus.BUILDING,
    "pending_cancel": BuildStatus.BUILDING,
    "finished": BuildStatus.FINISHED,
    "errored": BuildStatus.ERROR,
    "error": BuildStatus.ERROR,
    "canceled": BuildStatus.ERROR,
    "cancelled": BuildStatus.ERROR,
}


class ProviderError(Exception):
    """Raised when the build provider rejects a request or cannot be reached."""

    def __init__(
        self,
        message: str,
        code: str = "provider_error",
        status_code: int | None = None,
        status_text: str | None = None,
        body: str | None = None,
    ) -> None:
        """Initialize ProviderError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
            status_code: HTTP status returned by the provider, if any.
            status_text: HTTP reason phrase returned by the provider, if any.
            body: Raw response body returned by the provider, if any.
        """
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.status_text = status_text
        self.body = body

    @property
    def retryable(self) -> bool:
        """Whether repeating the request may succeed."""
        return False


class ProviderTimeoutError(ProviderError):
    """Raised when a provider request exceeds its timeout."""

    def __init__(self, message: str, code: str = "provider_timeout") -> None:
        super().__init__(message, code=code)

    @property
    def retryable(self) -> bool:
        return True


class ProviderJobNotFoundError(ProviderError):
    """Raised when the provider has no job with the requested id."""

    def __init__(self, job_id: str, body: str | None = None) -> None:
        super().__init__(
            f"Provider build not found: {job_id}",
            code="provider_job_not_found",
            status_code=404,
            status_text="Not Found",
            body=body,
        )
        self.job_id = job_id


@dataclass
class ProviderJob:
    """A build job as reported by the provider."""

    id: str
    status: str
    artifact_url: str | None = None
    error_message: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def mapped_status(self) -> BuildStatus | None:
        """Local status for the provider's status, or None if unrecognized."""
        return map_provider_status(self.status)


def map_provider_status(value: str | None) -> BuildStatus | None:
    """Map a provider status string onto BuildStatus.

    Matching ignores case and treats '-' and '_' alike, so 'IN_QUEUE',
    'in-queue', and 'in_queue' are equivalent.

    Args:
        value: Provider status string.

    Returns:
        BuildStatus, or None for unknown or empty values.
    """
    if not value:
        return None
    return _STATUS_MAP.get(value.strip().lower().replace("-", "_"))


def _json_body(response: httpx.Response) -> Any:
    """Decode a JSON response body."""
    try:
        return response.json()
    except ValueError as e:
        raise ProviderError(
            "Provider returned a non-JSON response",
            code="invalid_response",
            status_code=response.status_code,
            body=response.text,
        ) from e


def _parse_job(payload: Any) -> ProviderJob:
    """Extract a ProviderJob from an EAS response envelope ({"data": {...}})."""
    if isinstance(payload, dict) and isinstance(payload.get("data"), dict):
        data = payload["data"]
    elif isinstance(payload, dict):
        data = payload
    else:
        raise ProviderError(
            "Unexpected provider response shape", code="invalid_response"
        )

    job_id = data.get("id")
    if not job_id:
        raise ProviderError("Provider response has no build id", code="invalid_response")

    artifacts = data.get("artifacts") or {}
    artifact_url = None
    if isinstance(artifacts, dict):
        artifact_url = artifacts.get("buildUrl") or artifacts.get(
            "applicationArchiveUrl"
        )

    error = data.get("error") or {}
    error_message = error.get("message") if isinstance(error, dict) else str(error)

    return ProviderJob(
        id=str(job_id),
        status=str(data.get("status") or ""),
        artifact_url=artifact_url,
        error_message=error_message,
        raw=data,
    )


class EasClient:
    """Thin client for the EAS build API.

    Args:
        token: EAS access token, sent as a bearer token.
        base_url: API base URL.
        timeout: Per-request timeout in seconds.
        http_client: Optional preconfigured httpx client (used by tests).
    """

    def __init__(
        self,
        token: str,
        base_url: str = EAS_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> EasClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _request(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            return self._client.request(
                method,
                url,
                json=json_body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(f"Timeout calling {method} {url}") from e
        except httpx.HTTPError as e:
            raise ProviderError(
                f"Error calling {method} {url}: {e}", code="transport_error"
            ) from e

    def create_build(
        self,
        project_id: str,
        profile: str,
        env: dict[str, str],
        metadata: dict[str, Any] | None = None,
    ) -> ProviderJob:
        """Start an Android build job.

        Args:
            project_id: EAS project identifier.
            profile: Build profile name from eas.json.
            env: Environment values exposed to the app config at build time.
            metadata: Optional build metadata.

        Returns:
            ProviderJob with the provider's id and initial status.

        Raises:
            ProviderError: If the provider rejects the request.
            ProviderTimeoutError: If the request times out.
        """
        body: dict[str, Any] = {
            "projectId": project_id,
            "platform": ANDROID_PLATFORM,
            "profile": profile,
            "metadata": metadata or {},
            "env": env,
        }
        logger.info("Requesting EAS %s build (profile=%s)", ANDROID_PLATFORM, profile)
        response = self._request("POST", "/v2/builds", body)

        if not response.is_success:
            logger.error(
                "EAS rejected build request: %s %s",
                response.status_code,
                response.text[:500],
            )
            raise ProviderError(
                f"Failed to start build: {response.reason_phrase} - {response.text}",
                code="provider_rejected",
                status_code=response.status_code,
                status_text=response.reason_phrase,
                body=response.text,
            )

        job = _parse_job(_json_body(response))
        logger.info("EAS build %s created with status %s", job.id, job.status)
        return job

    def get_build(self, job_id: str) -> ProviderJob:
        """Fetch the current state of a build job.

        Args:
            job_id: Provider build identifier.

        Returns:
            ProviderJob with the current status and artifact URL.

        Raises:
            ProviderJobNotFoundError: If the provider has no such job.
            ProviderError: If the provider errors.
            ProviderTimeoutError: If the request times out.
        """
        response = self._request("GET", f"/v2/builds/{job_id}")

        if response.status_code == 404:
            raise ProviderJobNotFoundError(job_id, body=response.text)
        if not response.is_success:
            raise ProviderError(
                f"Failed to fetch build {job_id}: {response.reason_phrase}",
                code="provider_rejected",
                status_code=response.status_code,
                status_text=response.reason_phrase,
                body=response.text,
            )

        return _parse_job(_json_body(response))


__all__ = [
    "ANDROID_PLATFORM",
    "DEFAULT_TIMEOUT",
    "EAS_API_BASE",
    "EasClient",
    "ProviderError",
    "ProviderJob",
    "ProviderJobNotFoundError",
    "ProviderTimeoutError",
    "map_provider_status",
]
