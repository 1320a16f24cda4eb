"""HTTP client for the appwrap API and the build status poller.

The poller is the CLI counterpart of the status page in the web GUI: it
requests a build's status once per interval until the build is terminal,
the attempt limit is reached, or the caller cancels.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0

TERMINAL_STATUSES = frozenset({"finished", "error"})


class ApiError(Exception):
    """Raised when the appwrap API answers with an error."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
        code: str = "api_error",
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}
        self.code = code

    @property
    def errors(self) -> list[str]:
        """Validation messages, when the API returned any."""
        errors = self.payload.get("errors")
        return [str(e) for e in errors] if isinstance(errors, list) else []

    @property
    def retryable(self) -> bool:
        """Whether the API flagged the failure as transient."""
        return self.status_code == 503 or bool(self.payload.get("retryable"))


class PollTimeoutError(Exception):
    """Raised when a build is still running after the last allowed poll."""

    def __init__(self, build_id: str, attempts: int, last: dict[str, Any] | None):
        super().__init__(
            f"Build {build_id} not finished after {attempts} status checks"
        )
        self.build_id = build_id
        self.attempts = attempts
        self.last = last


class PollCancelledError(Exception):
    """Raised when polling is cancelled by the caller."""

    def __init__(self, build_id: str) -> None:
        super().__init__(f"Polling for build {build_id} cancelled")
        self.build_id = build_id


def is_terminal(status: dict[str, Any]) -> bool:
    """Whether a status response describes a finished or failed build."""
    return status.get("status") in TERMINAL_STATUSES


class AppwrapClient:
    """Client for the appwrap HTTP API.

    Args:
        base_url: API base URL, e.g. http://127.0.0.1:8000.
        timeout: Per-request timeout in seconds.
        http_client: Optional preconfigured httpx client (used by tests).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> AppwrapClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _call(
        self, method: str, path: str, json_body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._client.request(method, url, json=json_body)
        except httpx.TimeoutException as e:
            raise ApiError(f"Timeout calling {url}", code="timeout") from e
        except httpx.HTTPError as e:
            raise ApiError(f"Cannot reach {url}: {e}", code="transport_error") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        if not response.is_success or payload.get("success") is False:
            message = (
                payload.get("error")
                or "; ".join(str(e) for e in payload.get("errors") or [])
                or f"{response.status_code} {response.reason_phrase}"
            )
            raise ApiError(
                str(message),
                status_code=response.status_code,
                payload=payload,
                code=str(payload.get("code") or "api_error"),
            )
        return payload

    def start_build(
        self,
        website_url: str,
        app_name: str,
        package_name: str,
        build_type: str,
    ) -> dict[str, Any]:
        """Submit a wrapper build; returns the API's creation response."""
        return self._call(
            "POST",
            "/api/build",
            {
                "websiteUrl": website_url,
                "appName": app_name,
                "packageName": package_name,
                "buildType": build_type,
            },
        )

    def get_build_status(self, build_id: str) -> dict[str, Any]:
        """Fetch the status of a build by local id."""
        return self._call("GET", f"/api/build/{build_id}")

    def send_push(
        self,
        expo_push_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Relay a push notification through the API."""
        return self._call(
            "POST",
            "/api/push",
            {
                "expoPushToken": expo_push_token,
                "title": title,
                "body": body,
                "data": data or {},
            },
        )


def poll_build(
    client: AppwrapClient,
    build_id: str,
    interval: float = 5.0,
    max_attempts: int = 360,
    backoff: float = 1.0,
    max_interval: float = 60.0,
    cancel_event: threading.Event | None = None,
    on_update: Callable[[dict[str, Any]], None] | None = None,
) -> dict[str, Any]:
    """Poll a build until it reaches a terminal status.

    Waiting between polls happens on ``cancel_event``, so setting it stops
    the poller at once and no request is started after cancellation.
    Responses flagged as transient (503 status unavailable) count as an
    attempt and polling continues.

    Args:
        client: API client.
        build_id: Local build id.
        interval: Seconds before the second poll.
        max_attempts: Maximum number of status requests.
        backoff: Interval multiplier after each poll (1.0 keeps it fixed).
        max_interval: Upper bound for the interval.
        cancel_event: Event that cancels polling when set.
        on_update: Called with every successful status response.

    Returns:
        The terminal status response.

    Raises:
        PollCancelledError: If cancel_event was set.
        PollTimeoutError: If max_attempts polls did not see a terminal status.
        ApiError: For non-transient API errors (e.g. 404).
    """
    if cancel_event is None:
        cancel_event = threading.Event()

    delay = interval
    last: dict[str, Any] | None = None

    for attempt in range(1, max_attempts + 1):
        if cancel_event.is_set():
            raise PollCancelledError(build_id)

        try:
            last = client.get_build_status(build_id)
        except ApiError as e:
            if not e.retryable:
                raise
            logger.warning(
                "Status for build %s unavailable (attempt %d/%d): %s",
                build_id,
                attempt,
                max_attempts,
                e,
            )
        else:
            if on_update is not None:
                on_update(last)
            if is_terminal(last):
                return last

        if attempt == max_attempts:
            break
        if cancel_event.wait(delay):
            raise PollCancelledError(build_id)
        delay = min(delay * backoff, max_interval)

    raise PollTimeoutError(build_id, max_attempts, last)


__all__ = [
    "TERMINAL_STATUSES",
    "ApiError",
    "AppwrapClient",
    "PollCancelledError",
    "PollTimeoutError",
    "is_terminal",
    "poll_build",
]
