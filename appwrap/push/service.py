"""Push notification relay.

Validates push messages addressed to apps built from the WebView template
and forwards them to the Expo push service. Delivery is the push service's
responsibility; this module only reports the ticket it hands back.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"

# Every Expo push token has this prefix
PUSH_TOKEN_PREFIX = "ExponentPushToken["

DEFAULT_TIMEOUT = 30.0


class PushValidationError(Exception):
    """Raised when a push request is malformed."""

    def __init__(self, message: str, code: str = "validation") -> None:
        super().__init__(message)
        self.code = code


class PushDeliveryError(Exception):
    """Raised when the push service reports an error for the message."""

    def __init__(
        self,
        message: str,
        code: str = "push_delivery_error",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class PushTransportError(Exception):
    """Raised when the push service cannot be reached or answers garbage."""

    def __init__(self, message: str, code: str = "push_transport_error") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class PushMessage:
    """A validated push message."""

    to: str
    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)
    sound: str = "default"

    def to_dict(self) -> dict[str, Any]:
        """Render the Expo push message payload."""
        return {
            "to": self.to,
            "sound": self.sound,
            "title": self.title,
            "body": self.body,
            "data": self.data,
        }


def parse_push_request(payload: Mapping[str, Any]) -> PushMessage:
    """Validate a push request body.

    Args:
        payload: Body with expoPushToken, title, body and optional data.

    Returns:
        PushMessage ready to send.

    Raises:
        PushValidationError: If the token or required fields are invalid.
    """
    token = payload.get("expoPushToken")
    if not token:
        raise PushValidationError("Expo push token is required")
    if not isinstance(token, str) or not token.startswith(PUSH_TOKEN_PREFIX):
        raise PushValidationError("Invalid Expo push token format")

    title = payload.get("title")
    body = payload.get("body")
    if not title or not body:
        raise PushValidationError("Title and body are required")
    if not isinstance(title, str) or not isinstance(body, str):
        raise PushValidationError("Title and body must be text")

    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise PushValidationError("Data must be a JSON object")

    return PushMessage(to=token, title=title, body=body, data=data)


class PushClient:
    """Client for the Expo push send endpoint.

    Args:
        url: Push send endpoint.
        access_token: Optional Expo push access token.
        timeout: Per-request timeout in seconds.
        http_client: Optional preconfigured httpx client (used by tests).
    """

    def __init__(
        self,
        url: str = EXPO_PUSH_URL,
        access_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._access_token = access_token
        self._client = http_client or httpx.Client(timeout=timeout)
        self._owns_client = http_client is None

    def close(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            self._client.close()

    def send(self, message: PushMessage) -> str:
        """Send one push message.

        Args:
            message: Validated message.

        Returns:
            Push ticket id reported by the service.

        Raises:
            PushDeliveryError: If the service reports an error ticket or
                rejects the request with a 4xx.
            PushTransportError: If the service cannot be reached, fails with
                a 5xx, or hands back no ticket id.
        """
        headers = {
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
            "Content-Type": "application/json",
        }
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        try:
            response = self._client.post(
                self.url,
                json=message.to_dict(),
                headers=headers,
                timeout=self.timeout,
            )
            result = response.json()
        except httpx.TimeoutException as e:
            raise PushTransportError(
                "Timeout sending push notification", code="timeout"
            ) from e
        except httpx.HTTPError as e:
            raise PushTransportError(f"Error sending push notification: {e}") from e
        except ValueError as e:
            raise PushTransportError(
                f"Push service returned a non-JSON response ({response.status_code})"
            ) from e

        if not isinstance(result, dict):
            raise PushTransportError("Unexpected push service response shape")

        errors = result.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) and errors else {}
            message_text = (
                first.get("message") if isinstance(first, dict) else None
            ) or "Failed to send notification"
            raise PushDeliveryError(message_text, details={"errors": errors})

        if not response.is_success:
            if response.is_client_error:
                raise PushDeliveryError(
                    f"Push service rejected the request ({response.status_code})",
                    details={"status_code": response.status_code},
                )
            raise PushTransportError(
                f"Push service returned HTTP {response.status_code}"
            )

        # A single message yields one ticket; a batch yields a list
        ticket = result.get("data")
        if isinstance(ticket, list):
            ticket = ticket[0] if ticket else {}
        if not isinstance(ticket, dict):
            ticket = {}

        if ticket.get("status") == "error":
            raise PushDeliveryError(
                ticket.get("message") or "Failed to send notification",
                details=ticket.get("details") or {},
            )

        ticket_id = ticket.get("id")
        if not ticket_id:
            raise PushTransportError("Push service returned no ticket")
        logger.info("Push notification accepted (ticket=%s)", ticket_id)
        return ticket_id


__all__ = [
    "EXPO_PUSH_URL",
    "PUSH_TOKEN_PREFIX",
    "PushClient",
    "PushDeliveryError",
    "PushMessage",
    "PushTransportError",
    "PushValidationError",
    "parse_push_request",
]
