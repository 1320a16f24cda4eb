"""Push notification relay for apps built from the WebView template."""

from appwrap.push.service import (
    PushClient,
    PushDeliveryError,
    PushMessage,
    PushTransportError,
    PushValidationError,
    parse_push_request,
)

__all__ = [
    "PushClient",
    "PushDeliveryError",
    "PushMessage",
    "PushTransportError",
    "PushValidationError",
    "parse_push_request",
]
