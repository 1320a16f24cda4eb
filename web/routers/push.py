"""Push notification endpoints.

- POST /api/push - Relay a push notification to a wrapper app
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Response
from fastapi import status as http_status
from fastapi.responses import JSONResponse

from appwrap.push.service import (
    PushDeliveryError,
    PushTransportError,
    PushValidationError,
    parse_push_request,
)
from web.deps import Push

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@router.options("", include_in_schema=False)
def push_preflight() -> Response:
    """Answer CORS preflight requests."""
    return Response(status_code=http_status.HTTP_200_OK, headers=CORS_HEADERS)


@router.post("")
def send_push_endpoint(
    client: Push,
    payload: dict[str, Any] = Body(...),
) -> Any:
    """Send a push notification.

    Args:
        client: Push relay client.
        payload: expoPushToken, title, body, and optional data.

    Returns:
        Delivery ticket id.
    """
    try:
        message = parse_push_request(payload)
        ticket_id = client.send(message)
    except (PushValidationError, PushDeliveryError) as e:
        return JSONResponse(
            status_code=http_status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": str(e), "code": e.code},
        )
    except PushTransportError as e:
        logger.error("Push notification error: %s", e)
        return JSONResponse(
            status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": "Failed to reach push service",
                "code": e.code,
            },
        )

    return {
        "success": True,
        "message": "Notification sent successfully",
        "ticketId": ticket_id,
    }
