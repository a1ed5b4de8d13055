"""
Inbound Google Calendar push notifications.

Google retries anything that is not a 2xx, so processing failures are logged
and still acknowledged. Only malformed (400) or forged (401) pings are
rejected.
"""

from fastapi import APIRouter, Header, HTTPException, status

from gigsync.errors import NotAuthorized
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.api.role_response import WebhookAckResponse
from gigsync.services.calendar.response_sync import response_sync

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/google-calendar", response_model=WebhookAckResponse)
async def google_calendar_webhook(
    x_goog_channel_id: str | None = Header(None),
    x_goog_resource_id: str | None = Header(None),
    x_goog_resource_state: str | None = Header(None),
    x_goog_channel_token: str | None = Header(None),
):
    if not x_goog_channel_id or not x_goog_resource_state:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing channel headers"
        )

    try:
        await response_sync.handle_watch_notification(
            x_goog_channel_id,
            x_goog_resource_id,
            x_goog_resource_state,
            x_goog_channel_token,
        )
    except NotAuthorized:
        logger.warning("Webhook rejected: bad channel token", channel_id=x_goog_channel_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid channel token"
        ) from None
    except Exception as e:
        logger.error(
            "Webhook processing failed",
            channel_id=x_goog_channel_id,
            resource_state=x_goog_resource_state,
            error=str(e),
            error_type=type(e).__name__,
        )

    return WebhookAckResponse(received=True)
