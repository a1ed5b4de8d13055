"""
In-app notification inbox writes.

Best-effort: ``notify`` returns False on failure and never raises, so a
status transition is never rolled back by its notification.
"""

from datetime import UTC, datetime

from gigsync.db.row_store import RowStore, row_store
from gigsync.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

NOTIFICATIONS = "notifications"


class NotificationService:
    def __init__(self, store: RowStore):
        self._store = store

    async def notify(
        self,
        user_id: str | None,
        notification_type: str,
        title: str,
        message: str | None = None,
        *,
        link: str | None = None,
        gig_id: str | None = None,
        gig_role_id: str | None = None,
    ) -> bool:
        if not user_id:
            return False

        try:
            await self._store.insert(
                NOTIFICATIONS,
                {
                    "user_id": user_id,
                    "type": notification_type,
                    "title": title,
                    "message": message,
                    "link": link,
                    "gig_id": gig_id,
                    "gig_role_id": gig_role_id,
                    "read": False,
                    "created_at": datetime.now(UTC),
                },
            )
            logger.debug("Notification created", user_id=user_id, notification_type=notification_type)
            return True
        except Exception as e:
            logger.error(
                "Failed to create notification",
                user_id=user_id,
                notification_type=notification_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False


notification_service = NotificationService(row_store)
