"""
StatusHistoryRecorder - append-only audit trail of lineup status changes.

Writes to both the gig_role_status_history relation (immutable, queryable)
and the structured logs. A failed write is logged and reported as False;
it never fails the status transition it accompanies.
"""

from datetime import UTC, datetime

from gigsync.db.row_store import RowStore, eq, row_store
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.gig_domain import StatusHistoryEntry

logger = get_logger(__name__)

STATUS_HISTORY = "gig_role_status_history"


class StatusHistoryRecorder:
    def __init__(self, store: RowStore):
        self._store = store

    async def record(
        self,
        gig_role_id: str,
        old_status: str | None,
        new_status: str,
        changed_by: str | None,
        notes: str | None = None,
    ) -> bool:
        """
        Append one history entry.

        Returns:
            True if stored, False if the write failed (never raises)
        """
        entry = StatusHistoryEntry(
            gig_role_id=gig_role_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            notes=notes,
            changed_at=datetime.now(UTC),
        )

        logger.info(
            "Role status changed",
            role_id=gig_role_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
        )

        try:
            await self._store.insert(STATUS_HISTORY, entry.model_dump())
            return True
        except Exception as e:
            logger.error(
                "Failed to write status history",
                error=str(e),
                error_type=type(e).__name__,
                fallback_data=entry.model_dump(mode="json"),
            )
            return False

    async def history(self, gig_role_id: str) -> list[StatusHistoryEntry]:
        rows = await self._store.select(
            STATUS_HISTORY, [eq("gig_role_id", gig_role_id)], order_by="changed_at"
        )
        return [StatusHistoryEntry.model_validate(row) for row in rows]


status_history = StatusHistoryRecorder(row_store)
