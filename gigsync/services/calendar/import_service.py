# gigsync/services/calendar/import_service.py
"""
Calendar import - turn a remote event into an external gig.

The imported gig keeps a pointer back to its event so the Drift Reconciler
can later pull schedule changes from it.
"""

from datetime import UTC, datetime

from pydantic import BaseModel

from gigsync.db.row_store import RowStore, eq, row_store
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.calendar_domain import RemoteEvent
from gigsync.repositories.gig_repository import GigRepository, gig_repository
from gigsync.services.calendar.credentials import CalendarCredentials, calendar_credentials
from gigsync.services.calendar.drift_reconciler import remote_fields
from gigsync.services.calendar.google_client import GoogleCalendarClient, google_calendar_client

logger = get_logger(__name__)

SYNC_LOG = "calendar_sync_log"
PROVIDER = "google"
IMPORTED_ROLE_NAME = "Musician"


class ImportResult(BaseModel):
    gig_id: str
    created: bool


class BatchImportItem(BaseModel):
    event_id: str
    gig_id: str
    duplicate: bool


class BatchImportResult(BaseModel):
    results: list[BatchImportItem]
    failed: dict[str, str]


class CalendarImportService:
    def __init__(
        self,
        store: RowStore,
        gigs: GigRepository,
        credentials: CalendarCredentials,
        calendar: GoogleCalendarClient,
    ):
        self._store = store
        self._gigs = gigs
        self._credentials = credentials
        self._calendar = calendar

    async def list_remote_events(
        self, user_id: str, start: datetime, end: datetime
    ) -> list[RemoteEvent]:
        start, end = (v if v.tzinfo else v.replace(tzinfo=UTC) for v in (start, end))
        connection = await self._credentials.get_active_connection(user_id)
        events = await self._calendar.list_events(connection.access_token, start, end)
        return [event for event in events if not event.is_cancelled()]

    async def import_event(self, user_id: str, event_id: str) -> ImportResult:
        """
        Create an external gig (and an accepted role for the importer) from
        one remote event. Importing the same event twice returns the first gig.
        """
        existing = await self._gigs.find_gig(
            [eq("owner_id", user_id), eq("external_calendar_event_id", event_id)]
        )
        if existing:
            logger.info("Event already imported", user_id=user_id, event_id=event_id)
            return ImportResult(gig_id=existing.id, created=False)

        connection = await self._credentials.get_active_connection(user_id)
        event = await self._calendar.get_event(connection.access_token, event_id)
        gig = await self._gigs.insert_gig(
            {
                "owner_id": user_id,
                # Same normalisation the drift check compares against
                **remote_fields(event),
                "status": "confirmed",
                "is_external": True,
                "external_calendar_event_id": event.id,
                "external_calendar_provider": PROVIDER,
                "external_event_url": event.html_link,
            }
        )

        now = datetime.now(UTC)
        await self._gigs.insert_role(
            {
                "gig_id": gig.id,
                "role_name": IMPORTED_ROLE_NAME,
                "musician_id": user_id,
                "invitation_status": "accepted",
                "status_changed_at": now,
                "status_changed_by": user_id,
            }
        )

        try:
            await self._store.insert(
                SYNC_LOG,
                {
                    "user_id": user_id,
                    "gig_id": gig.id,
                    "external_event_id": event.id,
                    "provider": PROVIDER,
                    "action": "import",
                    "synced_at": now,
                },
            )
        except Exception as e:
            logger.warning("Failed to write sync log", gig_id=gig.id, error=str(e))

        await self._credentials.record_sync(user_id)
        logger.info("Calendar event imported", user_id=user_id, event_id=event_id, gig_id=gig.id)
        return ImportResult(gig_id=gig.id, created=True)

    async def import_events(self, user_id: str, event_ids: list[str]) -> BatchImportResult:
        """
        Import several events one after another. Already-imported events are
        reported with ``duplicate=True``; a failing event is recorded and
        skipped.

        Raises:
            CalendarNotConnected: caller has no usable connection
        """
        await self._credentials.get_active_connection(user_id)

        results: list[BatchImportItem] = []
        failed: dict[str, str] = {}
        for event_id in dict.fromkeys(event_ids):
            try:
                result = await self.import_event(user_id, event_id)
            except Exception as e:
                logger.warning(
                    "Failed to import calendar event",
                    user_id=user_id,
                    event_id=event_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                failed[event_id] = str(e)
                continue
            results.append(
                BatchImportItem(event_id=event_id, gig_id=result.gig_id, duplicate=not result.created)
            )

        logger.info(
            "Calendar batch import finished",
            user_id=user_id,
            imported=sum(1 for r in results if not r.duplicate),
            duplicates=sum(1 for r in results if r.duplicate),
            failed=len(failed),
        )
        return BatchImportResult(results=results, failed=failed)


calendar_import_service = CalendarImportService(
    row_store, gig_repository, calendar_credentials, google_calendar_client
)
