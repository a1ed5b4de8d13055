# gigsync/services/calendar/drift_reconciler.py
"""
Drift Reconciler - compares an imported gig with its live calendar event.

Only the schedule fields mirrored from the event are compared and, when
applied, written. Everything else on the gig (earnings, setlists, player
notes) is locally owned and never touched here.
"""

from typing import Any

from gigsync.errors import NotAuthorized, NotFound, RemoteTransient
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.calendar_domain import RemoteEvent
from gigsync.models.domain.gig_domain import FieldChange, Gig, RefreshResult
from gigsync.repositories.gig_repository import GigRepository, gig_repository
from gigsync.services.calendar.credentials import CalendarCredentials, calendar_credentials
from gigsync.services.calendar.event_content import parse_description
from gigsync.services.calendar.google_client import GoogleCalendarClient, google_calendar_client
from gigsync.services.calendar.time_window import format_clock, from_remote_event

logger = get_logger(__name__)

COMPARED_FIELDS = (
    "title",
    "date",
    "start_time",
    "end_time",
    "location_name",
    "notes",
    "schedule_notes",
)

# Stored and compared title of an event with no summary
UNTITLED_EVENT = "Imported event"


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def local_fields(gig: Gig) -> dict[str, Any]:
    """Stored values in the shape ``remote_fields`` produces."""
    return {
        "title": _blank_to_none(gig.title),
        "date": gig.date,
        "start_time": format_clock(gig.start_time),
        "end_time": format_clock(gig.end_time),
        "location_name": _blank_to_none(gig.location_name),
        "notes": _blank_to_none(gig.notes),
        "schedule_notes": _blank_to_none(gig.schedule_notes),
    }


def remote_fields(event: RemoteEvent, tz: str | None = None) -> dict[str, Any]:
    schedule = from_remote_event(event, tz)
    parsed = parse_description(event.description)
    return {
        "title": _blank_to_none(event.summary) or UNTITLED_EVENT,
        "date": schedule.date,
        "start_time": schedule.start_time,
        "end_time": schedule.end_time,
        "location_name": _blank_to_none(event.location),
        "notes": _blank_to_none(parsed.remaining_text),
        "schedule_notes": _blank_to_none(parsed.schedule),
    }


def diff_fields(local: dict[str, Any], remote: dict[str, Any]) -> list[FieldChange]:
    return [
        FieldChange(field=name, old_value=local.get(name), new_value=remote.get(name))
        for name in COMPARED_FIELDS
        if local.get(name) != remote.get(name)
    ]


class DriftReconciler:
    def __init__(
        self,
        gigs: GigRepository,
        credentials: CalendarCredentials,
        calendar: GoogleCalendarClient,
    ):
        self._gigs = gigs
        self._credentials = credentials
        self._calendar = calendar

    async def refresh(self, gig_id: str, user_id: str, apply: bool = False) -> RefreshResult:
        """
        Diff the stored gig against its source event and optionally apply.

        A transient provider failure degrades to "no changes" with
        ``degraded=True`` instead of failing the caller.

        Raises:
            NotFound: gig missing or not imported from a calendar
            NotAuthorized: caller is neither owner nor lineup participant
            CalendarNotConnected: caller has no usable connection
            RemoteNotFound: the source event no longer exists
        """
        gig = await self._gigs.get_gig(gig_id)
        if not gig.is_external or not gig.external_calendar_event_id:
            raise NotFound("Gig is not linked to a calendar event", error_code="not_external")

        if gig.owner_id != user_id and not await self._gigs.is_participant(gig_id, user_id):
            raise NotAuthorized("Only the owner or lineup can refresh this gig")

        connection = await self._credentials.get_active_connection(user_id)
        try:
            event = await self._calendar.get_event(
                connection.access_token, gig.external_calendar_event_id
            )
        except RemoteTransient as e:
            logger.warning(
                "Calendar unavailable during refresh",
                gig_id=gig_id,
                error=str(e),
            )
            return RefreshResult(has_changes=False, changes=[], degraded=True)

        changes = diff_fields(local_fields(gig), remote_fields(event))
        if not changes:
            return RefreshResult(has_changes=False, changes=[])

        applied = False
        if apply:
            await self._gigs.update_gig(gig_id, {c.field: c.new_value for c in changes})
            await self._credentials.record_sync(user_id)
            applied = True

        logger.info(
            "Gig drift detected",
            gig_id=gig_id,
            user_id=user_id,
            fields=[c.field for c in changes],
            applied=applied,
        )
        return RefreshResult(has_changes=True, changes=changes, applied=applied)


drift_reconciler = DriftReconciler(gig_repository, calendar_credentials, google_calendar_client)
