# gigsync/services/calendar/conflict_detector.py
"""
Conflict Detector - advisory double-booking check.

Looks at the user's own and assigned gigs plus, when a calendar is connected,
that day's remote events. Intervals are half-open, so back-to-back bookings
do not conflict. Provider trouble degrades to "no remote conflicts".
"""

from datetime import date
from typing import Any

from pydantic import BaseModel, Field

from gigsync.config import settings
from gigsync.db.row_store import eq
from gigsync.errors import CalendarNotConnected, GigSyncError, InvalidSchedule
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.calendar_domain import RemoteEvent
from gigsync.models.domain.gig_domain import Gig
from gigsync.repositories.gig_repository import GigRepository, gig_repository
from gigsync.services.calendar.credentials import CalendarCredentials, calendar_credentials
from gigsync.services.calendar.google_client import GoogleCalendarClient, google_calendar_client
from gigsync.services.calendar.time_window import day_window, from_remote_event, minutes_of

logger = get_logger(__name__)

MINUTES_PER_DAY = 24 * 60


class ConflictReport(BaseModel):
    local_gigs: list[Gig] = Field(default_factory=list)
    remote_events: list[RemoteEvent] = Field(default_factory=list)
    remote_checked: bool = False


def _window(start: Any, end: Any) -> tuple[int, int] | None:
    start_min, end_min = minutes_of(start), minutes_of(end)
    if start_min is None or end_min is None:
        return None
    if end_min <= start_min:
        end_min += MINUTES_PER_DAY
    return start_min, end_min


def times_overlap(start1: Any, end1: Any, start2: Any, end2: Any) -> bool:
    """
    Half-open overlap of two same-day clock windows.

    ``times_overlap("10:00", "12:00", "12:00", "14:00")`` is False. A window
    ending at or before its start runs past midnight.
    """
    first = _window(start1, end1)
    second = _window(start2, end2)
    if first is None or second is None:
        return True
    return first[0] < second[1] and second[0] < first[1]


class ConflictDetector:
    def __init__(
        self,
        gigs: GigRepository,
        credentials: CalendarCredentials,
        calendar: GoogleCalendarClient,
    ):
        self._gigs = gigs
        self._credentials = credentials
        self._calendar = calendar

    async def check_conflicts(
        self,
        user_id: str,
        day: date,
        start_time: str | None = None,
        end_time: str | None = None,
        exclude_gig_id: str | None = None,
    ) -> ConflictReport:
        has_window = bool(start_time and end_time)

        local = []
        for gig in await self._gigs.gigs_for_user_on(user_id, day, exclude_gig_id):
            # A gig without both bounds spans the whole day
            if not has_window or not (gig.start_time and gig.end_time):
                local.append(gig)
            elif times_overlap(gig.start_time, gig.end_time, start_time, end_time):
                local.append(gig)

        excluded_event_id = None
        if exclude_gig_id:
            excluded = await self._gigs.find_gig([eq("id", exclude_gig_id)])
            excluded_event_id = excluded.external_calendar_event_id if excluded else None

        remote: list[RemoteEvent] = []
        remote_checked = False
        try:
            remote = await self._remote_conflicts(
                user_id, day, start_time if has_window else None, end_time if has_window else None
            )
            remote = [e for e in remote if e.id != excluded_event_id]
            remote_checked = True
        except CalendarNotConnected:
            pass
        except GigSyncError as e:
            logger.warning(
                "Remote conflict check failed",
                user_id=user_id,
                day=day.isoformat(),
                error=str(e),
                error_code=e.error_code,
            )

        return ConflictReport(local_gigs=local, remote_events=remote, remote_checked=remote_checked)

    async def _remote_conflicts(
        self, user_id: str, day: date, start_time: str | None, end_time: str | None
    ) -> list[RemoteEvent]:
        connection = await self._credentials.get_active_connection(user_id)
        window = day_window(day, settings.DEFAULT_TIMEZONE)
        events = await self._calendar.list_events(connection.access_token, window.start, window.end)

        conflicts = []
        for event in events:
            if event.is_cancelled() or event.start is None:
                continue
            try:
                schedule = from_remote_event(event, settings.DEFAULT_TIMEZONE)
            except InvalidSchedule as e:
                logger.info("Skipping unparsable remote event", event_id=event.id, error=str(e))
                continue
            # The day listing also returns events that started earlier and run into ``day``
            if schedule.date != day:
                continue
            if event.is_all_day() or start_time is None:
                conflicts.append(event)
            elif times_overlap(schedule.start_time, schedule.end_time, start_time, end_time):
                conflicts.append(event)
        return conflicts


conflict_detector = ConflictDetector(gig_repository, calendar_credentials, google_calendar_client)
