# gigsync/services/calendar/time_window.py
"""
Gig schedule <-> absolute interval mapping.

Gigs rarely record an explicit end time, so ``to_interval`` synthesizes one
from whichever anchor exists. All functions are pure.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from gigsync.config import settings
from gigsync.errors import InvalidSchedule
from gigsync.models.domain.calendar_domain import RemoteEvent
from gigsync.models.domain.gig_domain import Gig

DEFAULT_START = time(18, 0)
ON_STAGE_DURATION = timedelta(hours=2)
START_DURATION = timedelta(hours=2)
CALL_DURATION = timedelta(hours=3)


@dataclass(slots=True, frozen=True)
class Interval:
    """Half-open [start, end) in UTC."""

    start: datetime
    end: datetime

    def to_event_times(self) -> tuple[dict[str, str], dict[str, str]]:
        """Provider ``start``/``end`` payloads."""
        return (
            {"dateTime": self.start.isoformat(), "timeZone": "UTC"},
            {"dateTime": self.end.isoformat(), "timeZone": "UTC"},
        )


@dataclass(slots=True, frozen=True)
class RemoteSchedule:
    date: date
    start_time: str | None
    end_time: str | None


def parse_clock(value: Any) -> time | None:
    """Parse ``HH:MM`` or ``HH:MM:SS`` (or a ``time``); blank means unset."""
    if value is None:
        return None
    if isinstance(value, time):
        return value.replace(microsecond=0)
    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise InvalidSchedule(f"Unparsable time: {value!r}")


def format_clock(value: Any) -> str | None:
    """Normalize a clock value to minute precision ``HH:MM``."""
    parsed = parse_clock(value)
    return parsed.strftime("%H:%M") if parsed else None


def minutes_of(value: Any) -> int | None:
    parsed = parse_clock(value)
    if parsed is None:
        return None
    return parsed.hour * 60 + parsed.minute


def _zone(tz: str | None) -> ZoneInfo:
    name = tz or settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidSchedule(f"Unknown timezone: {name}") from e


def to_interval(gig: Gig, tz: str | None = None) -> Interval:
    """
    Map a gig's schedule fields to an absolute UTC interval.

    Start is the earliest of call/start time (18:00 local when neither is
    set). End is the explicit end time; else on-stage + 2h; else start + 2h;
    else call + 3h; else the resolved start + 2h. An end at or before the
    start is read as past midnight.

    Raises:
        InvalidSchedule: missing date, unparsable time or unknown timezone
    """
    if gig.date is None:
        raise InvalidSchedule("Gig has no date", error_code="missing_date")

    zone = _zone(tz)
    call = parse_clock(gig.call_time)
    start_clock = parse_clock(gig.start_time)
    on_stage = parse_clock(gig.on_stage_time)
    end_clock = parse_clock(gig.end_time)

    def at(clock: time) -> datetime:
        return datetime.combine(gig.date, clock, tzinfo=zone)

    anchors = [c for c in (call, start_clock) if c is not None]
    start = at(min(anchors)) if anchors else at(DEFAULT_START)

    if end_clock is not None:
        end = at(end_clock)
    elif on_stage is not None:
        end = at(on_stage) + ON_STAGE_DURATION
    elif start_clock is not None:
        end = at(start_clock) + START_DURATION
    elif call is not None:
        end = at(call) + CALL_DURATION
    else:
        end = start + START_DURATION

    if end <= start:
        end += timedelta(days=1)

    return Interval(start=start.astimezone(UTC), end=end.astimezone(UTC))


def day_window(day: date, tz: str | None = None) -> Interval:
    """Midnight-to-midnight window for ``day`` in the local zone."""
    zone = _zone(tz)
    start = datetime.combine(day, time(0, 0), tzinfo=zone)
    return Interval(start=start.astimezone(UTC), end=(start + timedelta(days=1)).astimezone(UTC))


def from_remote_event(event: RemoteEvent, tz: str | None = None) -> RemoteSchedule:
    """
    Extract date and ``HH:MM`` times from a provider event.

    Times are read in the event's own offset unless ``tz`` is given. All-day
    events yield null times.
    """
    if event.start is None:
        raise InvalidSchedule(f"Event {event.id} has no start")

    if event.is_all_day():
        try:
            return RemoteSchedule(
                date=date.fromisoformat(event.start.date), start_time=None, end_time=None
            )
        except ValueError as e:
            raise InvalidSchedule(f"Unparsable event date: {event.start.date!r}") from e

    start = _parse_event_datetime(event.start.date_time, tz)
    end = None
    if event.end is not None and event.end.date_time:
        end = _parse_event_datetime(event.end.date_time, tz)

    return RemoteSchedule(
        date=start.date(),
        start_time=start.strftime("%H:%M"),
        end_time=end.strftime("%H:%M") if end else None,
    )


def _parse_event_datetime(value: str | None, tz: str | None) -> datetime:
    if not value:
        raise InvalidSchedule("Event time is empty")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidSchedule(f"Unparsable event time: {value!r}") from e
    if tz:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        parsed = parsed.astimezone(_zone(tz))
    return parsed
