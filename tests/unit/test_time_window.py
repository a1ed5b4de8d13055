"""
Tests for the gig schedule <-> interval mapping.
"""

from datetime import UTC, date, datetime

import pytest

from gigsync.errors import InvalidSchedule
from gigsync.models.domain.calendar_domain import RemoteEvent
from gigsync.models.domain.gig_domain import Gig
from gigsync.services.calendar.time_window import (
    day_window,
    format_clock,
    from_remote_event,
    to_interval,
)

DAY = date(2030, 6, 14)


def _gig(**fields) -> Gig:
    return Gig(id="gig-1", owner_id="owner-1", date=DAY, **fields)


def _at(hour: int, minute: int = 0, day: int = 14) -> datetime:
    return datetime(2030, 6, day, hour, minute, tzinfo=UTC)


def test_call_time_only_runs_three_hours():
    interval = to_interval(_gig(call_time="17:00"))
    assert interval.start == _at(17)
    assert interval.end == _at(20)


def test_start_time_only_runs_two_hours():
    interval = to_interval(_gig(start_time="19:30:00"))
    assert interval.start == _at(19, 30)
    assert interval.end == _at(21, 30)


def test_explicit_end_wins_over_other_anchors():
    interval = to_interval(
        _gig(call_time="16:00", start_time="18:00", on_stage_time="20:00", end_time="23:15")
    )
    assert interval.start == _at(16)
    assert interval.end == _at(23, 15)


def test_start_is_earliest_anchor():
    interval = to_interval(_gig(call_time="18:30", start_time="18:00"))
    assert interval.start == _at(18)


def test_on_stage_plus_two_hours_when_no_end():
    interval = to_interval(_gig(start_time="19:00", on_stage_time="20:00"))
    assert interval.end == _at(22)


def test_no_times_defaults_to_evening_slot():
    interval = to_interval(_gig())
    assert interval.start == _at(18)
    assert interval.end == _at(20)


def test_end_before_start_rolls_past_midnight():
    interval = to_interval(_gig(start_time="22:00", end_time="01:00"))
    assert interval.end == _at(1, day=15)


def test_local_zone_is_converted_to_utc():
    interval = to_interval(_gig(start_time="19:00"), tz="America/New_York")
    assert interval.start == _at(23)
    start, end = interval.to_event_times()
    assert start["timeZone"] == "UTC"
    assert start["dateTime"].startswith("2030-06-14T23:00:00")


def test_missing_date_is_invalid():
    with pytest.raises(InvalidSchedule) as exc:
        to_interval(Gig(id="gig-1", owner_id="owner-1", start_time="19:00"))
    assert exc.value.error_code == "missing_date"


def test_unparsable_time_is_invalid():
    with pytest.raises(InvalidSchedule):
        to_interval(_gig(start_time="late evening"))


def test_unknown_timezone_is_invalid():
    with pytest.raises(InvalidSchedule):
        to_interval(_gig(), tz="Mars/Olympus")


def test_format_clock_strips_seconds():
    assert format_clock("09:05:59") == "09:05"
    assert format_clock("") is None
    assert format_clock(None) is None


def test_from_remote_event_keeps_event_offset():
    event = RemoteEvent.from_api(
        {
            "id": "evt-1",
            "start": {"dateTime": "2030-06-14T19:30:45+02:00"},
            "end": {"dateTime": "2030-06-14T23:00:00+02:00"},
        }
    )
    schedule = from_remote_event(event)
    assert schedule.date == DAY
    assert schedule.start_time == "19:30"
    assert schedule.end_time == "23:00"


def test_from_remote_event_all_day_has_no_times():
    event = RemoteEvent.from_api(
        {"id": "evt-1", "start": {"date": "2030-06-14"}, "end": {"date": "2030-06-15"}}
    )
    schedule = from_remote_event(event)
    assert schedule.date == DAY
    assert schedule.start_time is None
    assert schedule.end_time is None


def test_from_remote_event_converts_to_requested_zone():
    event = RemoteEvent.from_api({"id": "evt-1", "start": {"dateTime": "2030-06-14T23:00:00Z"}})
    schedule = from_remote_event(event, tz="America/New_York")
    assert schedule.start_time == "19:00"
    assert schedule.end_time is None


def test_day_window_spans_local_midnights():
    window = day_window(DAY, "UTC")
    assert window.start == _at(0)
    assert window.end == datetime(2030, 6, 15, tzinfo=UTC)
