"""
Tests for comparing imported gigs with their calendar events.
"""

import pytest

from gigsync.errors import NotAuthorized, NotFound, RemoteTransient
from gigsync.models.domain.calendar_domain import RemoteEvent
from gigsync.services.calendar.drift_reconciler import diff_fields
from tests.factories import GIG_DATE, MUSICIAN_ID, OWNER_ID, connect, make_gig, make_role

EVENT_ID = "evt-source"


def _source_event(**overrides):
    data = {
        "id": EVENT_ID,
        "summary": "Summer Wedding",
        "location": "Harbor Hall",
        "start": {"dateTime": "2030-06-14T19:00:00Z"},
        "end": {"dateTime": "2030-06-14T22:00:00Z"},
    }
    data.update(overrides)
    return RemoteEvent.from_api(data)


def _seed(store, calendar, **event_overrides):
    store.seed(
        "gigs",
        make_gig(
            is_external=True,
            external_calendar_event_id=EVENT_ID,
            earnings=500,
        ),
    )
    calendar.events[EVENT_ID] = _source_event(**event_overrides)


@pytest.mark.asyncio
async def test_unchanged_event_has_no_changes(services, store, calendar):
    _seed(store, calendar)
    await connect(services)

    result = await services.drift.refresh("gig-1", OWNER_ID)

    assert result.has_changes is False
    assert result.changes == []
    assert result.degraded is False


@pytest.mark.asyncio
async def test_changes_reported_without_apply(services, store, calendar):
    _seed(store, calendar, summary="Summer Wedding (Moved)")
    await connect(services)

    result = await services.drift.refresh("gig-1", OWNER_ID)

    assert result.has_changes is True
    assert result.applied is False
    assert [(c.field, c.old_value, c.new_value) for c in result.changes] == [
        ("title", "Summer Wedding", "Summer Wedding (Moved)")
    ]
    assert store.rows("gigs")[0]["title"] == "Summer Wedding"


@pytest.mark.asyncio
async def test_apply_writes_only_changed_fields(services, store, calendar):
    _seed(store, calendar, summary="Summer Wedding (Moved)")
    await connect(services)

    result = await services.drift.refresh("gig-1", OWNER_ID, apply=True)

    assert result.applied is True
    gig = store.rows("gigs")[0]
    assert gig["title"] == "Summer Wedding (Moved)"
    assert gig["start_time"] == "19:00:00"
    assert gig["earnings"] == 500
    assert store.rows("calendar_connections")[0]["last_synced_at"] is not None


@pytest.mark.asyncio
async def test_description_split_into_notes_and_schedule(services, store, calendar):
    _seed(store, calendar, description="Load in 17:00\nBring in-ears")
    await connect(services)

    result = await services.drift.refresh("gig-1", OWNER_ID)

    changes = {c.field: c.new_value for c in result.changes}
    assert changes == {"notes": "Bring in-ears", "schedule_notes": "Load in 17:00"}


@pytest.mark.asyncio
async def test_transient_provider_failure_is_degraded(services, store, calendar):
    _seed(store, calendar)
    await connect(services)
    calendar.get_error = RemoteTransient("Google Calendar service temporarily unavailable.")

    result = await services.drift.refresh("gig-1", OWNER_ID, apply=True)

    assert result.has_changes is False
    assert result.degraded is True


@pytest.mark.asyncio
async def test_lineup_member_may_refresh(services, store, calendar):
    _seed(store, calendar)
    store.seed("gig_roles", make_role("role-1", musician_id=MUSICIAN_ID))
    await connect(services, user_id=MUSICIAN_ID)

    result = await services.drift.refresh("gig-1", MUSICIAN_ID)

    assert result.has_changes is False


@pytest.mark.asyncio
async def test_stranger_cannot_refresh(services, store, calendar):
    _seed(store, calendar)

    with pytest.raises(NotAuthorized):
        await services.drift.refresh("gig-1", "stranger")


@pytest.mark.asyncio
async def test_local_gig_cannot_be_refreshed(services, store):
    store.seed("gigs", make_gig())

    with pytest.raises(NotFound) as exc:
        await services.drift.refresh("gig-1", OWNER_ID)
    assert exc.value.error_code == "not_external"


def test_diff_fields_ignores_equal_and_absent_fields():
    local = {"title": "Gig", "date": GIG_DATE, "notes": None}
    remote = {"title": "Gig", "date": GIG_DATE, "notes": None}

    assert diff_fields(local, remote) == []
