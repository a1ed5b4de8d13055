"""
Tests for the lineup assignment lifecycle.
"""

from datetime import date

import pytest

from gigsync.errors import InvalidTransition, NotAuthorized, RoleReplaced
from gigsync.services.invitations.state_machine import can_transition
from tests.factories import MUSICIAN_ID, OWNER_ID, make_gig, make_role


def _seed(store, **role_overrides):
    store.seed("gigs", make_gig())
    store.seed("profiles", {"id": MUSICIAN_ID, "name": "Alex", "email": "alex@example.com"})
    store.seed(
        "gig_roles",
        make_role("role-1", musician_id=MUSICIAN_ID, **role_overrides),
    )


def _status(store, role_id="role-1"):
    return next(r for r in store.rows("gig_roles") if r["id"] == role_id)["invitation_status"]


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        ("pending", "invited", True),
        ("pending", "accepted", False),
        ("invited", "needs_sub", True),
        ("accepted", "tentative", True),
        ("declined", "invited", True),
        ("declined", "accepted", False),
        ("replaced", "invited", False),
    ],
)
def test_transition_table(current, new, allowed):
    assert can_transition(current, new) is allowed


@pytest.mark.asyncio
async def test_accept_persists_and_notifies_manager(services, store):
    _seed(store, invitation_status="invited")

    role = await services.state_machine.update_my_status("role-1", MUSICIAN_ID, "accepted")

    assert role.invitation_status == "accepted"
    assert role.status_changed_by == MUSICIAN_ID
    assert _status(store) == "accepted"

    [notification] = store.rows("notifications")
    assert notification["user_id"] == OWNER_ID
    assert notification["type"] == "role_accepted"
    assert notification["title"] == "Alex accepted"

    history = await services.history.history("role-1")
    assert [(h.old_status, h.new_status) for h in history] == [("invited", "accepted")]


@pytest.mark.asyncio
async def test_same_status_is_a_no_op(services, store):
    _seed(store, invitation_status="accepted")

    await services.state_machine.update_my_status("role-1", MUSICIAN_ID, "accepted")

    assert store.rows("gig_role_status_history") == []
    assert store.rows("notifications") == []


@pytest.mark.asyncio
async def test_cannot_update_someone_elses_role(services, store):
    _seed(store, invitation_status="invited")

    with pytest.raises(NotAuthorized):
        await services.state_machine.update_my_status("role-1", "intruder", "accepted")


@pytest.mark.asyncio
async def test_pending_role_cannot_be_accepted_directly(services, store):
    _seed(store)

    with pytest.raises(InvalidTransition):
        await services.state_machine.update_my_status("role-1", MUSICIAN_ID, "accepted")


@pytest.mark.asyncio
async def test_replaced_is_checked_before_actor(services, store):
    _seed(store, invitation_status="replaced")

    with pytest.raises(RoleReplaced):
        await services.state_machine.update_my_status("role-1", "intruder", "accepted")
    with pytest.raises(RoleReplaced):
        await services.state_machine.override_status("role-1", OWNER_ID, "accepted")
    with pytest.raises(RoleReplaced):
        await services.state_machine.reinvite("role-1", OWNER_ID)
    assert _status(store) == "replaced"


@pytest.mark.asyncio
async def test_history_failure_does_not_fail_transition(services, store):
    _seed(store, invitation_status="invited")
    store.failing.add("gig_role_status_history")

    role = await services.state_machine.update_my_status("role-1", MUSICIAN_ID, "declined")

    assert role.invitation_status == "declined"
    assert _status(store) == "declined"


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_transition(services, store):
    _seed(store, invitation_status="invited")
    store.failing.add("notifications")

    await services.state_machine.update_my_status("role-1", MUSICIAN_ID, "tentative")

    assert _status(store) == "tentative"


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["declined", "needs_sub"])
async def test_reinvite_from_inactive_statuses(services, store, status):
    _seed(store, invitation_status=status)

    role = await services.state_machine.reinvite("role-1", OWNER_ID)

    assert role.invitation_status == "invited"
    [notification] = store.rows("notifications")
    assert notification["user_id"] == MUSICIAN_ID
    assert notification["type"] == "reinvitation"


@pytest.mark.asyncio
async def test_reinvite_rejected_for_accepted_role(services, store):
    _seed(store, invitation_status="accepted")

    with pytest.raises(InvalidTransition):
        await services.state_machine.reinvite("role-1", OWNER_ID)


@pytest.mark.asyncio
async def test_reinvite_requires_owner(services, store):
    _seed(store, invitation_status="declined")

    with pytest.raises(NotAuthorized):
        await services.state_machine.reinvite("role-1", MUSICIAN_ID)


@pytest.mark.asyncio
async def test_override_skips_transition_table(services, store):
    _seed(store)

    role = await services.state_machine.override_status("role-1", OWNER_ID, "accepted", "Confirmed by phone")

    assert role.invitation_status == "accepted"
    [entry] = await services.history.history("role-1")
    assert entry.notes == "Confirmed by phone"
    assert entry.changed_by == OWNER_ID


@pytest.mark.asyncio
async def test_replace_is_terminal(services, store):
    _seed(store, invitation_status="accepted")

    await services.state_machine.replace("role-1", OWNER_ID)

    assert _status(store) == "replaced"
    with pytest.raises(RoleReplaced):
        await services.state_machine.update_my_status("role-1", MUSICIAN_ID, "accepted")


@pytest.mark.asyncio
async def test_replace_from_pending_is_invalid(services, store):
    _seed(store)

    with pytest.raises(InvalidTransition):
        await services.state_machine.replace("role-1", OWNER_ID)


@pytest.mark.asyncio
async def test_remote_response_skips_disallowed_transition(services, store):
    _seed(store, invitation_status="replaced")
    role = await services.gigs.get_role("role-1")

    assert await services.state_machine.apply_remote_response(role, "accepted") is False
    assert _status(store) == "replaced"


@pytest.mark.asyncio
async def test_bulk_accept_groups_notifications_per_gig(services, store):
    store.seed(
        "gigs",
        make_gig(),
        make_gig(id="gig-2", title="Jazz Brunch"),
    )
    store.seed("profiles", {"id": MUSICIAN_ID, "name": "Alex", "email": "alex@example.com"})
    store.seed(
        "gig_roles",
        make_role("role-1", musician_id=MUSICIAN_ID, invitation_status="invited"),
        make_role("role-2", role_name="Vocals", musician_id=MUSICIAN_ID, invitation_status="tentative"),
        make_role("role-3", gig_id="gig-2", musician_id=MUSICIAN_ID, invitation_status="invited"),
        make_role("role-4", musician_id="other", invitation_status="invited"),
        make_role("role-5", musician_id=MUSICIAN_ID, invitation_status="replaced"),
    )

    result = await services.state_machine.bulk_accept(
        ["role-1", "role-2", "role-3", "role-4", "role-5", "missing"], MUSICIAN_ID
    )

    assert sorted(result.accepted) == ["role-1", "role-2", "role-3"]
    assert set(result.failed) == {"role-4", "role-5", "missing"}
    assert result.failed["missing"] == "Role not found"

    notifications = {n["gig_id"]: n for n in store.rows("notifications")}
    assert len(store.rows("notifications")) == 2
    assert notifications["gig-1"]["title"] == "Alex accepted 2 roles"
    assert notifications["gig-1"]["message"] == "Accepted their roles (Guitar, Vocals) in Summer Wedding"
    assert notifications["gig-2"]["title"] == "Alex accepted"


@pytest.mark.asyncio
async def test_invite_all_moves_assigned_pending_roles(services, store):
    store.seed("gigs", make_gig())
    store.seed(
        "gig_roles",
        make_role("role-1", musician_id=MUSICIAN_ID),
        make_role("role-2", contact_id="contact-1"),
        make_role("role-3"),
        make_role("role-4", musician_id="m-4", invitation_status="accepted"),
    )

    invited = await services.state_machine.invite_all("gig-1", OWNER_ID)

    assert invited == 2
    assert _status(store, "role-1") == "invited"
    assert _status(store, "role-2") == "invited"
    assert _status(store, "role-3") == "pending"
    # Only account holders get an in-app notification
    assert [n["user_id"] for n in store.rows("notifications")] == [MUSICIAN_ID]


@pytest.mark.asyncio
async def test_list_my_invitations_upcoming_only_soonest_first(services, store):
    store.seed(
        "gigs",
        make_gig(id="gig-late", date=date(2030, 9, 1)),
        make_gig(id="gig-soon", date=date(2030, 6, 14)),
        make_gig(id="gig-past", date=date(2020, 1, 10)),
    )
    store.seed(
        "gig_roles",
        make_role("role-late", gig_id="gig-late", musician_id=MUSICIAN_ID, invitation_status="invited"),
        make_role("role-soon", gig_id="gig-soon", musician_id=MUSICIAN_ID, invitation_status="invited"),
        make_role("role-past", gig_id="gig-past", musician_id=MUSICIAN_ID, invitation_status="invited"),
        make_role("role-no", gig_id="gig-soon", musician_id=MUSICIAN_ID, invitation_status="declined"),
        make_role("role-other", gig_id="gig-soon", musician_id="someone", invitation_status="invited"),
    )

    pending = await services.state_machine.list_my_invitations(MUSICIAN_ID)
    declined = await services.state_machine.list_my_invitations(MUSICIAN_ID, "declined")

    assert [(i.role.id, i.gig.id) for i in pending] == [
        ("role-soon", "gig-soon"),
        ("role-late", "gig-late"),
    ]
    assert [i.role.id for i in declined] == ["role-no"]
