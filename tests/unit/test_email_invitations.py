"""
Tests for magic-link email invitations.
"""

from datetime import UTC, datetime, timedelta

import pytest

from gigsync.errors import (
    AlreadyProcessed,
    InvitationExpired,
    MessageDeliveryError,
    NotAuthorized,
    NotFound,
)
from tests.factories import OWNER_ID, make_gig, make_role

NEW_USER = "new-user"


def _seed(store, **role_overrides):
    store.seed("gigs", make_gig())
    store.seed("profiles", {"id": OWNER_ID, "name": "Dana", "email": "dana@example.com"})
    store.seed("musician_contacts", {"id": "contact-1", "contact_name": "Bo", "email": "bo@example.com"})
    store.seed("gig_roles", make_role("role-1", contact_id="contact-1", **role_overrides))


def _role(store):
    return store.rows("gig_roles")[0]


@pytest.mark.asyncio
async def test_invite_by_email_stores_token_and_sends(services, store, sender):
    _seed(store)

    token = await services.email_invitations.invite_by_email("role-1", " Bo@Example.com ")

    assert len(token) == 64
    [invitation] = store.rows("gig_invitations")
    assert invitation["token"] == token
    assert invitation["email"] == "bo@example.com"
    assert invitation["status"] == "pending"
    assert invitation["expires_at"] > datetime.now(UTC) + timedelta(days=6)

    [message] = sender.sent
    assert message["to"] == "bo@example.com"
    assert f"/invitations/{token}" in message["text"]
    assert "Host: Dana" in message["text"]


@pytest.mark.asyncio
async def test_invite_by_email_notifies_existing_account(services, store):
    _seed(store)
    store.seed("profiles", {"id": "bo-account", "name": "Bo", "email": "bo@example.com"})

    await services.email_invitations.invite_by_email("role-1", "bo@example.com")

    [notification] = store.rows("notifications")
    assert notification["user_id"] == "bo-account"
    assert notification["type"] == "invitation"


@pytest.mark.asyncio
async def test_send_failure_removes_invitation(services, store, sender):
    _seed(store)
    sender.succeed = False

    with pytest.raises(MessageDeliveryError):
        await services.email_invitations.invite_by_email("role-1", "bo@example.com")

    assert store.rows("gig_invitations") == []


@pytest.mark.asyncio
async def test_accept_links_account_and_accepts(services, store):
    _seed(store, invitation_status="invited")
    token = await services.email_invitations.invite_by_email("role-1", "bo@example.com")

    role = await services.email_invitations.accept_invitation(token, NEW_USER)

    assert role.invitation_status == "accepted"
    assert role.musician_id == NEW_USER
    assert _role(store)["musician_id"] == NEW_USER
    assert _role(store)["invitation_status"] == "accepted"
    assert store.rows("musician_contacts")[0]["linked_user_id"] == NEW_USER
    assert store.rows("gig_invitations")[0]["status"] == "accepted"


@pytest.mark.asyncio
async def test_decline_moves_role_to_needs_sub(services, store):
    _seed(store, invitation_status="invited")
    token = await services.email_invitations.invite_by_email("role-1", "bo@example.com")

    role = await services.email_invitations.decline_invitation(token, reason="Out of town")

    assert role.invitation_status == "needs_sub"
    assert store.rows("gig_invitations")[0]["status"] == "declined"
    [entry] = await services.history.history("role-1")
    assert entry.notes == "Out of town"


@pytest.mark.asyncio
async def test_processed_invitation_cannot_be_reused(services, store):
    _seed(store, invitation_status="invited")
    token = await services.email_invitations.invite_by_email("role-1", "bo@example.com")
    await services.email_invitations.accept_invitation(token, NEW_USER)

    with pytest.raises(AlreadyProcessed):
        await services.email_invitations.decline_invitation(token)


@pytest.mark.asyncio
async def test_expired_invitation(services, store):
    _seed(store, invitation_status="invited")
    store.seed(
        "gig_invitations",
        {
            "gig_id": "gig-1",
            "gig_role_id": "role-1",
            "email": "bo@example.com",
            "token": "expired-token",
            "status": "pending",
            "expires_at": datetime.now(UTC) - timedelta(minutes=1),
        },
    )

    with pytest.raises(InvitationExpired):
        await services.email_invitations.accept_invitation("expired-token", NEW_USER)
    assert _role(store)["invitation_status"] == "invited"


@pytest.mark.asyncio
async def test_unknown_token(services, store):
    with pytest.raises(NotFound):
        await services.email_invitations.accept_invitation("nope", NEW_USER)


@pytest.mark.asyncio
async def test_invitation_for_another_account(services, store):
    _seed(store, invitation_status="invited", musician_id="someone")
    token = await services.email_invitations.invite_by_email("role-1", "bo@example.com")

    with pytest.raises(NotAuthorized):
        await services.email_invitations.accept_invitation(token, NEW_USER)
