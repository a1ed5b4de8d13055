# gigsync/services/invitations/email_invitations.py
"""
Magic-link invitations for recipients reached by email.

A ``gig_invitations`` row carries a random 64-hex-char token valid for
``INVITATION_TTL_DAYS``. Accepting or declining drives the same state machine
as self-service actions; the token stands in for the actor check.
"""

import secrets
from datetime import UTC, datetime, timedelta
from typing import Any

from gigsync.config import settings
from gigsync.db.row_store import RowStore, eq, is_null, row_store
from gigsync.errors import (
    AlreadyProcessed,
    InvitationExpired,
    MessageDeliveryError,
    NotAuthorized,
    NotFound,
)
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.gig_domain import GigRole
from gigsync.repositories.gig_repository import GigRepository, gig_repository
from gigsync.services.calendar.event_content import display_title
from gigsync.services.calendar.time_window import format_clock
from gigsync.services.invitations.state_machine import (
    InvitationStateMachine,
    invitation_state_machine,
)
from gigsync.services.messaging.email_sender import EmailSender, email_sender
from gigsync.services.messaging.templates import invitation_email
from gigsync.services.notifications import NotificationService, notification_service

logger = get_logger(__name__)

INVITATIONS = "gig_invitations"
CONTACTS = "musician_contacts"
GIG_ROLES = "gig_roles"
TOKEN_BYTES = 32


class EmailInvitationService:
    def __init__(
        self,
        store: RowStore,
        gigs: GigRepository,
        sender: EmailSender,
        notifier: NotificationService,
        state_machine: InvitationStateMachine,
    ):
        self._store = store
        self._gigs = gigs
        self._sender = sender
        self._notifier = notifier
        self._state_machine = state_machine

    async def invite_by_email(self, role_id: str, email: str) -> str:
        """
        Create an invitation row and email the magic link.

        Returns:
            The invitation token

        Raises:
            MessageDeliveryError: the sender reported failure (row is removed)
        """
        role = await self._gigs.get_role(role_id)
        gig = await self._gigs.get_gig(role.gig_id)
        email = email.strip().lower()

        token = secrets.token_hex(TOKEN_BYTES)
        expires_at = datetime.now(UTC) + timedelta(days=settings.INVITATION_TTL_DAYS)
        await self._store.insert(
            INVITATIONS,
            {
                "gig_id": gig.id,
                "gig_role_id": role.id,
                "email": email,
                "token": token,
                "expires_at": expires_at,
                "status": "pending",
                "created_at": datetime.now(UTC),
            },
        )

        message = invitation_email(
            invite_link=f"{settings.APP_BASE_URL.rstrip('/')}/invitations/{token}",
            gig_title=display_title(gig),
            role_name=role.role_name or "Musician",
            gig_date=gig.date,
            host_name=await self._gigs.display_name(gig.owner_id),
            gig_time=format_clock(gig.start_time or gig.call_time),
            location_name=gig.location_name,
            ttl_days=settings.INVITATION_TTL_DAYS,
        )

        if not await self._sender.send(email, message.subject, message.text):
            await self._store.delete(INVITATIONS, [eq("token", token)])
            raise MessageDeliveryError(f"Failed to send invitation email to {email}")

        profile = await self._gigs.find_profile_by_email(email)
        if profile:
            await self._notifier.notify(
                str(profile["id"]),
                "invitation",
                f"Invitation: {display_title(gig)}",
                f"You've been invited as {role.role_name or 'a musician'}",
                link=f"/invitations/{token}",
                gig_id=gig.id,
                gig_role_id=role.id,
            )

        logger.info("Email invitation sent", gig_id=gig.id, role_id=role.id)
        return token

    async def _load_pending(self, token: str) -> dict[str, Any]:
        invitation = await self._store.select_one(INVITATIONS, [eq("token", token)])
        if invitation is None:
            raise NotFound("Invitation not found")
        if invitation.get("status") != "pending":
            raise AlreadyProcessed("Invitation already processed")

        expires_at = invitation.get("expires_at")
        if expires_at is not None:
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=UTC)
            if expires_at < datetime.now(UTC):
                raise InvitationExpired("Invitation expired")
        return invitation

    async def _link_account(self, role: GigRole, user_id: str) -> GigRole:
        """Attach the accepting account to the role (and its contact, best-effort)."""
        if role.musician_id and role.musician_id != user_id:
            raise NotAuthorized("This invitation belongs to another account")

        if role.contact_id:
            try:
                await self._store.update(
                    CONTACTS,
                    {"linked_user_id": user_id, "status": "active_user"},
                    [eq("id", role.contact_id)],
                )
                await self._store.update(
                    GIG_ROLES,
                    {"musician_id": user_id},
                    [eq("contact_id", role.contact_id), is_null("musician_id")],
                )
            except Exception as e:
                logger.warning(
                    "Failed to link contact to account",
                    contact_id=role.contact_id,
                    user_id=user_id,
                    error=str(e),
                )

        if not role.musician_id:
            await self._gigs.update_role(role.id, {"musician_id": user_id})
        return role.model_copy(update={"musician_id": user_id})

    async def accept_invitation(self, token: str, user_id: str) -> GigRole:
        """
        Raises:
            AlreadyProcessed: the invitation is no longer pending
            InvitationExpired: past ``expires_at``
        """
        invitation = await self._load_pending(token)
        role = await self._gigs.get_role(str(invitation["gig_role_id"]))
        role = await self._link_account(role, user_id)

        updated = await self._state_machine.apply_transition(
            role, "accepted", user_id, "Accepted via email invitation"
        )
        await self._store.update(
            INVITATIONS,
            {"status": "accepted", "accepted_at": datetime.now(UTC)},
            [eq("token", token)],
        )
        logger.info("Email invitation accepted", role_id=role.id, user_id=user_id)
        return updated

    async def decline_invitation(
        self, token: str, user_id: str | None = None, reason: str | None = None
    ) -> GigRole:
        """Decline moves the role to needs_sub so the manager finds a substitute."""
        invitation = await self._load_pending(token)
        role = await self._gigs.get_role(str(invitation["gig_role_id"]))

        updated = await self._state_machine.apply_transition(
            role, "needs_sub", user_id, reason or "Declined via email invitation"
        )
        await self._store.update(
            INVITATIONS,
            {"status": "declined", "declined_at": datetime.now(UTC)},
            [eq("token", token)],
        )
        logger.info("Email invitation declined", role_id=role.id)
        return updated


email_invitation_service = EmailInvitationService(
    row_store, gig_repository, email_sender, notification_service, invitation_state_machine
)
