# gigsync/services/invitations/dispatcher.py
"""
Invitation Dispatcher - sends the lineup its invitations.

For each role still needing one, a Google Calendar event with the musician
as the single attendee is preferred; when the provider fails the recipient
falls back to a magic-link email. Per-recipient work runs concurrently
(bounded), the batch never aborts early, and every attempted role appears in
the result exactly once.

Roles already carrying an invitation method are not candidates, so calling
``send_invites`` again only touches new or never-reached roles.
"""

import asyncio
import uuid
from datetime import UTC, datetime

from gigsync.config import settings
from gigsync.errors import GigSyncError, NotAuthorized, RemoteError, RemoteNotFound
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.connection_domain import Connection, WatchRegistration
from gigsync.models.domain.gig_domain import Gig, GigRole, InviteResult, SendInvitesResult
from gigsync.db.row_store import is_null, not_null
from gigsync.repositories.gig_repository import GigRepository, gig_repository
from gigsync.services.calendar.channel_tokens import sign_channel
from gigsync.services.calendar.credentials import CalendarCredentials, calendar_credentials
from gigsync.services.calendar.event_content import build_description, build_title
from gigsync.services.calendar.google_client import (
    GoogleCalendarClient,
    build_event_body,
    google_calendar_client,
)
from gigsync.services.calendar.time_window import Interval, to_interval
from gigsync.services.connection_store import ConnectionStore, connection_store
from gigsync.services.invitations.email_invitations import (
    EmailInvitationService,
    email_invitation_service,
)
from gigsync.services.invitations.state_machine import (
    InvitationStateMachine,
    invitation_state_machine,
)

logger = get_logger(__name__)

MAX_CONCURRENT_INVITES = 5

# Changes to any of these re-patch every role's remote event
SIGNIFICANT_FIELDS = frozenset(
    {"date", "start_time", "end_time", "location_name", "call_time", "title"}
)

NO_EMAIL = "No email address"


class _GigContext:
    """Per-batch data shared by every recipient."""

    def __init__(
        self,
        gig: Gig,
        connection: Connection,
        interval: Interval,
        organization_name: str | None,
        inviter_name: str | None,
    ):
        self.gig = gig
        self.connection = connection
        self.interval = interval
        self.organization_name = organization_name
        self.inviter_name = inviter_name
        self.title = build_title(gig, organization_name)

    def body_for(self, role: GigRole, attendees: list[dict[str, str]] | None = None) -> dict:
        description = build_description(
            role,
            self.gig,
            settings.APP_BASE_URL,
            organization_name=self.organization_name,
            inviter_name=self.inviter_name,
        )
        return build_event_body(
            self.title,
            self.interval,
            description=description,
            location=self.gig.location_address or self.gig.location_name,
            attendees=attendees,
        )


class InvitationDispatcher:
    def __init__(
        self,
        gigs: GigRepository,
        connections: ConnectionStore,
        credentials: CalendarCredentials,
        calendar: GoogleCalendarClient,
        email_invitations: EmailInvitationService,
        state_machine: InvitationStateMachine,
    ):
        self._gigs = gigs
        self._connections = connections
        self._credentials = credentials
        self._calendar = calendar
        self._email_invitations = email_invitations
        self._state_machine = state_machine

    async def _owned_gig(self, gig_id: str, user_id: str) -> Gig:
        gig = await self._gigs.get_gig(gig_id)
        if gig.owner_id != user_id:
            raise NotAuthorized("Only the gig owner can manage calendar invites")
        return gig

    async def _context(self, gig: Gig, connection: Connection) -> _GigContext:
        return _GigContext(
            gig,
            connection,
            to_interval(gig),
            await self._gigs.get_band_name(gig.band_id),
            await self._gigs.display_name(gig.owner_id),
        )

    async def send_invites(
        self, gig_id: str, user_id: str, explicit_emails: dict[str, str] | None = None
    ) -> SendInvitesResult:
        """
        Invite every role on the gig that has not been invited yet.

        Args:
            explicit_emails: role id -> email for recipients with no linked
                account or contact email

        Raises:
            NotAuthorized: caller does not own the gig
            CalendarNotConnected: no connection, no write access, or invites disabled
            InvalidSchedule: the gig's schedule cannot be mapped to an interval
        """
        gig = await self._owned_gig(gig_id, user_id)
        connection = await self._credentials.require_invite_connection(user_id)
        context = await self._context(gig, connection)

        candidates = [
            role
            for role in await self._gigs.list_roles(
                gig_id, is_null("google_calendar_event_id"), is_null("invitation_method")
            )
            if role.invitation_status != "replaced"
        ]
        overrides = {k: v.strip() for k, v in (explicit_emails or {}).items() if v and v.strip()}

        semaphore = asyncio.Semaphore(MAX_CONCURRENT_INVITES)

        async def bounded(role: GigRole) -> InviteResult:
            async with semaphore:
                return await self._invite_one(context, role, overrides.get(role.id), user_id)

        results = list(await asyncio.gather(*(bounded(role) for role in candidates)))

        sent = sum(1 for r in results if r.success)
        failed = len(results) - sent
        logger.info(
            "Calendar invites dispatched",
            gig_id=gig_id,
            user_id=user_id,
            candidates=len(candidates),
            sent=sent,
            failed=failed,
        )
        return SendInvitesResult(sent=sent, failed=failed, results=results)

    async def _invite_one(
        self, context: _GigContext, role: GigRole, override_email: str | None, user_id: str
    ) -> InviteResult:
        try:
            email = await self._gigs.role_email(role) or override_email
            if not email:
                return InviteResult(role_id=role.id, success=False, error=NO_EMAIL)

            attendee = {"email": email}
            name = await self._gigs.role_person_name(role)
            if name:
                attendee["displayName"] = name

            try:
                event = await self._calendar.create_event(
                    context.connection.access_token,
                    context.body_for(role, attendees=[attendee]),
                )
            except RemoteError as calendar_error:
                logger.warning(
                    "Calendar invite failed, falling back to email",
                    role_id=role.id,
                    error=str(calendar_error),
                    error_code=calendar_error.error_code,
                )
                return await self._invite_by_email(role, email, user_id, calendar_error)

            # Google has already mailed the attendee at this point
            try:
                await self._record_invite(role, "calendar", event_id=event.id)
            except Exception as write_error:
                logger.error(
                    "Failed to record calendar invite, withdrawing event",
                    role_id=role.id,
                    event_id=event.id,
                    error=str(write_error),
                    error_type=type(write_error).__name__,
                )
                withdrawn = await self._delete_event(context.connection, event.id)
                return InviteResult(
                    role_id=role.id,
                    success=False,
                    error=f"Invite could not be saved: {write_error}"
                    + ("" if withdrawn else f" (event {event.id} left on calendar)"),
                )

            await self._advance_to_invited(role, "calendar", user_id)
            await self._register_watch(context, event.id, user_id)
            return InviteResult(role_id=role.id, success=True, method="calendar", event_id=event.id)

        except Exception as e:
            logger.error(
                "Invite failed for role",
                role_id=role.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return InviteResult(role_id=role.id, success=False, error=str(e))

    async def _invite_by_email(
        self, role: GigRole, email: str, user_id: str, calendar_error: Exception
    ) -> InviteResult:
        try:
            await self._email_invitations.invite_by_email(role.id, email)
        except Exception as email_error:
            return InviteResult(
                role_id=role.id,
                success=False,
                error=f"Calendar and email both failed: {calendar_error}; {email_error}",
            )
        await self._record_invite(role, "email")
        await self._advance_to_invited(role, "email", user_id)
        return InviteResult(role_id=role.id, success=True, method="email")

    async def _record_invite(self, role: GigRole, method: str, event_id: str | None = None) -> None:
        values = {"invitation_method": method, "invitation_sent_at": datetime.now(UTC)}
        if event_id:
            values["google_calendar_event_id"] = event_id
        await self._gigs.update_role(role.id, values)

    async def _advance_to_invited(self, role: GigRole, method: str, user_id: str) -> None:
        if role.invitation_status == "pending":
            note = "Invited via Google Calendar" if method == "calendar" else "Invited via email"
            await self._state_machine.apply_transition(
                role, "invited", user_id, note, notify_manager=False
            )

    async def _register_watch(self, context: _GigContext, event_id: str, user_id: str) -> None:
        """Best-effort: a missing watch only disables push updates for this role."""
        channel_id = str(uuid.uuid4())
        try:
            channel = await self._calendar.watch_event(
                context.connection.access_token,
                event_id,
                settings.webhook_url(),
                channel_token=sign_channel(channel_id),
                channel_id=channel_id,
            )
            await self._connections.add_watch(
                WatchRegistration(
                    user_id=user_id,
                    gig_id=context.gig.id,
                    calendar_event_id=event_id,
                    channel_id=channel.channel_id,
                    resource_id=channel.resource_id,
                    expiration=channel.expiration,
                )
            )
        except Exception as e:
            logger.warning(
                "Failed to register calendar watch",
                gig_id=context.gig.id,
                event_id=event_id,
                error=str(e),
                error_type=type(e).__name__,
            )

    async def update_events(self, gig_id: str, user_id: str, changed_fields: list[str]) -> int:
        """Re-patch every invited role's event after a significant gig edit."""
        if not SIGNIFICANT_FIELDS.intersection(changed_fields):
            return 0

        gig = await self._owned_gig(gig_id, user_id)
        connection = await self._credentials.get_active_connection(user_id)
        context = await self._context(gig, connection)
        roles = await self._gigs.list_roles(gig_id, not_null("google_calendar_event_id"))

        semaphore = asyncio.Semaphore(MAX_CONCURRENT_INVITES)

        async def patch(role: GigRole) -> bool:
            async with semaphore:
                try:
                    await self._calendar.update_event(
                        connection.access_token, role.google_calendar_event_id, context.body_for(role)
                    )
                    return True
                except GigSyncError as e:
                    logger.warning(
                        "Failed to update calendar event",
                        role_id=role.id,
                        event_id=role.google_calendar_event_id,
                        error=str(e),
                    )
                    return False

        updated = sum(await asyncio.gather(*(patch(role) for role in roles)))
        logger.info("Calendar events updated", gig_id=gig_id, updated=updated, total=len(roles))
        return updated

    async def cancel_events(self, gig_id: str, user_id: str) -> int:
        """Delete every role's event (Google mails the cancellations) and drop the gig's watches."""
        await self._owned_gig(gig_id, user_id)
        connection = await self._credentials.get_active_connection(user_id)
        roles = await self._gigs.list_roles(gig_id, not_null("google_calendar_event_id"))

        cancelled = 0
        for role in roles:
            if await self._delete_event(connection, role.google_calendar_event_id):
                cancelled += 1

        for watch in await self._connections.list_watches(gig_id):
            await self._stop_watch(connection, watch)

        logger.info("Calendar events cancelled", gig_id=gig_id, cancelled=cancelled)
        return cancelled

    async def cancel_role_events(self, user_id: str, event_ids: list[str]) -> int:
        """Same as ``cancel_events`` for lineup slots removed from a gig."""
        if not event_ids:
            return 0
        connection = await self._credentials.get_active_connection(user_id)

        cancelled = 0
        for event_id in event_ids:
            if await self._delete_event(connection, event_id):
                cancelled += 1

        for watch in await self._connections.list_watches(event_ids=event_ids):
            await self._stop_watch(connection, watch)
        return cancelled

    async def _delete_event(self, connection: Connection, event_id: str) -> bool:
        try:
            await self._calendar.delete_event(connection.access_token, event_id)
            return True
        except RemoteNotFound:
            # Already gone on the provider side
            return True
        except GigSyncError as e:
            logger.warning("Failed to delete calendar event", event_id=event_id, error=str(e))
            return False

    async def _stop_watch(self, connection: Connection, watch: WatchRegistration) -> None:
        try:
            await self._calendar.stop_watch(
                connection.access_token, watch.channel_id, watch.resource_id
            )
        except GigSyncError as e:
            logger.info("Watch channel stop failed", channel_id=watch.channel_id, error=str(e))
        await self._connections.delete_watch(watch.channel_id)


invitation_dispatcher = InvitationDispatcher(
    gig_repository,
    connection_store,
    calendar_credentials,
    google_calendar_client,
    email_invitation_service,
    invitation_state_machine,
)
