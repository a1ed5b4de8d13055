# gigsync/services/calendar/response_sync.py
"""
Attendee response sync.

Musicians often answer the calendar invite instead of using the app. Push
notifications (and an owner-triggered fallback sweep) re-read the event and
feed the attendee's response through the state machine's remote path.
"""

from gigsync.db.row_store import eq, not_null
from gigsync.errors import CalendarNotConnected, GigSyncError, NotAuthorized
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.calendar_domain import RemoteEvent
from gigsync.models.domain.gig_domain import GigRole, ResponseSyncResult, RoleStatus
from gigsync.repositories.gig_repository import GigRepository, gig_repository
from gigsync.services.calendar.channel_tokens import verify_channel
from gigsync.services.calendar.credentials import CalendarCredentials, calendar_credentials
from gigsync.services.calendar.google_client import GoogleCalendarClient, google_calendar_client
from gigsync.services.invitations.state_machine import (
    InvitationStateMachine,
    invitation_state_machine,
)

logger = get_logger(__name__)

_RESPONSE_STATUS: dict[str, RoleStatus] = {
    "accepted": "accepted",
    "declined": "declined",
    "tentative": "tentative",
}


def map_response_status(response_status: str | None) -> RoleStatus:
    """Google attendee ``responseStatus`` to role status; ``needsAction`` and unknowns are invited."""
    return _RESPONSE_STATUS.get(response_status or "", "invited")


class ResponseSync:
    def __init__(
        self,
        gigs: GigRepository,
        credentials: CalendarCredentials,
        calendar: GoogleCalendarClient,
        state_machine: InvitationStateMachine,
    ):
        self._gigs = gigs
        self._credentials = credentials
        self._calendar = calendar
        self._state_machine = state_machine

    async def _sync_role(self, role: GigRole, event: RemoteEvent) -> bool:
        email = await self._gigs.role_email(role)
        if not email:
            return False
        attendee = event.attendee(email)
        if attendee is None:
            return False
        return await self._state_machine.apply_remote_response(
            role, map_response_status(attendee.response_status)
        )

    async def handle_watch_notification(
        self,
        channel_id: str,
        resource_id: str | None,
        resource_state: str | None,
        channel_token: str | None = None,
    ) -> int:
        """
        Process one push notification.

        Raises:
            NotAuthorized: the channel token does not match the channel id

        Returns:
            Number of roles whose status changed
        """
        if not verify_channel(channel_id, channel_token):
            raise NotAuthorized("Invalid channel token", error_code="invalid_channel_token")

        if resource_state == "sync":
            logger.info("Watch channel sync acknowledged", channel_id=channel_id)
            return 0

        watch = await self._credentials.connections.get_watch_by_channel(channel_id)
        if watch is None:
            logger.info("Notification for unknown channel ignored", channel_id=channel_id)
            return 0
        if resource_id and watch.resource_id and resource_id != watch.resource_id:
            logger.warning(
                "Notification resource mismatch ignored",
                channel_id=channel_id,
                resource_id=resource_id,
            )
            return 0

        roles = await self._gigs.list_roles(
            watch.gig_id, eq("google_calendar_event_id", watch.calendar_event_id)
        )
        if not roles:
            return 0

        try:
            connection = await self._credentials.get_active_connection(watch.user_id)
        except CalendarNotConnected:
            logger.info("Notification for disconnected calendar ignored", user_id=watch.user_id)
            return 0

        event = await self._calendar.get_event(connection.access_token, watch.calendar_event_id)

        updated = 0
        for role in roles:
            if await self._sync_role(role, event):
                updated += 1

        logger.info(
            "Watch notification processed",
            channel_id=channel_id,
            gig_id=watch.gig_id,
            event_id=watch.calendar_event_id,
            updated=updated,
        )
        return updated

    async def sync_gig_responses(self, gig_id: str, user_id: str) -> ResponseSyncResult:
        """Owner-triggered sweep over every role with a remote event."""
        gig = await self._gigs.get_gig(gig_id)
        if gig.owner_id != user_id:
            raise NotAuthorized("Only the gig owner can sync calendar responses")

        connection = await self._credentials.get_active_connection(user_id)
        roles = await self._gigs.list_roles(gig_id, not_null("google_calendar_event_id"))

        synced = 0
        updated = 0
        for role in roles:
            try:
                event = await self._calendar.get_event(
                    connection.access_token, role.google_calendar_event_id
                )
            except GigSyncError as e:
                logger.warning(
                    "Failed to read event for response sync",
                    role_id=role.id,
                    event_id=role.google_calendar_event_id,
                    error=str(e),
                )
                continue
            synced += 1
            if await self._sync_role(role, event):
                updated += 1

        await self._credentials.record_sync(user_id)
        logger.info("Gig responses synced", gig_id=gig_id, synced=synced, updated=updated)
        return ResponseSyncResult(synced=synced, updated=updated)


response_sync = ResponseSync(
    gig_repository, calendar_credentials, google_calendar_client, invitation_state_machine
)
