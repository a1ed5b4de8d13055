# gigsync/services/calendar/connection_service.py
"""
Calendar connection flow: connect, callback, disconnect, status, settings.
"""

from typing import Any

from gigsync.errors import CalendarNotConnected, NotAuthorized
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.connection_domain import Connection
from gigsync.services.calendar.credentials import CalendarCredentials, calendar_credentials
from gigsync.services.calendar.google_client import GoogleCalendarClient, google_calendar_client
from gigsync.services.google_oauth_service import GoogleOAuthService, google_oauth_service
from gigsync.services.oauth_state_service import OAuthStateService, oauth_state_service

logger = get_logger(__name__)


class CalendarConnectionService:
    def __init__(
        self,
        credentials: CalendarCredentials,
        oauth: GoogleOAuthService,
        states: OAuthStateService,
        calendar: GoogleCalendarClient,
    ):
        self._connections = credentials.connections
        self._oauth = oauth
        self._states = states
        self._calendar = calendar

    async def start_connect(self, user_id: str, write_access: bool = True) -> tuple[str, str]:
        """Returns (authorization URL, state)."""
        state = await self._states.generate_state(user_id)
        return self._oauth.generate_oauth_url(state, write_access=write_access), state

    async def complete_connect(self, code: str, state: str) -> Connection:
        """
        Exchange the code and store the connection for the user the state
        was issued to.

        Raises:
            NotAuthorized: unknown, expired or reused state
            GoogleOAuthError: code exchange failed
        """
        user_id = await self._states.consume_state(state)
        if not user_id:
            raise NotAuthorized("Invalid or expired OAuth state", error_code="invalid_state")

        tokens = await self._oauth.exchange_code_for_tokens(code)
        existing = await self._connections.get(user_id)
        write_access = tokens.has_write_access()

        connection = Connection(
            user_id=user_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token or (existing.refresh_token if existing else None),
            token_expires_at=tokens.expires_at,
            write_access=write_access,
            send_invites_enabled=(
                existing.send_invites_enabled if existing else write_access
            ) and write_access,
            sync_enabled=existing.sync_enabled if existing else True,
        )
        saved = await self._connections.save(connection)
        logger.info("Calendar connected", user_id=user_id, write_access=write_access)
        return saved

    async def disconnect(self, user_id: str) -> bool:
        """Best-effort revoke and watch teardown, then drop the connection."""
        connection = await self._connections.get(user_id)
        if connection is None:
            return False

        for watch in await self._connections.list_user_watches(user_id):
            try:
                await self._calendar.stop_watch(
                    connection.access_token, watch.channel_id, watch.resource_id
                )
            except Exception as e:
                logger.info("Watch channel stop failed", channel_id=watch.channel_id, error=str(e))
            await self._connections.delete_watch(watch.channel_id)

        await self._oauth.revoke_token(connection.refresh_token or connection.access_token)

        await self._connections.delete(user_id)
        logger.info("Calendar disconnected", user_id=user_id)
        return True

    async def status(self, user_id: str) -> dict[str, Any]:
        connection = await self._connections.get(user_id)
        if connection is None:
            return {"connected": False}
        return {
            "connected": True,
            "provider": connection.provider,
            "write_access": connection.write_access,
            "send_invites_enabled": connection.send_invites_enabled,
            "sync_enabled": connection.sync_enabled,
            "token_expires_at": connection.token_expires_at,
            "last_synced_at": connection.last_synced_at,
            "needs_refresh": connection.is_expired(),
        }

    async def update_settings(
        self,
        user_id: str,
        *,
        send_invites_enabled: bool | None = None,
        sync_enabled: bool | None = None,
    ) -> dict[str, Any]:
        """
        Raises:
            CalendarNotConnected: no connection, or enabling invites without write access
        """
        connection = await self._connections.get(user_id)
        if connection is None:
            raise CalendarNotConnected("Google Calendar is not connected")
        if send_invites_enabled and not connection.write_access:
            raise CalendarNotConnected(
                "Calendar connection has no write access. Reconnect with event permissions.",
                error_code="write_access_required",
            )

        await self._connections.update_settings(
            user_id, send_invites_enabled=send_invites_enabled, sync_enabled=sync_enabled
        )
        return await self.status(user_id)


calendar_connection_service = CalendarConnectionService(
    calendar_credentials, google_oauth_service, oauth_state_service, google_calendar_client
)
