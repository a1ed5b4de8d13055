# gigsync/services/calendar/credentials.py
"""
Credential lifecycle for calendar connections.

valid (expiry in future) -> expired (refresh attempted) -> valid (new token
persisted) | revoked (refresh token rejected: the connection row is deleted
and the caller gets ``CalendarNotConnected``).

Concurrent refreshes of one expired token are tolerated, not deduplicated.
"""

from gigsync.errors import CalendarNotConnected, RemoteTransient
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.connection_domain import Connection
from gigsync.services.connection_store import ConnectionStore, connection_store
from gigsync.services.google_oauth_service import (
    GoogleOAuthError,
    GoogleOAuthService,
    TokenRevokedError,
    google_oauth_service,
)

logger = get_logger(__name__)

# Refresh slightly early so a token never expires mid-batch
EXPIRY_BUFFER_MINUTES = 1

RECONNECT_MESSAGE = "Google Calendar session expired. Please reconnect your calendar."


class CalendarCredentials:
    def __init__(self, connections: ConnectionStore, oauth: GoogleOAuthService):
        self.connections = connections
        self._oauth = oauth

    async def get_active_connection(self, user_id: str) -> Connection:
        """
        Return a connection with a usable access token.

        Raises:
            CalendarNotConnected: no connection, or the grant was revoked
            RemoteTransient: the refresh endpoint failed for another reason
        """
        connection = await self.connections.get(user_id)
        if connection is None:
            raise CalendarNotConnected("Google Calendar is not connected")

        if not connection.is_expired(buffer_minutes=EXPIRY_BUFFER_MINUTES):
            return connection

        if not connection.refresh_token:
            await self._revoke_locally(user_id, reason="missing_refresh_token")
            raise CalendarNotConnected(RECONNECT_MESSAGE, error_code="reconnect_required")

        try:
            tokens = await self._oauth.refresh_access_token(connection.refresh_token)
        except TokenRevokedError:
            await self._revoke_locally(user_id, reason="invalid_grant")
            raise CalendarNotConnected(
                RECONNECT_MESSAGE, error_code="reconnect_required"
            ) from None
        except GoogleOAuthError as e:
            logger.warning("Calendar token refresh failed", user_id=user_id, error=str(e))
            raise RemoteTransient(f"Token refresh failed: {e}") from e

        await self.connections.update_tokens(
            user_id, tokens.access_token, tokens.refresh_token, tokens.expires_at
        )
        logger.info("Calendar token refreshed", user_id=user_id)

        return connection.model_copy(
            update={
                "access_token": tokens.access_token,
                "refresh_token": tokens.refresh_token or connection.refresh_token,
                "token_expires_at": tokens.expires_at,
            }
        )

    async def require_invite_connection(self, user_id: str) -> Connection:
        """Active connection that may create events and send invites."""
        connection = await self.get_active_connection(user_id)
        if not connection.write_access:
            raise CalendarNotConnected(
                "Calendar connection has no write access. Reconnect with event permissions.",
                error_code="write_access_required",
            )
        if not connection.send_invites_enabled:
            raise CalendarNotConnected(
                "Calendar invites are disabled for this connection",
                error_code="invites_disabled",
            )
        return connection

    async def record_sync(self, user_id: str) -> None:
        await self.connections.mark_synced(user_id)

    async def _revoke_locally(self, user_id: str, reason: str) -> None:
        logger.warning("Calendar grant revoked, removing connection", user_id=user_id, reason=reason)
        await self.connections.delete(user_id)


calendar_credentials = CalendarCredentials(connection_store, google_oauth_service)
