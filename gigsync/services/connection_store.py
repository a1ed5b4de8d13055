# gigsync/services/connection_store.py
"""
Persistence of calendar connections and watch-channel registrations.

Tokens are Fernet-encrypted before they reach the row store and decrypted on
the way out; callers only ever see ``Connection`` with plain tokens.
"""

from datetime import UTC, datetime
from typing import Any

from gigsync.db.row_store import RowStore, eq, in_, row_store
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.connection_domain import Connection, WatchRegistration
from gigsync.services.infrastructure.encryption_service import decrypt_token, encrypt_token

logger = get_logger(__name__)

CONNECTIONS = "calendar_connections"
WATCHES = "google_calendar_watches"
PROVIDER = "google"


class ConnectionStore:
    def __init__(self, store: RowStore):
        self._store = store

    def _to_connection(self, row: dict[str, Any]) -> Connection:
        data = dict(row)
        data["access_token"] = decrypt_token(row["access_token"])
        data["refresh_token"] = (
            decrypt_token(row["refresh_token"]) if row.get("refresh_token") else None
        )
        return Connection.model_validate(data)

    async def get(self, user_id: str) -> Connection | None:
        row = await self._store.select_one(
            CONNECTIONS, [eq("user_id", user_id), eq("provider", PROVIDER)]
        )
        return self._to_connection(row) if row else None

    async def save(self, connection: Connection) -> Connection:
        """Create or replace the user's connection (one per user and provider)."""
        now = datetime.now(UTC)
        values = {
            "user_id": connection.user_id,
            "provider": PROVIDER,
            "provider_calendar_id": connection.provider_calendar_id,
            "access_token": encrypt_token(connection.access_token),
            "refresh_token": (
                encrypt_token(connection.refresh_token) if connection.refresh_token else None
            ),
            "token_expires_at": connection.token_expires_at,
            "write_access": connection.write_access,
            "send_invites_enabled": connection.send_invites_enabled,
            "sync_enabled": connection.sync_enabled,
            "updated_at": now,
        }
        row = await self._store.upsert(CONNECTIONS, values, ["user_id", "provider"])
        logger.info(
            "Calendar connection saved",
            user_id=connection.user_id,
            write_access=connection.write_access,
        )
        return self._to_connection(row)

    async def update_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> None:
        values: dict[str, Any] = {
            "access_token": encrypt_token(access_token),
            "token_expires_at": expires_at,
            "updated_at": datetime.now(UTC),
        }
        if refresh_token:
            values["refresh_token"] = encrypt_token(refresh_token)
        await self._store.update(
            CONNECTIONS, values, [eq("user_id", user_id), eq("provider", PROVIDER)]
        )

    async def update_settings(
        self,
        user_id: str,
        *,
        send_invites_enabled: bool | None = None,
        sync_enabled: bool | None = None,
    ) -> int:
        values: dict[str, Any] = {"updated_at": datetime.now(UTC)}
        if send_invites_enabled is not None:
            values["send_invites_enabled"] = send_invites_enabled
        if sync_enabled is not None:
            values["sync_enabled"] = sync_enabled
        return await self._store.update(
            CONNECTIONS, values, [eq("user_id", user_id), eq("provider", PROVIDER)]
        )

    async def mark_synced(self, user_id: str) -> None:
        await self._store.update(
            CONNECTIONS,
            {"last_synced_at": datetime.now(UTC)},
            [eq("user_id", user_id), eq("provider", PROVIDER)],
        )

    async def delete(self, user_id: str) -> int:
        deleted = await self._store.delete(
            CONNECTIONS, [eq("user_id", user_id), eq("provider", PROVIDER)]
        )
        logger.info("Calendar connection deleted", user_id=user_id, deleted=deleted)
        return deleted

    # Watch registrations

    async def add_watch(self, watch: WatchRegistration) -> None:
        await self._store.insert(
            WATCHES,
            {
                "user_id": watch.user_id,
                "gig_id": watch.gig_id,
                "calendar_event_id": watch.calendar_event_id,
                "channel_id": watch.channel_id,
                "resource_id": watch.resource_id,
                "expiration": watch.expiration,
            },
        )

    async def get_watch_by_channel(self, channel_id: str) -> WatchRegistration | None:
        row = await self._store.select_one(WATCHES, [eq("channel_id", channel_id)])
        return WatchRegistration.model_validate(row) if row else None

    async def list_watches(
        self, gig_id: str | None = None, *, event_ids: list[str] | None = None
    ) -> list[WatchRegistration]:
        filters = []
        if gig_id is not None:
            filters.append(eq("gig_id", gig_id))
        if event_ids is not None:
            filters.append(in_("calendar_event_id", event_ids))
        rows = await self._store.select(WATCHES, filters)
        return [WatchRegistration.model_validate(row) for row in rows]

    async def list_user_watches(self, user_id: str) -> list[WatchRegistration]:
        rows = await self._store.select(WATCHES, [eq("user_id", user_id)])
        return [WatchRegistration.model_validate(row) for row in rows]

    async def delete_watch(self, channel_id: str) -> int:
        return await self._store.delete(WATCHES, [eq("channel_id", channel_id)])


connection_store = ConnectionStore(row_store)
