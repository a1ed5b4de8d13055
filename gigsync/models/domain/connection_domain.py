# gigsync/models/domain/connection_domain.py
"""
Calendar connection domain models (decrypted credentials + watch rows).
"""

from datetime import UTC, datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator

WRITE_SCOPE = "https://www.googleapis.com/auth/calendar.events"


class Connection(BaseModel):
    """One provider connection per (user, provider), tokens decrypted."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    user_id: str
    provider: Literal["google"] = "google"
    provider_calendar_id: str = "primary"
    access_token: str
    refresh_token: str | None = None
    token_expires_at: datetime | None = None
    write_access: bool = False
    send_invites_enabled: bool = False
    sync_enabled: bool = True
    last_synced_at: datetime | None = None

    @field_validator("id", "user_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    def is_expired(self, buffer_minutes: int = 0) -> bool:
        """Check if the access token is (about to be) expired."""
        if not self.token_expires_at:
            return False
        expires_at = self.token_expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        return datetime.now(UTC) + timedelta(minutes=buffer_minutes) >= expires_at

    def can_send_invites(self) -> bool:
        return self.write_access and self.send_invites_enabled


class WatchRegistration(BaseModel):
    """Correlates a provider push channel to a gig and its remote event."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    user_id: str
    gig_id: str
    calendar_event_id: str
    channel_id: str
    resource_id: str
    expiration: datetime | None = None

    @field_validator("id", "user_id", "gig_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else None
