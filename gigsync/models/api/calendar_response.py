# gigsync/models/api/calendar_response.py
"""
Calendar API response models.
Used by routes for output formatting.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from gigsync.models.domain.calendar_domain import RemoteEvent


class CalendarConnectResponse(BaseModel):
    """Response for starting the calendar OAuth flow."""

    auth_url: str = Field(..., description="Google consent URL")
    state: str = Field(..., description="CSRF state bound to the user")


class CalendarStatusResponse(BaseModel):
    """Response for calendar connection status."""

    connected: bool = Field(..., description="Whether calendar is connected")
    provider: str | None = Field(None, description="Calendar provider")
    write_access: bool = Field(default=False, description="Can create events")
    send_invites_enabled: bool = Field(default=False, description="Invites go out as events")
    sync_enabled: bool = Field(default=False, description="Responses and imports sync")
    token_expires_at: datetime | None = Field(None, description="When the access token expires")
    last_synced_at: datetime | None = Field(None, description="Last successful sync")
    needs_refresh: bool = Field(default=False, description="Whether tokens need refresh")


class DisconnectResponse(BaseModel):
    disconnected: bool


class EventsUpdatedResponse(BaseModel):
    updated: int = Field(..., description="Remote events patched")


class EventsCancelledResponse(BaseModel):
    cancelled: int = Field(..., description="Remote events deleted")


class EventsListResponse(BaseModel):
    """Response for listing remote events."""

    events: list[RemoteEvent] = Field(..., description="List of events")
    total_count: int = Field(..., description="Total number of events found")
