# gigsync/models/api/calendar_request.py
"""
Calendar API request models.
Used by routes for input validation.
"""

from datetime import date as date_type

from pydantic import BaseModel, Field


class GigRequest(BaseModel):
    """Request targeting one gig."""

    gig_id: str = Field(..., description="Gig ID")


class SendInvitesRequest(GigRequest):
    """Request for sending calendar invites to a gig's lineup."""

    emails: dict[str, str] | None = Field(
        default=None, description="Role ID -> email for recipients without a known address"
    )


class UpdateEventsRequest(GigRequest):
    """Request for re-patching remote events after a gig edit."""

    changed_fields: list[str] = Field(..., description="Gig fields that changed")


class CancelEventsRequest(BaseModel):
    """Cancel all events for a gig, or specific events of removed roles."""

    gig_id: str | None = Field(default=None, description="Gig ID")
    event_ids: list[str] | None = Field(default=None, description="Remote event IDs to cancel")


class RefreshRequest(GigRequest):
    """Request for comparing an imported gig with its source event."""

    apply: bool = Field(default=False, description="Write the detected changes")


class ConflictCheckRequest(BaseModel):
    """Request for checking double bookings on a day."""

    date: date_type = Field(..., description="Day to check")
    start_time: str | None = Field(default=None, description="Candidate start (HH:MM)")
    end_time: str | None = Field(default=None, description="Candidate end (HH:MM)")
    exclude_gig_id: str | None = Field(default=None, description="Gig being edited")


class ImportEventRequest(BaseModel):
    """Request for importing one remote event as a gig."""

    event_id: str = Field(..., min_length=1, description="Remote event ID")


class CalendarSettingsRequest(BaseModel):
    """Request for toggling connection behaviour."""

    send_invites_enabled: bool | None = Field(default=None, description="Send calendar invites")
    sync_enabled: bool | None = Field(default=None, description="Sync responses and imports")


class ImportBatchRequest(BaseModel):
    """Request for importing several remote events at once."""

    event_ids: list[str] = Field(..., min_length=1, max_length=100, description="Remote event IDs")
