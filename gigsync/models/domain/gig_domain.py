# gigsync/models/domain/gig_domain.py
"""
Gig and lineup domain models.

Rows coming out of the row store are validated into these models at the
service boundary; services never pass raw joined dicts to each other.
"""

from datetime import date as date_type
from datetime import datetime, time
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

RoleStatus = Literal[
    "pending", "invited", "accepted", "declined", "tentative", "needs_sub", "replaced"
]
InvitationMethod = Literal["calendar", "email"]

ROLE_STATUSES: tuple[str, ...] = (
    "pending",
    "invited",
    "accepted",
    "declined",
    "tentative",
    "needs_sub",
    "replaced",
)

# Roles in these states no longer commit the musician to the gig
INACTIVE_STATUSES: tuple[str, ...] = ("declined", "needs_sub", "replaced")


def _clock_text(value: Any) -> Any:
    """Postgres TIME columns come back as datetime.time."""
    if isinstance(value, time):
        return value.strftime("%H:%M:%S")
    return value


class Gig(BaseModel):
    """A booking with its schedule, venue and external-origin markers."""

    model_config = ConfigDict(extra="ignore")

    id: str
    owner_id: str
    band_id: str | None = None
    title: str | None = None
    date: date_type | None = None
    call_time: str | None = None
    start_time: str | None = None
    on_stage_time: str | None = None
    end_time: str | None = None
    location_name: str | None = None
    location_address: str | None = None
    dress_code: str | None = None
    parking_info: str | None = None
    notes: str | None = None
    schedule_notes: str | None = None
    public_slug: str | None = None
    status: str | None = None
    is_external: bool = False
    external_calendar_event_id: str | None = None
    external_calendar_provider: str | None = None
    external_event_url: str | None = None

    @field_validator("id", "owner_id", "band_id", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @field_validator("call_time", "start_time", "on_stage_time", "end_time", mode="before")
    @classmethod
    def _clock(cls, value: Any) -> Any:
        return _clock_text(value)

    @model_validator(mode="after")
    def _external_has_event_id(self) -> "Gig":
        if self.is_external and not self.external_calendar_event_id:
            raise ValueError("external gigs must carry external_calendar_event_id")
        return self


class GigRole(BaseModel):
    """One lineup slot on a gig."""

    model_config = ConfigDict(extra="ignore")

    id: str
    gig_id: str
    role_name: str | None = None
    musician_id: str | None = None
    contact_id: str | None = None
    invitation_status: RoleStatus = "pending"
    invitation_method: InvitationMethod | None = None
    google_calendar_event_id: str | None = None
    invitation_sent_at: datetime | None = None
    status_changed_at: datetime | None = None
    status_changed_by: str | None = None

    @field_validator("id", "gig_id", "musician_id", "contact_id", "status_changed_by", mode="before")
    @classmethod
    def _stringify_ids(cls, value: Any) -> Any:
        return str(value) if value is not None else None


class StatusHistoryEntry(BaseModel):
    """Append-only audit row for a role status change."""

    gig_role_id: str
    old_status: RoleStatus | None
    new_status: RoleStatus
    changed_by: str | None
    notes: str | None = None
    changed_at: datetime


class InviteResult(BaseModel):
    """Per-recipient outcome of a dispatch batch."""

    role_id: str
    success: bool
    method: InvitationMethod | None = None
    event_id: str | None = None
    error: str | None = None


class SendInvitesResult(BaseModel):
    sent: int
    failed: int
    results: list[InviteResult]


class FieldChange(BaseModel):
    field: str
    old_value: Any = None
    new_value: Any = None


class RefreshResult(BaseModel):
    """Outcome of comparing an imported gig against its remote event."""

    has_changes: bool
    changes: list[FieldChange]
    applied: bool = False
    degraded: bool = False


class BulkAcceptResult(BaseModel):
    accepted: list[str]
    failed: dict[str, str]


class ResponseSyncResult(BaseModel):
    synced: int
    updated: int


class MyInvitation(BaseModel):
    """A musician's own role together with the gig it belongs to."""

    role: GigRole
    gig: Gig
