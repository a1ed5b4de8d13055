# gigsync/models/domain/calendar_domain.py
"""
Calendar Domain Models
Provider event shapes, validated at the client boundary before they reach
core logic.
"""

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventTime(BaseModel):
    """Google's start/end object: either ``dateTime`` or all-day ``date``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    date_time: str | None = Field(default=None, alias="dateTime")
    date: str | None = None
    time_zone: str | None = Field(default=None, alias="timeZone")


class Attendee(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    email: str
    display_name: str | None = Field(default=None, alias="displayName")
    response_status: str = Field(default="needsAction", alias="responseStatus")


class RemoteEvent(BaseModel):
    """Domain model for a remote calendar event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    summary: str | None = None
    description: str | None = None
    location: str | None = None
    status: str = "confirmed"
    start: EventTime | None = None
    end: EventTime | None = None
    attendees: list[Attendee] = Field(default_factory=list)
    html_link: str | None = Field(default=None, alias="htmlLink")

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "RemoteEvent":
        return cls.model_validate(data)

    def is_all_day(self) -> bool:
        return bool(self.start and self.start.date and not self.start.date_time)

    def is_cancelled(self) -> bool:
        return self.status == "cancelled"

    def attendee(self, email: str) -> Attendee | None:
        """Find an attendee by case-insensitive email."""
        wanted = email.strip().lower()
        for attendee in self.attendees:
            if attendee.email.strip().lower() == wanted:
                return attendee
        return None


class WatchChannel(BaseModel):
    """Push-notification channel returned by the provider's watch endpoint."""

    channel_id: str
    resource_id: str
    expiration: datetime | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "WatchChannel":
        # Google reports expiration as epoch milliseconds in a string
        raw_expiration = data.get("expiration")
        expiration = None
        if raw_expiration:
            expiration = datetime.fromtimestamp(int(raw_expiration) / 1000, tz=UTC)
        return cls(
            channel_id=data["id"],
            resource_id=data["resourceId"],
            expiration=expiration,
        )
