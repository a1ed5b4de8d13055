# gigsync/models/api/role_request.py
"""
Lineup role API request models.
"""

from typing import Literal

from pydantic import BaseModel, Field

from gigsync.models.domain.gig_domain import RoleStatus


class StatusUpdateRequest(BaseModel):
    """Musician answers their own invitation."""

    status: Literal["accepted", "declined", "tentative", "needs_sub"]
    note: str | None = Field(default=None, max_length=1000)


class StatusOverrideRequest(BaseModel):
    """Manager sets a role's status directly."""

    status: RoleStatus
    note: str | None = Field(default=None, max_length=1000)


class ReplaceRoleRequest(BaseModel):
    note: str | None = Field(default=None, max_length=1000)


class BulkAcceptRequest(BaseModel):
    role_ids: list[str] = Field(..., min_length=1, max_length=100)


class DeclineInvitationRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)
