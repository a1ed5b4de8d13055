# gigsync/models/api/role_response.py
"""
Lineup role API response models.
"""

from pydantic import BaseModel, Field


class InviteAllResponse(BaseModel):
    invited: int = Field(..., description="Roles moved from pending to invited")


class WebhookAckResponse(BaseModel):
    received: bool = True
