"""
Lineup role routes: self-service answers, manager actions and magic-link
invitations.
"""

from typing import Literal

from fastapi import APIRouter, Depends, Query

from gigsync.auth.verify import current_user_id
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.api.role_request import (
    BulkAcceptRequest,
    DeclineInvitationRequest,
    ReplaceRoleRequest,
    StatusOverrideRequest,
    StatusUpdateRequest,
)
from gigsync.models.api.role_response import InviteAllResponse
from gigsync.models.domain.gig_domain import BulkAcceptResult, GigRole, MyInvitation
from gigsync.services.invitations.email_invitations import email_invitation_service
from gigsync.services.invitations.state_machine import invitation_state_machine

logger = get_logger(__name__)

router = APIRouter(tags=["roles"])


@router.get("/roles/mine", response_model=list[MyInvitation])
async def list_my_invitations(
    status: Literal["invited", "declined"] = Query("invited", description="Invitations to list"),
    user_id: str = Depends(current_user_id),
):
    """Upcoming gigs where the caller still has to answer, or has declined."""
    return await invitation_state_machine.list_my_invitations(user_id, status)


@router.post("/roles/bulk-accept", response_model=BulkAcceptResult)
async def bulk_accept(request: BulkAcceptRequest, user_id: str = Depends(current_user_id)):
    return await invitation_state_machine.bulk_accept(request.role_ids, user_id)


@router.post("/roles/{role_id}/status", response_model=GigRole)
async def update_my_status(
    role_id: str, request: StatusUpdateRequest, user_id: str = Depends(current_user_id)
):
    """Accept, decline, go tentative or ask for a sub."""
    return await invitation_state_machine.update_my_status(
        role_id, user_id, request.status, request.note
    )


@router.post("/roles/{role_id}/reinvite", response_model=GigRole)
async def reinvite(role_id: str, user_id: str = Depends(current_user_id)):
    return await invitation_state_machine.reinvite(role_id, user_id)


@router.post("/roles/{role_id}/override", response_model=GigRole)
async def override_status(
    role_id: str, request: StatusOverrideRequest, user_id: str = Depends(current_user_id)
):
    return await invitation_state_machine.override_status(
        role_id, user_id, request.status, request.note
    )


@router.post("/roles/{role_id}/replace", response_model=GigRole)
async def replace_role(
    role_id: str, request: ReplaceRoleRequest, user_id: str = Depends(current_user_id)
):
    return await invitation_state_machine.replace(role_id, user_id, request.note)


@router.post("/gigs/{gig_id}/invite-all", response_model=InviteAllResponse)
async def invite_all(gig_id: str, user_id: str = Depends(current_user_id)):
    invited = await invitation_state_machine.invite_all(gig_id, user_id)
    return InviteAllResponse(invited=invited)


@router.post("/invitations/{token}/accept", response_model=GigRole)
async def accept_invitation(token: str, user_id: str = Depends(current_user_id)):
    return await email_invitation_service.accept_invitation(token, user_id)


@router.post("/invitations/{token}/decline", response_model=GigRole)
async def decline_invitation(
    token: str, request: DeclineInvitationRequest, user_id: str = Depends(current_user_id)
):
    return await email_invitation_service.decline_invitation(token, user_id, request.reason)
