"""
Calendar API Routes
HTTP endpoints for the calendar connection, invitation dispatch, sync and import.

Domain errors (``GigSyncError``) propagate to the application's exception
handler, which maps them to status codes.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse

from gigsync.auth.verify import current_user_id
from gigsync.config import settings
from gigsync.errors import GigSyncError
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.api.calendar_request import (
    CalendarSettingsRequest,
    CancelEventsRequest,
    ConflictCheckRequest,
    GigRequest,
    ImportBatchRequest,
    ImportEventRequest,
    RefreshRequest,
    SendInvitesRequest,
    UpdateEventsRequest,
)
from gigsync.models.api.calendar_response import (
    CalendarConnectResponse,
    CalendarStatusResponse,
    DisconnectResponse,
    EventsCancelledResponse,
    EventsListResponse,
    EventsUpdatedResponse,
)
from gigsync.models.domain.gig_domain import RefreshResult, ResponseSyncResult, SendInvitesResult
from gigsync.services.calendar.conflict_detector import ConflictReport, conflict_detector
from gigsync.services.calendar.connection_service import calendar_connection_service
from gigsync.services.calendar.drift_reconciler import drift_reconciler
from gigsync.services.calendar.import_service import (
    BatchImportResult,
    ImportResult,
    calendar_import_service,
)
from gigsync.services.calendar.response_sync import response_sync
from gigsync.services.google_oauth_service import GoogleOAuthError
from gigsync.services.invitations.dispatcher import invitation_dispatcher
from gigsync.services.oauth_state_service import OAuthStateError

logger = get_logger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])

# Connection


@router.get("/connect", response_model=CalendarConnectResponse)
async def connect_calendar(
    write_access: bool = Query(True, description="Request event write scope"),
    user_id: str = Depends(current_user_id),
):
    """Generate the Google consent URL for connecting a calendar."""
    try:
        auth_url, state = await calendar_connection_service.start_connect(user_id, write_access)
    except (GoogleOAuthError, OAuthStateError) as e:
        logger.error("Failed to start calendar connection", user_id=user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Calendar service temporarily unavailable",
        ) from None
    return CalendarConnectResponse(auth_url=auth_url, state=state)


@router.get("/callback")
async def calendar_callback(
    code: str | None = Query(None, description="Authorization code from Google"),
    state: str = Query(..., description="OAuth state parameter"),
    error: str | None = Query(None, description="OAuth error if any"),
):
    """Handle the OAuth redirect from Google and bounce back to the app."""
    base = settings.APP_BASE_URL.rstrip("/")
    if error or not code:
        logger.warning("OAuth callback received error", error=error, state_preview=state[:8] + "...")
        return RedirectResponse(f"{base}/settings/calendar?status=error", status_code=302)

    try:
        await calendar_connection_service.complete_connect(code, state)
    except (GigSyncError, GoogleOAuthError) as e:
        logger.warning(
            "Calendar connection failed",
            state_preview=state[:8] + "...",
            error=str(e),
            error_code=getattr(e, "error_code", None),
        )
        return RedirectResponse(f"{base}/settings/calendar?status=error", status_code=302)

    return RedirectResponse(f"{base}/settings/calendar?status=connected", status_code=302)


@router.post("/disconnect", response_model=DisconnectResponse)
async def disconnect_calendar(user_id: str = Depends(current_user_id)):
    disconnected = await calendar_connection_service.disconnect(user_id)
    return DisconnectResponse(disconnected=disconnected)


@router.get("/status", response_model=CalendarStatusResponse)
async def get_calendar_status(user_id: str = Depends(current_user_id)):
    """Get calendar connection status for authenticated user."""
    return CalendarStatusResponse(**await calendar_connection_service.status(user_id))


@router.patch("/settings", response_model=CalendarStatusResponse)
async def update_calendar_settings(
    request: CalendarSettingsRequest, user_id: str = Depends(current_user_id)
):
    result = await calendar_connection_service.update_settings(
        user_id,
        send_invites_enabled=request.send_invites_enabled,
        sync_enabled=request.sync_enabled,
    )
    return CalendarStatusResponse(**result)


# Invitations


@router.post("/send-invites", response_model=SendInvitesResult)
async def send_invites(request: SendInvitesRequest, user_id: str = Depends(current_user_id)):
    """Invite every not-yet-invited role on a gig (calendar first, email fallback)."""
    return await invitation_dispatcher.send_invites(request.gig_id, user_id, request.emails)


@router.post("/update-events", response_model=EventsUpdatedResponse)
async def update_events(request: UpdateEventsRequest, user_id: str = Depends(current_user_id)):
    updated = await invitation_dispatcher.update_events(
        request.gig_id, user_id, request.changed_fields
    )
    return EventsUpdatedResponse(updated=updated)


@router.post("/cancel-events", response_model=EventsCancelledResponse)
async def cancel_events(request: CancelEventsRequest, user_id: str = Depends(current_user_id)):
    if request.gig_id:
        cancelled = await invitation_dispatcher.cancel_events(request.gig_id, user_id)
    elif request.event_ids:
        cancelled = await invitation_dispatcher.cancel_role_events(user_id, request.event_ids)
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide gig_id or event_ids",
        )
    return EventsCancelledResponse(cancelled=cancelled)


@router.post("/sync-responses", response_model=ResponseSyncResult)
async def sync_responses(request: GigRequest, user_id: str = Depends(current_user_id)):
    return await response_sync.sync_gig_responses(request.gig_id, user_id)


# Sync


@router.post("/refresh", response_model=RefreshResult)
async def refresh_gig(request: RefreshRequest, user_id: str = Depends(current_user_id)):
    """Compare an imported gig with its source event; optionally apply the diff."""
    return await drift_reconciler.refresh(request.gig_id, user_id, request.apply)


@router.post("/conflicts", response_model=ConflictReport)
async def check_conflicts(request: ConflictCheckRequest, user_id: str = Depends(current_user_id)):
    return await conflict_detector.check_conflicts(
        user_id,
        request.date,
        request.start_time,
        request.end_time,
        request.exclude_gig_id,
    )


# Import


@router.get("/events", response_model=EventsListResponse)
async def list_events(
    start: datetime = Query(..., description="Window start (ISO 8601)"),
    end: datetime = Query(..., description="Window end (ISO 8601)"),
    user_id: str = Depends(current_user_id),
):
    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="end must be after start"
        )
    events = await calendar_import_service.list_remote_events(user_id, start, end)
    return EventsListResponse(events=events, total_count=len(events))


@router.post("/import", response_model=ImportResult)
async def import_event(request: ImportEventRequest, user_id: str = Depends(current_user_id)):
    return await calendar_import_service.import_event(user_id, request.event_id)


@router.post("/import-batch", response_model=BatchImportResult)
async def import_events(request: ImportBatchRequest, user_id: str = Depends(current_user_id)):
    """Import several events; already-imported ones come back flagged as duplicates."""
    return await calendar_import_service.import_events(user_id, request.event_ids)
