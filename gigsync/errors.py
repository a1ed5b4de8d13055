"""
Domain error taxonomy for calendar sync and the invitation lifecycle.

Routes translate these into HTTP responses via ``http_status_for``; services
raise them and never return error sentinels for authoritative writes.
"""

from typing import Any


class GigSyncError(Exception):
    """Base exception for all gig sync failures."""

    default_code = "gigsync_error"

    def __init__(self, message: str, *, error_code: str | None = None, recoverable: bool = False):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.recoverable = recoverable


class NotAuthorized(GigSyncError):
    default_code = "not_authorized"


class NotFound(GigSyncError):
    default_code = "not_found"


class CalendarNotConnected(GigSyncError):
    default_code = "calendar_not_connected"


class InvalidSchedule(GigSyncError):
    default_code = "invalid_schedule"


class InvalidTransition(GigSyncError):
    default_code = "invalid_transition"


class RoleReplaced(GigSyncError):
    default_code = "role_replaced"

    def __init__(self, role_id: str):
        super().__init__(
            "This role has been replaced. Ask the host to re-invite you.",
            error_code=self.default_code,
        )
        self.role_id = role_id


class AlreadyProcessed(GigSyncError):
    default_code = "already_processed"


class InvitationExpired(GigSyncError):
    default_code = "invitation_expired"


class MessageDeliveryError(GigSyncError):
    default_code = "message_delivery_failed"


class RemoteError(GigSyncError):
    """Calendar provider rejected or failed a request."""

    default_code = "remote_error"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
        response_data: dict[str, Any] | None = None,
        recoverable: bool = False,
    ):
        super().__init__(message, error_code=error_code, recoverable=recoverable)
        self.status_code = status_code
        self.response_data = response_data or {}


class RemoteNotFound(RemoteError):
    default_code = "remote_not_found"


class RemotePermanent(RemoteError):
    default_code = "remote_permanent"


class RemoteTransient(RemoteError):
    default_code = "remote_transient"

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)


_HTTP_STATUS: list[tuple[type[GigSyncError], int]] = [
    (NotAuthorized, 403),
    (NotFound, 404),
    (RemoteNotFound, 404),
    (CalendarNotConnected, 409),
    (RoleReplaced, 409),
    (InvalidTransition, 409),
    (AlreadyProcessed, 409),
    (InvitationExpired, 410),
    (InvalidSchedule, 422),
    (RemoteTransient, 503),
    (RemotePermanent, 502),
    (MessageDeliveryError, 502),
]


def http_status_for(error: GigSyncError) -> int:
    for error_type, status in _HTTP_STATUS:
        if isinstance(error, error_type):
            return status
    return 500
