# gigsync/services/calendar/google_client.py
"""
Google Calendar API client for invitation events and push channels.

Low-level, credential-scoped: every call takes a valid access token (see
``credentials.get_active_connection``). Transient failures (429/5xx/network)
get one retry after a short backoff and then surface as ``RemoteTransient``;
404/410 surface as ``RemoteNotFound``; everything else as ``RemotePermanent``.
"""

import asyncio
import uuid
from datetime import datetime
from typing import Any

import httpx

from gigsync.errors import RemoteError, RemoteNotFound, RemotePermanent, RemoteTransient
from gigsync.infrastructure.observability.logging import get_logger
from gigsync.models.domain.calendar_domain import RemoteEvent, WatchChannel
from gigsync.services.calendar.time_window import Interval

logger = get_logger(__name__)

# Google Calendar API configuration
CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
CALENDAR_PRIMARY = "primary"

# Request timeouts and retry configuration
REQUEST_TIMEOUT = 30  # seconds
MAX_ATTEMPTS = 2  # one retry
RETRY_BACKOFF_SECONDS = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}
NOT_FOUND_STATUS_CODES = {404, 410}


def build_event_body(
    summary: str,
    interval: Interval,
    *,
    description: str | None = None,
    location: str | None = None,
    attendees: list[dict[str, str]] | None = None,
) -> dict[str, Any]:
    """Assemble an events insert/patch payload."""
    start, end = interval.to_event_times()
    body: dict[str, Any] = {"summary": summary, "start": start, "end": end}
    if description is not None:
        body["description"] = description
    if location:
        body["location"] = location
    if attendees is not None:
        body["attendees"] = attendees
    return body


class GoogleCalendarClient:
    """
    Service for Google Calendar API operations.

    One shared ``httpx.AsyncClient``; closed in the application lifespan.
    """

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._client = http_client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=20, max_connections=50)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request, retrying a transient failure once."""
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_ATTEMPTS:
                    logger.debug(
                        "Calendar API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=RETRY_BACKOFF_SECONDS,
                    )
                    await asyncio.sleep(RETRY_BACKOFF_SECONDS)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_ATTEMPTS:
                    raise
                logger.debug(
                    "Calendar API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=RETRY_BACKOFF_SECONDS,
                )
                await asyncio.sleep(RETRY_BACKOFF_SECONDS)
        raise RuntimeError("Calendar API retry loop exhausted")

    def _get_auth_headers(self, access_token: str) -> dict:
        return {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        """
        Parse a Calendar API response or raise the matching remote error.

        Raises:
            RemoteNotFound: 404/410
            RemoteTransient: 429/5xx after the retry
            RemotePermanent: any other failure
        """
        if response.is_success:
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                logger.error(f"Failed to parse Calendar API {operation} response", error=str(e))
                raise RemotePermanent(f"Invalid response format: {e}") from e

        try:
            error_data = response.json() if response.content else {}
        except ValueError:
            error_data = {"raw": response.text[:200]}

        error_info = error_data.get("error", {}) if isinstance(error_data, dict) else {}
        if not isinstance(error_info, dict):
            error_info = {"message": str(error_info)}
        reason = ""
        if error_info.get("errors"):
            reason = error_info["errors"][0].get("reason", "")
        message = error_info.get("message") or f"Calendar API error (HTTP {response.status_code})"

        logger.warning(
            f"Calendar API {operation} failed",
            status_code=response.status_code,
            reason=reason,
            error_message=message,
        )

        kwargs = {
            "status_code": response.status_code,
            "error_code": reason or str(response.status_code),
            "response_data": error_data,
        }
        if response.status_code in NOT_FOUND_STATUS_CODES:
            raise RemoteNotFound(self._map_calendar_error(response.status_code, message), **kwargs)
        if response.status_code in RETRY_STATUS_CODES or reason in (
            "rateLimitExceeded",
            "userRateLimitExceeded",
        ):
            raise RemoteTransient(self._map_calendar_error(response.status_code, message), **kwargs)
        raise RemotePermanent(self._map_calendar_error(response.status_code, message), **kwargs)

    def _map_calendar_error(self, status_code: int, error_message: str) -> str:
        error_mappings = {
            400: "Invalid calendar request format.",
            401: "Calendar authorization expired. Please reconnect.",
            403: "Calendar access denied. Please check permissions.",
            404: "Calendar event not found.",
            410: "Calendar event was deleted.",
            429: "Too many calendar requests. Please try again later.",
        }
        if status_code >= 500:
            return "Google Calendar service temporarily unavailable."
        return error_mappings.get(status_code, f"Calendar error: {error_message}")

    async def _call(
        self, method: str, path: str, access_token: str, operation: str, **kwargs
    ) -> dict:
        url = f"{CALENDAR_API_BASE_URL}{path}"
        try:
            response = await self._request_with_retry(
                method, url, headers=self._get_auth_headers(access_token), **kwargs
            )
            return self._handle_api_response(response, operation)
        except RemoteError:
            raise
        except httpx.RequestError as e:
            logger.warning(f"Calendar API {operation} network failure", error=str(e))
            raise RemoteTransient(f"Calendar network error: {e}") from e
        except Exception as e:
            logger.error(
                f"Unexpected error in calendar {operation}",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RemotePermanent(f"Calendar {operation} failed: {e}") from e

    async def list_events(
        self,
        access_token: str,
        time_min: datetime,
        time_max: datetime,
        calendar_id: str = CALENDAR_PRIMARY,
        max_results: int = 250,
    ) -> list[RemoteEvent]:
        """List single (expanded) events in [time_min, time_max)."""
        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": max_results,
        }
        data = await self._call(
            "GET", f"/calendars/{calendar_id}/events", access_token, "list_events", params=params
        )
        events = [RemoteEvent.from_api(item) for item in data.get("items", [])]
        logger.info("Events listed successfully", calendar_id=calendar_id, event_count=len(events))
        return events

    async def get_event(
        self, access_token: str, event_id: str, calendar_id: str = CALENDAR_PRIMARY
    ) -> RemoteEvent:
        data = await self._call(
            "GET", f"/calendars/{calendar_id}/events/{event_id}", access_token, "get_event"
        )
        return RemoteEvent.from_api(data)

    async def create_event(
        self,
        access_token: str,
        body: dict[str, Any],
        calendar_id: str = CALENDAR_PRIMARY,
        send_updates: str = "all",
    ) -> RemoteEvent:
        """Insert an event; ``sendUpdates=all`` makes Google email the attendees."""
        data = await self._call(
            "POST",
            f"/calendars/{calendar_id}/events",
            access_token,
            "create_event",
            params={"sendUpdates": send_updates},
            json=body,
        )
        event = RemoteEvent.from_api(data)
        logger.info("Event created successfully", event_id=event.id)
        return event

    async def update_event(
        self,
        access_token: str,
        event_id: str,
        body: dict[str, Any],
        calendar_id: str = CALENDAR_PRIMARY,
        send_updates: str = "all",
    ) -> RemoteEvent:
        """Patch only the supplied fields of an event."""
        data = await self._call(
            "PATCH",
            f"/calendars/{calendar_id}/events/{event_id}",
            access_token,
            "update_event",
            params={"sendUpdates": send_updates},
            json=body,
        )
        logger.info("Event updated successfully", event_id=event_id)
        return RemoteEvent.from_api(data)

    async def delete_event(
        self,
        access_token: str,
        event_id: str,
        calendar_id: str = CALENDAR_PRIMARY,
        send_updates: str = "all",
    ) -> None:
        await self._call(
            "DELETE",
            f"/calendars/{calendar_id}/events/{event_id}",
            access_token,
            "delete_event",
            params={"sendUpdates": send_updates},
        )
        logger.info("Event deleted successfully", event_id=event_id)

    async def watch_event(
        self,
        access_token: str,
        event_id: str,
        callback_url: str,
        *,
        channel_token: str | None = None,
        channel_id: str | None = None,
        calendar_id: str = CALENDAR_PRIMARY,
    ) -> WatchChannel:
        """
        Open a push channel on the calendar that owns ``event_id``.

        Google only supports watches at calendar level; the caller stores the
        (channel, event) pair so pings can be narrowed back to one event.
        """
        body: dict[str, Any] = {
            "id": channel_id or str(uuid.uuid4()),
            "type": "web_hook",
            "address": callback_url,
        }
        if channel_token:
            body["token"] = channel_token

        data = await self._call(
            "POST", f"/calendars/{calendar_id}/events/watch", access_token, "watch_event", json=body
        )
        channel = WatchChannel.from_api(data)
        logger.info(
            "Watch channel registered",
            event_id=event_id,
            channel_id=channel.channel_id,
            expiration=channel.expiration.isoformat() if channel.expiration else None,
        )
        return channel

    async def stop_watch(self, access_token: str, channel_id: str, resource_id: str) -> None:
        await self._call(
            "POST",
            "/channels/stop",
            access_token,
            "stop_watch",
            json={"id": channel_id, "resourceId": resource_id},
        )
        logger.info("Watch channel stopped", channel_id=channel_id)


# Singleton instance for application use
google_calendar_client = GoogleCalendarClient()
