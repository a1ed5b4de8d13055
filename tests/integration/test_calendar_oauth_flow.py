import re
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from gigsync.errors import GigSyncError
from gigsync.main import gigsync_error_handler
from gigsync.routes.calendar import router as calendar_router
from gigsync.services.calendar.connection_service import CalendarConnectionService
from gigsync.services.google_oauth_service import (
    CALENDAR_WRITE_SCOPE,
    GoogleOAuthError,
    GoogleOAuthService,
    TokenRevokedError,
)
from gigsync.services.oauth_state_service import OAuthStateService
from tests.factories import OWNER_ID, connect

TOKEN_URL = "https://oauth2.googleapis.com/token"


def _create_app(apply_auth_override):
    app = FastAPI()
    apply_auth_override(app)
    app.add_exception_handler(GigSyncError, gigsync_error_handler)
    app.include_router(calendar_router)
    return app


@pytest.fixture
def oauth_service(monkeypatch):
    service = GoogleOAuthService()
    monkeypatch.setattr(service, "client_id", "client-id")
    monkeypatch.setattr(service, "client_secret", "client-secret")
    monkeypatch.setattr(service, "redirect_uri", "http://localhost:8000/calendar/callback")
    return service


@pytest.fixture
def connection_service(services, oauth_service, fake_redis, calendar):
    return CalendarConnectionService(
        services.credentials, oauth_service, OAuthStateService(fake_redis), calendar
    )


def test_oauth_url_requests_offline_access(oauth_service):
    url = oauth_service.generate_oauth_url("state-123", write_access=True)

    params = parse_qs(urlparse(url).query)
    assert params["state"] == ["state-123"]
    assert params["access_type"] == ["offline"]
    assert params["prompt"] == ["consent"]
    assert CALENDAR_WRITE_SCOPE in params["scope"][0].split()


def test_read_only_oauth_url_omits_write_scope(oauth_service):
    url = oauth_service.generate_oauth_url("state-123", write_access=False)

    assert CALENDAR_WRITE_SCOPE not in parse_qs(urlparse(url).query)["scope"][0].split()


def test_missing_client_config_is_reported(monkeypatch, oauth_service):
    monkeypatch.setattr(oauth_service, "client_id", None)

    with pytest.raises(GoogleOAuthError, match="GOOGLE_CALENDAR_CLIENT_ID"):
        oauth_service.generate_oauth_url("state-123")


@pytest.mark.asyncio
async def test_refresh_invalid_grant_is_revocation(httpx_mock, oauth_service):
    httpx_mock.add_response(
        method="POST",
        url=TOKEN_URL,
        status_code=400,
        json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."},
    )

    with pytest.raises(TokenRevokedError) as exc:
        await oauth_service.refresh_access_token("refresh-token")

    assert exc.value.error_code == "invalid_grant"


@pytest.mark.asyncio
async def test_refresh_keeps_existing_refresh_token(httpx_mock, oauth_service):
    httpx_mock.add_response(
        method="POST",
        url=TOKEN_URL,
        json={"access_token": "fresh", "expires_in": 3599, "token_type": "Bearer"},
    )

    tokens = await oauth_service.refresh_access_token("refresh-token")

    assert tokens.access_token == "fresh"
    assert tokens.refresh_token == "refresh-token"
    assert tokens.expires_at is not None


@pytest.mark.asyncio
async def test_revoke_never_raises(httpx_mock, oauth_service):
    httpx_mock.add_response(
        method="POST", url=re.compile(r"https://oauth2\.googleapis\.com/revoke.*"), status_code=400
    )

    assert await oauth_service.revoke_token("token") is False


@pytest.mark.asyncio
async def test_state_is_single_use(fake_redis):
    states = OAuthStateService(fake_redis)

    state = await states.generate_state(OWNER_ID)

    assert await states.consume_state(state) == OWNER_ID
    assert await states.consume_state(state) is None
    assert await states.consume_state("") is None


@pytest.mark.asyncio
async def test_complete_connect_stores_encrypted_connection(
    httpx_mock, connection_service, services, store
):
    httpx_mock.add_response(
        method="POST",
        url=TOKEN_URL,
        json={
            "access_token": "access-1",
            "refresh_token": "refresh-1",
            "expires_in": 3600,
            "token_type": "Bearer",
            "scope": f"https://www.googleapis.com/auth/calendar.readonly {CALENDAR_WRITE_SCOPE}",
        },
    )
    _, state = await connection_service.start_connect(OWNER_ID)

    connection = await connection_service.complete_connect("auth-code", state)

    assert connection.user_id == OWNER_ID
    assert connection.write_access is True
    assert connection.send_invites_enabled is True
    assert store.rows("calendar_connections")[0]["refresh_token"] != "refresh-1"
    assert (await services.connections.get(OWNER_ID)).refresh_token == "refresh-1"


@pytest.mark.asyncio
async def test_read_only_grant_disables_invites(httpx_mock, connection_service):
    httpx_mock.add_response(
        method="POST",
        url=TOKEN_URL,
        json={
            "access_token": "access-1",
            "expires_in": 3600,
            "scope": "https://www.googleapis.com/auth/calendar.readonly",
        },
    )
    _, state = await connection_service.start_connect(OWNER_ID, write_access=False)

    connection = await connection_service.complete_connect("auth-code", state)

    assert connection.write_access is False
    assert connection.send_invites_enabled is False


@pytest.mark.asyncio
async def test_complete_connect_rejects_unknown_state(connection_service):
    with pytest.raises(GigSyncError) as exc:
        await connection_service.complete_connect("auth-code", "forged-state")

    assert exc.value.error_code == "invalid_state"


@pytest.mark.asyncio
async def test_disconnect_tears_down_watches(services, store, calendar, oauth, fake_redis):
    connection_service = CalendarConnectionService(
        services.credentials, oauth, OAuthStateService(fake_redis), calendar
    )
    await connect(services)
    store.seed(
        "google_calendar_watches",
        {
            "user_id": OWNER_ID,
            "gig_id": "gig-1",
            "calendar_event_id": "evt-1",
            "channel_id": "channel-1",
            "resource_id": "res-1",
        },
    )

    assert await connection_service.disconnect(OWNER_ID) is True

    assert calendar.count("stop_watch") == 1
    oauth.revoke_token.assert_awaited_once_with("refresh-token")
    assert store.rows("calendar_connections") == []
    assert store.rows("google_calendar_watches") == []
    assert await connection_service.disconnect(OWNER_ID) is False


@pytest.mark.asyncio
async def test_enabling_invites_needs_write_access(connection_service, services):
    await connect(services, write_access=False, send_invites_enabled=False)

    with pytest.raises(GigSyncError) as exc:
        await connection_service.update_settings(OWNER_ID, send_invites_enabled=True)

    assert exc.value.error_code == "write_access_required"
    status = await connection_service.update_settings(OWNER_ID, sync_enabled=False)
    assert status["sync_enabled"] is False


def test_connect_route_returns_consent_url(monkeypatch, apply_auth_override):
    async def fake_start_connect(user_id: str, write_access: bool = True):
        assert user_id == "user-123"
        return "https://accounts.google.com/o/oauth2/v2/auth?state=state-123", "state-123"

    monkeypatch.setattr(
        "gigsync.routes.calendar.calendar_connection_service.start_connect", fake_start_connect
    )
    client = TestClient(_create_app(apply_auth_override))

    response = client.get("/calendar/connect")

    assert response.status_code == 200
    assert response.json()["state"] == "state-123"


def test_connect_route_unavailable_when_unconfigured(monkeypatch, apply_auth_override):
    async def fake_start_connect(user_id: str, write_access: bool = True):
        raise GoogleOAuthError("GOOGLE_CALENDAR_CLIENT_ID not configured")

    monkeypatch.setattr(
        "gigsync.routes.calendar.calendar_connection_service.start_connect", fake_start_connect
    )
    client = TestClient(_create_app(apply_auth_override))

    assert client.get("/calendar/connect").status_code == 503


def test_callback_redirects_to_settings(monkeypatch, apply_auth_override):
    async def fake_complete_connect(code: str, state: str):
        return None

    monkeypatch.setattr(
        "gigsync.routes.calendar.calendar_connection_service.complete_connect",
        fake_complete_connect,
    )
    monkeypatch.setattr("gigsync.routes.calendar.settings.APP_BASE_URL", "https://gigs.example.com")
    client = TestClient(_create_app(apply_auth_override), follow_redirects=False)

    response = client.get("/calendar/callback", params={"code": "abc", "state": "state-123"})

    assert response.status_code == 302
    assert response.headers["location"] == "https://gigs.example.com/settings/calendar?status=connected"


def test_callback_error_redirects_with_error(monkeypatch, apply_auth_override):
    monkeypatch.setattr("gigsync.routes.calendar.settings.APP_BASE_URL", "https://gigs.example.com")
    client = TestClient(_create_app(apply_auth_override), follow_redirects=False)

    response = client.get(
        "/calendar/callback", params={"error": "access_denied", "state": "state-123"}
    )

    assert response.status_code == 302
    assert response.headers["location"].endswith("status=error")
