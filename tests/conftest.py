import os

# Settings are read once at import time
os.environ.setdefault("ENCRYPTION_KEY", "MDEyMzQ1Njc4OWFiY2RlZjAxMjM0NTY3ODlhYmNkZWY=")

import uuid
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from gigsync.auth.verify import auth_dependency
from gigsync.db.row_store import Filter
from gigsync.errors import RemoteNotFound, RemotePermanent
from gigsync.infrastructure.audit.status_history import StatusHistoryRecorder
from gigsync.models.domain.calendar_domain import RemoteEvent, WatchChannel
from gigsync.repositories.gig_repository import GigRepository
from gigsync.services.calendar.conflict_detector import ConflictDetector
from gigsync.services.calendar.credentials import CalendarCredentials
from gigsync.services.calendar.drift_reconciler import DriftReconciler
from gigsync.services.calendar.import_service import CalendarImportService
from gigsync.services.calendar.response_sync import ResponseSync
from gigsync.services.connection_store import ConnectionStore
from gigsync.services.invitations.dispatcher import InvitationDispatcher
from gigsync.services.invitations.email_invitations import EmailInvitationService
from gigsync.services.invitations.state_machine import InvitationStateMachine
from gigsync.services.notifications import NotificationService


@pytest.fixture
def auth_override():
    def _override():
        return {"sub": "user-123"}

    return _override


@pytest.fixture
def apply_auth_override(auth_override):
    def _apply(app):
        app.dependency_overrides[auth_dependency] = auth_override

    return _apply


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        return self.store.pop(key, None) is not None


@pytest.fixture
def fake_redis():
    return FakeRedis()


class FakeRowStore:
    """In-memory row store honoring the RowStore contract."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failing: set[str] = set()

    def seed(self, relation: str, *rows: dict) -> None:
        for row in rows:
            self.tables.setdefault(relation, []).append(dict(row))

    def rows(self, relation: str) -> list[dict]:
        return self.tables.get(relation, [])

    def _check(self, relation: str) -> None:
        if relation in self.failing:
            raise RuntimeError(f"{relation} unavailable")

    @staticmethod
    def _matches(row: dict, filters) -> bool:
        return all(f.matches(row) for f in filters)

    async def select(self, relation, filters: list[Filter] = (), *, columns=None, order_by=None, limit=None):
        self._check(relation)
        rows = [dict(r) for r in self.rows(relation) if self._matches(r, filters)]
        if order_by:
            key = order_by.lstrip("-")
            rows.sort(key=lambda r: (r.get(key) is None, r.get(key)), reverse=order_by.startswith("-"))
        if limit is not None:
            rows = rows[:limit]
        if columns:
            rows = [{c: r.get(c) for c in columns} for r in rows]
        return rows

    async def select_one(self, relation, filters=(), *, columns=None):
        rows = await self.select(relation, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(self, relation, values):
        self._check(relation)
        row = dict(values)
        row.setdefault("id", str(uuid.uuid4()))
        self.tables.setdefault(relation, []).append(row)
        return dict(row)

    async def upsert(self, relation, values, conflict_columns):
        self._check(relation)
        for row in self.rows(relation):
            if all(row.get(c) == values.get(c) for c in conflict_columns):
                row.update(values)
                return dict(row)
        return await self.insert(relation, values)

    async def update(self, relation, values, filters):
        self._check(relation)
        if not filters:
            raise ValueError("update requires at least one filter")
        count = 0
        for row in self.rows(relation):
            if self._matches(row, filters):
                row.update(values)
                count += 1
        return count

    async def delete(self, relation, filters):
        self._check(relation)
        if not filters:
            raise ValueError("delete requires at least one filter")
        kept = [r for r in self.rows(relation) if not self._matches(r, filters)]
        deleted = len(self.rows(relation)) - len(kept)
        self.tables[relation] = kept
        return deleted


class FakeCalendarClient:
    """Provider double: records calls and fails for chosen attendee emails."""

    def __init__(self):
        self.events: dict[str, RemoteEvent] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.fail_for: set[str] = set()
        self.list_error: Exception | None = None
        self.get_error: Exception | None = None
        self._counter = 0

    async def create_event(self, access_token, body, calendar_id="primary", send_updates="all"):
        email = body["attendees"][0]["email"] if body.get("attendees") else None
        self.calls.append(("create_event", email))
        if email in self.fail_for:
            raise RemotePermanent("Calendar permission denied", status_code=403)
        self._counter += 1
        event = RemoteEvent.from_api({"id": f"evt-{self._counter}", **body})
        self.events[event.id] = event
        return event

    async def update_event(self, access_token, event_id, body, calendar_id="primary", send_updates="all"):
        self.calls.append(("update_event", event_id))
        return self.events.get(event_id) or RemoteEvent(id=event_id)

    async def delete_event(self, access_token, event_id, calendar_id="primary", send_updates="all"):
        self.calls.append(("delete_event", event_id))
        self.events.pop(event_id, None)

    async def get_event(self, access_token, event_id, calendar_id="primary"):
        self.calls.append(("get_event", event_id))
        if self.get_error:
            raise self.get_error
        if event_id not in self.events:
            raise RemoteNotFound("Calendar event not found.", status_code=404)
        return self.events[event_id]

    async def list_events(self, access_token, time_min, time_max, calendar_id="primary", max_results=250):
        self.calls.append(("list_events", None))
        if self.list_error:
            raise self.list_error
        return list(self.events.values())

    async def watch_event(self, access_token, event_id, callback_url, *, channel_token=None, channel_id=None, calendar_id="primary"):
        self.calls.append(("watch_event", event_id))
        return WatchChannel(
            channel_id=channel_id or str(uuid.uuid4()),
            resource_id=f"res-{event_id}",
            expiration=datetime.now(UTC) + timedelta(days=7),
        )

    async def stop_watch(self, access_token, channel_id, resource_id):
        self.calls.append(("stop_watch", channel_id))

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


class RecordingSender:
    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, text: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "text": text})
        return self.succeed


@pytest.fixture
def store():
    return FakeRowStore()


@pytest.fixture
def calendar():
    return FakeCalendarClient()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def oauth():
    mock = MagicMock()
    mock.refresh_access_token = AsyncMock()
    mock.revoke_token = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def services(store, calendar, sender, oauth):
    """Full service graph wired to in-memory doubles."""
    gigs = GigRepository(store)
    history = StatusHistoryRecorder(store)
    notifier = NotificationService(store)
    state_machine = InvitationStateMachine(gigs, history, notifier)
    email_invitations = EmailInvitationService(store, gigs, sender, notifier, state_machine)
    connections = ConnectionStore(store)
    credentials = CalendarCredentials(connections, oauth)
    return SimpleNamespace(
        store=store,
        gigs=gigs,
        history=history,
        notifier=notifier,
        state_machine=state_machine,
        email_invitations=email_invitations,
        connections=connections,
        credentials=credentials,
        calendar=calendar,
        sender=sender,
        oauth=oauth,
        dispatcher=InvitationDispatcher(
            gigs, connections, credentials, calendar, email_invitations, state_machine
        ),
        drift=DriftReconciler(gigs, credentials, calendar),
        conflicts=ConflictDetector(gigs, credentials, calendar),
        response_sync=ResponseSync(gigs, credentials, calendar, state_machine),
        importer=CalendarImportService(store, gigs, credentials, calendar),
    )
