"""
Shared fixtures.

No test talks to a real server: httpx.MockTransport plays the remote store
and InMemoryKeyValueStore stands in for the JSON file.
"""

from typing import Callable, Optional

import httpx
import pytest

from money_manager.audit import AuditLogger
from money_manager.config import ApiSettings
from money_manager.data_access import DataAccessFacade
from money_manager.models.audit import AuditEvent, AuditEventType
from money_manager.services.arbiter import ModeArbiter
from money_manager.services.remote import RemoteClient
from money_manager.services.session import SessionState
from money_manager.services.storage import InMemoryKeyValueStore, LocalStore


BASE_URL = "http://testserver/api/v1.0"
API_PREFIX = "/api/v1.0"


class RecordingAuditLogger(AuditLogger):
    """AuditLogger that keeps every event for assertions."""

    def __init__(self):
        super().__init__()
        self.events: list[AuditEvent] = []

    def log(self, event: AuditEvent) -> None:
        self.events.append(event)
        super().log(event)

    def of_type(self, event_type: AuditEventType) -> list[AuditEvent]:
        return [e for e in self.events if e.event_type == event_type]


def respond(status_code: int = 200, json=None, content: Optional[bytes] = None):
    """Route handler returning a fresh response on every call."""
    def handler(request: httpx.Request) -> httpx.Response:
        if content is not None:
            return httpx.Response(status_code, content=content)
        if json is None:
            return httpx.Response(status_code)
        return httpx.Response(status_code, json=json)
    return handler


def unreachable(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("Connection refused", request=request)


class FakeServer:
    """
    Routes ``(method, path)`` to handlers and records every request.

    Paths are given without the API prefix. Unrouted requests get a 404.
    """

    def __init__(self, routes: Optional[dict] = None, fallback: Optional[Callable] = None):
        self.routes = dict(routes or {})
        self.fallback = fallback
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith(API_PREFIX):
            path = path[len(API_PREFIX):]
        handler = self.routes.get((request.method, path))
        if handler is not None:
            return handler(request)
        if self.fallback is not None:
            return self.fallback(request)
        return httpx.Response(404, json={"message": "Not found"})

    def paths(self) -> list[str]:
        return [f"{r.method} {r.url.path[len(API_PREFIX):]}" for r in self.requests]


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def audit():
    return RecordingAuditLogger()


@pytest.fixture
def api_settings():
    return ApiSettings(base_url=BASE_URL, timeout_seconds=1.0)


@pytest.fixture
def signed_in(kv):
    """A session persisted by a previous run."""
    kv.set("token", "remote-token-123")
    kv.set("currentUser", {"id": "42", "username": "alice", "email": "alice@example.com"})
    kv.set("backendMode", "remote")
    return kv


@pytest.fixture
def build_facade(kv, audit, api_settings):
    """Build a façade whose remote store is the given handler."""
    def _build(handler: Callable) -> DataAccessFacade:
        session = SessionState(kv, audit)
        remote = RemoteClient(
            session,
            api_settings,
            transport=httpx.MockTransport(handler),
        )
        return DataAccessFacade(
            session=session,
            remote=remote,
            local=LocalStore(kv),
            arbiter=ModeArbiter(session, audit),
        )
    return _build
