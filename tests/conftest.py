"""
Shared fixtures: an in-memory ConnectionStore, a fixed-key cipher and a
scriptable fake for provider HTTP APIs.
"""

from __future__ import annotations

import json
import uuid
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest

from config.settings import config
from connectors import encryption
from connectors.encryption import TokenCipher
from connectors.registry import ConnectorRegistry
from database import store as store_module
from database.store import ConnectionStore

TEST_KEY = bytes(range(32))


class InMemoryStore(ConnectionStore):
    """Dict-backed store honouring the same conflict-key semantics as PostgreSQL."""

    def __init__(self, events: Optional[List[Tuple[str, str]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self.events = events if events is not None else []
        self.fail_upsert: Optional[Callable[[Any, Dict[str, Any]], bool]] = None

    def rows(self, model) -> List[Dict[str, Any]]:
        return self.tables[model.__tablename__]

    @staticmethod
    def _matches(row: Dict[str, Any], filters: Dict[str, Any]) -> bool:
        return all(row.get(k) == v for k, v in filters.items())

    async def upsert(self, model, values, conflict):
        self.events.append(("upsert", model.__tablename__))
        if self.fail_upsert and self.fail_upsert(model, values):
            raise RuntimeError("database unavailable")
        rows = self.rows(model)
        for row in rows:
            if all(row.get(c) == values.get(c) for c in conflict):
                row.update({k: v for k, v in values.items() if k != "id"})
                return dict(row)
        row = {"id": str(uuid.uuid4()), "created_at": datetime.now(timezone.utc), **values}
        rows.append(row)
        return dict(row)

    async def select_one(self, model, **filters):
        for row in self.rows(model):
            if self._matches(row, filters):
                return dict(row)
        return None

    async def select_all(self, model, **filters):
        return [dict(r) for r in self.rows(model) if self._matches(r, filters)]

    async def update(self, model, values, **filters):
        self.events.append(("update", model.__tablename__))
        touched = 0
        for row in self.rows(model):
            if self._matches(row, filters):
                row.update(values)
                touched += 1
        return touched


def _bare(url: httpx.URL) -> str:
    return f"{url.scheme}://{url.host}{url.path}"


class FakeProvider:
    """
    ``httpx.MockTransport`` handler answering by (method, URL without query).

    A route's response may be a dict (JSON 200), an ``httpx.Response``, a
    callable taking the request, or a list of those consumed in order (the
    last entry repeats).
    """

    def __init__(self, events: Optional[List[Tuple[str, str]]] = None):
        self.routes: Dict[Tuple[str, str], List[Any]] = {}
        self.requests: List[httpx.Request] = []
        self.events = events if events is not None else []

    def add(self, method: str, url: str, *responses: Any) -> None:
        self.routes[(method.upper(), url)] = list(responses)

    def calls(self, method: str, url: str) -> List[httpx.Request]:
        return [
            r for r in self.requests
            if r.method == method.upper() and _bare(r.url) == url
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, _bare(request.url))
        self.events.append(("http", key[1]))
        queue = self.routes.get(key)
        if not queue:
            return httpx.Response(404, json={"error": {"message": f"no fake for {key}"}})
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(reply):
            reply = reply(request)
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json=reply)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def form_of(request: httpx.Request) -> Dict[str, str]:
    from urllib.parse import parse_qsl

    return dict(parse_qsl(request.content.decode()))


def json_of(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content.decode())


def utc_in(**delta: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(**delta)


@pytest.fixture
def events() -> List[Tuple[str, str]]:
    return []


@pytest.fixture
def store(events) -> InMemoryStore:
    return InMemoryStore(events)


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(TEST_KEY)


@pytest.fixture
def provider(events) -> FakeProvider:
    return FakeProvider(events)


@pytest.fixture
def credentials(monkeypatch):
    """Configure client credentials for every platform."""
    for name, value in {
        "google_client_id": "google-id",
        "google_client_secret": "google-secret",
        "facebook_app_id": "fb-id",
        "facebook_app_secret": "fb-secret",
        "tiktok_client_key": "tt-key",
        "tiktok_client_secret": "tt-secret",
    }.items():
        monkeypatch.setattr(config, name, value)
    ConnectorRegistry.reset()
    yield
    ConnectorRegistry.reset()


@pytest.fixture
def global_store(store, cipher, monkeypatch):
    """Install the fake store and fixed cipher as the process-wide defaults."""
    monkeypatch.setattr(store_module, "_store", store)
    monkeypatch.setattr(encryption, "_cipher", cipher)
    return store
