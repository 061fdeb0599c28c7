"""
Tests for the HTTP surface: OAuth start/callback redirects, manual sync,
connection listing and deactivation.
"""

import time
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from auth.jwt import create_token
from connectors import routes
from connectors.instagram import InstagramConnector
from connectors.registry import ConnectorRegistry
from connectors.state import decode_state, encode_state, generate_code_challenge
from connectors.tiktok import TikTokConnector
from connectors.youtube import YouTubeConnector
from database.models import YouTubeChannel, YouTubeConnection
from main import create_app
from sync.base import SyncResult

GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
YT = "https://www.googleapis.com/youtube/v3"


@pytest.fixture
def scheduled(monkeypatch):
    mock = MagicMock()
    monkeypatch.setattr(routes, "schedule_sync", mock)
    return mock


@pytest.fixture
def client(credentials, global_store, provider, scheduled):
    registry = ConnectorRegistry()
    registry.discover()
    for connector in (
        YouTubeConnector(provider.transport),
        InstagramConnector(provider.transport),
        TikTokConnector(provider.transport),
    ):
        registry.register(connector)
    return TestClient(create_app(init_db=False))


def _auth(user_id="user-1"):
    return {"Authorization": f"Bearer {create_token(user_id)}"}


def _redirect_params(response):
    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.path == "/dashboard"
    return {k: v[0] for k, v in parse_qs(location.query).items()}


def _now_ms():
    return int(time.time() * 1000)


class TestStartOAuth:
    def test_health(self, client):
        assert client.get("/api/v1/health").json() == {"status": "ok"}

    def test_requires_bearer(self, client):
        assert client.get("/api/v1/auth/youtube").status_code == 401
        bad = client.get("/api/v1/auth/youtube", headers={"Authorization": "Bearer forged.token"})
        assert bad.status_code == 401

    def test_unknown_platform(self, client):
        assert client.get("/api/v1/auth/myspace", headers=_auth()).status_code == 404

    def test_youtube_sets_csrf_cookie(self, client):
        response = client.get("/api/v1/auth/youtube", headers=_auth())

        assert response.status_code == 200
        auth_url = response.json()["authUrl"]
        state = parse_qs(urlparse(auth_url).query)["state"][0]
        csrf = response.cookies["youtube_oauth_csrf"]

        data = decode_state(state)
        assert data.user_id == "user-1"
        assert data.csrf == csrf

        header = response.headers["set-cookie"].lower()
        assert "httponly" in header
        assert "samesite=lax" in header
        assert "max-age=600" in header

    def test_tiktok_sets_verifier_cookie(self, client):
        response = client.get("/api/v1/auth/tiktok", headers=_auth())

        verifier = response.cookies["tiktok_oauth_verifier"]
        params = parse_qs(urlparse(response.json()["authUrl"]).query)
        assert params["code_challenge"][0] == generate_code_challenge(verifier)
        assert params["code_challenge_method"][0] == "S256"
        assert "tiktok_oauth_csrf" in response.cookies


class TestCallback:
    def _callback(self, client, platform="youtube", **params):
        return client.get(f"/api/v1/auth/{platform}/callback", params=params, follow_redirects=False)

    def test_provider_error_is_surfaced(self, client):
        response = self._callback(client, error="access_denied", error_description="User denied")
        assert _redirect_params(response) == {"youtube_error": "User denied"}

    def test_missing_params(self, client):
        response = self._callback(client, code="abc")
        assert _redirect_params(response) == {"youtube_error": "missing_params"}

    def test_csrf_mismatch_fails_before_exchange(self, client, provider):
        client.cookies.set("youtube_oauth_csrf", "cookie-nonce")
        state = encode_state("user-1", "other-nonce")
        response = self._callback(client, code="abc", state=state)

        assert _redirect_params(response) == {"youtube_error": "callback_failed"}
        assert provider.requests == []

    def test_state_within_window_accepted_outside_rejected(self, client, provider):
        provider.add("POST", GOOGLE_TOKEN, {"access_token": "at", "refresh_token": "rt", "expires_in": 3600})
        provider.add("GET", f"{YT}/channels", {"items": [{"id": "UC1", "snippet": {"title": "Mine"}}]})
        client.cookies.set("youtube_oauth_csrf", "nonce")

        stale = encode_state("user-1", "nonce", timestamp=_now_ms() - 700_000)
        assert _redirect_params(self._callback(client, code="abc", state=stale)) == {"youtube_error": "callback_failed"}
        assert provider.requests == []

        recent = encode_state("user-1", "nonce", timestamp=_now_ms() - 500_000)
        assert _redirect_params(self._callback(client, code="abc", state=recent)) == {"youtube_connected": "true"}

    def test_tiktok_without_verifier_fails(self, client, provider):
        client.cookies.set("tiktok_oauth_csrf", "nonce")
        state = encode_state("user-1", "nonce")
        response = self._callback(client, platform="tiktok", code="abc", state=state)

        assert _redirect_params(response) == {"tiktok_error": "callback_failed"}
        assert provider.requests == []

    def test_success_stores_connection_and_schedules_sync(self, client, provider, global_store, scheduled, cipher):
        provider.add("POST", GOOGLE_TOKEN, {"access_token": "at", "refresh_token": "rt", "expires_in": 3600})
        provider.add(
            "GET", f"{YT}/channels",
            {"items": [{"id": "UC1", "snippet": {"title": "Mine"}, "statistics": {"subscriberCount": "9"}}]},
        )
        client.cookies.set("youtube_oauth_csrf", "nonce")

        response = self._callback(client, code="abc", state=encode_state("user-1", "nonce"))

        assert _redirect_params(response) == {"youtube_connected": "true"}
        connection = global_store.rows(YouTubeConnection)[0]
        assert connection["user_id"] == "user-1"
        assert connection["channel_id"] == "UC1"
        assert cipher.decrypt(connection["access_token_encrypted"]) == "at"
        assert global_store.rows(YouTubeChannel)[0]["subscriber_count"] == 9
        scheduled.assert_called_once_with("youtube", connection["id"])

        cleared = [c for c in response.headers.get_list("set-cookie") if c.startswith("youtube_oauth_csrf=")]
        assert cleared and "max-age=0" in cleared[0].lower()

    def test_exchange_failure_keeps_cookies(self, client, provider, scheduled):
        provider.add("POST", GOOGLE_TOKEN, {"error": "invalid_grant", "error_description": "Code was already redeemed"})
        client.cookies.set("youtube_oauth_csrf", "nonce")

        response = self._callback(client, code="abc", state=encode_state("user-1", "nonce"))

        assert _redirect_params(response) == {"youtube_error": "callback_failed"}
        assert response.headers.get_list("set-cookie") == []
        scheduled.assert_not_called()


class TestConnectionsApi:
    def _seed(self, store, cipher, user_id="user-1"):
        row = {
            "id": "3f1c2a8e-0000-4000-8000-000000000001",
            "user_id": user_id,
            "channel_id": "UC1",
            "access_token_encrypted": cipher.encrypt("at"),
            "token_expires_at": None,
            "is_active": True,
        }
        store.rows(YouTubeConnection).append(row)
        return row

    def test_sync_without_connection(self, client):
        response = client.post("/api/v1/youtube/sync", headers=_auth())
        assert response.status_code == 404
        assert response.json()["code"] == "CONNECTION_NOT_FOUND"
        assert "YouTube" in response.json()["error"]

    def test_sync_returns_camel_case_result(self, client, global_store, cipher, monkeypatch):
        conn = self._seed(global_store, cipher)
        engine = MagicMock()
        engine.sync_account = AsyncMock(
            return_value=SyncResult(success=True, account_updated=True, items_synced=4, insights_synced=True)
        )
        monkeypatch.setattr(routes, "get_sync_engine", lambda platform: engine)

        response = client.post("/api/v1/youtube/sync", headers=_auth())

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "accountUpdated": True,
            "snapshotCreated": False,
            "itemsSynced": 4,
            "insightsSynced": True,
            "errors": [],
        }
        engine.sync_account.assert_awaited_once_with(conn["id"])

    def test_sync_unexpected_failure(self, client, global_store, cipher, monkeypatch):
        self._seed(global_store, cipher)
        engine = MagicMock()
        engine.sync_account = AsyncMock(side_effect=RuntimeError("boom"))
        monkeypatch.setattr(routes, "get_sync_engine", lambda platform: engine)

        response = client.post("/api/v1/youtube/sync", headers=_auth())

        assert response.status_code == 500
        assert response.json() == {"error": "Sync failed", "details": "boom"}

    def test_list_and_deactivate(self, client, global_store, cipher):
        conn = self._seed(global_store, cipher)

        listed = client.get("/api/v1/connections", headers=_auth()).json()
        assert [c["connection_id"] for c in listed] == [conn["id"]]
        assert "access_token_encrypted" not in listed[0]

        foreign = client.delete(f"/api/v1/youtube/connections/{conn['id']}", headers=_auth("intruder"))
        assert foreign.status_code == 404
        assert foreign.json() == {"error": "Connection not found", "code": "CONNECTION_NOT_FOUND"}
        assert global_store.rows(YouTubeConnection)[0]["is_active"] is True

        assert client.delete(f"/api/v1/youtube/connections/{conn['id']}", headers=_auth()).status_code == 200
        assert global_store.rows(YouTubeConnection)[0]["is_active"] is False
