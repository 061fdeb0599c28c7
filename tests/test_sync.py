"""
Tests for the sync engines: step isolation, idempotent daily snapshots and
batch tallies.
"""

import httpx
import pytest

from conftest import utc_in
from clients.youtube import YOUTUBE_ANALYTICS_API
from connectors.instagram import GRAPH_API
from database.models import (
    InstagramAccount,
    InstagramConnection,
    InstagramInsightsSnapshot,
    InstagramMedia,
    TikTokAccountSnapshot,
    TikTokConnection,
    TikTokVideo,
    YouTubeAnalyticsSnapshot,
    YouTubeChannel,
    YouTubeChannelSnapshot,
    YouTubeConnection,
    YouTubeVideo,
)
from sync.base import SyncResult, get_sync_engine
from sync.instagram import InstagramSync
from sync.tiktok import TikTokSync
from sync.youtube import YouTubeSync

YT = "https://www.googleapis.com/youtube/v3"
REPORTS = f"{YOUTUBE_ANALYTICS_API}/reports"
GOOGLE_TOKEN = "https://oauth2.googleapis.com/token"
TIKTOK = "https://open.tiktokapis.com/v2"


async def _add_youtube(store, cipher, channel_id="UC1", *, expires_at=None):
    return await store.upsert(
        YouTubeConnection,
        {
            "user_id": "user-1",
            "channel_id": channel_id,
            "access_token_encrypted": cipher.encrypt(f"at-{channel_id}"),
            "refresh_token_encrypted": cipher.encrypt(f"rt-{channel_id}"),
            "token_expires_at": expires_at or utc_in(hours=1),
            "is_active": True,
        },
        conflict=("user_id", "channel_id"),
    )


def _channel(channel_id="UC1", subscribers="100"):
    return {
        "id": channel_id,
        "snippet": {"title": "My channel", "publishedAt": "2020-01-01T00:00:00Z"},
        "statistics": {"subscriberCount": subscribers, "viewCount": "5000", "videoCount": "2"},
        "contentDetails": {"relatedPlaylists": {"uploads": f"UU{channel_id}"}},
    }


def _analytics(request):
    params = request.url.params
    dims = params.get("dimensions")
    if dims == "insightTrafficSourceType":
        return {"columnHeaders": [{"name": "insightTrafficSourceType"}, {"name": "views"}], "rows": [["YT_SEARCH", 7]]}
    if dims == "ageGroup,gender":
        return {"columnHeaders": [{"name": "ageGroup"}, {"name": "gender"}, {"name": "viewerPercentage"}],
                "rows": [["age18-24", "female", 55.0]]}
    if dims == "country":
        return {"columnHeaders": [{"name": "country"}, {"name": "views"}], "rows": [["US", 9]]}
    if params["metrics"].startswith("impressions"):
        return {"columnHeaders": [{"name": "impressions"}, {"name": "impressionClickThroughRate"}],
                "rows": [[1000, 4.5]]}
    names = params["metrics"].split(",")
    values = {"views": 20, "estimatedMinutesWatched": 60, "averageViewDuration": 180,
              "averageViewPercentage": 42.5, "estimatedRevenue": 1.23}
    return {"columnHeaders": [{"name": n} for n in names], "rows": [[values.get(n, 1) for n in names]]}


def _youtube_provider(provider, subscribers="100"):
    provider.add("GET", f"{YT}/channels", lambda r: {"items": [_channel(r.url.params["id"], subscribers)]})
    provider.add(
        "GET", f"{YT}/playlistItems",
        {"items": [{"contentDetails": {"videoId": "v1"}}, {"contentDetails": {"videoId": "v2"}}]},
    )
    provider.add(
        "GET", f"{YT}/videos",
        {
            "items": [
                {"id": "v1", "snippet": {"title": "One", "description": "x" * 6000, "tags": ["a"]},
                 "statistics": {"viewCount": "10", "likeCount": "2"}, "status": {"privacyStatus": "public"}},
                {"id": "v2", "snippet": {"title": "Two"}, "statistics": {"viewCount": "3"}},
            ]
        },
    )
    provider.add("GET", REPORTS, _analytics)


class TestSyncResult:
    def test_camel_case_response(self):
        body = SyncResult(success=True, items_synced=3, insights_synced=None).to_response()
        assert body == {
            "success": True,
            "accountUpdated": False,
            "snapshotCreated": False,
            "itemsSynced": 3,
            "insightsSynced": None,
            "errors": [],
        }

    def test_engine_lookup(self):
        assert isinstance(get_sync_engine("tiktok"), TikTokSync)
        with pytest.raises(ValueError):
            get_sync_engine("myspace")


class TestYouTubeSync:
    @pytest.mark.asyncio
    async def test_full_pass(self, store, cipher, provider):
        conn = await _add_youtube(store, cipher)
        _youtube_provider(provider)
        engine = YouTubeSync(store=store, cipher=cipher, transport=provider.transport)

        result = await engine.sync_account(conn["id"])

        assert result.errors == []
        assert result.success and result.account_updated and result.snapshot_created
        assert result.items_synced == 2
        assert result.insights_synced is True

        channel = store.rows(YouTubeChannel)[0]
        assert channel["connection_id"] == conn["id"]
        assert channel["subscriber_count"] == 100

        videos = {v["video_id"]: v for v in store.rows(YouTubeVideo)}
        assert videos["v1"]["channel_id"] == channel["id"]
        assert len(videos["v1"]["description"]) == 5000
        assert videos["v1"]["view_count"] == 10

        analytics = store.rows(YouTubeAnalyticsSnapshot)[0]
        assert analytics["views"] == 20
        assert analytics["impressions"] == 1000
        assert analytics["click_through_rate"] == 4.5
        assert analytics["estimated_revenue_cents"] == 123
        assert (analytics["period_end"] - analytics["period_start"]).days == 28
        assert analytics["geography_json"] == {"headers": ["country", "views"], "data": [["US", 9]]}

        assert store.rows(YouTubeConnection)[0]["last_sync_at"] is not None

    @pytest.mark.asyncio
    async def test_same_day_resync_overwrites_snapshot(self, store, cipher, provider):
        conn = await _add_youtube(store, cipher)
        engine = YouTubeSync(store=store, cipher=cipher, transport=provider.transport)

        _youtube_provider(provider, subscribers="100")
        await engine.sync_account(conn["id"])
        _youtube_provider(provider, subscribers="150")
        await engine.sync_account(conn["id"])

        snapshots = store.rows(YouTubeChannelSnapshot)
        assert len(snapshots) == 1
        assert snapshots[0]["subscriber_count"] == 150
        assert len(store.rows(YouTubeVideo)) == 2
        assert len(store.rows(YouTubeAnalyticsSnapshot)) == 1

    @pytest.mark.asyncio
    async def test_failed_dimension_recorded_and_stored_as_null(self, store, cipher, provider):
        conn = await _add_youtube(store, cipher)
        _youtube_provider(provider)

        def analytics(request):
            if request.url.params.get("dimensions") == "country":
                return httpx.Response(400, json={"error": {"message": "Invalid dimension"}})
            return _analytics(request)

        provider.add("GET", REPORTS, analytics)
        result = await YouTubeSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])

        assert result.success is False
        assert result.insights_synced is True
        assert any("geography" in e for e in result.errors)
        assert store.rows(YouTubeAnalyticsSnapshot)[0]["geography_json"] is None

    @pytest.mark.asyncio
    async def test_empty_analytics_writes_no_snapshot(self, store, cipher, provider):
        conn = await _add_youtube(store, cipher)
        _youtube_provider(provider)
        provider.add("GET", REPORTS, {"columnHeaders": [{"name": "views"}], "rows": []})

        result = await YouTubeSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])

        assert result.success is True
        assert result.insights_synced is False
        assert store.rows(YouTubeAnalyticsSnapshot) == []

    @pytest.mark.asyncio
    async def test_unresolvable_client_aborts_pass(self, store, cipher, provider):
        result = await YouTubeSync(store=store, cipher=cipher, transport=provider.transport).sync_account("missing")

        assert result.success is False
        assert result.errors == ["Sync failed: Connection not found"]
        assert not result.account_updated
        assert provider.requests == []

    @pytest.mark.asyncio
    async def test_failed_item_upsert_does_not_stop_others(self, store, cipher, provider):
        conn = await _add_youtube(store, cipher)
        _youtube_provider(provider)
        store.fail_upsert = lambda model, values: model is YouTubeVideo and values.get("video_id") == "v1"

        result = await YouTubeSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])

        assert result.items_synced == 1
        assert result.snapshot_created is True
        assert any("v1" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_profile_failure_falls_back_to_existing_row(self, store, cipher, provider):
        conn = await _add_youtube(store, cipher)
        existing = await store.upsert(
            YouTubeChannel, {"connection_id": conn["id"], "channel_id": "UC1"}, conflict=("connection_id",),
        )
        _youtube_provider(provider)
        provider.add("GET", f"{YT}/channels", httpx.Response(500, json={"error": {"message": "Backend Error"}}))

        result = await YouTubeSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])

        assert result.account_updated is False
        assert result.snapshot_created is False
        assert result.success is False
        # uploads playlist cannot be looked up without channel info
        assert result.items_synced == 0
        assert result.insights_synced is True
        assert store.rows(YouTubeAnalyticsSnapshot)[0]["channel_id"] == existing["id"]

    @pytest.mark.asyncio
    async def test_sync_all_counts_failures(self, store, cipher, provider, credentials):
        await _add_youtube(store, cipher, "UC1")
        await _add_youtube(store, cipher, "UC2", expires_at=utc_in(hours=-1))
        await _add_youtube(store, cipher, "UC3")
        _youtube_provider(provider)
        provider.add("POST", GOOGLE_TOKEN, httpx.Response(400, json={"error": "invalid_grant"}))

        tallies = await YouTubeSync(store=store, cipher=cipher, transport=provider.transport).sync_all_accounts()

        assert tallies == {"synced": 2, "failed": 1}
        assert len(store.rows(YouTubeChannel)) == 2


class TestInstagramSync:
    async def _setup(self, store, cipher, provider, failing_media="m2"):
        conn = await store.upsert(
            InstagramConnection,
            {
                "user_id": "user-1",
                "instagram_user_id": "ig-1",
                "access_token_encrypted": cipher.encrypt("tok"),
                "token_expires_at": utc_in(days=50),
                "is_active": True,
            },
            conflict=("user_id", "instagram_user_id"),
        )
        provider.add(
            "GET", f"{GRAPH_API}/ig-1",
            {"id": "ig-1", "username": "creator", "followers_count": 900, "follows_count": 10, "media_count": 3},
        )
        provider.add(
            "GET", f"{GRAPH_API}/ig-1/media",
            {
                "data": [
                    {"id": "m1", "media_type": "IMAGE", "caption": "hi", "like_count": 5,
                     "timestamp": "2024-03-01T12:00:00+0000"},
                    {"id": "m2", "media_type": "VIDEO", "like_count": 8},
                    {"id": "m3", "media_type": "REELS", "like_count": 1},
                ]
            },
        )
        for media_id in ("m1", "m2", "m3"):
            if media_id == failing_media:
                response = httpx.Response(400, json={"error": {"message": "Media posted before business conversion"}})
            else:
                response = {"data": [
                    {"name": "reach", "values": [{"value": 50}]},
                    {"name": "saved", "values": [{"value": 2}]},
                    {"name": "plays", "values": [{"value": 70}]},
                ]}
            provider.add("GET", f"{GRAPH_API}/{media_id}/insights", response)

        def account_insights(request):
            metric = request.url.params["metric"]
            if metric == "online_followers":
                return {"data": [{"name": "online_followers", "values": [{"value": {"0": 5, "1": 7}}]}]}
            if metric.startswith("audience"):
                return {"data": [{"name": "audience_country", "values": [{"value": {"US": 300}}]}]}
            return {"data": [
                {"name": "impressions", "values": [{"value": 1000}]},
                {"name": "reach", "values": [{"value": 800}]},
                {"name": "profile_views", "values": [{"value": 40}]},
            ]}

        provider.add("GET", f"{GRAPH_API}/ig-1/insights", account_insights)
        return conn

    @pytest.mark.asyncio
    async def test_failed_media_insights_keeps_item(self, store, cipher, provider):
        conn = await self._setup(store, cipher, provider)
        result = await InstagramSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])

        assert result.items_synced == 3
        assert result.success is False
        assert len(result.errors) == 1
        assert "m2" in result.errors[0]

        media = {m["media_id"]: m for m in store.rows(InstagramMedia)}
        assert media["m2"]["reach"] is None
        assert media["m2"]["like_count"] == 8
        assert media["m3"]["plays_count"] == 70
        assert media["m1"]["timestamp"].year == 2024

        account = store.rows(InstagramAccount)[0]
        assert media["m1"]["account_id"] == account["id"]

    @pytest.mark.asyncio
    async def test_insights_snapshot(self, store, cipher, provider):
        conn = await self._setup(store, cipher, provider, failing_media=None)
        result = await InstagramSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])

        assert result.success is True
        assert result.insights_synced is True
        insights = store.rows(InstagramInsightsSnapshot)[0]
        assert insights["impressions"] == 1000
        assert insights["profile_views"] == 40
        assert insights["audience_country_json"] == {"US": 300}
        assert insights["audience_city_json"] is None
        assert insights["online_followers_json"] == {"0": 5, "1": 7}

    @pytest.mark.asyncio
    async def test_media_insights_bounded_concurrency(self, store, cipher, provider, monkeypatch):
        from config.settings import config

        monkeypatch.setattr(config, "sync_item_concurrency", 1)
        conn = await self._setup(store, cipher, provider, failing_media=None)
        result = await InstagramSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])
        assert result.items_synced == 3


class TestTikTokSync:
    @pytest.mark.asyncio
    async def test_pass_without_insights(self, store, cipher, provider):
        conn = await store.upsert(
            TikTokConnection,
            {
                "user_id": "user-1",
                "tiktok_open_id": "open-1",
                "access_token_encrypted": cipher.encrypt("act"),
                "refresh_token_encrypted": cipher.encrypt("rft"),
                "token_expires_at": utc_in(hours=5),
                "refresh_token_expires_at": utc_in(days=200),
                "is_active": True,
            },
            conflict=("user_id", "tiktok_open_id"),
        )
        provider.add(
            "GET", f"{TIKTOK}/user/info/",
            {"data": {"user": {"open_id": "open-1", "display_name": "Dancer", "follower_count": 77,
                               "likes_count": 1000, "video_count": 2}},
             "error": {"code": "ok", "message": ""}},
        )
        provider.add(
            "POST", f"{TIKTOK}/video/list/",
            {"data": {"videos": [
                {"id": "7001", "title": "first", "create_time": 1700000000, "view_count": 500},
                {"id": "7002", "title": "second", "create_time": 1700100000, "view_count": 20},
            ], "cursor": 1700000000000, "has_more": False},
             "error": {"code": "ok", "message": ""}},
        )

        result = await TikTokSync(store=store, cipher=cipher, transport=provider.transport).sync_account(conn["id"])

        assert result.success is True
        assert result.insights_synced is None
        assert result.items_synced == 2
        assert store.rows(TikTokAccountSnapshot)[0]["follower_count"] == 77
        videos = {v["video_id"]: v for v in store.rows(TikTokVideo)}
        assert videos["7001"]["view_count"] == 500
        assert videos["7001"]["create_time"].year == 2023


class TestBackgroundSync:
    @pytest.mark.asyncio
    async def test_scheduled_task_runs_and_is_released(self, store, cipher, provider, monkeypatch):
        from sync import background

        seen = []

        class Engine:
            async def sync_account(self, connection_id):
                seen.append(connection_id)
                return SyncResult(success=True)

        monkeypatch.setattr(background, "get_sync_engine", lambda platform, **kwargs: Engine())

        task = background.schedule_sync("youtube", "conn-1")
        assert task in background._pending
        await task

        assert seen == ["conn-1"]
        assert task not in background._pending

    @pytest.mark.asyncio
    async def test_crash_is_logged_not_raised(self, monkeypatch, caplog):
        from sync import background

        class Engine:
            async def sync_account(self, connection_id):
                raise RuntimeError("provider down")

        monkeypatch.setattr(background, "get_sync_engine", lambda platform, **kwargs: Engine())

        with caplog.at_level("ERROR", logger="sync.background"):
            await background.schedule_sync("tiktok", "conn-2")

        assert "Initial tiktok sync crashed" in caplog.text
