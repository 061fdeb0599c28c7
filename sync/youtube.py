"""
YouTube sync engine — channel profile, daily snapshot, uploads and a
28-day analytics snapshot.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from clients.youtube import AnalyticsReport, YouTubeClient
from config.settings import config
from connectors.youtube import channel_profile
from database.models import (
    YouTubeAnalyticsSnapshot,
    YouTubeChannel,
    YouTubeChannelSnapshot,
    YouTubeConnection,
    YouTubeVideo,
)
from sync.base import INSIGHTS_WINDOW_KEY, PlatformSync, SyncResult, window_bounds
from utils.parsing import parse_timestamp, to_float, to_int, truncate

logger = logging.getLogger(__name__)


def video_row(video: Dict[str, Any]) -> Dict[str, Any]:
    """Map a ``videos.list`` item onto ``youtube_videos`` columns."""
    snippet = video.get("snippet") or {}
    stats = video.get("statistics") or {}
    thumbnails = snippet.get("thumbnails") or {}
    thumbnail = thumbnails.get("high") or thumbnails.get("medium") or thumbnails.get("default") or {}
    return {
        "video_id": video["id"],
        "title": snippet.get("title"),
        "description": truncate(snippet.get("description")),
        "published_at": parse_timestamp(snippet.get("publishedAt")),
        "thumbnail_url": thumbnail.get("url"),
        "duration": (video.get("contentDetails") or {}).get("duration"),
        "privacy_status": (video.get("status") or {}).get("privacyStatus"),
        "tags": snippet.get("tags") or [],
        "view_count": to_int(stats.get("viewCount"), 0),
        "like_count": to_int(stats.get("likeCount"), 0),
        "comment_count": to_int(stats.get("commentCount"), 0),
    }


def _revenue_cents(value: Any) -> Optional[int]:
    amount = to_float(value)
    return round(amount * 100) if amount is not None else None


def _report_json(report: Optional[AnalyticsReport]) -> Optional[Dict[str, Any]]:
    return report.to_json() if report is not None else None


class YouTubeSync(PlatformSync):
    platform = "youtube"
    client_class = YouTubeClient

    connection_model = YouTubeConnection
    profile_model = YouTubeChannel
    snapshot_model = YouTubeChannelSnapshot
    content_model = YouTubeVideo

    account_key = "channel_id"
    account_column = "channel_id"
    content_key = "video_id"
    snapshot_fields = ("subscriber_count", "view_count", "video_count")

    def profile_values(self, info: Dict[str, Any]) -> Dict[str, Any]:
        return channel_profile(info)

    def platform_account_id(self, client: YouTubeClient) -> str:
        return client.channel_id

    async def sync_items(self, client: YouTubeClient, account_id: str, result: SyncResult) -> None:
        try:
            videos = await client.get_content_list(limit=config.sync_max_items)
        except Exception as exc:
            result.errors.append(f"Failed to fetch videos: {exc}")
            return

        rows = []
        for video in videos:
            if video.get("id"):
                rows.append(video_row(video))
        await self._upsert_items(account_id, rows, result)

    async def sync_insights(
        self,
        client: YouTubeClient,
        account_id: str,
        period_start: date,
        period_end: date,
        result: SyncResult,
    ) -> None:
        try:
            report = await client.get_channel_analytics(period_start, period_end)
        except Exception as exc:
            result.errors.append(f"Failed to fetch channel analytics: {exc}")
            return

        if report.is_empty:
            logger.info("No analytics data for channel %s in %s..%s", client.channel_id, period_start, period_end)
            return

        traffic = await self._optional(
            "traffic sources", client.get_traffic_sources(period_start, period_end), result,
        )
        demographics = await self._optional(
            "demographics", client.get_demographics(period_start, period_end), result,
        )
        geography = await self._optional(
            "geography", client.get_geography(period_start, period_end), result,
        )
        impressions = await self._optional(
            "impressions", client.get_impression_metrics(period_start, period_end), result,
        )

        totals = report.totals
        reach = impressions.totals if impressions is not None else {}

        try:
            await self.store.upsert(
                YouTubeAnalyticsSnapshot,
                {
                    "channel_id": account_id,
                    **window_bounds(period_start, period_end),
                    "views": to_int(totals.get("views")),
                    "watch_time_minutes": to_int(totals.get("estimatedMinutesWatched")),
                    "average_view_duration_seconds": to_float(totals.get("averageViewDuration")),
                    "average_view_percentage": to_float(totals.get("averageViewPercentage")),
                    "impressions": to_int(reach.get("impressions")),
                    "click_through_rate": to_float(reach.get("impressionClickThroughRate")),
                    "subscribers_gained": to_int(totals.get("subscribersGained")),
                    "subscribers_lost": to_int(totals.get("subscribersLost")),
                    "likes": to_int(totals.get("likes")),
                    "comments": to_int(totals.get("comments")),
                    "shares": to_int(totals.get("shares")),
                    "estimated_revenue_cents": _revenue_cents(totals.get("estimatedRevenue")),
                    "demographics_json": _report_json(demographics),
                    "traffic_sources_json": _report_json(traffic),
                    "geography_json": _report_json(geography),
                },
                conflict=("channel_id", *INSIGHTS_WINDOW_KEY),
            )
            result.insights_synced = True
        except Exception as exc:
            result.errors.append(f"Failed to store analytics: {exc}")
