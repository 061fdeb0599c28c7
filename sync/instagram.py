"""
Instagram sync engine — account profile, daily snapshot, recent media with
per-item insights, and a 28-day account insights snapshot.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from clients.instagram import InstagramClient
from config.settings import config
from connectors.instagram import account_profile
from database.models import (
    InstagramAccount,
    InstagramAccountSnapshot,
    InstagramConnection,
    InstagramInsightsSnapshot,
    InstagramMedia,
)
from sync.base import INSIGHTS_WINDOW_KEY, PlatformSync, SyncResult, window_bounds
from utils.parsing import parse_timestamp, to_int, truncate

logger = logging.getLogger(__name__)


def media_row(media: Dict[str, Any], metrics: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Map a media object plus its insights (None when they failed) onto ``instagram_media`` columns."""
    metrics = metrics or {}
    return {
        "media_id": media["id"],
        "media_type": media.get("media_type"),
        "media_product_type": media.get("media_product_type"),
        "caption": truncate(media.get("caption")),
        "permalink": media.get("permalink"),
        "thumbnail_url": media.get("thumbnail_url"),
        "media_url": media.get("media_url"),
        "timestamp": parse_timestamp(media.get("timestamp")),
        "like_count": to_int(media.get("like_count")),
        "comments_count": to_int(media.get("comments_count")),
        "plays_count": to_int(metrics.get("plays")),
        "reach": to_int(metrics.get("reach")),
        "saved": to_int(metrics.get("saved")),
        "shares": to_int(metrics.get("shares")),
    }


class InstagramSync(PlatformSync):
    platform = "instagram"
    client_class = InstagramClient

    connection_model = InstagramConnection
    profile_model = InstagramAccount
    snapshot_model = InstagramAccountSnapshot
    content_model = InstagramMedia

    account_key = "instagram_user_id"
    content_key = "media_id"
    snapshot_fields = ("followers_count", "follows_count", "media_count")

    def profile_values(self, info: Dict[str, Any]) -> Dict[str, Any]:
        return account_profile(info)

    def platform_account_id(self, client: InstagramClient) -> str:
        return client.instagram_user_id

    async def sync_items(self, client: InstagramClient, account_id: str, result: SyncResult) -> None:
        try:
            media_list = await client.get_content_list(limit=config.sync_max_items)
        except Exception as exc:
            result.errors.append(f"Failed to fetch media: {exc}")
            return

        media_list = [m for m in media_list if m.get("id")]
        semaphore = asyncio.Semaphore(max(1, config.sync_item_concurrency))

        async def fetch(media: Dict[str, Any]) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]], Optional[str]]:
            async with semaphore:
                try:
                    metrics = await client.get_media_insights(media["id"], media.get("media_type"))
                    return media, metrics, None
                except Exception as exc:
                    return media, None, f"Failed to fetch insights for media {media['id']}: {exc}"

        fetched = await asyncio.gather(*(fetch(m) for m in media_list))

        rows: List[Dict[str, Any]] = []
        for media, metrics, error in fetched:
            if error:
                result.errors.append(error)
            rows.append(media_row(media, metrics))
        await self._upsert_items(account_id, rows, result)

    async def sync_insights(
        self,
        client: InstagramClient,
        account_id: str,
        period_start: date,
        period_end: date,
        result: SyncResult,
    ) -> None:
        try:
            insights = await client.get_account_insights(period="days_28")
        except Exception as exc:
            result.errors.append(f"Failed to fetch account insights: {exc}")
            return

        if not insights:
            logger.info("No account insights for %s", client.instagram_user_id)
            return

        audience = await self._optional("audience demographics", client.get_audience_demographics(), result)
        online = await self._optional("online followers", client.get_online_followers(), result)
        audience = audience or {}

        try:
            await self.store.upsert(
                InstagramInsightsSnapshot,
                {
                    "account_id": account_id,
                    **window_bounds(period_start, period_end),
                    "impressions": to_int(insights.get("impressions")),
                    "reach": to_int(insights.get("reach")),
                    "profile_views": to_int(insights.get("profile_views")),
                    "website_clicks": to_int(insights.get("website_clicks")),
                    "email_contacts": to_int(insights.get("email_contacts")),
                    "phone_call_clicks": to_int(insights.get("phone_call_clicks")),
                    "get_directions_clicks": to_int(insights.get("get_directions_clicks")),
                    "audience_city_json": audience.get("audience_city"),
                    "audience_country_json": audience.get("audience_country"),
                    "audience_gender_age_json": audience.get("audience_gender_age"),
                    "audience_locale_json": audience.get("audience_locale"),
                    "online_followers_json": online,
                },
                conflict=("account_id", *INSIGHTS_WINDOW_KEY),
            )
            result.insights_synced = True
        except Exception as exc:
            result.errors.append(f"Failed to store insights: {exc}")
