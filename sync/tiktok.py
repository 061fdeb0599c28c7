"""
TikTok sync engine — user profile, daily snapshot and public videos.

The Display API exposes no account-level insights, so the pass has no
insights step and ``SyncResult.insights_synced`` is always None.
"""

from __future__ import annotations

from typing import Any, Dict

from clients.tiktok import TikTokClient
from config.settings import config
from connectors.tiktok import user_profile
from database.models import TikTokAccount, TikTokAccountSnapshot, TikTokConnection, TikTokVideo
from sync.base import PlatformSync, SyncResult
from utils.parsing import parse_timestamp, to_int, truncate


def video_row(video: Dict[str, Any]) -> Dict[str, Any]:
    """Map a ``video/list`` item onto ``tiktok_videos`` columns."""
    return {
        "video_id": str(video["id"]),
        "title": video.get("title"),
        "description": truncate(video.get("video_description")),
        "create_time": parse_timestamp(video.get("create_time")),
        "cover_image_url": video.get("cover_image_url"),
        "share_url": video.get("share_url"),
        "embed_link": video.get("embed_link"),
        "duration": to_int(video.get("duration")),
        "width": to_int(video.get("width")),
        "height": to_int(video.get("height")),
        "view_count": to_int(video.get("view_count")),
        "like_count": to_int(video.get("like_count")),
        "comment_count": to_int(video.get("comment_count")),
        "share_count": to_int(video.get("share_count")),
    }


class TikTokSync(PlatformSync):
    platform = "tiktok"
    client_class = TikTokClient

    connection_model = TikTokConnection
    profile_model = TikTokAccount
    snapshot_model = TikTokAccountSnapshot
    content_model = TikTokVideo

    account_key = "tiktok_open_id"
    content_key = "video_id"
    snapshot_fields = ("follower_count", "following_count", "likes_count", "video_count")
    has_insights = False

    def profile_values(self, info: Dict[str, Any]) -> Dict[str, Any]:
        return user_profile(info)

    def platform_account_id(self, client: TikTokClient) -> str:
        return client.open_id

    async def sync_items(self, client: TikTokClient, account_id: str, result: SyncResult) -> None:
        try:
            videos = await client.get_content_list(limit=config.sync_max_items)
        except Exception as exc:
            result.errors.append(f"Failed to fetch videos: {exc}")
            return

        await self._upsert_items(account_id, [video_row(v) for v in videos if v.get("id")], result)
