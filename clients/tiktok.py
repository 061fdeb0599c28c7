"""
TikTok Display API v2 client.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from clients.base import PlatformClient, load_connection, utcnow
from connectors.encryption import TokenCipher, get_cipher
from connectors.errors import IntegrationError, ReconnectRequired
from connectors.tiktok import TIKTOK_API, USER_FIELDS, TikTokConnector
from connectors.token_manager import persist_refreshed_tokens
from database.models import TikTokConnection
from database.store import ConnectionStore, get_store

logger = logging.getLogger(__name__)

VIDEO_FIELDS = [
    "id",
    "title",
    "video_description",
    "create_time",
    "cover_image_url",
    "share_url",
    "embed_link",
    "duration",
    "width",
    "height",
    "view_count",
    "like_count",
    "comment_count",
    "share_count",
]

# Upper bound the video/list endpoint accepts per page.
MAX_PAGE_SIZE = 20


class TikTokClient(PlatformClient):
    platform = "tiktok"

    def __init__(
        self,
        access_token: str,
        connection_id: str,
        open_id: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(access_token, connection_id, transport=transport)
        self.open_id = open_id

    @classmethod
    async def from_connection_id(
        cls,
        connection_id: str,
        *,
        store: Optional[ConnectionStore] = None,
        cipher: Optional[TokenCipher] = None,
        connector: Optional[TikTokConnector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "TikTokClient":
        """
        Load the connection and refresh an expired access token.

        TikTok rotates the refresh token on every refresh, so the new pair
        and both expiries are written back before the client is returned.
        """
        store = store or get_store()
        cipher = cipher or get_cipher()
        connector = connector or TikTokConnector(transport)

        connection, access_token = await load_connection(TikTokConnection, connection_id, store, cipher)

        now = utcnow()
        if connection["token_expires_at"] <= now:
            refresh_expiry = connection.get("refresh_token_expires_at")
            if refresh_expiry is not None and refresh_expiry <= now:
                raise ReconnectRequired("tiktok", "Refresh token expired")
            try:
                tokens = await connector.refresh(cipher.decrypt(connection["refresh_token_encrypted"]))
            except (IntegrationError, KeyError) as exc:
                logger.warning("TikTok token refresh failed for %s: %s", connection_id, exc)
                raise ReconnectRequired("tiktok", "Failed to refresh token") from exc

            await persist_refreshed_tokens(connector, connection_id, tokens, store=store, cipher=cipher)
            access_token = tokens.access_token

        return cls(access_token, connection_id, connection["tiktok_open_id"], transport=transport)

    def _auth(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def get_account_info(self) -> Dict[str, Any]:
        data = await self._request(
            "GET",
            f"{TIKTOK_API}/user/info/",
            params={"fields": ",".join(USER_FIELDS)},
            headers=self._auth(),
        )
        return (data.get("data") or {}).get("user") or {}

    async def get_videos(self, max_count: int = 20, cursor: Optional[int] = None) -> Dict[str, Any]:
        """
        One page of the user's public videos.

        Returns the raw ``data`` object: ``videos``, ``cursor`` and ``has_more``.
        """
        body: Dict[str, Any] = {"max_count": min(max_count, MAX_PAGE_SIZE)}
        if cursor is not None:
            body["cursor"] = cursor
        data = await self._request(
            "POST",
            f"{TIKTOK_API}/video/list/",
            params={"fields": ",".join(VIDEO_FIELDS)},
            json=body,
            headers=self._auth(),
        )
        return data.get("data") or {}

    async def get_content_list(self, limit: int = 100) -> List[Dict[str, Any]]:
        videos: List[Dict[str, Any]] = []
        cursor: Optional[int] = None
        while len(videos) < limit:
            page = await self.get_videos(max_count=min(MAX_PAGE_SIZE, limit - len(videos)), cursor=cursor)
            videos.extend(page.get("videos") or [])

            next_cursor = page.get("cursor")
            if not page.get("has_more") or next_cursor is None or next_cursor == cursor:
                break
            cursor = next_cursor

        return videos[:limit]
