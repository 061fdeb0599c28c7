"""
Instagram Graph API client for a linked Business/Creator account.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

import httpx

from clients.base import PlatformClient, load_connection, utcnow
from connectors.encryption import TokenCipher, get_cipher
from connectors.instagram import GRAPH_API, PROFILE_FIELDS, InstagramConnector
from connectors.token_manager import persist_refreshed_tokens
from database.models import InstagramConnection
from database.store import ConnectionStore, get_store

logger = logging.getLogger(__name__)

# Long-lived tokens are re-exchanged once they are this close to expiry.
REFRESH_WINDOW = timedelta(days=7)

MEDIA_FIELDS = (
    "id,caption,media_type,media_product_type,media_url,thumbnail_url,"
    "permalink,timestamp,like_count,comments_count"
)
VIDEO_METRICS = "impressions,reach,plays,saved,shares"
IMAGE_METRICS = "impressions,reach,saved"
ACCOUNT_METRICS = (
    "impressions,reach,profile_views,website_clicks,email_contacts,"
    "phone_call_clicks,get_directions_clicks"
)
AUDIENCE_METRICS = "audience_city,audience_country,audience_gender_age,audience_locale"


def _metric_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten a Graph insights response into ``{metric name: value}``.

    Lifetime metrics carry a single value; for period metrics the most
    recent value is the one that matters.
    """
    out: Dict[str, Any] = {}
    for metric in data.get("data") or []:
        values = metric.get("values") or []
        if values:
            out[metric.get("name")] = values[-1].get("value")
    return out


class InstagramClient(PlatformClient):
    platform = "instagram"

    def __init__(
        self,
        access_token: str,
        connection_id: str,
        instagram_user_id: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(access_token, connection_id, transport=transport)
        self.instagram_user_id = instagram_user_id

    @classmethod
    async def from_connection_id(
        cls,
        connection_id: str,
        *,
        store: Optional[ConnectionStore] = None,
        cipher: Optional[TokenCipher] = None,
        connector: Optional[InstagramConnector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "InstagramClient":
        """
        Load the connection, re-exchanging the long-lived token when it is
        within a week of expiry.  A failed re-exchange or token write is only
        logged: the current token is still valid and is used as-is.
        """
        store = store or get_store()
        cipher = cipher or get_cipher()
        connector = connector or InstagramConnector(transport)

        connection, access_token = await load_connection(InstagramConnection, connection_id, store, cipher)

        if connection["token_expires_at"] - utcnow() < REFRESH_WINDOW:
            try:
                tokens = await connector.refresh(access_token)
                await persist_refreshed_tokens(connector, connection_id, tokens, store=store, cipher=cipher)
                access_token = tokens.access_token
            except Exception as exc:
                logger.warning("Instagram token refresh failed for %s, using existing token: %s", connection_id, exc)

        return cls(access_token, connection_id, connection["instagram_user_id"], transport=transport)

    async def _get(self, path: str, **params: Any) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"{GRAPH_API}/{path}",
            params={**params, "access_token": self.access_token},
        )

    async def get_account_info(self) -> Dict[str, Any]:
        return await self._get(self.instagram_user_id, fields=PROFILE_FIELDS)

    async def get_content_list(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Recent media, following ``paging.next`` until ``limit`` items are collected."""
        data = await self._get(f"{self.instagram_user_id}/media", fields=MEDIA_FIELDS, limit=min(limit, 50))
        media: List[Dict[str, Any]] = list(data.get("data") or [])

        next_url = (data.get("paging") or {}).get("next")
        while next_url and len(media) < limit:
            # next links already embed the token and cursor
            data = await self._request("GET", next_url)
            media.extend(data.get("data") or [])
            next_url = (data.get("paging") or {}).get("next")

        return media[:limit]

    async def get_media_insights(self, media_id: str, media_type: Optional[str] = None) -> Dict[str, Any]:
        metrics = VIDEO_METRICS if media_type in ("VIDEO", "REELS") else IMAGE_METRICS
        return _metric_values(await self._get(f"{media_id}/insights", metric=metrics))

    async def get_account_insights(self, period: str = "days_28") -> Dict[str, Any]:
        return _metric_values(
            await self._get(f"{self.instagram_user_id}/insights", metric=ACCOUNT_METRICS, period=period)
        )

    async def get_audience_demographics(self) -> Dict[str, Any]:
        return _metric_values(
            await self._get(f"{self.instagram_user_id}/insights", metric=AUDIENCE_METRICS, period="lifetime")
        )

    async def get_online_followers(self) -> Optional[Dict[str, Any]]:
        values = _metric_values(
            await self._get(f"{self.instagram_user_id}/insights", metric="online_followers", period="lifetime")
        )
        return values.get("online_followers")
