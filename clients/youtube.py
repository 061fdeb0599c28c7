"""
YouTube Data API v3 + YouTube Analytics API v2 client.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from clients.base import PlatformClient, load_connection, utcnow
from connectors.encryption import TokenCipher, get_cipher
from connectors.errors import IntegrationError, ProviderError, ReconnectRequired
from connectors.token_manager import persist_refreshed_tokens
from connectors.youtube import YOUTUBE_API, YouTubeConnector
from database.models import YouTubeConnection
from database.store import ConnectionStore, get_store

logger = logging.getLogger(__name__)

YOUTUBE_ANALYTICS_API = "https://youtubeanalytics.googleapis.com/v2"

PAGE_SIZE = 50

BASE_METRICS = [
    "views",
    "estimatedMinutesWatched",
    "averageViewDuration",
    "averageViewPercentage",
    "subscribersGained",
    "subscribersLost",
    "likes",
    "comments",
    "shares",
]
REVENUE_METRICS = ["estimatedRevenue", "cpm"]


class AnalyticsReport(BaseModel):
    """
    A YouTube Analytics ``reports.query`` result.

    The API returns column headers plus positional rows; ``records`` holds
    each row as a metric-name → value mapping, built once on parse.
    """

    headers: List[str] = Field(default_factory=list)
    rows: List[List[Any]] = Field(default_factory=list)
    records: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> "AnalyticsReport":
        headers = [h.get("name") for h in data.get("columnHeaders") or []]
        rows = data.get("rows") or []
        return cls(
            headers=headers,
            rows=rows,
            records=[dict(zip(headers, row)) for row in rows],
        )

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def totals(self) -> Dict[str, Any]:
        """First row as a mapping (the whole-period totals for undimensioned queries)."""
        return self.records[0] if self.records else {}

    def to_json(self) -> Optional[Dict[str, Any]]:
        if self.is_empty:
            return None
        return {"headers": self.headers, "data": self.rows}


class YouTubeClient(PlatformClient):
    platform = "youtube"

    def __init__(
        self,
        access_token: str,
        connection_id: str,
        channel_id: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(access_token, connection_id, transport=transport)
        self.channel_id = channel_id

    @classmethod
    async def from_connection_id(
        cls,
        connection_id: str,
        *,
        store: Optional[ConnectionStore] = None,
        cipher: Optional[TokenCipher] = None,
        connector: Optional[YouTubeConnector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "YouTubeClient":
        """
        Load the connection and refresh its access token if it has expired.

        Raises ``ReconnectRequired`` when the refresh fails; there is no
        other way to obtain a usable token.
        """
        store = store or get_store()
        cipher = cipher or get_cipher()
        connector = connector or YouTubeConnector(transport)

        connection, access_token = await load_connection(YouTubeConnection, connection_id, store, cipher)

        if connection["token_expires_at"] <= utcnow():
            if not connection.get("refresh_token_encrypted"):
                raise ReconnectRequired("youtube", "Access token expired and no refresh token is stored")
            try:
                tokens = await connector.refresh(cipher.decrypt(connection["refresh_token_encrypted"]))
            except (IntegrationError, KeyError) as exc:
                logger.warning("YouTube token refresh failed for %s: %s", connection_id, exc)
                raise ReconnectRequired("youtube", "Failed to refresh token") from exc

            await persist_refreshed_tokens(connector, connection_id, tokens, store=store, cipher=cipher)
            access_token = tokens.access_token

        return cls(access_token, connection_id, connection["channel_id"], transport=transport)

    def _auth(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    # ── Data API ────────────────────────────────────────────────────────

    async def get_account_info(self) -> Dict[str, Any]:
        data = await self._request(
            "GET",
            f"{YOUTUBE_API}/channels",
            params={
                "part": "snippet,statistics,brandingSettings,contentDetails",
                "id": self.channel_id,
            },
            headers=self._auth(),
        )
        items = data.get("items") or []
        if not items:
            raise ProviderError(self.platform, "Failed to fetch channel info")
        return items[0]

    async def get_content_list(
        self,
        limit: int = 100,
        uploads_playlist_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Walk the channel's uploads playlist and return full video resources
        (snippet, statistics, contentDetails, status), newest first.
        """
        if not uploads_playlist_id:
            channel = await self.get_account_info()
            uploads_playlist_id = (
                ((channel.get("contentDetails") or {}).get("relatedPlaylists") or {}).get("uploads")
            )
        if not uploads_playlist_id:
            raise ProviderError(self.platform, "Could not find uploads playlist")

        videos: List[Dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params = {
                "part": "snippet,contentDetails",
                "playlistId": uploads_playlist_id,
                "maxResults": min(limit, PAGE_SIZE),
            }
            if page_token:
                params["pageToken"] = page_token
            page = await self._request(
                "GET", f"{YOUTUBE_API}/playlistItems", params=params, headers=self._auth(),
            )

            video_ids = [
                vid
                for vid in ((item.get("contentDetails") or {}).get("videoId") for item in page.get("items") or [])
                if vid
            ]
            if video_ids:
                details = await self._request(
                    "GET",
                    f"{YOUTUBE_API}/videos",
                    params={"part": "snippet,statistics,contentDetails,status", "id": ",".join(video_ids)},
                    headers=self._auth(),
                )
                videos.extend(details.get("items") or [])

            page_token = page.get("nextPageToken")
            if not page_token or len(videos) >= limit:
                break

        return videos[:limit]

    # ── Analytics API ───────────────────────────────────────────────────

    async def _report(self, start: date, end: date, metrics: str, **extra: Any) -> AnalyticsReport:
        params = {
            "ids": f"channel=={self.channel_id}",
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "metrics": metrics,
            **extra,
        }
        data = await self._request(
            "GET", f"{YOUTUBE_ANALYTICS_API}/reports", params=params, headers=self._auth(),
        )
        return AnalyticsReport.from_response(data)

    async def get_channel_analytics(self, start: date, end: date) -> AnalyticsReport:
        """
        Whole-window channel totals, including revenue when the channel is
        monetised.  Revenue metrics are rejected for other channels, in which
        case the query is repeated without them.
        """
        try:
            return await self._report(start, end, ",".join(BASE_METRICS + REVENUE_METRICS))
        except ProviderError as exc:
            logger.info("Revenue analytics unavailable for %s, retrying without revenue: %s", self.channel_id, exc)
        return await self._report(start, end, ",".join(BASE_METRICS))

    async def get_traffic_sources(self, start: date, end: date) -> AnalyticsReport:
        return await self._report(
            start, end, "views,estimatedMinutesWatched",
            dimensions="insightTrafficSourceType", sort="-views",
        )

    async def get_demographics(self, start: date, end: date) -> AnalyticsReport:
        return await self._report(
            start, end, "viewerPercentage",
            dimensions="ageGroup,gender", sort="-viewerPercentage",
        )

    async def get_geography(self, start: date, end: date) -> AnalyticsReport:
        return await self._report(
            start, end, "views,estimatedMinutesWatched",
            dimensions="country", sort="-views", maxResults=25,
        )

    async def get_impression_metrics(self, start: date, end: date) -> AnalyticsReport:
        return await self._report(start, end, "impressions,impressionClickThroughRate")
