"""
YouTubeConnector — Google OAuth2 web flow for YouTube Data + Analytics.

Access tokens live one hour; the refresh token (requested with
``access_type=offline`` + ``prompt=consent``) is stored alongside and used
whenever the access token has expired.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from config.settings import config
from connectors.base import BaseConnector
from connectors.errors import ProviderError
from connectors.http import provider_request
from connectors.schemas import OAuthTokens, ResolvedAccount
from database.models import YouTubeChannel, YouTubeConnection
from utils.parsing import parse_timestamp, to_int

# Google OAuth2 endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
YOUTUBE_API = "https://www.googleapis.com/youtube/v3"


def channel_profile(channel: Dict[str, Any]) -> Dict[str, Any]:
    """Map a ``channels.list`` item onto ``youtube_channels`` columns."""
    snippet = channel.get("snippet") or {}
    stats = channel.get("statistics") or {}
    thumbnails = snippet.get("thumbnails") or {}
    branding = (channel.get("brandingSettings") or {}).get("image") or {}
    return {
        "title": snippet.get("title"),
        "description": snippet.get("description"),
        "custom_url": snippet.get("customUrl"),
        "published_at": parse_timestamp(snippet.get("publishedAt")),
        "thumbnail_url": (thumbnails.get("high") or {}).get("url"),
        "banner_url": branding.get("bannerExternalUrl"),
        "country": snippet.get("country"),
        "subscriber_count": to_int(stats.get("subscriberCount"), 0),
        "view_count": to_int(stats.get("viewCount"), 0),
        "video_count": to_int(stats.get("videoCount"), 0),
    }


class YouTubeConnector(BaseConnector):
    """OAuth2 connector for YouTube."""

    @property
    def platform(self) -> str:
        return "youtube"

    @property
    def display_name(self) -> str:
        return "YouTube"

    @property
    def scopes(self) -> List[str]:
        return [
            "https://www.googleapis.com/auth/youtube.readonly",
            "https://www.googleapis.com/auth/yt-analytics.readonly",
        ]

    @property
    def connection_model(self):
        return YouTubeConnection

    @property
    def profile_model(self):
        return YouTubeChannel

    @property
    def account_key(self) -> str:
        return "channel_id"

    def get_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        params = {
            "client_id": config.google_client_id,
            "redirect_uri": self.redirect_uri(),
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{_GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> OAuthTokens:
        async with self._http() as client:
            data = await provider_request(
                client,
                self.platform,
                "POST",
                _GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": config.google_client_id,
                    "client_secret": config.google_client_secret,
                    "redirect_uri": self.redirect_uri(),
                    "grant_type": "authorization_code",
                },
            )

        if not data.get("access_token") or not data.get("refresh_token"):
            raise ProviderError(self.platform, "Missing tokens in response")

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_in=data.get("expires_in", 3600),
            scopes=data.get("scope", "").split(),
            token_type=data.get("token_type", "Bearer"),
        )

    async def refresh(self, token: str) -> OAuthTokens:
        """Use the refresh token to get a new access token."""
        async with self._http() as client:
            data = await provider_request(
                client,
                self.platform,
                "POST",
                _GOOGLE_TOKEN_URL,
                data={
                    "client_id": config.google_client_id,
                    "client_secret": config.google_client_secret,
                    "refresh_token": token,
                    "grant_type": "refresh_token",
                },
            )

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in", 3600),
            scopes=data.get("scope", "").split(),
        )

    async def resolve_account(self, access_token: str, tokens: Optional[OAuthTokens] = None) -> ResolvedAccount:
        """Fetch the authorised user's own channel."""
        async with self._http() as client:
            data = await provider_request(
                client,
                self.platform,
                "GET",
                f"{YOUTUBE_API}/channels",
                params={"part": "snippet,statistics,brandingSettings", "mine": "true"},
                headers={"Authorization": f"Bearer {access_token}"},
            )

        items = data.get("items") or []
        if not items or not items[0].get("id"):
            raise ProviderError(self.platform, "No channel found for this account")

        channel = items[0]
        return ResolvedAccount(account_id=channel["id"], profile=channel_profile(channel))
