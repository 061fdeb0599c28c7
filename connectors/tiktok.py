"""
TikTokConnector — TikTok Login Kit v2 with PKCE.

Access tokens last 24h; refresh tokens last a year and are rotated on
every refresh, so both tokens and both expiries are persisted.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from config.settings import config
from connectors.base import BaseConnector
from connectors.errors import ProviderError
from connectors.http import provider_request
from connectors.schemas import OAuthTokens, ResolvedAccount
from database.models import TikTokAccount, TikTokConnection
from utils.parsing import to_int

_TIKTOK_AUTH_URL = "https://www.tiktok.com/v2/auth/authorize/"
_TIKTOK_TOKEN_URL = "https://open.tiktokapis.com/v2/oauth/token/"
TIKTOK_API = "https://open.tiktokapis.com/v2"

USER_FIELDS = [
    "open_id",
    "union_id",
    "avatar_url",
    "avatar_url_100",
    "avatar_large_url",
    "display_name",
    "bio_description",
    "profile_deep_link",
    "username",
    "follower_count",
    "following_count",
    "likes_count",
    "video_count",
    "is_verified",
]


def user_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    """Map a ``user/info`` object onto ``tiktok_accounts`` columns."""
    return {
        "union_id": user.get("union_id"),
        "username": user.get("username"),
        "display_name": user.get("display_name"),
        "bio_description": user.get("bio_description"),
        "avatar_url": user.get("avatar_url"),
        "avatar_large_url": user.get("avatar_large_url"),
        "profile_deep_link": user.get("profile_deep_link"),
        "follower_count": to_int(user.get("follower_count")),
        "following_count": to_int(user.get("following_count")),
        "likes_count": to_int(user.get("likes_count")),
        "video_count": to_int(user.get("video_count")),
        "is_verified": user.get("is_verified"),
    }


class TikTokConnector(BaseConnector):
    """OAuth2 + PKCE connector for TikTok."""

    uses_pkce = True

    @property
    def platform(self) -> str:
        return "tiktok"

    @property
    def display_name(self) -> str:
        return "TikTok"

    @property
    def scopes(self) -> List[str]:
        return ["user.info.basic", "user.info.profile", "user.info.stats", "video.list"]

    @property
    def connection_model(self):
        return TikTokConnection

    @property
    def profile_model(self):
        return TikTokAccount

    @property
    def account_key(self) -> str:
        return "tiktok_open_id"

    def get_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        if not code_challenge:
            raise ValueError("TikTok authorization requires a PKCE code challenge")
        params = {
            "client_key": config.tiktok_client_key,
            "redirect_uri": self.redirect_uri(),
            "scope": ",".join(self.scopes),
            "response_type": "code",
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{_TIKTOK_AUTH_URL}?{urlencode(params)}"

    async def _token_request(self, form: Dict[str, str]) -> OAuthTokens:
        async with self._http() as client:
            data = await provider_request(
                client,
                self.platform,
                "POST",
                _TIKTOK_TOKEN_URL,
                data={
                    "client_key": config.tiktok_client_key,
                    "client_secret": config.tiktok_client_secret,
                    **form,
                },
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )

        if not data.get("access_token"):
            raise ProviderError(self.platform, "Missing tokens in response")

        return OAuthTokens(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token"),
            expires_in=data.get("expires_in", 86400),
            refresh_expires_in=data.get("refresh_expires_in"),
            scopes=[s for s in (data.get("scope") or "").split(",") if s],
            token_type=data.get("token_type", "Bearer"),
            account_id=data.get("open_id"),
        )

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> OAuthTokens:
        if not code_verifier:
            raise ValueError("TikTok code exchange requires the PKCE code verifier")
        return await self._token_request(
            {
                "code": code,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri(),
                "code_verifier": code_verifier,
            }
        )

    async def refresh(self, token: str) -> OAuthTokens:
        return await self._token_request({"refresh_token": token, "grant_type": "refresh_token"})

    async def fetch_user_info(self, access_token: str) -> Dict[str, Any]:
        async with self._http() as client:
            data = await provider_request(
                client,
                self.platform,
                "GET",
                f"{TIKTOK_API}/user/info/",
                params={"fields": ",".join(USER_FIELDS)},
                headers={"Authorization": f"Bearer {access_token}"},
            )
        return (data.get("data") or {}).get("user") or {}

    async def resolve_account(self, access_token: str, tokens: Optional[OAuthTokens] = None) -> ResolvedAccount:
        user = await self.fetch_user_info(access_token)
        open_id = user.get("open_id") or (tokens.account_id if tokens else None)
        if not open_id:
            raise ProviderError(self.platform, "TikTok did not return an open_id")
        return ResolvedAccount(account_id=open_id, profile=user_profile(user))
