"""
InstagramConnector — Facebook Login for Instagram Business/Creator accounts.

The code exchange yields a short-lived user token, which is immediately
swapped for a long-lived (60-day) token.  There is no refresh token: the
long-lived token itself is re-exchanged before it runs out.

Instagram professional accounts are not directly addressable; they are
discovered through the Facebook Pages the user manages.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from config.settings import config
from connectors.base import BaseConnector
from connectors.errors import ProviderError
from connectors.http import provider_request
from connectors.schemas import OAuthTokens, ResolvedAccount
from database.models import InstagramAccount, InstagramConnection
from utils.parsing import to_int

logger = logging.getLogger(__name__)

GRAPH_API = f"https://graph.facebook.com/{config.facebook_graph_version}"
_FACEBOOK_AUTH_URL = f"https://www.facebook.com/{config.facebook_graph_version}/dialog/oauth"
_FACEBOOK_TOKEN_URL = f"{GRAPH_API}/oauth/access_token"

LONG_LIVED_TOKEN_SECONDS = 60 * 24 * 3600
PROFILE_FIELDS = (
    "username,name,biography,profile_picture_url,followers_count,"
    "follows_count,media_count,account_type,website"
)


def account_profile(profile: Dict[str, Any]) -> Dict[str, Any]:
    """Map a Graph API IG user object onto ``instagram_accounts`` columns."""
    return {
        "username": profile.get("username"),
        "name": profile.get("name"),
        "biography": profile.get("biography"),
        "profile_picture_url": profile.get("profile_picture_url"),
        "website": profile.get("website"),
        "followers_count": to_int(profile.get("followers_count")),
        "follows_count": to_int(profile.get("follows_count")),
        "media_count": to_int(profile.get("media_count")),
        "account_type": profile.get("account_type"),
    }


class InstagramConnector(BaseConnector):
    """OAuth2 connector for Instagram (via Facebook Login)."""

    @property
    def platform(self) -> str:
        return "instagram"

    @property
    def display_name(self) -> str:
        return "Instagram"

    @property
    def scopes(self) -> List[str]:
        return [
            "instagram_basic",
            "instagram_manage_insights",
            "pages_show_list",
            "pages_read_engagement",
            "business_management",
        ]

    @property
    def connection_model(self):
        return InstagramConnection

    @property
    def profile_model(self):
        return InstagramAccount

    @property
    def account_key(self) -> str:
        return "instagram_user_id"

    def get_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        params = {
            "client_id": config.facebook_app_id,
            "redirect_uri": self.redirect_uri(),
            "scope": ",".join(self.scopes),
            "response_type": "code",
            "state": state,
        }
        return f"{_FACEBOOK_AUTH_URL}?{urlencode(params)}"

    async def _fb_exchange(self, token: str) -> OAuthTokens:
        async with self._http() as client:
            data = await provider_request(
                client,
                self.platform,
                "GET",
                _FACEBOOK_TOKEN_URL,
                params={
                    "grant_type": "fb_exchange_token",
                    "client_id": config.facebook_app_id,
                    "client_secret": config.facebook_app_secret,
                    "fb_exchange_token": token,
                },
            )
        return OAuthTokens(
            access_token=data["access_token"],
            expires_in=data.get("expires_in") or LONG_LIVED_TOKEN_SECONDS,
            scopes=self.scopes,
            token_type=data.get("token_type", "bearer"),
        )

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> OAuthTokens:
        """Exchange the code for a short-lived token, then for a long-lived one."""
        async with self._http() as client:
            short = await provider_request(
                client,
                self.platform,
                "GET",
                _FACEBOOK_TOKEN_URL,
                params={
                    "client_id": config.facebook_app_id,
                    "client_secret": config.facebook_app_secret,
                    "redirect_uri": self.redirect_uri(),
                    "code": code,
                },
            )
        if not short.get("access_token"):
            raise ProviderError(self.platform, "Failed to exchange code for token")

        return await self._fb_exchange(short["access_token"])

    async def refresh(self, token: str) -> OAuthTokens:
        """Re-exchange the current long-lived token for a fresh one."""
        return await self._fb_exchange(token)

    async def resolve_account(self, access_token: str, tokens: Optional[OAuthTokens] = None) -> ResolvedAccount:
        """
        Walk the user's Facebook Pages until one has a linked Instagram
        professional account, then fetch that account's profile.
        """
        async with self._http() as client:
            pages: List[Dict[str, Any]] = []
            data = await provider_request(
                client,
                self.platform,
                "GET",
                f"{GRAPH_API}/me/accounts",
                params={"access_token": access_token},
            )
            pages.extend(data.get("data") or [])
            next_url = (data.get("paging") or {}).get("next")
            while next_url:
                data = await provider_request(client, self.platform, "GET", next_url)
                pages.extend(data.get("data") or [])
                next_url = (data.get("paging") or {}).get("next")

            if not pages:
                raise ProviderError(
                    self.platform,
                    "No Facebook Pages found. Instagram Business accounts must be linked to a Facebook Page.",
                )

            for page in pages:
                linked = await provider_request(
                    client,
                    self.platform,
                    "GET",
                    f"{GRAPH_API}/{page['id']}",
                    params={"fields": "instagram_business_account", "access_token": access_token},
                )
                ig_account = linked.get("instagram_business_account")
                if not ig_account:
                    continue

                ig_user_id = ig_account["id"]
                profile = await provider_request(
                    client,
                    self.platform,
                    "GET",
                    f"{GRAPH_API}/{ig_user_id}",
                    params={"fields": PROFILE_FIELDS, "access_token": access_token},
                )
                logger.info("Resolved Instagram account %s via page %s", ig_user_id, page["id"])
                return ResolvedAccount(
                    account_id=ig_user_id,
                    connection_fields={"facebook_page_id": page["id"]},
                    profile=account_profile(profile),
                )

        raise ProviderError(
            self.platform,
            "No Instagram Business/Creator account found linked to your Facebook Pages.",
        )
