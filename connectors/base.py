"""
BaseConnector — interface for the per-platform OAuth flow handlers.

Each platform (YouTube, Instagram, TikTok) implements this explicitly;
field names, token lifetimes and refresh semantics differ per provider, so
the base only fixes the method names and a few plumbing helpers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional, Type

import httpx

from config.settings import config
from connectors.http import build_http_client
from connectors.schemas import OAuthTokens, ResolvedAccount
from database.models import Base


class BaseConnector(ABC):
    """Abstract base for the OAuth flow handlers."""

    #: True when the authorization code exchange is bound to a PKCE verifier.
    uses_pkce: bool = False

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def platform(self) -> str:
        """Unique slug: 'youtube', 'instagram', 'tiktok'."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes requested by this connector."""
        ...

    # ── Storage layout ──────────────────────────────────────────────────
    @property
    @abstractmethod
    def connection_model(self) -> Type[Base]:
        ...

    @property
    @abstractmethod
    def profile_model(self) -> Type[Base]:
        ...

    @property
    @abstractmethod
    def account_key(self) -> str:
        """Column holding the platform account id on connection and profile rows."""
        ...

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(self, state: str, code_challenge: Optional[str] = None) -> str:
        """
        Build the provider's authorization URL.

        Parameters
        ----------
        state : str
            Opaque state string (encodes user id + CSRF nonce).
        code_challenge : str, optional
            S256 PKCE challenge, for connectors with ``uses_pkce``.
        """
        ...

    @abstractmethod
    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> OAuthTokens:
        """Exchange the authorization code for (final, storable) tokens."""
        ...

    @abstractmethod
    async def refresh(self, token: str) -> OAuthTokens:
        """
        Renew the access token.

        ``token`` is the refresh token, or for platforms without refresh
        tokens the current long-lived access token.
        """
        ...

    @abstractmethod
    async def resolve_account(self, access_token: str, tokens: Optional[OAuthTokens] = None) -> ResolvedAccount:
        """Look up the platform account the tokens belong to."""
        ...

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        creds = config.get_platform_credentials(self.platform)
        return bool(creds["client_id"] and creds["client_secret"])

    def redirect_uri(self) -> str:
        return f"{config.oauth_redirect_base}/api/v1/auth/{self.platform}/callback"

    def _http(self) -> httpx.AsyncClient:
        return build_http_client(self._transport)
