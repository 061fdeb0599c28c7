"""
Plumbing shared by the platform API clients: HTTP lifecycle, request
helper and connection loading.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Type

import httpx

from connectors.encryption import TokenCipher
from connectors.errors import ConnectionNotFound
from connectors.http import build_http_client, provider_request
from database.models import Base
from database.store import ConnectionStore


class PlatformClient:
    """Owns one ``httpx.AsyncClient``; close it with ``aclose()`` or ``async with``."""

    platform: str = ""

    def __init__(
        self,
        access_token: str,
        connection_id: str,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.connection_id = connection_id
        self._http = build_http_client(transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> Dict[str, Any]:
        return await provider_request(self._http, self.platform, method, url, **kwargs)


async def load_connection(
    model: Type[Base],
    connection_id: str,
    store: ConnectionStore,
    cipher: TokenCipher,
) -> Tuple[Dict[str, Any], str]:
    """Return the connection row and its decrypted access token."""
    connection = await store.select_one(model, id=connection_id)
    if not connection:
        raise ConnectionNotFound(connection_id)
    return connection, cipher.decrypt(connection["access_token_encrypted"])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
