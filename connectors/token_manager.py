"""
Token manager — store / refresh / deactivate per-user platform connections.

This is the single place where tokens are encrypted on their way into the
store.  Connection rows are upserted on ``(user_id, <platform account id>)``
so re-linking the same account updates the existing row instead of adding
a second active one.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from connectors.base import BaseConnector
from connectors.encryption import TokenCipher, get_cipher
from connectors.registry import _ALL_CONNECTORS
from connectors.schemas import OAuthTokens, ResolvedAccount
from database.store import ConnectionStore, get_store

logger = logging.getLogger(__name__)


async def store_connection(
    connector: BaseConnector,
    user_id: str,
    tokens: OAuthTokens,
    account: ResolvedAccount,
    *,
    store: Optional[ConnectionStore] = None,
    cipher: Optional[TokenCipher] = None,
) -> Dict[str, Any]:
    """
    Upsert the connection (encrypted tokens) and its account profile.

    Returns
    -------
    The stored connection row.
    """
    store = store or get_store()
    cipher = cipher or get_cipher()
    now = datetime.now(timezone.utc)

    values: Dict[str, Any] = {
        "user_id": user_id,
        connector.account_key: account.account_id,
        **account.connection_fields,
        "access_token_encrypted": cipher.encrypt(tokens.access_token),
        "token_expires_at": tokens.expires_at,
        "scopes": tokens.scopes or connector.scopes,
        "is_active": True,
        "last_sync_at": now,
        "updated_at": now,
    }
    if tokens.refresh_token:
        values["refresh_token_encrypted"] = cipher.encrypt(tokens.refresh_token)
    if tokens.refresh_expires_at is not None:
        values["refresh_token_expires_at"] = tokens.refresh_expires_at

    connection = await store.upsert(
        connector.connection_model,
        values,
        conflict=("user_id", connector.account_key),
    )

    await store.upsert(
        connector.profile_model,
        {
            "connection_id": connection["id"],
            connector.account_key: account.account_id,
            **account.profile,
            "updated_at": now,
        },
        conflict=("connection_id",),
    )

    logger.info(
        "Stored %s connection %s for user %s (account %s)",
        connector.platform,
        connection["id"],
        user_id,
        account.account_id,
    )
    return connection


async def persist_refreshed_tokens(
    connector: BaseConnector,
    connection_id: str,
    tokens: OAuthTokens,
    *,
    store: Optional[ConnectionStore] = None,
    cipher: Optional[TokenCipher] = None,
) -> None:
    """Write refreshed tokens back; rotated refresh tokens replace the old one."""
    store = store or get_store()
    cipher = cipher or get_cipher()

    values: Dict[str, Any] = {
        "access_token_encrypted": cipher.encrypt(tokens.access_token),
        "token_expires_at": tokens.expires_at,
        "updated_at": datetime.now(timezone.utc),
    }
    if tokens.refresh_token:
        values["refresh_token_encrypted"] = cipher.encrypt(tokens.refresh_token)
    if tokens.refresh_expires_at is not None:
        values["refresh_token_expires_at"] = tokens.refresh_expires_at

    await store.update(connector.connection_model, values, id=connection_id)
    logger.info("Refreshed %s token for connection %s", connector.platform, connection_id)


async def get_active_connection(
    connector: BaseConnector,
    user_id: str,
    *,
    store: Optional[ConnectionStore] = None,
) -> Optional[Dict[str, Any]]:
    """Return the user's active connection for the platform, if any."""
    store = store or get_store()
    rows = await store.select_all(connector.connection_model, user_id=user_id, is_active=True)
    if not rows:
        return None
    rows.sort(key=lambda r: r.get("updated_at") or datetime.min.replace(tzinfo=timezone.utc), reverse=True)
    return rows[0]


async def get_user_connections(
    user_id: str,
    *,
    store: Optional[ConnectionStore] = None,
) -> List[Dict[str, Any]]:
    """Return all connections for a user across platforms (no tokens exposed)."""
    store = store or get_store()
    connections: List[Dict[str, Any]] = []
    for connector in _ALL_CONNECTORS:
        rows = await store.select_all(connector.connection_model, user_id=user_id)
        for c in rows:
            connections.append(
                {
                    "connection_id": str(c["id"]),
                    "platform": connector.platform,
                    "account_id": c.get(connector.account_key),
                    "is_active": c.get("is_active", False),
                    "scopes": c.get("scopes") or [],
                    "token_expires_at": _iso(c.get("token_expires_at")),
                    "last_sync_at": _iso(c.get("last_sync_at")),
                    "created_at": _iso(c.get("created_at")),
                }
            )
    return connections


async def deactivate_connection(
    connector: BaseConnector,
    user_id: str,
    connection_id: str,
    *,
    store: Optional[ConnectionStore] = None,
) -> bool:
    """
    Mark a connection inactive.  Rows are never deleted so history stays
    attached; returns False if the user has no such connection.
    """
    store = store or get_store()
    touched = await store.update(
        connector.connection_model,
        {"is_active": False, "updated_at": datetime.now(timezone.utc)},
        id=connection_id,
        user_id=user_id,
    )
    if touched:
        logger.info("Deactivated %s connection %s for user %s", connector.platform, connection_id, user_id)
    return bool(touched)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
