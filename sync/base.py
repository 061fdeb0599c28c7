"""
PlatformSync — shared sync-pass skeleton for the per-platform engines.

A pass never raises.  Each step records its failure in
``SyncResult.errors`` and the pass carries on, so a flaky insights
endpoint never costs the user their profile or content refresh.

Steps
-----
1. resolve the API client (failure aborts the pass)
2. fetch account info → upsert the profile row (keyed by connection_id)
3. upsert today's snapshot  (keyed by account, snapshot_date)
4. fetch content items → upsert each (keyed by account, content id)
5. fetch 28-day insights → upsert the insights snapshot
6. stamp ``last_sync_at`` on the connection
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from clients.base import PlatformClient
from config.settings import config
from connectors.encryption import TokenCipher, get_cipher
from database.models import Base
from database.store import ConnectionStore, get_store
from utils.parsing import utc_today

logger = logging.getLogger(__name__)


class SyncResult(BaseModel):
    """Outcome of one sync pass.  ``insights_synced`` is None where the platform has no insights."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool = False
    account_updated: bool = False
    snapshot_created: bool = False
    items_synced: int = 0
    insights_synced: Optional[bool] = False
    errors: List[str] = Field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        """camelCase JSON body for the HTTP API."""
        return self.model_dump(by_alias=True)


class PlatformSync(ABC):
    """Base class for the YouTube / Instagram / TikTok sync engines."""

    platform: str = ""
    client_class: Type[PlatformClient]

    connection_model: Type[Base]
    profile_model: Type[Base]
    snapshot_model: Type[Base]
    content_model: Type[Base]

    #: platform account id column on connection and profile rows
    account_key: str = ""
    #: FK column pointing at the profile row on snapshot/content/insights tables
    account_column: str = "account_id"
    #: platform content id column on the content table
    content_key: str = ""
    #: profile counters copied into the daily snapshot
    snapshot_fields: Tuple[str, ...] = ()
    #: False for platforms without an insights step
    has_insights: bool = True

    def __init__(
        self,
        *,
        store: Optional[ConnectionStore] = None,
        cipher: Optional[TokenCipher] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._store = store
        self._cipher = cipher
        self._transport = transport

    @property
    def store(self) -> ConnectionStore:
        return self._store or get_store()

    @property
    def cipher(self) -> TokenCipher:
        return self._cipher or get_cipher()

    # ── Per-platform hooks ──────────────────────────────────────────────

    async def resolve_client(self, connection_id: str) -> PlatformClient:
        return await self.client_class.from_connection_id(
            connection_id,
            store=self.store,
            cipher=self.cipher,
            transport=self._transport,
        )

    @abstractmethod
    def profile_values(self, info: Dict[str, Any]) -> Dict[str, Any]:
        """Map the platform's account-info payload onto profile columns."""
        ...

    @abstractmethod
    def platform_account_id(self, client: Any) -> str:
        ...

    @abstractmethod
    async def sync_items(self, client: Any, account_id: str, result: SyncResult) -> None:
        ...

    async def sync_insights(
        self,
        client: Any,
        account_id: str,
        period_start: date,
        period_end: date,
        result: SyncResult,
    ) -> None:
        return None

    # ── Pass ────────────────────────────────────────────────────────────

    async def sync_account(self, connection_id: str) -> SyncResult:
        """Run one full sync pass for a connection."""
        result = SyncResult(insights_synced=False if self.has_insights else None)

        try:
            client = await self.resolve_client(connection_id)
        except Exception as exc:
            logger.error("%s sync failed for connection %s: %s", self.platform, connection_id, exc)
            result.errors.append(f"Sync failed: {_describe(exc)}")
            return result

        async with client:
            profile, account_id = await self._sync_profile(client, connection_id, result)

            if account_id is None:
                result.errors.append("No account profile available; skipped snapshot, content and insights")
            else:
                if profile is not None:
                    await self._sync_snapshot(account_id, profile, result)
                else:
                    result.errors.append("Snapshot skipped: account info unavailable")

                await self.sync_items(client, account_id, result)

                if self.has_insights:
                    today = utc_today()
                    start = today - timedelta(days=config.sync_insights_window_days)
                    await self.sync_insights(client, account_id, start, today, result)

        await self._touch_connection(connection_id, result)

        result.success = not result.errors
        if result.success:
            logger.info(
                "%s sync complete for connection %s: %d items",
                self.platform, connection_id, result.items_synced,
            )
        else:
            logger.warning(
                "%s sync for connection %s finished with %d error(s): %s",
                self.platform, connection_id, len(result.errors), "; ".join(result.errors),
            )
        return result

    async def sync_all_accounts(self) -> Dict[str, int]:
        """Sync every active connection of this platform, one after another."""
        synced = failed = 0
        try:
            connections = await self.store.select_all(self.connection_model, is_active=True)
        except Exception as exc:
            logger.error("Could not list active %s connections: %s", self.platform, exc)
            return {"synced": 0, "failed": 0}

        for connection in connections:
            try:
                result = await self.sync_account(str(connection["id"]))
            except Exception:
                logger.exception("Unexpected error syncing %s connection %s", self.platform, connection["id"])
                failed += 1
                continue
            if result.success:
                synced += 1
            else:
                failed += 1

        logger.info("%s batch sync: %d synced, %d failed", self.platform, synced, failed)
        return {"synced": synced, "failed": failed}

    # ── Steps ───────────────────────────────────────────────────────────

    async def _sync_profile(
        self,
        client: Any,
        connection_id: str,
        result: SyncResult,
    ) -> Tuple[Optional[Dict[str, Any]], Optional[str]]:
        """
        Returns
        -------
        (profile values or None, profile row id or None)
        """
        profile: Optional[Dict[str, Any]] = None
        try:
            profile = self.profile_values(await client.get_account_info())
            row = await self.store.upsert(
                self.profile_model,
                {
                    "connection_id": connection_id,
                    self.account_key: self.platform_account_id(client),
                    **profile,
                    "updated_at": datetime.now(timezone.utc),
                },
                conflict=("connection_id",),
            )
            result.account_updated = True
            return profile, str(row["id"])
        except Exception as exc:
            result.errors.append(f"Failed to update account: {_describe(exc)}")

        try:
            existing = await self.store.select_one(self.profile_model, connection_id=connection_id)
        except Exception as exc:
            logger.error("Could not load existing %s profile for %s: %s", self.platform, connection_id, exc)
            existing = None
        return profile, (str(existing["id"]) if existing else None)

    async def _sync_snapshot(self, account_id: str, profile: Dict[str, Any], result: SyncResult) -> None:
        try:
            await self.store.upsert(
                self.snapshot_model,
                {
                    self.account_column: account_id,
                    "snapshot_date": utc_today(),
                    **{name: profile.get(name) for name in self.snapshot_fields},
                },
                conflict=(self.account_column, "snapshot_date"),
            )
            result.snapshot_created = True
        except Exception as exc:
            result.errors.append(f"Failed to create snapshot: {_describe(exc)}")

    async def _upsert_items(
        self,
        account_id: str,
        rows: Iterable[Dict[str, Any]],
        result: SyncResult,
    ) -> None:
        now = datetime.now(timezone.utc)
        for values in rows:
            try:
                await self.store.upsert(
                    self.content_model,
                    {self.account_column: account_id, **values, "updated_at": now},
                    conflict=(self.account_column, self.content_key),
                )
                result.items_synced += 1
            except Exception as exc:
                result.errors.append(f"Failed to sync item {values.get(self.content_key)}: {_describe(exc)}")

    async def _touch_connection(self, connection_id: str, result: SyncResult) -> None:
        now = datetime.now(timezone.utc)
        try:
            await self.store.update(
                self.connection_model,
                {"last_sync_at": now, "updated_at": now},
                id=connection_id,
            )
        except Exception as exc:
            result.errors.append(f"Failed to update last sync time: {_describe(exc)}")

    async def _optional(self, label: str, call: Awaitable[Any], result: SyncResult) -> Optional[Any]:
        """Await a secondary fetch; on failure record the error and return None."""
        try:
            return await call
        except Exception as exc:
            result.errors.append(f"Failed to fetch {label}: {_describe(exc)}")
            return None


def _describe(exc: BaseException) -> str:
    return getattr(exc, "message", None) or str(exc) or exc.__class__.__name__


def get_sync_engine(platform: str, **kwargs: Any) -> PlatformSync:
    """Return the sync engine for a platform tag."""
    from sync.instagram import InstagramSync
    from sync.tiktok import TikTokSync
    from sync.youtube import YouTubeSync

    engines: Dict[str, Type[PlatformSync]] = {
        "youtube": YouTubeSync,
        "instagram": InstagramSync,
        "tiktok": TikTokSync,
    }
    if platform not in engines:
        raise ValueError(f"Unknown platform: {platform}")
    return engines[platform](**kwargs)


def window_bounds(period_start: date, period_end: date) -> Dict[str, Any]:
    """Composite-key columns shared by the insights snapshot tables."""
    return {"snapshot_date": period_end, "period_start": period_start, "period_end": period_end}


INSIGHTS_WINDOW_KEY: Sequence[str] = ("snapshot_date", "period_start", "period_end")
