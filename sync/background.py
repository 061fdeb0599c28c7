"""
Detached sync tasks, used for the first sync right after an account is
linked.  The caller never awaits them; the log is their only error channel.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Set

from sync.base import get_sync_engine

logger = logging.getLogger(__name__)

# Strong references so pending tasks are not garbage-collected mid-flight.
_pending: Set[asyncio.Task] = set()


async def _run_sync(platform: str, connection_id: str, **engine_kwargs: Any) -> None:
    try:
        result = await get_sync_engine(platform, **engine_kwargs).sync_account(connection_id)
    except Exception:
        logger.exception("Initial %s sync crashed for connection %s", platform, connection_id)
        return
    if result.success:
        logger.info("Initial %s sync finished for connection %s", platform, connection_id)
    else:
        logger.warning(
            "Initial %s sync for connection %s had errors: %s",
            platform, connection_id, "; ".join(result.errors),
        )


def schedule_sync(platform: str, connection_id: str, **engine_kwargs: Any) -> asyncio.Task:
    """Start a sync pass in the background and return its task."""
    task = asyncio.create_task(_run_sync(platform, connection_id, **engine_kwargs))
    _pending.add(task)
    task.add_done_callback(_pending.discard)
    return task
