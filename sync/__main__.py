"""
Batch sync entry point for schedulers (cron, k8s CronJob, …).

    python -m sync                    # every platform
    python -m sync youtube tiktok     # selected platforms
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Dict, List

from config.settings import config
from connectors.registry import PLATFORMS
from database.session import dispose_engine
from sync.base import get_sync_engine

logger = logging.getLogger("sync")


async def run(platforms: List[str]) -> Dict[str, Dict[str, int]]:
    tallies: Dict[str, Dict[str, int]] = {}
    try:
        for platform in platforms:
            tallies[platform] = await get_sync_engine(platform).sync_all_accounts()
            logger.info(
                "%s: %d synced, %d failed",
                platform, tallies[platform]["synced"], tallies[platform]["failed"],
            )
    finally:
        await dispose_engine()
    return tallies


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m sync", description="Sync every active connection.")
    parser.add_argument("platforms", nargs="*", metavar="platform", help=f"one of {', '.join(PLATFORMS)} (default: all)")
    args = parser.parse_args(argv)
    unknown = sorted(set(args.platforms) - set(PLATFORMS))
    if unknown:
        parser.error(f"unknown platform(s): {', '.join(unknown)}")

    logging.basicConfig(
        level=getattr(logging, (config.log_level or "INFO").upper(), logging.INFO),
        format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    tallies = asyncio.run(run(args.platforms or list(PLATFORMS)))
    return 1 if any(t["failed"] for t in tallies.values()) else 0


if __name__ == "__main__":
    sys.exit(main())
