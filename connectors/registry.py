"""
ConnectorRegistry — looks up OAuth connectors by platform tag.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from connectors.base import BaseConnector
from connectors.instagram import InstagramConnector
from connectors.tiktok import TikTokConnector
from connectors.youtube import YouTubeConnector

logger = logging.getLogger(__name__)

PLATFORMS = ("youtube", "instagram", "tiktok")

_ALL_CONNECTORS: List[BaseConnector] = [
    YouTubeConnector(),
    InstagramConnector(),
    TikTokConnector(),
]


class ConnectorRegistry:
    """Singleton registry for the OAuth connectors."""

    _instance: Optional["ConnectorRegistry"] = None

    def __new__(cls) -> "ConnectorRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._connectors = {}
            cls._instance._discovered = False
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        cls._instance = None

    def discover(self) -> None:
        """Register all configured connectors."""
        if self._discovered:
            return
        for conn in _ALL_CONNECTORS:
            self.register(conn)
        self._discovered = True

    def register(self, connector: BaseConnector) -> None:
        if connector.is_configured():
            self._connectors[connector.platform] = connector
            logger.info(
                "Connector registered: %s (%s)",
                connector.display_name,
                connector.platform,
            )
        else:
            logger.warning(
                "Connector %s skipped — not configured (missing client id/secret)",
                connector.platform,
            )

    def get(self, platform: str) -> Optional[BaseConnector]:
        """Get a configured connector by platform tag."""
        self.discover()
        return self._connectors.get(platform)

    def list_platforms(self) -> List[Dict[str, object]]:
        """Return info about all known platforms."""
        return [
            {
                "platform": c.platform,
                "display_name": c.display_name,
                "configured": c.is_configured(),
            }
            for c in _ALL_CONNECTORS
        ]
