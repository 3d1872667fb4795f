"""
ConnectorRegistry — provides access to all OAuth connectors.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from connectors.base import BaseConnector
from connectors.google import (
    GoogleAnalyticsConnector,
    GoogleConnector,
    SearchConsoleConnector,
)

logger = logging.getLogger(__name__)

# ── All known connectors, add new ones here ──────────────────────────────

_ALL_CONNECTORS: List[BaseConnector] = [
    GoogleAnalyticsConnector(),
    SearchConsoleConnector(),
    GoogleConnector(),
]


class ConnectorRegistry:
    """Singleton registry for all OAuth connectors."""

    _instance: Optional["ConnectorRegistry"] = None

    def __new__(cls) -> "ConnectorRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._connectors = {
                conn.provider_name: conn for conn in _ALL_CONNECTORS
            }
        return cls._instance

    def log_status(self) -> None:
        """Log which connectors can start an OAuth flow."""
        for conn in self._connectors.values():
            if conn.is_configured():
                logger.info(
                    "Connector ready: %s (%s)",
                    conn.display_name,
                    conn.provider_name,
                )
            else:
                logger.warning(
                    "Connector %s not configured (missing GOOGLE_CLIENT_ID)",
                    conn.provider_name,
                )

    def get(self, provider: str) -> Optional[BaseConnector]:
        """Get a connector by provider name."""
        return self._connectors.get(provider)

    def list_providers(self) -> List[Dict[str, object]]:
        """Return info about all known connectors."""
        return [
            {
                "provider": c.provider_name,
                "display_name": c.display_name,
                "scopes": c.scopes,
                "configured": c.is_configured(),
            }
            for c in self._connectors.values()
        ]
