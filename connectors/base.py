"""
BaseConnector — abstract interface for all OAuth2 connectors.

Every integration (GA4, Search Console, combined Google) subclasses this
and declares its scopes, callback path, token column and redirect pages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List
from urllib.parse import urlencode


class BaseConnector(ABC):
    """Abstract base for all OAuth2 connectors."""

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug used in route paths: 'ga', 'gsc', 'google'."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable: 'Google Analytics 4', 'Search Console', …"""
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes required by this connector."""
        ...

    @property
    @abstractmethod
    def token_column(self) -> str:
        """``users`` column the token document is stored in."""
        ...

    # ── Post-callback redirects (paths under the site URL) ─────────────

    @property
    def success_redirect(self) -> str:
        return f"/dashboard?{self.provider_name}=connected"

    def failure_redirect(self, reason: str) -> str:
        return f"/dashboard?{urlencode({'error': reason})}"

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Opaque state string echoed back on the callback (the user id).

        Returns
        -------
        The full URL to redirect the user to.
        """
        ...

    @abstractmethod
    async def handle_callback(self, code: str) -> Dict[str, Any]:
        """
        Exchange the authorization code for tokens.

        Returns
        -------
        dict with keys:
            access_token, refresh_token, expires_in, token_type, scope
        """
        ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Refresh an expired access token.

        Returns
        -------
        dict with keys: access_token, expires_in, (optional) refresh_token
        """
        ...

    # ── Helpers ─────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        """
        Return True if this connector has all required config
        (client id, etc.).
        """
        return True
