"""
Google OAuth2 web-flow connectors.

One Google client (``GOOGLE_CLIENT_ID``) serves three connectors that
differ only in scopes, callback path and where the token is stored:

* ``ga``     — Google Analytics 4
* ``gsc``    — Google Search Console
* ``google`` — combined GA4 + Search Console read access (settings page)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import urlencode

import httpx

from config.settings import config
from connectors.base import BaseConnector

logger = logging.getLogger(__name__)

# Google OAuth2 endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"

SCOPE_ANALYTICS_READONLY = "https://www.googleapis.com/auth/analytics.readonly"
SCOPE_ANALYTICS = "https://www.googleapis.com/auth/analytics"
SCOPE_WEBMASTERS_READONLY = "https://www.googleapis.com/auth/webmasters.readonly"


class TokenExchangeError(Exception):
    """Google's token endpoint did not return an access token."""


class GoogleOAuthConnector(BaseConnector):
    """Shared OAuth2 implementation for all Google connectors."""

    def is_configured(self) -> bool:
        return bool(config.google_client_id)

    def _redirect_uri(self) -> str:
        return f"{config.site_url.rstrip('/')}/api/{self.provider_name}/callback"

    def extra_auth_params(self) -> Dict[str, str]:
        return {}

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": config.google_client_id,
            "redirect_uri": self._redirect_uri(),
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            "access_type": "offline",       # gets refresh_token
            "prompt": "consent",            # force consent to always get refresh_token
        }
        params.update(self.extra_auth_params())
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def handle_callback(self, code: str) -> Dict[str, Any]:
        """Exchange auth code for tokens."""
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": config.google_client_id,
                    "client_secret": config.google_client_secret,
                    "redirect_uri": self._redirect_uri(),
                    "grant_type": "authorization_code",
                },
            )
            data = resp.json()

        if resp.status_code >= 400 or not data.get("access_token"):
            raise TokenExchangeError(
                f"Token exchange failed: {data.get('error', resp.status_code)}"
            )

        return {
            "access_token": data["access_token"],
            "refresh_token": data.get("refresh_token"),
            "expires_in": data.get("expires_in", 3600),
            "token_type": data.get("token_type", "Bearer"),
            "scope": data.get("scope", ""),
        }

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Use refresh token to get a new access token."""
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": config.google_client_id,
                    "client_secret": config.google_client_secret,
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            )
            resp.raise_for_status()
            data = resp.json()

        return {
            "access_token": data["access_token"],
            "expires_in": data.get("expires_in", 3600),
            "token_type": data.get("token_type", "Bearer"),
            "scope": data.get("scope", ""),
            "refresh_token": data.get("refresh_token"),
        }


class GoogleAnalyticsConnector(GoogleOAuthConnector):
    """OAuth2 connector for Google Analytics 4."""

    @property
    def provider_name(self) -> str:
        return "ga"

    @property
    def display_name(self) -> str:
        return "Google Analytics 4"

    @property
    def scopes(self) -> List[str]:
        return [SCOPE_ANALYTICS_READONLY, SCOPE_ANALYTICS]

    @property
    def token_column(self) -> str:
        return "ga_token"

    def extra_auth_params(self) -> Dict[str, str]:
        return {"include_granted_scopes": "true"}


class SearchConsoleConnector(GoogleOAuthConnector):
    """OAuth2 connector for Google Search Console."""

    @property
    def provider_name(self) -> str:
        return "gsc"

    @property
    def display_name(self) -> str:
        return "Search Console"

    @property
    def scopes(self) -> List[str]:
        return [SCOPE_WEBMASTERS_READONLY]

    @property
    def token_column(self) -> str:
        return "gsc_token"


class GoogleConnector(GoogleOAuthConnector):
    """Combined GA4 + Search Console connector used by the settings page."""

    @property
    def provider_name(self) -> str:
        return "google"

    @property
    def display_name(self) -> str:
        return "Google"

    @property
    def scopes(self) -> List[str]:
        return [SCOPE_ANALYTICS_READONLY, SCOPE_WEBMASTERS_READONLY]

    @property
    def token_column(self) -> str:
        return "google_auth_token"

    @property
    def success_redirect(self) -> str:
        return "/dashboard/settings?success=google_connected"

    def failure_redirect(self, reason: str) -> str:
        return f"/dashboard/settings?{urlencode({'error': reason})}"
