"""
Hosted identity provider client (Supabase GoTrue REST API).

Only the two calls the backend needs are implemented: revoking a session
and exchanging a PKCE authorization code for a session.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from config.settings import config

logger = logging.getLogger(__name__)


class IdentityError(Exception):
    """The identity provider rejected the request or could not be reached."""


class SupabaseAuthClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.supabase_url).rstrip("/")
        self.api_key = api_key or config.supabase_anon_key
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=f"{self.base_url}/auth/v1",
            headers={"apikey": self.api_key},
            transport=self._transport,
            timeout=10.0,
        )

    async def logout(self, access_token: str) -> None:
        """Revoke the session that owns ``access_token``."""
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/logout",
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.HTTPError as exc:
            raise IdentityError(f"Logout request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise IdentityError(f"Logout rejected ({resp.status_code}): {resp.text}")

    async def exchange_code_for_session(
        self,
        auth_code: str,
        code_verifier: str,
    ) -> Dict[str, Any]:
        """
        PKCE code exchange.

        Returns the session payload (``access_token``, ``refresh_token``,
        ``user`` …).
        """
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/token",
                    params={"grant_type": "pkce"},
                    json={"auth_code": auth_code, "code_verifier": code_verifier},
                )
        except httpx.HTTPError as exc:
            raise IdentityError(f"Code exchange request failed: {exc}") from exc

        data = resp.json() if resp.content else {}
        if resp.status_code >= 400:
            message = (
                data.get("error_description")
                or data.get("msg")
                or data.get("error")
                or f"HTTP {resp.status_code}"
            )
            raise IdentityError(message)
        if not data.get("user"):
            raise IdentityError("No user returned from code exchange")
        return data


_client: Optional[SupabaseAuthClient] = None


def get_identity_client() -> SupabaseAuthClient:
    """Process-wide client built from settings."""
    global _client
    if _client is None:
        _client = SupabaseAuthClient()
    return _client
