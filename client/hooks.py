"""
Async client helpers for the dashboard API.

Each helper keeps ``loading`` / ``error`` state the way the dashboard
pages consume it: one request at a time, no retries, no caching.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"Request failed with status {resp.status_code}"


class _ApiHook:
    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._transport = transport
        self.loading = False
        self.error: Optional[str] = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self._transport)

    def _start(self) -> None:
        self.loading = True
        self.error = None


class IntegrationHook(_ApiHook):
    """Connect a Google integration and page through its synced rows."""

    def __init__(self, provider: str, base_url: str = "http://localhost:8000", **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self.provider = provider

    async def authorize(self, user_id: str) -> Optional[str]:
        """
        Return the consent URL to send the browser to, or ``None`` (with
        ``error`` set) when the server did not produce one.
        """
        self._start()
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"/api/{self.provider}/authorize", params={"userId": user_id}
                )
            data = resp.json()
            auth_url = data.get("authUrl") if isinstance(data, dict) else None
            if not auth_url:
                if resp.status_code >= 400:
                    self.error = _error_message(resp)
                else:
                    self.error = "Failed to get authorization URL"
                logger.error("%s authorization error: %s", self.provider, self.error)
                return None
            return auth_url
        except (httpx.HTTPError, ValueError) as exc:
            self.error = str(exc)
            logger.error("%s authorization error: %s", self.provider, exc)
            return None
        finally:
            self.loading = False

    async def fetch_data(self, user_id: str, page: int = 1) -> Dict[str, Any]:
        """Fetch one page envelope; errors are recorded and re-raised."""
        self._start()
        try:
            async with self._client() as client:
                resp = await client.get(
                    f"/api/data/{self.provider}",
                    params={"page": page},
                    headers={"x-user-id": user_id},
                )
            return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            self.error = str(exc)
            raise
        finally:
            self.loading = False


def use_ga(base_url: str = "http://localhost:8000", **kwargs: Any) -> IntegrationHook:
    return IntegrationHook("ga", base_url, **kwargs)


def use_gsc(base_url: str = "http://localhost:8000", **kwargs: Any) -> IntegrationHook:
    return IntegrationHook("gsc", base_url, **kwargs)


class UserProfileHook(_ApiHook):
    """Load and update the signed-in user's profile."""

    def __init__(self, base_url: str = "http://localhost:8000", **kwargs: Any):
        super().__init__(base_url, **kwargs)
        self.profile: Optional[Dict[str, Any]] = None

    async def load(self, user_id: str) -> Optional[Dict[str, Any]]:
        self._start()
        try:
            async with self._client() as client:
                resp = await client.get("/api/user/profile", params={"userId": user_id})
            if resp.status_code >= 400:
                self.error = _error_message(resp)
                logger.error("Error loading profile: %s", self.error)
                return None
            self.profile = resp.json().get("data")
            return self.profile
        except (httpx.HTTPError, ValueError) as exc:
            self.error = str(exc)
            logger.error("Error loading profile: %s", exc)
            return None
        finally:
            self.loading = False

    async def update(self, user_id: str, **changes: Any) -> Dict[str, Any]:
        """Apply profile changes; failures are recorded and raised."""
        self._start()
        try:
            async with self._client() as client:
                resp = await client.put(
                    "/api/user/profile", json={"userId": user_id, **changes}
                )
            if resp.status_code >= 400:
                self.error = _error_message(resp)
                resp.raise_for_status()
            self.profile = resp.json().get("data")
            return self.profile
        except (httpx.HTTPError, ValueError) as exc:
            self.error = self.error or str(exc)
            raise
        finally:
            self.loading = False


class Paginator:
    """1-based page cursor over ``total_items`` split into ``page_size`` pages."""

    def __init__(self, initial_page: int = 1, page_size: int = 100, total_items: int = 0):
        self.initial_page = initial_page
        self.page_size = page_size
        self.total_items = total_items
        self.current_page = initial_page

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.page_size) if self.page_size else 0

    def go_to_page(self, page: int) -> None:
        # out-of-range requests are ignored
        if page < 1 or page > self.total_pages:
            return
        self.current_page = page

    def next_page(self) -> None:
        self.go_to_page(self.current_page + 1)

    def prev_page(self) -> None:
        self.go_to_page(self.current_page - 1)

    def reset(self) -> None:
        self.current_page = self.initial_page
