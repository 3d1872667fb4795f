"""
PayPal REST API client — OAuth client-credentials, subscriptions, orders
and webhook signature verification.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from config.settings import config

logger = logging.getLogger(__name__)

# Transmission headers PayPal sends with every webhook delivery
WEBHOOK_HEADERS = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PayPalError(Exception):
    """PayPal could not be reached or answered with an error status."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class PayPalClient:
    def __init__(
        self,
        base_url: str | None = None,
        client_id: str | None = None,
        client_secret: str | None = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or config.paypal_base_url).rstrip("/")
        self.client_id = client_id if client_id is not None else config.paypal_client_id
        self.client_secret = (
            client_secret if client_secret is not None else config.paypal_client_secret
        )
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            transport=self._transport,
            timeout=15.0,
        )

    async def get_access_token(self) -> str:
        """Client-credentials grant."""
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/v1/oauth2/token",
                    auth=(self.client_id, self.client_secret),
                    data={"grant_type": "client_credentials"},
                )
        except httpx.HTTPError as exc:
            raise PayPalError(f"PayPal token request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise PayPalError(
                f"Failed to get PayPal access token: {resp.status_code}",
                resp.status_code,
            )
        return resp.json()["access_token"]

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        token = await self.get_access_token()
        try:
            async with self._client() as client:
                resp = await client.request(
                    method,
                    path,
                    headers={"Authorization": f"Bearer {token}"},
                    **kwargs,
                )
        except httpx.HTTPError as exc:
            raise PayPalError(f"PayPal {method} {path} failed: {exc}") from exc

        if resp.status_code >= 400:
            logger.error("PayPal %s %s → %d: %s", method, path, resp.status_code, resp.text)
            raise PayPalError(
                f"PayPal {method} {path} returned {resp.status_code}",
                resp.status_code,
            )
        return resp.json() if resp.content else {}

    # ── Subscriptions / orders ─────────────────────────────────────────

    async def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v1/billing/subscriptions/{subscription_id}")

    async def get_order(self, order_id: str) -> Dict[str, Any]:
        return await self._request("GET", f"/v2/checkout/orders/{order_id}")

    async def create_subscription(
        self,
        *,
        paypal_plan_id: str,
        user_id: str,
        email: str | None = None,
        given_name: str | None = None,
    ) -> Dict[str, Any]:
        """
        Create a subscription carrying ``custom_id=user_id`` so webhook
        events can be matched back to the user.
        """
        site_url = config.site_url.rstrip("/")
        payload = {
            "plan_id": paypal_plan_id,
            "custom_id": user_id,
            "subscriber": {
                "name": {"given_name": given_name or "User"},
                "email_address": email or user_id,
            },
            "application_context": {
                "brand_name": config.paypal_brand_name,
                "locale": "en-US",
                "shipping_preference": "NO_SHIPPING",
                "user_action": "SUBSCRIBE_NOW",
                "return_url": f"{site_url}/payment/success",
                "cancel_url": f"{site_url}/payment/cancel",
            },
        }
        return await self._request("POST", "/v1/billing/subscriptions", json=payload)

    # ── Webhooks ───────────────────────────────────────────────────────

    async def verify_webhook_signature(
        self,
        headers: Mapping[str, str],
        event: Dict[str, Any],
        webhook_id: str,
    ) -> bool:
        """Ask PayPal whether the delivery was signed for ``webhook_id``."""
        payload: Dict[str, Any] = {
            field: headers.get(header) for field, header in WEBHOOK_HEADERS.items()
        }
        payload["webhook_id"] = webhook_id
        payload["webhook_event"] = event

        result = await self._request(
            "POST",
            "/v1/notifications/verify-webhook-signature",
            json=payload,
        )
        return result.get("verification_status") == "SUCCESS"


_client: Optional[PayPalClient] = None


def get_paypal_client() -> PayPalClient:
    """Process-wide client built from settings."""
    global _client
    if _client is None:
        _client = PayPalClient()
    return _client
