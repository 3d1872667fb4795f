"""
Google data APIs used after a connection is made — GA4 property and
Search Console site discovery.

Listing failures are logged and yield an empty list so one broken API
does not hide the other.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

_GA_ADMIN_URL = "https://analyticsadmin.googleapis.com/v1beta"
_GSC_SITES_URL = "https://www.googleapis.com/webmasters/v3/sites"


def _auth_headers(access_token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


async def _fetch_account_properties(
    client: httpx.AsyncClient,
    account: Dict[str, Any],
) -> List[Dict[str, Any]]:
    resp = await client.get(
        f"{_GA_ADMIN_URL}/properties",
        params={"filter": f"parent:{account['name']}"},
    )
    if resp.status_code != 200:
        logger.error("GA4 properties error for account %s: %s", account["name"], resp.text)
        return []

    return [
        {
            "name": prop["name"],
            "displayName": prop.get("displayName"),
            "propertyId": prop["name"].replace("properties/", ""),
            "createTime": prop.get("createTime"),
            "updateTime": prop.get("updateTime"),
            "parent": prop.get("parent"),
            "timeZone": prop.get("timeZone"),
            "currencyCode": prop.get("currencyCode"),
            "accountName": account.get("displayName"),
        }
        for prop in resp.json().get("properties", [])
    ]


async def fetch_ga4_properties(
    access_token: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[Dict[str, Any]]:
    """List every GA4 property across all accounts the token can see."""
    try:
        async with httpx.AsyncClient(
            headers=_auth_headers(access_token), transport=transport
        ) as client:
            resp = await client.get(f"{_GA_ADMIN_URL}/accounts")
            if resp.status_code != 200:
                logger.error("GA4 accounts error: %s", resp.text)
                return []

            accounts = resp.json().get("accounts", [])
            if not accounts:
                return []

            per_account = await asyncio.gather(
                *(_fetch_account_properties(client, account) for account in accounts)
            )
    except httpx.HTTPError as exc:
        logger.error("Error fetching GA4 properties: %s", exc)
        return []

    return [prop for props in per_account for prop in props]


async def fetch_gsc_sites(
    access_token: str,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> List[Dict[str, Any]]:
    """List the Search Console sites the token can see."""
    try:
        async with httpx.AsyncClient(
            headers=_auth_headers(access_token), transport=transport
        ) as client:
            resp = await client.get(_GSC_SITES_URL)
    except httpx.HTTPError as exc:
        logger.error("Error fetching GSC sites: %s", exc)
        return []

    if resp.status_code != 200:
        logger.error("GSC sites error: %s", resp.text)
        return []

    return [
        {"siteUrl": site.get("siteUrl"), "permissionLevel": site.get("permissionLevel")}
        for site in resp.json().get("siteEntry", [])
    ]
