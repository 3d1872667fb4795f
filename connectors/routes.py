"""
Connector API routes — OAuth authorize/callback and Google property
discovery.

Route prefix: /api
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session
from config.settings import config
from connectors.base import BaseConnector
from connectors.google_api import fetch_ga4_properties, fetch_gsc_sites
from connectors.registry import ConnectorRegistry
from connectors.token_manager import NotConnectedError, get_active_token, store_connection
from database.helpers import row_to_dict, update_user
from utils.schemas import SavePropertiesRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])


def _get_connector(provider: str) -> BaseConnector:
    connector = ConnectorRegistry().get(provider)
    if not connector:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Provider '{provider}' not found",
        )
    return connector


def _redirect(path: str) -> RedirectResponse:
    return RedirectResponse(url=f"{config.site_url.rstrip('/')}{path}")


@router.get("/connectors")
async def list_connectors() -> List[Dict[str, object]]:
    """List the OAuth connectors and whether each can start a flow."""
    return ConnectorRegistry().list_providers()


# ── Google property discovery ──────────────────────────────────────────


@router.get("/google/properties")
async def list_google_properties(
    user_id: Optional[str] = Query(None, alias="userId"),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """List the GA4 properties and Search Console sites of the connected account."""
    if not user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing userId")

    try:
        access_token = await get_active_token(session, user_id, "google")
    except NotConnectedError:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Google account not connected")
    except httpx.HTTPError as exc:
        logger.error("Google token refresh failed for %s: %s", user_id, exc)
        raise HTTPException(
            status.HTTP_401_UNAUTHORIZED,
            "Google session expired, please reconnect",
        )

    ga4_properties, gsc_sites = await asyncio.gather(
        fetch_ga4_properties(access_token),
        fetch_gsc_sites(access_token),
    )
    return {"ga4Properties": ga4_properties, "gscSites": gsc_sites}


@router.post("/google/save-properties")
async def save_google_properties(
    body: SavePropertiesRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Store the GA4 property / Search Console site the user picked."""
    if not body.user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing userId")
    if not body.ga4_property_id and not body.gsc_site_url:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            "At least one property must be selected",
        )

    values: Dict[str, Any] = {}
    if body.ga4_property_id:
        values["ga4_property_id"] = body.ga4_property_id
        values["ga4_property_name"] = body.ga4_property_name
    if body.gsc_site_url:
        values["gsc_site_url"] = body.gsc_site_url

    user = await update_user(session, body.user_id, values)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    logger.info("Saved Google properties for user %s: %s", body.user_id, sorted(values))
    return {"success": True, "data": row_to_dict(user)}


# ── OAuth flow ─────────────────────────────────────────────────────────


@router.get("/{provider}/authorize")
async def authorize(
    provider: str,
    user_id: Optional[str] = Query(None, alias="userId"),
) -> Dict[str, str]:
    """
    Build the Google consent URL for a connector.

    The frontend navigates the browser to the returned ``authUrl``; the
    user id travels through the flow as the OAuth ``state``.
    """
    connector = _get_connector(provider)

    if not user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing userId")
    if not connector.is_configured():
        logger.error("Cannot build %s auth URL: GOOGLE_CLIENT_ID is not set", provider)
        raise HTTPException(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "Missing Google Client ID",
        )

    return {"authUrl": connector.get_auth_url(user_id)}


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    session: AsyncSession = Depends(db_session),
) -> RedirectResponse:
    """
    OAuth callback — Google redirects here after consent.

    Exchanges the auth code for tokens, stores them on the user row and
    sends the browser back to the dashboard.
    """
    connector = _get_connector(provider)

    if error:
        logger.warning("OAuth %s denied: %s", provider, error)
        return _redirect(connector.failure_redirect(error))

    if not code or not state:
        return _redirect(connector.failure_redirect("Missing code or state"))

    # 1. Exchange code for tokens
    try:
        token_data = await connector.handle_callback(code)
    except Exception as exc:
        logger.error("OAuth callback failed for %s: %s", provider, exc)
        return _redirect(connector.failure_redirect("Failed to exchange code"))

    # 2. Store tokens (state carries the user id)
    try:
        stored = await store_connection(session, state, connector, token_data)
    except SQLAlchemyError as exc:
        logger.error("Could not store %s tokens for %s: %s", provider, state, exc)
        await session.rollback()
        return _redirect(connector.failure_redirect("Failed to save connection"))
    if not stored:
        return _redirect(connector.failure_redirect("User not found"))

    logger.info("User %s connected %s", state, provider)
    return _redirect(connector.success_redirect)
