"""
Token manager — store / get / refresh per-user Google OAuth tokens.

Tokens live on the ``users`` row, one JSON document per connector
(``ga_token``, ``gsc_token``, ``google_auth_token``)::

    {access_token, refresh_token, expires_in, token_type, scope, saved_at}

Access and refresh tokens are encrypted at rest when ``ENCRYPTION_KEY``
is configured.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from connectors.base import BaseConnector
from connectors.registry import ConnectorRegistry
from database.helpers import get_user, update_user
from utils.encryption import decrypt_token, encrypt_token

logger = logging.getLogger(__name__)

REFRESH_BUFFER_SECONDS = 60


class NotConnectedError(Exception):
    """The user has no stored token for the requested connector."""


def build_token_record(
    token_data: Dict[str, Any],
    previous: Optional[Dict[str, Any]] = None,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Turn a token-endpoint response into the stored JSON document.

    Google only returns a refresh token on first consent (or with
    ``prompt=consent``), so the previous one is kept when absent.
    """
    now = now or datetime.now(timezone.utc)
    refresh = token_data.get("refresh_token")
    if refresh:
        refresh = encrypt_token(refresh)
    elif previous:
        refresh = previous.get("refresh_token")

    return {
        "access_token": encrypt_token(token_data["access_token"]),
        "refresh_token": refresh,
        "expires_in": int(token_data.get("expires_in") or 3600),
        "token_type": token_data.get("token_type", "Bearer"),
        "scope": token_data.get("scope", ""),
        "saved_at": now.isoformat(),
    }


def is_expired(record: Dict[str, Any], *, now: Optional[datetime] = None) -> bool:
    """True when the token expires within ``REFRESH_BUFFER_SECONDS``."""
    now = now or datetime.now(timezone.utc)
    saved_at = record.get("saved_at")
    if not saved_at:
        return True
    saved = datetime.fromisoformat(saved_at)
    if saved.tzinfo is None:
        saved = saved.replace(tzinfo=timezone.utc)
    expires_in = int(record.get("expires_in") or 3600)
    return now > saved + timedelta(seconds=expires_in - REFRESH_BUFFER_SECONDS)


async def store_connection(
    session: AsyncSession,
    user_id: str,
    connector: BaseConnector,
    token_data: Dict[str, Any],
) -> bool:
    """
    Persist the tokens returned by ``connector.handle_callback``.

    Returns False when the user row does not exist.
    """
    user = await get_user(session, user_id)
    if user is None:
        logger.warning("store_connection: unknown user %s", user_id)
        return False

    previous = getattr(user, connector.token_column)
    record = build_token_record(token_data, previous)
    await update_user(session, user_id, {connector.token_column: record})
    logger.info("Stored %s token for user %s", connector.provider_name, user_id)
    return True


async def get_active_token(
    session: AsyncSession,
    user_id: str,
    provider: str,
) -> str:
    """
    Return a valid access token for the user + connector, refreshing it
    first when it is about to expire.

    Raises ``NotConnectedError`` when no token is stored.
    """
    connector = ConnectorRegistry().get(provider)
    if connector is None:
        raise ValueError(f"Unknown provider: {provider}")

    user = await get_user(session, user_id)
    record = getattr(user, connector.token_column) if user else None
    if not record or not record.get("access_token"):
        raise NotConnectedError(f"{connector.display_name} account not connected")

    if not is_expired(record):
        return decrypt_token(record["access_token"])

    refresh_token = decrypt_token(record.get("refresh_token"))
    if not refresh_token:
        raise NotConnectedError(
            f"{connector.display_name} token expired and no refresh token is stored"
        )

    logger.info("Refreshing %s token for user %s", provider, user_id)
    refreshed = await connector.refresh_access_token(refresh_token)
    new_record = build_token_record(refreshed, record)
    await update_user(session, user_id, {connector.token_column: new_record})
    return refreshed["access_token"]
