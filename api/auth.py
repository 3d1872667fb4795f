"""
Authentication routes — logout and the identity provider's OAuth/PKCE
callback.

Sign-up and sign-in themselves happen in the browser against the hosted
identity provider; the backend only revokes sessions and finishes the
code exchange.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session
from auth.identity import IdentityError, SupabaseAuthClient, get_identity_client
from config.settings import config
from database.helpers import ensure_user_exists

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

_POST_LOGIN_PATH = "/pricing"
_LOGIN_PATH = "/auth/login"


def _login_error(message: str) -> RedirectResponse:
    return RedirectResponse(
        url=f"{config.site_url.rstrip('/')}{_LOGIN_PATH}?{urlencode({'error': message})}"
    )


@router.post("/logout")
async def logout(
    authorization: Optional[str] = Header(None),
    identity: SupabaseAuthClient = Depends(get_identity_client),
) -> Dict[str, bool]:
    """Revoke the caller's session if a Bearer token is sent."""
    if authorization and authorization.startswith("Bearer "):
        try:
            await identity.logout(authorization[7:])
        except IdentityError as exc:
            logger.error("Logout error: %s", exc)
            raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to logout")
    return {"success": True}


@router.get("/callback")
async def auth_callback(
    code: Optional[str] = Query(None),
    code_verifier: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    session: AsyncSession = Depends(db_session),
    identity: SupabaseAuthClient = Depends(get_identity_client),
) -> RedirectResponse:
    """
    Finish the hosted sign-in: exchange the PKCE code, make sure the
    ``users`` row exists, then send the user to the pricing page.
    """
    if error:
        logger.warning("Auth callback error: %s %s", error, error_description)
        return _login_error(error_description or error)

    if not code:
        return _login_error("No code provided")
    if not code_verifier:
        return _login_error("Missing code verifier")

    try:
        auth_session = await identity.exchange_code_for_session(code, code_verifier)
    except IdentityError as exc:
        logger.error("Code exchange failed: %s", exc)
        return _login_error(str(exc))

    user = auth_session["user"]
    await ensure_user_exists(session, user["id"], user.get("email"))
    logger.info("User %s signed in", user["id"])

    return RedirectResponse(url=f"{config.site_url.rstrip('/')}{_POST_LOGIN_PATH}")
