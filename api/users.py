"""
User routes — account creation, plan / profile lookup and update, usage
counters and per-user LLM settings.

Route prefix: /api
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session
from config.plans import DEFAULT_PLAN
from config.settings import config
from database.helpers import (
    FREE_PLAN_DEFAULTS,
    create_user,
    get_usage,
    get_user,
    row_to_dict,
    update_user,
)
from utils.encryption import EncryptionError, encrypt
from utils.llm_providers import DEFAULT_MODELS, SUPPORTED_PROVIDERS
from utils.schemas import CreateUserRequest, SaveLLMSettingsRequest, UpdateProfileRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["users"])


def _require_user_id(user_id: Optional[str]) -> str:
    if not user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing userId")
    return user_id


@router.post("/users/create", status_code=status.HTTP_201_CREATED)
async def create_user_route(
    body: CreateUserRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Insert the application row for a freshly signed-up identity."""
    if not body.id or not body.email:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Missing id or email")

    try:
        user = await create_user(session, **body.model_dump(), **FREE_PLAN_DEFAULTS)
    except IntegrityError as exc:
        logger.error("Could not create user %s: %s", body.id, exc.orig)
        raise HTTPException(status.HTTP_400_BAD_REQUEST, str(exc.orig))

    return row_to_dict(user)


@router.get("/user-profile")
async def get_user_plan(
    user_id: Optional[str] = Query(None, alias="userId"),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, str]:
    user = await get_user(session, _require_user_id(user_id))
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")
    return {"plan": user.plan or DEFAULT_PLAN}


@router.get("/user/profile")
async def get_profile(
    user_id: Optional[str] = Query(None, alias="userId"),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    user = await get_user(session, _require_user_id(user_id))
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    data = row_to_dict(user)
    data["plan"] = data.get("plan") or DEFAULT_PLAN
    return {"data": data}


@router.put("/user/profile")
async def update_profile(
    body: UpdateProfileRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """
    Update editable profile fields.

    Plan, limits, subscription and token columns are never written here;
    those change only through verified billing flows.
    """
    user_id = _require_user_id(body.user_id)
    changes = body.model_dump(exclude_unset=True, exclude={"user_id"})

    user = await update_user(session, user_id, changes)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    logger.info("Updated profile for user %s: %s", user_id, sorted(changes))
    return {"data": row_to_dict(user)}


@router.get("/usage")
async def get_usage_route(
    user_id: Optional[str] = Query(None, alias="userId"),
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    usage = await get_usage(session, _require_user_id(user_id))
    if usage is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "Usage not found")
    return row_to_dict(usage)


@router.post("/settings/save-llm")
async def save_llm_settings(
    body: SaveLLMSettingsRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    """Store the user's LLM provider / model and their API key (encrypted)."""
    if not body.user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "User ID required")

    provider = body.llm_provider or config.ai_default_provider
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            f"Unsupported LLM provider '{provider}'. Choose from: {', '.join(SUPPORTED_PROVIDERS)}",
        )

    values: Dict[str, Any] = {
        "llm_provider": provider,
        "llm_model": body.llm_model or DEFAULT_MODELS[provider],
    }

    api_key = (body.llm_api_key or "").strip()
    if api_key:
        try:
            values["llm_api_key_encrypted"] = encrypt(api_key)
        except EncryptionError as exc:
            logger.error("Could not encrypt API key for %s: %s", body.user_id, exc)
            raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    user = await update_user(session, body.user_id, values)
    if user is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, "User not found")

    return {
        "success": True,
        "data": {"id": user.id, "llm_provider": user.llm_provider, "llm_model": user.llm_model},
        "keyEncrypted": bool(api_key),
    }
