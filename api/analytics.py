"""
AI analytics route — natural-language questions over the user's GA4 and
Search Console data, answered with the user's own LLM key.

Route prefix: /api
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import db_session
from config.settings import config
from core.analytics_assistant import AnalyticsAssistant
from database.helpers import get_user, save_conversation
from utils.encryption import EncryptionError, decrypt
from utils.llm_providers import (
    DEFAULT_MODELS,
    SUPPORTED_PROVIDERS,
    LLMProviderError,
    get_llm_provider,
)
from utils.schemas import AIAnalyticsRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["ai"])


@router.post("/ai/analytics")
async def ai_analytics(
    body: AIAnalyticsRequest,
    session: AsyncSession = Depends(db_session),
) -> Dict[str, Any]:
    if not body.message:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Message is required")
    if not body.user_id:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "User ID is required")

    try:
        user = await get_user(session, body.user_id)
    except SQLAlchemyError as exc:
        logger.error("Failed to load LLM settings for %s: %s", body.user_id, exc)
        user = None
    if user is None:
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to fetch user settings")

    if not user.llm_api_key_encrypted:
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            "No API key configured. Please add your API key in Settings.",
        )

    try:
        api_key = decrypt(user.llm_api_key_encrypted)
    except EncryptionError as exc:
        logger.error("Decryption error for %s: %s", body.user_id, exc)
        raise HTTPException(
            status.HTTP_400_BAD_REQUEST,
            "Failed to decrypt API key. Please re-enter your key in Settings.",
        )

    provider = user.llm_provider or config.ai_default_provider
    if provider not in SUPPORTED_PROVIDERS:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, f"Unsupported LLM provider '{provider}'")
    model = user.llm_model or DEFAULT_MODELS[provider]

    logger.info("AI analytics request from %s via %s/%s", body.user_id, provider, model)
    assistant = AnalyticsAssistant(get_llm_provider(provider, api_key=api_key, default_model=model))

    try:
        reply = await assistant.answer(body.message, body.user_id)
    except LLMProviderError as exc:
        logger.error("LLM call failed for %s: %s", body.user_id, exc)
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, f"LLM request failed: {exc}")

    if reply.answered:
        try:
            await save_conversation(
                session,
                user_id=body.user_id,
                session_id=body.session_id or str(uuid.uuid4()),
                question=body.message,
                answer=reply.body["summary"],
                sql=reply.sql,
                chart_type=reply.chart_type,
                model=model,
                provider=provider,
            )
        except SQLAlchemyError as exc:
            logger.error("Failed to save conversation for %s: %s", body.user_id, exc)
            await session.rollback()

    return reply.body
