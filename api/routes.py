"""
Miscellaneous REST routes.
"""

from __future__ import annotations

import logging
from typing import Dict

from fastapi import APIRouter, HTTPException, status

from utils.encryption import EncryptionError, encrypt
from utils.schemas import EncryptRequest

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/encrypt")
async def encrypt_text(request: EncryptRequest) -> Dict[str, str]:
    """Encrypt a secret with the server key (AES-256-GCM)."""
    if not request.text:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, "Text is required")

    try:
        encrypted = encrypt(request.text)
    except EncryptionError as exc:
        logger.error("Encryption error: %s", exc)
        raise HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, f"Encryption failed: {exc}")

    return {"encrypted": encrypted}


@router.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "ok"}
