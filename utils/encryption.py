"""
Secret encryption — AES-256-GCM for user API keys and OAuth tokens at rest.

Uses ``AESGCM`` from the ``cryptography`` library.  The key is loaded from
``config.encryption_key`` (env var: ``ENCRYPTION_KEY``) and must be 32 bytes
encoded as 64 hex characters.  Generate one with::

    openssl rand -hex 32

Ciphertext format: ``base64(iv[12] || ciphertext || tag[16])``.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config.settings import config

logger = logging.getLogger(__name__)

_IV_LENGTH = 12
_KEY_HEX_LENGTH = 64

_cipher: AESGCM | None = None
_cipher_key: str | None = None
_plaintext_warned = False


class EncryptionError(Exception):
    """Raised when encryption is misconfigured or a ciphertext is invalid."""


def _get_cipher() -> AESGCM:
    """Build (and cache per key) the AES-GCM cipher."""
    global _cipher, _cipher_key

    key = config.encryption_key
    if _cipher is not None and key == _cipher_key:
        return _cipher

    if not key or len(key) != _KEY_HEX_LENGTH:
        raise EncryptionError(
            "ENCRYPTION_KEY must be set (32 bytes as hex). Generate with: openssl rand -hex 32"
        )
    try:
        _cipher = AESGCM(bytes.fromhex(key))
    except ValueError as exc:
        raise EncryptionError(f"ENCRYPTION_KEY is not valid hex: {exc}") from exc
    _cipher_key = key
    return _cipher


def is_encryption_configured() -> bool:
    """Check whether a well-formed key is configured."""
    return len(config.encryption_key or "") == _KEY_HEX_LENGTH


def encrypt(plaintext: str) -> str:
    """Encrypt a string. Empty input returns an empty string."""
    if not plaintext:
        return ""
    cipher = _get_cipher()
    iv = os.urandom(_IV_LENGTH)
    sealed = cipher.encrypt(iv, plaintext.encode(), None)
    return base64.b64encode(iv + sealed).decode()


def decrypt(ciphertext: str) -> str:
    """Decrypt a value produced by :func:`encrypt`."""
    if not ciphertext:
        return ""
    cipher = _get_cipher()
    try:
        combined = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncryptionError("Ciphertext is not valid base64") from exc
    if len(combined) <= _IV_LENGTH:
        raise EncryptionError("Ciphertext is too short")
    try:
        return cipher.decrypt(combined[:_IV_LENGTH], combined[_IV_LENGTH:], None).decode()
    except InvalidTag as exc:
        raise EncryptionError("Ciphertext failed authentication") from exc


def mask_api_key(key: str) -> str:
    """Mask an API key for display, keeping the first and last 4 chars."""
    if not key or len(key) < 12:
        return "•" * 8
    return f"{key[:4]}{'•' * min(len(key) - 8, 20)}{key[-4:]}"


# ── OAuth token helpers (fall back to plaintext when unconfigured) ──


def encrypt_token(plaintext: str | None) -> str | None:
    """
    Encrypt a token for database storage.

    If no key is configured the token is returned unchanged.
    """
    global _plaintext_warned

    if not plaintext:
        return plaintext
    if not is_encryption_configured():
        if not _plaintext_warned:
            logger.warning("ENCRYPTION_KEY not set — OAuth tokens will be stored as plaintext.")
            _plaintext_warned = True
        return plaintext
    return encrypt(plaintext)


def decrypt_token(ciphertext: str | None) -> str | None:
    """
    Decrypt a stored token.

    Tokens stored before encryption was enabled are not valid ciphertexts
    and are returned as-is.
    """
    if not ciphertext or not is_encryption_configured():
        return ciphertext
    try:
        return decrypt(ciphertext)
    except EncryptionError:
        return ciphertext
