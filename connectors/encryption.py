"""
Token encryption — encrypt / decrypt OAuth tokens at rest.

Uses AES-256-GCM from the ``cryptography`` library.  Each call draws a
fresh 16-byte nonce; the stored value is::

    base64(nonce(16) || tag(16) || ciphertext)

The process-wide key is loaded from ``config.token_encryption_key``
(env var: ``TOKEN_ENCRYPTION_KEY``, base64 of 32 bytes).  Generate one with::

    python -c "from connectors.encryption import generate_key; print(generate_key())"
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from config.settings import config
from connectors.errors import ConfigurationError, TokenDecryptionError

logger = logging.getLogger(__name__)

NONCE_LENGTH = 16
TAG_LENGTH = 16
KEY_LENGTH = 32


class TokenCipher:
    """AES-256-GCM cipher bound to one key."""

    def __init__(self, key: bytes):
        if len(key) != KEY_LENGTH:
            raise ConfigurationError(
                f"Token encryption key must be {KEY_LENGTH} bytes, got {len(key)}"
            )
        self._aead = AESGCM(key)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        # AESGCM appends the tag to the ciphertext; the stored layout puts it first.
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, blob: str) -> str:
        """
        Decrypt a value produced by :meth:`encrypt`.

        Raises ``TokenDecryptionError`` when the blob is malformed, was
        tampered with, or was sealed under a different key.
        """
        try:
            data = base64.b64decode(blob.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise TokenDecryptionError(f"Token is not valid base64: {exc}") from exc

        if len(data) < NONCE_LENGTH + TAG_LENGTH:
            raise TokenDecryptionError("Token is too short")

        nonce = data[:NONCE_LENGTH]
        tag = data[NONCE_LENGTH:NONCE_LENGTH + TAG_LENGTH]
        ciphertext = data[NONCE_LENGTH + TAG_LENGTH:]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            raise TokenDecryptionError("Token authentication failed") from exc
        return plaintext.decode("utf-8")


def generate_key() -> str:
    """Return a fresh base64-encoded 256-bit key."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")


def cipher_from_b64_key(encoded: str) -> TokenCipher:
    try:
        key = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise ConfigurationError(f"TOKEN_ENCRYPTION_KEY is not valid base64: {exc}") from exc
    return TokenCipher(key)


_cipher: Optional[TokenCipher] = None


def get_cipher() -> TokenCipher:
    """Lazy-initialise the process-wide cipher once."""
    global _cipher

    if _cipher is None:
        if not config.token_encryption_key:
            raise ConfigurationError("TOKEN_ENCRYPTION_KEY is not set")
        _cipher = cipher_from_b64_key(config.token_encryption_key)
        logger.info("Token encryption enabled (AES-256-GCM)")
    return _cipher
