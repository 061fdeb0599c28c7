"""
Bearer-token creation and verification for the identity provider.

Tokens are base64-encoded JSON payloads (``{"user_id", "exp"}``) signed
with HMAC-SHA256.  The secret is shared with the identity provider and
loaded from ``config.jwt_secret`` (env var: ``JWT_SECRET``).
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from base64 import b64decode, b64encode
from typing import Optional

from fastapi import HTTPException, status

from config.settings import config


def _sign(raw: bytes) -> str:
    return hmac.new(config.jwt_secret.encode(), raw, hashlib.sha256).hexdigest()


def create_token(user_id: str, expires_in: Optional[int] = None) -> str:
    """Issue a signed token for ``user_id`` (used by the identity provider and tests)."""
    payload = {
        "user_id": user_id,
        "exp": int(time.time()) + (config.jwt_expiry_seconds if expires_in is None else expires_in),
    }
    raw = json.dumps(payload).encode()
    return b64encode(raw).decode() + "." + _sign(raw)


def verify_token(token: str) -> str:
    """
    Verify token and return ``user_id``.

    Raises ``HTTPException(401)`` on malformed, forged or expired tokens.
    """
    try:
        encoded, sig = token.split(".", 1)
        raw = b64decode(encoded, validate=True)
        if not hmac.compare_digest(sig, _sign(raw)):
            raise ValueError("bad signature")
        payload = json.loads(raw)
        if payload.get("exp", 0) < time.time():
            raise ValueError("token expired")
        return str(payload["user_id"])
    except (ValueError, KeyError, TypeError) as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {exc}",
            headers={"WWW-Authenticate": "Bearer"},
        )
