"""
OAuth ``state`` tokens (CSRF protection) and PKCE helpers.

The state parameter is ``base64(json) + "." + sig`` where the JSON payload
is ``{"userId", "csrf", "timestamp"}`` (timestamp in epoch milliseconds)
and ``sig`` is a truncated HMAC-SHA256 over the payload.  The CSRF nonce is
mirrored in an httpOnly cookie and must match exactly on callback.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import secrets
import time
from typing import Optional

from pydantic import ValidationError

from config.settings import config
from connectors.errors import OAuthStateError
from connectors.schemas import OAuthState

STATE_TTL_MS = config.oauth_state_ttl_seconds * 1000


def _now_ms() -> int:
    return int(time.time() * 1000)


def _sign(raw: bytes) -> str:
    return hmac.new(config.oauth_state_secret.encode(), raw, hashlib.sha256).hexdigest()[:16]


def create_csrf_token() -> str:
    return secrets.token_hex(16)


def encode_state(user_id: str, csrf: str, timestamp: Optional[int] = None) -> str:
    """Package ``{userId, csrf, timestamp}`` into an opaque state string."""
    payload = {
        "userId": user_id,
        "csrf": csrf,
        "timestamp": _now_ms() if timestamp is None else timestamp,
    }
    raw = json.dumps(payload).encode()
    return base64.b64encode(raw).decode() + "." + _sign(raw)


def decode_state(state: str) -> OAuthState:
    """Decode and verify the signature of a state string."""
    try:
        encoded, sig = state.split(".", 1)
        raw = base64.b64decode(encoded, validate=True)
    except ValueError as exc:
        raise OAuthStateError("Invalid OAuth state") from exc

    if not hmac.compare_digest(sig, _sign(raw)):
        raise OAuthStateError("Invalid OAuth state signature")

    try:
        return OAuthState.model_validate_json(raw)
    except ValidationError as exc:
        raise OAuthStateError("Invalid OAuth state") from exc


def validate_state(
    state: str,
    csrf_cookie: Optional[str],
    *,
    now_ms: Optional[int] = None,
) -> OAuthState:
    """
    Validate a callback's state against the CSRF cookie.

    Raises ``OAuthStateError`` when the nonce does not match the cookie
    exactly or the state is older than ten minutes.
    """
    data = decode_state(state)

    if csrf_cookie is None or data.csrf != csrf_cookie:
        raise OAuthStateError("CSRF validation failed")

    now = _now_ms() if now_ms is None else now_ms
    if now - data.timestamp > STATE_TTL_MS:
        raise OAuthStateError("OAuth state expired")

    return data


# ── PKCE (RFC 7636) ─────────────────────────────────────────────────────


def generate_code_verifier() -> str:
    """64 chars from the unreserved URL-safe alphabet."""
    return secrets.token_urlsafe(48)


def generate_code_challenge(verifier: str) -> str:
    """S256 challenge: base64url(sha256(verifier)) without padding."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
