"""
Exception hierarchy for account linking and sync.

Every error carries a human-readable ``message``, a stable ``error_code``
and an optional ``details`` dict.  OAuth handlers turn these into redirect
query parameters; sync engines turn them into ``SyncResult.errors`` entries.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class IntegrationError(Exception):
    """Base class for all integration errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTEGRATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ProviderError(IntegrationError):
    """A remote platform API answered with an error payload."""

    def __init__(self, platform: str, message: str, status_code: Optional[int] = None):
        super().__init__(
            message,
            "PROVIDER_ERROR",
            {"platform": platform, "status_code": status_code},
        )
        self.platform = platform
        self.status_code = status_code


class OAuthStateError(IntegrationError):
    """CSRF mismatch, expired or malformed state, missing PKCE verifier."""

    def __init__(self, reason: str):
        super().__init__(reason, "OAUTH_STATE_INVALID", {"reason": reason})


class ReconnectRequired(IntegrationError):
    """Stored credentials can no longer be refreshed."""

    def __init__(self, platform: str, reason: str):
        super().__init__(
            f"{reason}. User needs to reconnect.",
            "RECONNECT_REQUIRED",
            {"platform": platform},
        )


class ConnectionNotFound(IntegrationError):
    def __init__(self, connection_id: Optional[str] = None, message: str = "Connection not found"):
        super().__init__(
            message,
            "CONNECTION_NOT_FOUND",
            {"connection_id": connection_id},
        )


class ConfigurationError(IntegrationError):
    def __init__(self, message: str):
        super().__init__(message, "CONFIGURATION_ERROR")


class TokenDecryptionError(IntegrationError):
    """Ciphertext failed authentication (tampered blob or wrong key)."""

    def __init__(self, message: str = "Token decryption failed"):
        super().__init__(message, "TOKEN_DECRYPTION_FAILED")
