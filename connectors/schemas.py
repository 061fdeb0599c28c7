"""
Pydantic schemas shared by the OAuth connectors.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class OAuthState(BaseModel):
    """Decoded ``state`` parameter of one authorization attempt."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., alias="userId")
    csrf: str
    timestamp: int  # epoch milliseconds


class OAuthTokens(BaseModel):
    """
    Normalised token-endpoint response.

    ``expires_in`` / ``refresh_expires_in`` are seconds from issue time.
    """

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: int = 3600
    refresh_expires_in: Optional[int] = None
    scopes: List[str] = Field(default_factory=list)
    token_type: str = "Bearer"
    account_id: Optional[str] = None  # provided by TikTok (open_id)
    issued_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(seconds=self.expires_in)

    @property
    def refresh_expires_at(self) -> Optional[datetime]:
        if self.refresh_expires_in is None:
            return None
        return self.issued_at + timedelta(seconds=self.refresh_expires_in)


class ResolvedAccount(BaseModel):
    """
    Platform identity discovered after token exchange.

    ``connection_fields`` go on the connection row (platform account id,
    page id, …); ``profile`` is the initial Account Profile row.
    """

    account_id: str
    connection_fields: Dict[str, Any] = Field(default_factory=dict)
    profile: Dict[str, Any] = Field(default_factory=dict)
