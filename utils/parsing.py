"""
Small coercion helpers for provider payloads.

Providers disagree on how they encode numbers and timestamps (YouTube sends
counters as strings, Instagram uses ``+0000`` offsets, TikTok epoch
seconds); these helpers normalise them into the column types we store.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Optional

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")

MAX_TEXT_LENGTH = 5000


def to_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO-8601 string or epoch seconds → aware UTC datetime (None if unparseable)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)

    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = _COMPACT_OFFSET.sub(r"\1:\2", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def truncate(text: Optional[str], limit: int = MAX_TEXT_LENGTH) -> Optional[str]:
    if text is None:
        return None
    return text[:limit]


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
