"""
Shared utility functions for the deals application.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone
from typing import Optional

from dateutil import parser as dateparser


def now_utc() -> datetime:
    """
    Get current UTC datetime with timezone information.

    Returns:
        Current UTC datetime
    """
    return datetime.now(timezone.utc)


def normalize_text(text: str | None) -> str:
    """
    Normalize whitespace in text content.

    Args:
        text: Input text string (can be None)

    Returns:
        Normalized text with single spaces and trimmed edges
    """
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()


def clamp_to_unit_range(value: float) -> float:
    """
    Clamp a float value to the range [0.0, 1.0].

    Non-finite input (NaN) resolves to 0.0.

    Args:
        value: Input float value

    Returns:
        Value clamped to [0.0, 1.0] range
    """
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo:
        return value.astimezone(timezone.utc)
    return value.replace(tzinfo=timezone.utc)


def parse_utc_datetime(date_string: Optional[str]) -> Optional[datetime]:
    """
    Parse a date string and convert to UTC datetime.

    Args:
        date_string: Date string in various formats, or None

    Returns:
        UTC datetime object, or None if input is empty or unparseable
    """
    if not date_string:
        return None

    try:
        # shifting an edge-of-range value (year 1 or 9999) to UTC overflows
        return ensure_utc(dateparser.parse(date_string))
    except (ValueError, OverflowError):
        return None


def to_iso(value: datetime) -> str:
    """Render a datetime as UTC ISO-8601 with a ``Z`` suffix."""
    return ensure_utc(value).isoformat().replace("+00:00", "Z")
