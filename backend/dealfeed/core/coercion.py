"""
Total coercion helpers from raw feed cells to typed deal fields.

None of these raise: bad input degrades to a neutral value (0, empty list,
empty string, None).
"""
from __future__ import annotations

import math
import re
from typing import List, Optional
from urllib.parse import urlsplit

from dealfeed.utils import parse_utc_datetime, to_iso

_NUMBER_CHARS_RE = re.compile(r"[^0-9.]")
_LIST_SPLIT_RE = re.compile(r"[,;]")
_INVISIBLE_CHARS_RE = re.compile("[\u00ad\u200b-\u200f\u2060\ufeff]")
_ESCAPED_AMP_RE = re.compile(r"&amp;", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_CURRENCY_RE = re.compile(r"[A-Z]{3}")


def to_number(value: Optional[str]) -> float:
    """
    Parse a price-like cell ("$1,299.00", "AUD 49") into a float.

    Everything except digits and the decimal point is dropped first, so
    signs are ignored.

    Returns:
        The parsed number, or 0.0 for empty/unparseable/non-finite input
    """
    cleaned = _NUMBER_CHARS_RE.sub("", value or "")
    if not cleaned:
        return 0.0
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def to_list(value: Optional[str]) -> List[str]:
    """Split a ``,``/``;`` separated cell into trimmed, non-empty pieces."""
    if not value:
        return []
    return [piece.strip() for piece in _LIST_SPLIT_RE.split(value) if piece.strip()]


def sanitize_url(value: Optional[str]) -> str:
    """
    Clean a hand-pasted URL so it can be used as a link target.

    Removes zero-width characters, un-escapes ``&amp;``, trims, adds
    ``https://`` when there is no http(s) scheme and percent-encodes
    whitespace. Applying it twice gives the same result as applying it once.

    Args:
        value: Raw URL cell (can be None)

    Returns:
        Sanitized URL, or empty string for empty input
    """
    url = _INVISIBLE_CHARS_RE.sub("", value or "")
    while _ESCAPED_AMP_RE.search(url):
        url = _ESCAPED_AMP_RE.sub("&", url)
    url = url.strip()
    if not url:
        return ""

    if not _SCHEME_RE.match(url):
        url = "https:" + url if url.startswith("//") else "https://" + url

    return _WHITESPACE_RE.sub("%20", url)


def is_absolute_http_url(value: str) -> bool:
    """True when ``value`` has an http/https scheme and a host."""
    try:
        parts = urlsplit(value or "")
        return parts.scheme.lower() in ("http", "https") and bool(parts.hostname)
    except ValueError:
        return False


def to_currency(value: Optional[str], default: str) -> str:
    """Upper-case a 3-letter currency code, falling back to ``default``."""
    code = (value or "").strip().upper()
    return code if _CURRENCY_RE.fullmatch(code) else default


def to_timestamp(value: Optional[str]) -> Optional[str]:
    """Re-emit a timestamp cell as UTC ISO-8601, or None when unparseable."""
    parsed = parse_utc_datetime((value or "").strip())
    return to_iso(parsed) if parsed else None
