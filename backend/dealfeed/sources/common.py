"""
Common utilities for scraping retailer pages.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional, Pattern
from urllib.parse import urljoin


def absolute_url(base: str, maybe_relative: str) -> str:
    """
    Resolve a possibly relative URL against the page it was found on.

    Args:
        base: URL of the page the link came from
        maybe_relative: href/src/content value as written in the HTML

    Returns:
        Absolute URL, or the input unchanged if it cannot be resolved
    """
    try:
        return urljoin(base, maybe_relative.strip())
    except ValueError:
        return maybe_relative


def first_match(html: str, patterns: Iterable[Pattern[str]]) -> Optional[str]:
    """
    Return the first capture group of the first pattern that matches.

    Args:
        html: Page source
        patterns: Compiled regexes, each with one capture group

    Returns:
        Captured text, or None if no pattern matches
    """
    for pattern in patterns:
        match = pattern.search(html or "")
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None


def meta_patterns(attribute: str, names: str) -> list[Pattern[str]]:
    """Build both attribute orderings of a ``<meta {attribute}=... content=...>`` matcher."""
    return [
        re.compile(
            rf"<meta\s+{attribute}=[\"'](?:{names})[\"']\s+content=[\"']([^\"']+)[\"']",
            re.IGNORECASE,
        ),
        re.compile(
            rf"<meta\s+content=[\"']([^\"']+)[\"']\s+{attribute}=[\"'](?:{names})[\"']",
            re.IGNORECASE,
        ),
    ]
