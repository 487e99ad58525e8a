"""
Outbound click resolution: deal id -> final retailer URL.

Affiliate links in the sheet are often shorteners or go stale, so the
target is walked through its redirects and, on a 404, replaced by the
page's canonical URL. Anything that still looks broken sends the visitor
to the retailer's home page.
"""
from __future__ import annotations

import logging
import re
from typing import Any, List, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from dealfeed.config import HOME_FALLBACK_URL, HTTP_HEADERS, MAX_REDIRECT_HOPS
from dealfeed.core.coercion import sanitize_url
from dealfeed.sources.common import absolute_url, first_match, meta_patterns

logger = logging.getLogger(__name__)

CANONICAL_PATTERNS = [
    re.compile(r"<link\s+rel=[\"']canonical[\"']\s+href=[\"']([^\"']+)[\"']", re.IGNORECASE),
    *meta_patterns("property", "og:url"),
]


def deals_from_payload(payload: Any) -> List[Mapping[str, Any]]:
    """Accept either a bare list of deals or ``{"deals": [...]}``."""
    if isinstance(payload, list):
        rows = payload
    elif isinstance(payload, Mapping):
        rows = payload.get("deals") or []
    else:
        rows = []
    return [row for row in rows if isinstance(row, Mapping)]


def find_deal_url(payload: Any, deal_id: str) -> str:
    """
    Look up the outbound URL for a deal id.

    ``payload`` is anything ``deals_from_payload`` accepts: a list of deal
    mappings or ``{"deals": [...]}``. Exact id match first; failing that,
    the first deal whose URL contains the id.

    Returns:
        Sanitized URL, or empty string when nothing matches
    """
    deal_id = (deal_id or "").strip()
    if not deal_id:
        return ""

    deals = deals_from_payload(payload)
    for deal in deals:
        if str(deal.get("id") or "").strip() == deal_id:
            url = sanitize_url(deal.get("url") if isinstance(deal.get("url"), str) else "")
            if url:
                return url
            break

    for deal in deals:
        url = deal.get("url")
        if isinstance(url, str) and deal_id in url:
            return sanitize_url(url)
    return ""


async def head_status(client: httpx.AsyncClient, url: str) -> tuple[bool, int, Optional[str]]:
    """
    HEAD a URL without following redirects.

    Returns:
        (ok, status code, Location header); (False, 0, None) on transport error
    """
    try:
        response = await client.head(url, headers=HTTP_HEADERS, follow_redirects=False)
    except httpx.HTTPError as e:
        logger.debug("HEAD %s failed: %s", url, e)
        return False, 0, None
    code = response.status_code
    return 200 <= code < 400, code, response.headers.get("location")


async def resolve_redirects(
    client: httpx.AsyncClient, url: str, max_hops: int = MAX_REDIRECT_HOPS
) -> str:
    """Follow up to ``max_hops`` redirects by hand and return where they end."""
    current = url
    for _ in range(max_hops):
        _, code, location = await head_status(client, current)
        if 300 <= code < 400 and location:
            current = absolute_url(current, location)
            continue
        break
    return current


async def canonical_if_404(client: httpx.AsyncClient, url: str) -> Optional[str]:
    """If ``url`` is a 404 page, return its canonical / og:url link."""
    try:
        response = await client.get(url, headers=HTTP_HEADERS)
    except httpx.HTTPError as e:
        logger.debug("GET %s failed: %s", url, e)
        return None

    if response.status_code != 404:
        return None
    canonical = first_match(response.text, CANONICAL_PATTERNS)
    return absolute_url(url, canonical) if canonical else None


def domain_home(url: str) -> str:
    """Root of the URL's site, or a generic fallback when it cannot be parsed."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return HOME_FALLBACK_URL
    if not parts.scheme or not parts.netloc:
        return HOME_FALLBACK_URL
    return urlunsplit((parts.scheme, parts.netloc, "/", "", ""))


async def resolve_click_target(client: httpx.AsyncClient, url: str) -> str:
    """
    Work out where an outbound click should land.

    Args:
        client: HTTP client used for HEAD/GET requests
        url: Sanitized deal URL

    Returns:
        Final URL after redirects, canonical fix-up and home-page fallback
    """
    final_url = await resolve_redirects(client, url)

    canonical = await canonical_if_404(client, final_url)
    if canonical:
        final_url = canonical

    ok, _, _ = await head_status(client, final_url)
    if not ok:
        logger.info("Click target %s looks broken, sending to home page", final_url)
        final_url = domain_home(final_url)
    return sanitize_url(final_url)
