"""
Best-effort product image discovery for deals whose feed row has no image.

Lookups go through an ``ImageCache`` that lives for one listing request and
is discarded with it. A failed lookup leaves the deal's image empty.

Also serves the image proxy, which downloads a product image for the
browser when the retailer blocks hotlinking.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import httpx

from dealfeed.config import DEFAULT_IMAGE_CONTENT_TYPE, HTTP_HEADERS, RETAILER_LOGOS
from dealfeed.core.coercion import is_absolute_http_url, sanitize_url
from dealfeed.models import Deal
from dealfeed.sources.common import absolute_url, first_match, meta_patterns

logger = logging.getLogger(__name__)

IMAGE_PATTERNS = [
    *meta_patterns("(?:property|name)", r"og:image(?::secure_url)?"),
    *meta_patterns("name", r"twitter:image(?::src)?"),
    re.compile(r"<link\s+rel=[\"']image_src[\"']\s+href=[\"']([^\"']+)[\"']", re.IGNORECASE),
]
IMG_TAG_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)
IMAGE_EXTENSION_RE = re.compile(r"\.(avif|webp|png|jpe?g|gif)$", re.IGNORECASE)
LOGO_PATH_RE = re.compile(r"(^|/)(logo|brand|sprite|placeholder|icon|badge)(-|_|\.|/)")
LOGO_NAME_RE = re.compile(r"apple-touch-icon|favicon")


class ImageCache:
    """Page URL -> discovered image URL (or None for a miss).

    Scoped to a single listing request: create one per pipeline run and let
    it go out of scope afterwards. There is no other eviction.
    """

    def __init__(self):
        self._entries: Dict[str, Optional[str]] = {}

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, url: str) -> Optional[str]:
        return self._entries.get(url)

    def put(self, url: str, image: Optional[str]) -> None:
        self._entries[url] = image


def is_logo_like(url: str) -> bool:
    """True for URLs that look like logos, sprites or favicons rather than product shots."""
    lowered = url.lower()
    return (
        lowered.endswith(".svg")
        or bool(LOGO_PATH_RE.search(lowered))
        or bool(LOGO_NAME_RE.search(lowered))
    )


def extract_image_url(html: str, page_url: str) -> Optional[str]:
    """
    Pick the most plausible product image from a retailer page.

    Prefers og:image / twitter:image / image_src. When those are missing or
    look like a logo, falls back to the first ``<img>`` with a photo
    extension.

    Args:
        html: Page source
        page_url: URL the page was served from, for resolving relative links

    Returns:
        Absolute image URL, or None
    """
    candidate = first_match(html, IMAGE_PATTERNS)
    if candidate:
        candidate = absolute_url(page_url, candidate)

    if not candidate or is_logo_like(candidate):
        candidate = None
        for match in IMG_TAG_RE.finditer(html or ""):
            src = absolute_url(page_url, match.group(1))
            path = src.split("?", 1)[0]
            if IMAGE_EXTENSION_RE.search(path) and not is_logo_like(path):
                candidate = src
                break

    if candidate and is_absolute_http_url(candidate):
        return candidate
    return None


class ImageResolver:
    """Looks up a product image by fetching the deal's page."""

    def __init__(self, client: httpx.AsyncClient, cache: Optional[ImageCache] = None):
        self.client = client
        self.cache = cache if cache is not None else ImageCache()

    async def resolve(self, url: str) -> Optional[str]:
        """
        Find an image for a product page.

        Args:
            url: Absolute product page URL

        Returns:
            Absolute image URL, or None if the page is unreachable or has none
        """
        if url in self.cache:
            return self.cache.get(url)

        image: Optional[str] = None
        try:
            response = await self.client.get(url, headers=HTTP_HEADERS, follow_redirects=True)
            if response.is_success:
                image = extract_image_url(response.text, str(response.url))
        except httpx.HTTPError as e:
            logger.debug("Image lookup failed for %s: %s", url, e)

        self.cache.put(url, image)
        return image


async def backfill_images(deals: List[Deal], resolver: ImageResolver) -> List[Deal]:
    """
    Fill in missing images concurrently, one lookup per image-less deal.

    A lookup that fails, or raises, leaves that deal untouched.

    Args:
        deals: Normalized deals (updated in place)
        resolver: Image resolver bound to this request's cache

    Returns:
        The same list of deals
    """
    pending = [deal for deal in deals if not deal.image]
    if not pending:
        return deals

    results = await asyncio.gather(
        *(resolver.resolve(deal.url) for deal in pending),
        return_exceptions=True,
    )

    filled = 0
    for deal, result in zip(pending, results):
        if isinstance(result, BaseException):
            logger.debug("Image backfill error for %s: %s", deal.id, result)
            continue
        if result:
            deal.image = result
            filled += 1

    logger.info("Backfilled images for %d of %d deals", filled, len(pending))
    return deals


def retailer_logo(retailer: str) -> str:
    """Known logo URL for a retailer, or an empty string."""
    return RETAILER_LOGOS.get((retailer or "").strip(), "")


def origin_referer(url: str) -> Optional[str]:
    """``scheme://host/`` of ``url``, for use as a Referer header."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https") or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}/"


async def fetch_image_bytes(
    client: httpx.AsyncClient,
    image_url: str,
    referer: Optional[str] = None,
) -> Tuple[bytes, str]:
    """
    Download an image.

    Raises:
        httpx.HTTPError: on transport failure or a non-success status
    """
    headers = dict(HTTP_HEADERS)
    origin = origin_referer(referer) if referer else None
    if origin:
        headers["Referer"] = origin

    response = await client.get(image_url, headers=headers, follow_redirects=True)
    response.raise_for_status()
    content_type = response.headers.get("content-type") or DEFAULT_IMAGE_CONTENT_TYPE
    return response.content, content_type


async def proxy_image(
    client: httpx.AsyncClient,
    page_url: str = "",
    image_url: str = "",
    base: str = "",
) -> Optional[Tuple[bytes, str]]:
    """
    Fetch the bytes of a deal image on the caller's behalf.

    A direct ``image_url`` (resolved against ``base``) wins over ``page_url``,
    whose image is discovered with ``extract_image_url``. The download is
    tried with a Referer from the page's origin first, since some retailers
    block hotlinking, then once more without one.

    Args:
        client: Outbound HTTP client
        page_url: Product page to take the image from
        image_url: Image to fetch directly
        base: Page the image belongs to; defaults to ``page_url``

    Returns:
        (content, content type), or None when no image could be fetched
    """
    page_url = sanitize_url(page_url)
    base = sanitize_url(base) or page_url

    target: Optional[str] = None
    if image_url:
        target = absolute_url(base, image_url) if base else sanitize_url(image_url)
    elif page_url:
        try:
            response = await client.get(page_url, headers=HTTP_HEADERS, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.debug("Page fetch failed for %s: %s", page_url, e)
            return None
        if not response.is_success:
            logger.debug("Page %s returned HTTP %s", page_url, response.status_code)
            return None
        target = extract_image_url(response.text, str(response.url))

    if not target or not is_absolute_http_url(target):
        return None

    try:
        return await fetch_image_bytes(client, target, referer=base)
    except httpx.HTTPError as e:
        logger.debug("Image fetch with referer failed for %s: %s", target, e)

    try:
        return await fetch_image_bytes(client, target)
    except httpx.HTTPError as e:
        logger.debug("Image fetch failed for %s: %s", target, e)
        return None
