"""
Raw feed rows -> validated Deal records.

A row that cannot become a valid Deal is dropped, never reported: the feed
is curated by hand and a listing with fewer deals beats a failed request.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, List, Optional

from dealfeed.config import (
    DEFAULT_CATEGORY,
    DEFAULT_CURRENCY,
    DEFAULT_REGIONS,
    MAX_ID_LENGTH,
)
from dealfeed.core.coercion import (
    is_absolute_http_url,
    sanitize_url,
    to_currency,
    to_list,
    to_number,
    to_timestamp,
)
from dealfeed.core.tabular import FeedField, resolve_fields
from dealfeed.models import Deal, RawRow
from dealfeed.utils import normalize_text, now_utc, to_iso

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def synthesize_id(retailer: str, title: str, url: str) -> str:
    """
    Build a stable fallback id from retailer, title and url.

    Identical inputs always give the same id, so two feed rows that share
    all three collide; the first one wins in ``normalize_rows``.
    """
    key = _WHITESPACE_RE.sub("-", f"{retailer}-{title}-{url}".strip())
    return key[:MAX_ID_LENGTH]


def _unique_regions(values: Iterable[str]) -> List[str]:
    regions: List[str] = []
    for value in values:
        code = value.upper()
        if code not in regions:
            regions.append(code)
    return regions


def is_valid_deal(deal: Deal) -> bool:
    """Check the invariants every listed deal must satisfy."""
    return bool(
        deal.id
        and deal.title
        and deal.retailer
        and deal.url
        and is_absolute_http_url(deal.url)
        and deal.price > 0
    )


def normalize_row(row: RawRow, now: Optional[datetime] = None) -> Optional[Deal]:
    """
    Turn one raw feed row into a Deal.

    Args:
        row: Header-keyed cells from the tabular parser
        now: Processing time, used when the row has no ``updatedAt``

    Returns:
        A valid Deal, or None when the row breaks an invariant
    """
    cells = resolve_fields(row)

    title = normalize_text(cells[FeedField.TITLE])
    retailer = normalize_text(cells[FeedField.RETAILER])
    url = sanitize_url(cells[FeedField.URL])

    image = sanitize_url(cells[FeedField.IMAGE])
    if not is_absolute_http_url(image):
        image = ""

    price = to_number(cells[FeedField.PRICE])
    original_price = to_number(cells[FeedField.ORIGINAL_PRICE])
    # Missing baseline means "no discount"; a baseline under the price is clamped up.
    if original_price <= 0 or original_price < price:
        original_price = price

    deal_id = normalize_text(cells[FeedField.ID]) or synthesize_id(retailer, title, url)

    deal = Deal(
        id=deal_id,
        title=title,
        retailer=retailer,
        category=normalize_text(cells[FeedField.CATEGORY]) or DEFAULT_CATEGORY,
        url=url,
        image=image,
        price=price,
        original_price=original_price,
        currency=to_currency(cells[FeedField.CURRENCY], DEFAULT_CURRENCY),
        tags=to_list(cells[FeedField.TAGS]),
        regions=_unique_regions(to_list(cells[FeedField.REGIONS])) or list(DEFAULT_REGIONS),
        popularity=max(0.0, to_number(cells[FeedField.POPULARITY])),
        ends_at=to_timestamp(cells[FeedField.ENDS_AT]),
        updated_at=to_timestamp(cells[FeedField.UPDATED_AT]) or to_iso(now or now_utc()),
    )

    return deal if is_valid_deal(deal) else None


def normalize_rows(rows: Iterable[RawRow], now: Optional[datetime] = None) -> List[Deal]:
    """
    Normalize a batch of rows, dropping invalid ones and repeated ids.

    Args:
        rows: Parsed feed rows in feed order
        now: Processing time shared by the whole batch

    Returns:
        Valid deals in feed order, ids unique
    """
    processed_at = now or now_utc()
    seen_ids: set[str] = set()
    deals: List[Deal] = []
    total = 0

    for row in rows:
        total += 1
        deal = normalize_row(row, processed_at)
        if deal is None or deal.id in seen_ids:
            continue
        seen_ids.add(deal.id)
        deals.append(deal)

    if total != len(deals):
        logger.debug("Dropped %d of %d feed rows", total - len(deals), total)
    return deals
