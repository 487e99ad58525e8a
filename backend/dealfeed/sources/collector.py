"""
Deal collection: feed text -> parsed rows -> normalized deals (+ images).
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from dealfeed.core.normalizer import normalize_rows
from dealfeed.core.tabular import parse_table
from dealfeed.models import Deal
from dealfeed.services.images import ImageResolver, backfill_images
from dealfeed.sources.sheet import SheetFeedFetcher
from dealfeed.utils import now_utc

logger = logging.getLogger(__name__)


def deals_from_text(text: str, now: Optional[datetime] = None) -> List[Deal]:
    """
    Run the synchronous part of the pipeline over one feed snapshot.

    Args:
        text: Raw tab-delimited feed text
        now: Processing time for rows without ``updatedAt``

    Returns:
        Valid deals in feed order
    """
    return normalize_rows(parse_table(text), now)


async def collect_deals(
    fetcher: SheetFeedFetcher,
    resolver: Optional[ImageResolver] = None,
    now: Optional[datetime] = None,
) -> List[Deal]:
    """
    Fetch the feed and build this request's deal list.

    Args:
        fetcher: Feed source
        resolver: Image resolver for deals without an image; None skips backfill
        now: Processing time (defaults to the current UTC time)

    Returns:
        Valid deals in feed order; empty when the feed is unavailable
    """
    try:
        text = await fetcher.fetch()
    except Exception as e:
        logger.warning("Error fetching deals feed: %s", e)
        return []

    deals = deals_from_text(text, now or now_utc())
    logger.info("Collected %d deals from feed", len(deals))

    if resolver is not None and deals:
        await backfill_images(deals, resolver)

    return deals
