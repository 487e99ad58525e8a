"""
Listing views over a deal list: ranking, filtering, sorting, featured picks.

Everything here scores through ``score_deal`` so the default order, the
"top deals" strip and any client-side re-sort agree with each other.
"""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from dealfeed.config import FEATURED_CATEGORIES_LIMIT, TOP_DEALS_LIMIT
from dealfeed.core.scoring import discount_percent, get_season, normalize_season, score_deal
from dealfeed.models import Deal, ScoredDeal
from dealfeed.utils import ensure_utc, parse_utc_datetime

ALL = "All"
SORT_KEYS = ("score", "newest", "discount", "price_asc", "price_desc")

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ListingQuery:
    """Filters and ordering for one listing request.

    Empty strings, ``"All"`` and zero mean "no filter".
    """

    q: str = ""
    category: str = ""
    retailer: str = ""
    region: str = ""
    min_discount: float = 0
    max_price: float = 0
    sort: str = "score"
    season: Optional[str] = None
    limit: Optional[int] = None


def resolve_season(season: Optional[str], now: datetime) -> str:
    return normalize_season(season) or get_season(now)


def rank_deals(deals: List[Deal], now: datetime, season: Optional[str] = None) -> List[ScoredDeal]:
    """
    Score every deal and order by score, best first.

    Ties keep feed order.
    """
    now = ensure_utc(now)
    season = resolve_season(season, now)
    scored = [ScoredDeal(deal=deal, result=score_deal(deal, now, season)) for deal in deals]
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored


def _is_set(value: str) -> bool:
    return bool(value) and value != ALL


def matches(deal: Deal, query: ListingQuery) -> bool:
    """Check one deal against the query's filters."""
    if _is_set(query.category) and deal.category != query.category:
        return False
    if _is_set(query.retailer) and deal.retailer != query.retailer:
        return False
    if _is_set(query.region) and query.region.upper() not in deal.regions:
        return False
    if query.min_discount and discount_percent(deal) < query.min_discount:
        return False
    if query.max_price and deal.price > query.max_price:
        return False

    needle = query.q.strip().lower()
    if needle:
        haystack = " ".join([deal.title, deal.retailer, *deal.tags]).lower()
        if needle not in haystack:
            return False
    return True


def _updated_key(item: ScoredDeal) -> datetime:
    return parse_utc_datetime(item.deal.updated_at) or _OLDEST


SORTERS: Dict[str, tuple[Callable[[ScoredDeal], object], bool]] = {
    "score": (lambda item: item.score, True),
    "newest": (_updated_key, True),
    "discount": (lambda item: discount_percent(item.deal), True),
    "price_asc": (lambda item: item.deal.price, False),
    "price_desc": (lambda item: item.deal.price, True),
}


def build_listing(deals: List[Deal], query: ListingQuery, now: datetime) -> List[ScoredDeal]:
    """
    Filter, score and sort deals for the listing page.

    Args:
        deals: Normalized deals for this request
        query: Filters, sort key, season override and limit
        now: Evaluation time

    Returns:
        Matching deals with their scores, in the requested order
    """
    now = ensure_utc(now)
    season = resolve_season(query.season, now)
    selected = [
        ScoredDeal(deal=deal, result=score_deal(deal, now, season))
        for deal in deals
        if matches(deal, query)
    ]

    key, descending = SORTERS.get(query.sort, SORTERS["score"])
    selected.sort(key=key, reverse=descending)

    if query.limit is not None and query.limit >= 0:
        selected = selected[: query.limit]
    return selected


def top_deals(
    deals: List[Deal],
    now: datetime,
    season: Optional[str] = None,
    limit: int = TOP_DEALS_LIMIT,
) -> List[ScoredDeal]:
    """The ``limit`` best-scoring deals."""
    return rank_deals(deals, now, season)[:limit]


def featured_categories(deals: List[Deal], limit: int = FEATURED_CATEGORIES_LIMIT) -> List[str]:
    """Most common categories, ties broken by first appearance in the feed."""
    counts = Counter(deal.category for deal in deals)
    return [name for name, _ in counts.most_common(limit)]


def facet_values(deals: List[Deal]) -> Dict[str, List[str]]:
    """Distinct categories and retailers, in feed order, for filter dropdowns."""
    return {
        "categories": list(dict.fromkeys(deal.category for deal in deals)),
        "retailers": list(dict.fromkeys(deal.retailer for deal in deals)),
    }
