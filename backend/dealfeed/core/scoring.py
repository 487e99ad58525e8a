"""
Composite deal ranking.

Every deal gets five facet scores in [0, 1] which are combined with fixed
weights (see ``dealfeed.config.SCORE_WEIGHTS``, summing to 1.0) into a single
score in [0, 1]. Recency, urgency and season depend on the evaluation time,
so results are recomputed for every request and never stored.
"""
from __future__ import annotations

import math
from datetime import datetime
from typing import Optional, Tuple

from dealfeed.config import RECENCY_WINDOW_HOURS, SCORE_WEIGHTS, URGENCY_WINDOW_DAYS
from dealfeed.models import Deal, Facets, ScoreResult
from dealfeed.utils import clamp_to_unit_range, ensure_utc, parse_utc_datetime

# Southern hemisphere calendar
SEASONS: Tuple[str, ...] = ("Summer", "Autumn", "Winter", "Spring")

_SECONDS_PER_HOUR = 3600.0
_SECONDS_PER_DAY = 86400.0


def get_season(date: datetime) -> str:
    """
    Map a date to its Southern-hemisphere season.

    Dec/Jan/Feb -> Summer, Mar-May -> Autumn, Jun-Aug -> Winter,
    Sep-Nov -> Spring.
    """
    month = date.month
    if month == 12 or month <= 2:
        return "Summer"
    if month <= 5:
        return "Autumn"
    if month <= 8:
        return "Winter"
    return "Spring"


def normalize_season(name: Optional[str]) -> Optional[str]:
    """Return the canonical season name for ``name`` (any case), or None."""
    wanted = (name or "").strip().lower()
    for season in SEASONS:
        if season.lower() == wanted:
            return season
    return None


def discount_facet(deal: Deal) -> float:
    denominator = deal.original_price or 1.0
    return clamp_to_unit_range((deal.original_price - deal.price) / denominator)


def recency_facet(deal: Deal, now: datetime) -> float:
    """Linear decay from 1 (just updated) to 0 at ``RECENCY_WINDOW_HOURS``."""
    updated_at = parse_utc_datetime(deal.updated_at)
    if updated_at is None:
        return 0.0
    # clock skew: updates "in the future" count as just now
    hours_since = max(0.0, (now - updated_at).total_seconds() / _SECONDS_PER_HOUR)
    return clamp_to_unit_range(1.0 - hours_since / RECENCY_WINDOW_HOURS)


def season_facet(deal: Deal, season: str) -> float:
    needle = season.lower()
    return 1.0 if any(needle in tag.lower() for tag in deal.tags) else 0.0


def popularity_facet(deal: Deal) -> float:
    return clamp_to_unit_range(deal.popularity / 100.0)


def urgency_facet(deal: Deal, now: datetime) -> float:
    """1 for deals ending now or already ended, falling to 0 a week out."""
    ends_at = parse_utc_datetime(deal.ends_at)
    if ends_at is None:
        return 0.0
    seconds_until_end = max(0.0, (ends_at - now).total_seconds())
    window = URGENCY_WINDOW_DAYS * _SECONDS_PER_DAY
    return clamp_to_unit_range(1.0 - seconds_until_end / window)


def combine_facets(facets: Facets) -> float:
    """Weighted sum of the facets, in [0, 1]."""
    combined = (
        SCORE_WEIGHTS["discount"] * facets.discount
        + SCORE_WEIGHTS["recency"] * facets.recency
        + SCORE_WEIGHTS["seasonMatch"] * facets.season_match
        + SCORE_WEIGHTS["popularity"] * facets.popularity
        + SCORE_WEIGHTS["urgency"] * facets.urgency
    )
    return clamp_to_unit_range(combined)


def score_deal(deal: Deal, now: datetime, season: Optional[str] = None) -> ScoreResult:
    """
    Score one deal at a given evaluation time.

    Args:
        deal: Normalized deal
        now: Evaluation time (naive values are taken as UTC)
        season: Season name to match tags against; defaults to ``get_season(now)``

    Returns:
        ScoreResult with the composite score and every facet
    """
    now = ensure_utc(now)
    facets = Facets(
        discount=discount_facet(deal),
        recency=recency_facet(deal, now),
        season_match=season_facet(deal, season or get_season(now)),
        popularity=popularity_facet(deal),
        urgency=urgency_facet(deal, now),
    )
    return ScoreResult(score=combine_facets(facets), facets=facets)


def discount_percent(deal: Deal) -> int:
    """Whole percent off the original price, rounded half up."""
    base = deal.original_price if deal.original_price > 0 else (deal.price or 1.0)
    ratio = (base - deal.price) / base
    if not math.isfinite(ratio):
        return 0
    return int(math.floor(ratio * 100 + 0.5))
