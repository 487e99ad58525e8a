"""
File: dealfeed/models.py
Internal data structures used during normalization/scoring.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


JsonDict = Dict[str, Any]
RawRow = Dict[str, str]


@dataclass
class Deal:
    """Canonical, validated representation of one retailer offer.

    Built only by the normalizer; attribute names are snake_case and
    ``to_dict`` produces the camelCase wire shape.
    """

    # Identity & content
    id: str
    title: str
    retailer: str
    category: str
    url: str  # absolute http(s)
    image: str = ""  # empty means "needs backfill"

    # Pricing
    price: float = 0.0
    original_price: float = 0.0
    currency: str = "AUD"

    # Classification
    tags: List[str] = field(default_factory=list)
    regions: List[str] = field(default_factory=list)
    popularity: float = 0.0

    # Timestamps (UTC ISO-8601)
    ends_at: Optional[str] = None
    updated_at: str = ""

    def to_dict(self) -> JsonDict:
        data = asdict(self)
        return {
            "id": data["id"],
            "title": data["title"],
            "retailer": data["retailer"],
            "category": data["category"],
            "url": data["url"],
            "image": data["image"],
            "price": data["price"],
            "originalPrice": data["original_price"],
            "currency": data["currency"],
            "tags": data["tags"],
            "regions": data["regions"],
            "popularity": data["popularity"],
            "endsAt": data["ends_at"],
            "updatedAt": data["updated_at"],
        }


@dataclass(frozen=True)
class Facets:
    """Per-facet sub-scores, each in [0, 1]."""

    discount: float
    recency: float
    season_match: float
    popularity: float
    urgency: float

    def to_dict(self) -> Dict[str, float]:
        return {
            "discount": self.discount,
            "recency": self.recency,
            "seasonMatch": self.season_match,
            "popularity": self.popularity,
            "urgency": self.urgency,
        }


@dataclass(frozen=True)
class ScoreResult:
    score: float
    facets: Facets


@dataclass
class ScoredDeal:
    """A deal paired with the score it got for one evaluation time."""

    deal: Deal
    result: ScoreResult

    @property
    def score(self) -> float:
        return self.result.score


__all__ = ["Deal", "Facets", "ScoreResult", "ScoredDeal", "RawRow", "JsonDict"]
