# dealfeed/schemas.py
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dealfeed.models import Deal, ScoredDeal


class DealOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    retailer: str
    category: str
    url: str
    image: str = ""                                         # empty = no image found
    price: float
    original_price: float = Field(alias="originalPrice")
    currency: str
    tags: list[str] = Field(default_factory=list)
    regions: list[str] = Field(default_factory=list)
    popularity: float = 0.0
    ends_at: Optional[str] = Field(default=None, alias="endsAt")
    updated_at: str = Field(alias="updatedAt")

    @classmethod
    def from_deal(cls, deal: Deal) -> "DealOut":
        return cls.model_validate(deal.to_dict())


class FacetsOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    discount: float
    recency: float
    season_match: float = Field(alias="seasonMatch")
    popularity: float
    urgency: float


class ScoredDealOut(DealOut):
    score: float
    facets: FacetsOut

    @classmethod
    def from_scored(cls, item: ScoredDeal) -> "ScoredDealOut":
        return cls.model_validate({
            **item.deal.to_dict(),
            "score": item.score,
            "facets": item.result.facets.to_dict(),
        })


class TopDealsResponse(BaseModel):
    as_of: str
    season: str
    n_deals: int
    deals: list[ScoredDealOut]
    featured_categories: list[str]
    categories: list[str]
    retailers: list[str]
