"""
Main FastAPI application and routing layer.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, List, Optional

import httpx
from fastapi import Depends, FastAPI, Query, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse

from dealfeed import config
from dealfeed.core.coercion import sanitize_url
from dealfeed.models import Deal
from dealfeed.schemas import DealOut, ScoredDealOut, TopDealsResponse
from dealfeed.services.images import ImageCache, ImageResolver, proxy_image, retailer_logo
from dealfeed.services.listing import (
    ListingQuery,
    SORT_KEYS,
    build_listing,
    facet_values,
    featured_categories,
    resolve_season,
    top_deals,
)
from dealfeed.services.redirects import find_deal_url, resolve_click_target
from dealfeed.settings import settings
from dealfeed.sources.collector import collect_deals
from dealfeed.sources.sheet import SheetFeedFetcher
from dealfeed.utils import now_utc, to_iso

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger("uvicorn")


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """One outbound HTTP client per request."""
    async with httpx.AsyncClient(timeout=config.HTTP_TIMEOUT_SECONDS) as client:
        yield client


def get_feed_fetcher(client: httpx.AsyncClient = Depends(get_http_client)) -> SheetFeedFetcher:
    return SheetFeedFetcher(settings.FEED_URL, client=client)


async def load_deals(
    fetcher: SheetFeedFetcher,
    client: httpx.AsyncClient,
    backfill: bool = True,
) -> List[Deal]:
    """
    Build this request's deal list from the live feed.

    The image cache is created here and dropped when the request ends.

    Args:
        fetcher: Feed source
        client: Outbound HTTP client for image lookups
        backfill: Whether to look up images for deals that have none

    Returns:
        Normalized deals, empty if the feed is unavailable
    """
    resolver = None
    if backfill and config.BACKFILL_IMAGES:
        resolver = ImageResolver(client, ImageCache())
    return await collect_deals(fetcher, resolver)


# Initialize FastAPI app
app = FastAPI(
    title="Deals Feed API",
    version="0.1.0",
    description="Ranked, filterable retail deals from a curated spreadsheet feed"
)


@app.on_event("startup")
async def check_feed_configured():
    """Warn early when the service has nothing to read from."""
    if not settings.FEED_URL:
        logger.warning("FEED_URL is not set; every listing will be empty")


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "as_of": now_utc().isoformat(),
        "service": "deals-feed-api"
    }


@app.get("/api/deals")
async def get_deals(
    q: str = Query("", max_length=200, description="Free-text search over title, retailer and tags"),
    category: str = Query("", description="Exact category, or 'All'"),
    retailer: str = Query("", description="Exact retailer, or 'All'"),
    region: str = Query("", description="Region code, e.g. AU"),
    min_discount: float = Query(0, ge=0, le=100, description="Minimum percent off"),
    max_price: float = Query(0, ge=0, description="Maximum price, 0 for no limit"),
    sort: str = Query("score", description=f"One of: {', '.join(SORT_KEYS)}"),
    season: Optional[str] = Query(None, description="Season to boost; defaults to the current one"),
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum number of deals"),
    scored: bool = Query(False, description="Include score and facets per deal"),
    fetcher: SheetFeedFetcher = Depends(get_feed_fetcher),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    List deals, best score first unless another sort is requested.

    Always answers 200 with a JSON array; upstream trouble yields ``[]``.
    """
    try:
        deals = await load_deals(fetcher, client)
        query = ListingQuery(
            q=q,
            category=category,
            retailer=retailer,
            region=region,
            min_discount=min_discount,
            max_price=max_price,
            sort=sort,
            season=season,
            limit=limit,
        )
        listing = build_listing(deals, query, now_utc())

        if scored:
            payload = [ScoredDealOut.from_scored(item).model_dump(by_alias=True) for item in listing]
        else:
            payload = [DealOut.from_deal(item.deal).model_dump(by_alias=True) for item in listing]

    except Exception:
        logger.exception("Error building deals listing")
        payload = []

    return JSONResponse(content=payload, headers=config.NO_CACHE_HEADERS)


@app.get("/api/deals/top", response_model=TopDealsResponse)
async def get_top_deals(
    response: Response,
    season: Optional[str] = Query(None, description="Season to boost; defaults to the current one"),
    limit: int = Query(config.TOP_DEALS_LIMIT, ge=1, le=50, description="Number of featured deals"),
    fetcher: SheetFeedFetcher = Depends(get_feed_fetcher),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """Featured strip: top deals by score plus the most common categories."""
    response.headers.update(config.NO_CACHE_HEADERS)
    now = now_utc()
    season_name = resolve_season(season, now)

    try:
        deals = await load_deals(fetcher, client)
    except Exception:
        logger.exception("Error loading deals for top listing")
        deals = []

    facets = facet_values(deals)
    return TopDealsResponse(
        as_of=to_iso(now),
        season=season_name,
        n_deals=len(deals),
        deals=[ScoredDealOut.from_scored(item) for item in top_deals(deals, now, season_name, limit)],
        featured_categories=featured_categories(deals),
        categories=facets["categories"],
        retailers=facets["retailers"],
    )


@app.get("/api/click")
async def click_through(
    id: str = Query("", max_length=300, description="Deal id"),
    url: str = Query("", max_length=2000, description="Direct target (debug only)"),
    fetcher: SheetFeedFetcher = Depends(get_feed_fetcher),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Redirect a visitor to the retailer page for a deal.

    Unknown or missing ids go back to the home page.
    """
    try:
        direct_url = sanitize_url(url)
        if config.ALLOW_DIRECT_CLICK_URL and direct_url.startswith("http"):
            target = await resolve_click_target(client, direct_url)
            return RedirectResponse(target, status_code=302, headers=config.NO_CACHE_HEADERS)

        deal_id = id.strip()
        if not deal_id:
            return RedirectResponse("/", status_code=302, headers=config.NO_CACHE_HEADERS)

        deals = await load_deals(fetcher, client, backfill=False)
        deal_url = find_deal_url([deal.to_dict() for deal in deals], deal_id)
        if not deal_url:
            logger.info(f"No deal found for click id {deal_id}")
            return RedirectResponse("/", status_code=302, headers=config.NO_CACHE_HEADERS)

        target = await resolve_click_target(client, deal_url)
        return RedirectResponse(target, status_code=302, headers=config.NO_CACHE_HEADERS)

    except Exception as e:
        logger.error(f"Error resolving click for {id}: {e}")
        return PlainTextResponse("Redirect error", status_code=500, headers=config.NO_CACHE_HEADERS)


@app.get("/api/og-image")
async def og_image(
    url: str = Query("", max_length=2000, description="Product page to take the image from"),
    image: str = Query("", max_length=2000, description="Image to fetch directly"),
    base: str = Query("", max_length=2000, description="Page the image belongs to"),
    retailer: str = Query("", max_length=200, description="Retailer, for the logo fallback"),
    client: httpx.AsyncClient = Depends(get_http_client),
):
    """
    Proxy a deal image so retailers that block hotlinking still render.

    Falls back to the retailer's logo when one is known, otherwise 404.
    """
    try:
        result = await proxy_image(client, page_url=url, image_url=image, base=base)
    except Exception:
        logger.exception("Error proxying image for %s", url or image)
        result = None

    if result is None:
        logo = retailer_logo(retailer)
        if logo:
            return RedirectResponse(logo, status_code=302, headers=config.NO_CACHE_HEADERS)
        return PlainTextResponse("no-image", status_code=404, headers=config.IMAGE_PROXY_HEADERS)

    content, content_type = result
    return Response(content=content, media_type=content_type, headers=config.IMAGE_PROXY_HEADERS)


if __name__ == "__main__":
    # For development
    import uvicorn
    uvicorn.run("dealfeed.main:app", host=settings.HOST, port=settings.PORT, reload=True)
