"""Shared fixtures for the dealfeed test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from dealfeed.models import Deal
from dealfeed.utils import to_iso

# October: Spring in the Southern hemisphere
NOW = datetime(2026, 10, 20, 12, 0, tzinfo=timezone.utc)

FEED_HEADER = "\t".join([
    "id", "title", "retailer", "category", "url", "image", "price",
    "originalPrice", "currency", "tags", "regions", "popularity", "endsAt", "updatedAt",
])


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_deal():
    """Factory that builds Deal records with sensible defaults.

    Any keyword argument overrides the default.
    """

    def _make(
        *,
        id="deal-1",
        title="Widget",
        retailer="Acme",
        category="Tools",
        url="https://shop.example/widget",
        image="https://img.example/widget.jpg",
        price=50.0,
        original_price=100.0,
        currency="AUD",
        tags=None,
        regions=None,
        popularity=0.0,
        ends_at=None,
        updated_at=None,
    ):
        return Deal(
            id=id,
            title=title,
            retailer=retailer,
            category=category,
            url=url,
            image=image,
            price=price,
            original_price=original_price,
            currency=currency,
            tags=list(tags or []),
            regions=list(regions or ["AU"]),
            popularity=popularity,
            ends_at=ends_at,
            updated_at=updated_at or to_iso(NOW),
        )

    return _make


def feed_line(*cells: str) -> str:
    return "\t".join(cells)


def build_feed(now: datetime) -> str:
    """A small but realistic sheet export relative to ``now``."""
    hours = lambda n: to_iso(now - timedelta(hours=n))  # noqa: E731
    return "\n".join([
        FEED_HEADER,
        feed_line(
            "pegasus", "Nike Pegasus 41", "Nike AU", "Fashion", "shop.example/pegasus",
            "https://img.example/pegasus.jpg", "$149", "$239", "aud", "Spring, running",
            "AU;NZ", "90", to_iso(now + timedelta(days=3)), hours(1),
        ),
        feed_line(
            "", "Air Fryer", "Big W", "Kitchen", "shop.example/fryer",
            "", "79", "", "", "winter", "", "20", "", hours(72),
        ),
        feed_line(
            "freebie", "Free Sticker", "Acme", "Tools", "shop.example/sticker",
            "", "$0", "", "", "", "", "", "", hours(2),
        ),
        feed_line(
            "tv", "OLED TV", "JB Hi-Fi", "Electronics", "shop.example/tv",
            "https://img.example/tv.jpg", "1999", "2999", "AUD", "", "AU", "60", "", hours(24),
        ),
    ])


@pytest.fixture
def feed_text(now):
    return build_feed(now)


@pytest.fixture
def mock_client():
    """Factory for an ``httpx.AsyncClient`` backed by a request handler."""
    def _make(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return _make
