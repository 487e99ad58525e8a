"""Tests for sources/sheet.py and sources/collector.py: feed fetch and the full pipeline."""

from __future__ import annotations

import httpx
import pytest

from dealfeed import main
from dealfeed.services.images import ImageResolver
from dealfeed.sources.collector import collect_deals, deals_from_text
from dealfeed.sources.sheet import SheetFeedFetcher

FEED_URL = "https://sheet.example/pub?output=tsv"


class StaticFetcher:
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error

    async def fetch(self):
        if self.error:
            raise self.error
        return self.text


class TestSheetFeedFetcher:

    @pytest.mark.asyncio
    async def test_returns_text_with_cache_buster(self, mock_client):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, text="id\ttitle\n1\tWidget")

        async with mock_client(handler) as client:
            text = await SheetFeedFetcher(FEED_URL, client=client).fetch()

        assert text == "id\ttitle\n1\tWidget"
        assert seen[0].url.params["output"] == "tsv"
        assert seen[0].url.params["cb"].isdigit()
        assert "no-store" in seen[0].headers["cache-control"]

    @pytest.mark.asyncio
    async def test_follows_redirect_to_cdn(self, mock_client):
        def handler(request):
            if request.url.host == "sheet.example":
                return httpx.Response(307, headers={"location": "https://cdn.example/export.tsv"})
            return httpx.Response(200, text="id\ttitle\n1\tWidget")

        async with mock_client(handler) as client:
            text = await SheetFeedFetcher(FEED_URL, client=client).fetch()

        assert text == "id\ttitle\n1\tWidget"

    @pytest.mark.asyncio
    async def test_follows_redirect_with_app_client(self, monkeypatch):
        def handler(request):
            if request.url.host == "sheet.example":
                return httpx.Response(307, headers={"location": "https://cdn.example/export.tsv"})
            return httpx.Response(200, text="id\ttitle\n1\tWidget")

        real_client = httpx.AsyncClient

        def mocked_client(**kwargs):
            return real_client(transport=httpx.MockTransport(handler), **kwargs)

        monkeypatch.setattr(main.httpx, "AsyncClient", mocked_client)
        monkeypatch.setattr(main.settings, "FEED_URL", FEED_URL)

        clients = main.get_http_client()
        client = await clients.__anext__()
        try:
            text = await main.get_feed_fetcher(client).fetch()
        finally:
            await clients.aclose()

        assert text == "id\ttitle\n1\tWidget"

    @pytest.mark.asyncio
    async def test_error_status_is_empty(self, mock_client):
        async with mock_client(lambda request: httpx.Response(503)) as client:
            assert await SheetFeedFetcher(FEED_URL, client=client).fetch() == ""

    @pytest.mark.asyncio
    async def test_transport_error_is_empty(self, mock_client):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        async with mock_client(handler) as client:
            assert await SheetFeedFetcher(FEED_URL, client=client).fetch() == ""

    @pytest.mark.asyncio
    async def test_missing_url_is_empty(self):
        assert await SheetFeedFetcher("").fetch() == ""


class TestDealsFromText:

    def test_feed(self, feed_text, now):
        deals = deals_from_text(feed_text, now)
        assert [deal.title for deal in deals] == ["Nike Pegasus 41", "Air Fryer", "OLED TV"]

        pegasus = deals[0]
        assert pegasus.url == "https://shop.example/pegasus"
        assert pegasus.price == 149
        assert pegasus.original_price == 239
        assert pegasus.currency == "AUD"
        assert pegasus.tags == ["Spring", "running"]
        assert pegasus.regions == ["AU", "NZ"]

        fryer = deals[1]
        assert fryer.original_price == fryer.price == 79
        assert fryer.regions == ["AU"]
        assert fryer.image == ""

    @pytest.mark.parametrize("text", ["", "id\ttitle\turl\tprice"])
    def test_empty_feeds(self, text, now):
        assert deals_from_text(text, now) == []


class TestCollectDeals:

    @pytest.mark.asyncio
    async def test_without_backfill(self, feed_text, now):
        deals = await collect_deals(StaticFetcher(feed_text), now=now)
        assert len(deals) == 3
        assert deals[1].image == ""

    @pytest.mark.asyncio
    async def test_backfills_missing_images(self, feed_text, now, mock_client):
        calls = []

        def handler(request):
            calls.append(request.url.path)
            return httpx.Response(
                200, text='<meta property="og:image" content="https://img.example/fryer.jpg">'
            )

        async with mock_client(handler) as client:
            deals = await collect_deals(StaticFetcher(feed_text), ImageResolver(client), now=now)

        assert calls == ["/fryer"]
        assert deals[1].image == "https://img.example/fryer.jpg"
        assert deals[0].image == "https://img.example/pegasus.jpg"

    @pytest.mark.asyncio
    async def test_fetch_failure_is_empty(self, now):
        deals = await collect_deals(StaticFetcher(error=RuntimeError("boom")), now=now)
        assert deals == []

    @pytest.mark.asyncio
    async def test_unavailable_feed_is_empty(self, now):
        assert await collect_deals(StaticFetcher(""), now=now) == []
