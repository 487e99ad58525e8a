"""Tests for services/images.py: image extraction, per-request cache, backfill."""

from __future__ import annotations

import httpx
import pytest

from dealfeed.services.images import (
    ImageCache,
    ImageResolver,
    backfill_images,
    extract_image_url,
    fetch_image_bytes,
    is_logo_like,
    origin_referer,
    proxy_image,
    retailer_logo,
)

PAGE = "https://shop.example/products/fryer"


class TestExtractImageUrl:

    def test_og_image(self):
        html = '<head><meta property="og:image" content="https://cdn.example/fryer.jpg"></head>'
        assert extract_image_url(html, PAGE) == "https://cdn.example/fryer.jpg"

    def test_og_image_content_first(self):
        html = '<meta content="https://cdn.example/fryer.jpg" property="og:image" />'
        assert extract_image_url(html, PAGE) == "https://cdn.example/fryer.jpg"

    def test_secure_url_and_name_attribute(self):
        html = '<meta name="og:image:secure_url" content="https://cdn.example/a.png">'
        assert extract_image_url(html, PAGE) == "https://cdn.example/a.png"

    def test_twitter_image(self):
        html = "<meta name='twitter:image' content='https://cdn.example/t.webp'>"
        assert extract_image_url(html, PAGE) == "https://cdn.example/t.webp"

    def test_image_src_link(self):
        html = '<link rel="image_src" href="/media/fryer.jpg">'
        assert extract_image_url(html, PAGE) == "https://shop.example/media/fryer.jpg"

    def test_relative_og_image_made_absolute(self):
        html = '<meta property="og:image" content="/img/fryer.jpg">'
        assert extract_image_url(html, PAGE) == "https://shop.example/img/fryer.jpg"

    def test_logo_og_image_falls_back_to_img_tag(self):
        html = (
            '<meta property="og:image" content="https://shop.example/static/logo.png">'
            '<img src="/static/icon-cart.png">'
            '<img src="/media/fryer-front.jpg?w=600">'
        )
        assert extract_image_url(html, PAGE) == "https://shop.example/media/fryer-front.jpg?w=600"

    def test_img_without_photo_extension_ignored(self):
        html = '<img src="/pixel.php?id=1"><img src="/media/fryer.avif">'
        assert extract_image_url(html, PAGE) == "https://shop.example/media/fryer.avif"

    @pytest.mark.parametrize("html", ["", "<html><body>Nothing here</body></html>", None])
    def test_nothing_found(self, html):
        assert extract_image_url(html, PAGE) is None


class TestIsLogoLike:

    @pytest.mark.parametrize("url", [
        "https://x.example/brand.svg",
        "https://x.example/assets/logo-dark.png",
        "https://x.example/sprite_sheet.png",
        "https://x.example/placeholder.jpg",
        "https://x.example/favicon.ico",
        "https://x.example/apple-touch-icon.png",
        "https://x.example/badge/sale.png",
    ])
    def test_logos(self, url):
        assert is_logo_like(url) is True

    @pytest.mark.parametrize("url", [
        "https://x.example/media/fryer.jpg",
        "https://x.example/products/blogo-shirt.png",
    ])
    def test_products(self, url):
        assert is_logo_like(url) is False


class TestImageCache:

    def test_put_get(self):
        cache = ImageCache()
        cache.put("https://a.example", "https://a.example/i.jpg")
        cache.put("https://b.example", None)
        assert "https://a.example" in cache
        assert "https://b.example" in cache
        assert cache.get("https://a.example") == "https://a.example/i.jpg"
        assert cache.get("https://b.example") is None
        assert len(cache) == 2

    def test_instances_do_not_share_entries(self):
        first, second = ImageCache(), ImageCache()
        first.put("https://a.example", "https://a.example/i.jpg")
        assert "https://a.example" not in second


def page_handler(calls):
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if request.url.path == "/fryer":
            return httpx.Response(
                200, text='<meta property="og:image" content="https://cdn.example/fryer.jpg">'
            )
        if request.url.path == "/down":
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(404, text="not found")
    return handler


class TestImageResolver:

    @pytest.mark.asyncio
    async def test_resolves_and_caches(self, mock_client):
        calls = []
        async with mock_client(page_handler(calls)) as client:
            cache = ImageCache()
            resolver = ImageResolver(client, cache)
            assert await resolver.resolve("https://shop.example/fryer") == "https://cdn.example/fryer.jpg"
            assert await resolver.resolve("https://shop.example/fryer") == "https://cdn.example/fryer.jpg"
        assert len(calls) == 1
        assert cache.get("https://shop.example/fryer") == "https://cdn.example/fryer.jpg"

    @pytest.mark.asyncio
    async def test_http_error_status(self, mock_client):
        calls = []
        async with mock_client(page_handler(calls)) as client:
            resolver = ImageResolver(client)
            assert await resolver.resolve("https://shop.example/gone") is None
            assert await resolver.resolve("https://shop.example/gone") is None
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_transport_error(self, mock_client):
        async with mock_client(page_handler([])) as client:
            assert await ImageResolver(client).resolve("https://shop.example/down") is None


class TestBackfillImages:

    @pytest.mark.asyncio
    async def test_only_missing_images_looked_up(self, make_deal, mock_client):
        calls = []
        deals = [
            make_deal(id="has", url="https://shop.example/has", image="https://cdn.example/has.jpg"),
            make_deal(id="fryer", url="https://shop.example/fryer", image=""),
        ]
        async with mock_client(page_handler(calls)) as client:
            await backfill_images(deals, ImageResolver(client))
        assert calls == ["https://shop.example/fryer"]
        assert deals[0].image == "https://cdn.example/has.jpg"
        assert deals[1].image == "https://cdn.example/fryer.jpg"

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, make_deal, mock_client):
        deals = [
            make_deal(id="down", url="https://shop.example/down", image=""),
            make_deal(id="gone", url="https://shop.example/gone", image=""),
            make_deal(id="fryer", url="https://shop.example/fryer", image=""),
        ]
        async with mock_client(page_handler([])) as client:
            result = await backfill_images(deals, ImageResolver(client))
        assert result is deals
        assert [deal.image for deal in deals] == ["", "", "https://cdn.example/fryer.jpg"]

    @pytest.mark.asyncio
    async def test_resolver_exception_leaves_deal_untouched(self, make_deal):
        class ExplodingResolver:
            async def resolve(self, url):
                if url.endswith("/boom"):
                    raise RuntimeError("boom")
                return "https://cdn.example/ok.jpg"

        deals = [
            make_deal(id="boom", url="https://shop.example/boom", image=""),
            make_deal(id="ok", url="https://shop.example/ok", image=""),
        ]
        await backfill_images(deals, ExplodingResolver())
        assert deals[0].image == ""
        assert deals[1].image == "https://cdn.example/ok.jpg"


class TestRetailerLogo:

    def test_known_retailer(self):
        assert retailer_logo("Nike AU").endswith("Logo_NIKE.svg")
        assert retailer_logo("  Dyson AU ").endswith("Dyson_logo.svg")

    @pytest.mark.parametrize("retailer", ["", None, "Big W", "nike au"])
    def test_unknown_retailer(self, retailer):
        assert retailer_logo(retailer) == ""


class TestOriginReferer:

    @pytest.mark.parametrize("url, expected", [
        ("https://shop.example/products/fryer?x=1", "https://shop.example/"),
        ("http://shop.example:8080/a", "http://shop.example:8080/"),
        ("shop.example/a", None),
        ("ftp://shop.example/a", None),
        ("", None),
    ])
    def test_origin(self, url, expected):
        assert origin_referer(url) == expected


PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"


def image_site(calls, blocks_referer=False):
    """Retailer page on shop.example, image on cdn.example."""
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((str(request.url), request.headers.get("referer")))
        if request.url.host == "shop.example":
            if request.url.path == "/fryer":
                return httpx.Response(
                    200, text='<meta property="og:image" content="https://cdn.example/fryer.png">'
                )
            if request.url.path == "/bare":
                return httpx.Response(200, text="<html><body>No pictures</body></html>")
            return httpx.Response(404, text="not found")
        if request.url.path == "/fryer.png":
            if blocks_referer and request.headers.get("referer"):
                return httpx.Response(403)
            return httpx.Response(200, content=PNG_BYTES, headers={"content-type": "image/png"})
        if request.url.path == "/untyped.jpg":
            return httpx.Response(200, content=b"jpeg")
        return httpx.Response(404)
    return handler


class TestFetchImageBytes:

    @pytest.mark.asyncio
    async def test_sends_origin_referer(self, mock_client):
        calls = []
        async with mock_client(image_site(calls)) as client:
            content, content_type = await fetch_image_bytes(
                client, "https://cdn.example/fryer.png", referer="https://shop.example/fryer?x=1"
            )
        assert content == PNG_BYTES
        assert content_type == "image/png"
        assert calls == [("https://cdn.example/fryer.png", "https://shop.example/")]

    @pytest.mark.asyncio
    async def test_default_content_type(self, mock_client):
        async with mock_client(image_site([])) as client:
            _, content_type = await fetch_image_bytes(client, "https://cdn.example/untyped.jpg")
        assert content_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_error_status_raises(self, mock_client):
        async with mock_client(image_site([])) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await fetch_image_bytes(client, "https://cdn.example/missing.png")


class TestProxyImage:

    @pytest.mark.asyncio
    async def test_from_product_page(self, mock_client):
        calls = []
        async with mock_client(image_site(calls)) as client:
            result = await proxy_image(client, page_url="https://shop.example/fryer")
        assert result == (PNG_BYTES, "image/png")
        assert calls[-1] == ("https://cdn.example/fryer.png", "https://shop.example/")

    @pytest.mark.asyncio
    async def test_direct_image_resolved_against_base(self, mock_client):
        calls = []
        async with mock_client(image_site(calls)) as client:
            result = await proxy_image(
                client, image_url="/fryer.png", base="https://cdn.example/products/fryer"
            )
        assert result == (PNG_BYTES, "image/png")
        assert [url for url, _ in calls] == ["https://cdn.example/fryer.png"]

    @pytest.mark.asyncio
    async def test_retries_without_referer(self, mock_client):
        calls = []
        async with mock_client(image_site(calls, blocks_referer=True)) as client:
            result = await proxy_image(client, page_url="https://shop.example/fryer")
        assert result == (PNG_BYTES, "image/png")
        assert calls[-2:] == [
            ("https://cdn.example/fryer.png", "https://shop.example/"),
            ("https://cdn.example/fryer.png", None),
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {},
        {"page_url": "https://shop.example/gone"},
        {"page_url": "https://shop.example/bare"},
        {"image_url": "https://cdn.example/missing.png"},
    ])
    async def test_no_image(self, mock_client, kwargs):
        async with mock_client(image_site([])) as client:
            assert await proxy_image(client, **kwargs) is None

    @pytest.mark.asyncio
    async def test_page_transport_error(self, mock_client):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            assert await proxy_image(client, page_url="https://shop.example/fryer") is None
