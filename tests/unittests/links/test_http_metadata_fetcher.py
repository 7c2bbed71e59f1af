"""Unit tests for HttpMetadataFetcher using httpx.MockTransport."""

from unittest.mock import patch

import httpx
import pytest

ARTICLE_HTML = b"""
<html>
  <head>
    <title>Fallback title</title>
    <meta property="og:title" content="Open Graph title">
    <meta property="og:title" content="Second title is ignored">
    <meta name="description" content="Plain description">
    <meta property="og:image" content="/static/cover.jpg">
    <meta property="og:site_name" content="Example News">
    <meta name="author" content="Jane Writer">
  </head>
  <body><p>Hello</p></body>
</html>
"""


def make_fetcher(handler, **kwargs):
    from clubhouse.links.fetcher import HttpMetadataFetcher

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpMetadataFetcher(client=client, validate_urls=False, **kwargs), client


class TestHtmlMetadata:
    """Tests for HTML metadata extraction."""

    @pytest.mark.asyncio
    async def test_extracts_open_graph_fields(self):
        """Should prefer og:* tags and resolve relative image URLs."""

        def handler(request):
            return httpx.Response(200, headers={"content-type": "text/html; charset=utf-8"}, content=ARTICLE_HTML)

        fetcher, client = make_fetcher(handler)
        async with client:
            metadata = await fetcher.fetch("https://news.example.com/story")

        assert metadata == {
            "title": "Open Graph title",
            "description": "Plain description",
            "image": "https://news.example.com/static/cover.jpg",
            "site_name": "Example News",
            "author": "Jane Writer",
            "provider": "Example News",
        }

    @pytest.mark.asyncio
    async def test_falls_back_to_title_and_domain(self):
        """Should use <title> and the domain when no meta tags exist."""

        def handler(request):
            return httpx.Response(
                200, headers={"content-type": "text/html"}, content=b"<html><title> Bare page </title></html>"
            )

        fetcher, client = make_fetcher(handler)
        async with client:
            metadata = await fetcher.fetch("https://plain.example.org/")

        assert metadata == {"title": "Bare page", "provider": "plain.example.org"}

    @pytest.mark.asyncio
    async def test_known_provider_wins_over_site_name(self):
        """Should report the detected provider for known hosts."""

        def handler(request):
            return httpx.Response(
                200,
                headers={"content-type": "text/html"},
                content=b'<meta property="og:site_name" content="YouTube"><meta property="og:title" content="Video">',
            )

        fetcher, client = make_fetcher(handler)
        async with client:
            metadata = await fetcher.fetch("https://www.youtube.com/watch?v=abc")

        assert metadata["provider"] == "youtube"
        assert metadata["title"] == "Video"

    def test_first_meta_tag_wins(self):
        """Should keep the first occurrence of a repeated meta tag."""
        from clubhouse.links.fetcher import extract_html_meta

        meta_tags, title = extract_html_meta(ARTICLE_HTML)

        assert meta_tags["og:title"] == "Open Graph title"
        assert title == "Fallback title"


class TestImages:
    """Tests for direct image links."""

    @pytest.mark.asyncio
    async def test_image_content_type(self):
        """Should treat image responses as the preview image itself."""

        def handler(request):
            return httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x89PNG")

        fetcher, client = make_fetcher(handler)
        async with client:
            metadata = await fetcher.fetch("https://cdn.example.com/render")

        assert metadata["image"] == "https://cdn.example.com/render"
        assert metadata["type"] == "image"

    @pytest.mark.asyncio
    async def test_image_extension_without_image_content_type(self):
        """Should fall back to the URL's extension for non-HTML responses."""

        def handler(request):
            return httpx.Response(200, headers={"content-type": "application/octet-stream"}, content=b"...")

        fetcher, client = make_fetcher(handler)
        async with client:
            metadata = await fetcher.fetch("https://cdn.example.com/photo.webp")

        assert metadata["image"] == "https://cdn.example.com/photo.webp"


class TestRedirectsAndErrors:
    """Tests for redirect handling and failures."""

    @pytest.mark.asyncio
    async def test_follows_redirects(self):
        """Should follow relative redirects to the final page."""

        def handler(request):
            if request.url.path == "/short":
                return httpx.Response(301, headers={"location": "/final"})
            return httpx.Response(200, headers={"content-type": "text/html"}, content=b"<title>Final</title>")

        fetcher, client = make_fetcher(handler)
        async with client:
            metadata = await fetcher.fetch("https://example.com/short")

        assert metadata["title"] == "Final"

    @pytest.mark.asyncio
    async def test_validates_every_redirect_hop(self):
        """Should refuse to follow a redirect into the internal network."""
        from clubhouse.links.fetcher import HttpMetadataFetcher
        from clubhouse.main.exceptions import MetadataFetchError

        def handler(request):
            return httpx.Response(302, headers={"location": "http://169.254.169.254/latest/meta-data"})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            fetcher = HttpMetadataFetcher(client=client)
            with patch("clubhouse.links.urls.resolve_host", return_value=["93.184.216.34"]):
                with pytest.raises(MetadataFetchError) as exc_info:
                    await fetcher.fetch("https://example.com/redirect")

        assert exc_info.value.error_type == "blocked"

    @pytest.mark.asyncio
    async def test_too_many_redirects(self):
        """Should give up after the redirect limit."""
        from clubhouse.main.exceptions import MetadataFetchError

        def handler(request):
            return httpx.Response(302, headers={"location": "/again"})

        fetcher, client = make_fetcher(handler)
        async with client:
            with pytest.raises(MetadataFetchError) as exc_info:
                await fetcher.fetch("https://example.com/loop")

        assert exc_info.value.error_type == "redirect"

    @pytest.mark.asyncio
    async def test_unexpected_status(self):
        """Should raise an http_status error for non-2xx responses."""
        from clubhouse.main.exceptions import MetadataFetchError

        def handler(request):
            return httpx.Response(404)

        fetcher, client = make_fetcher(handler)
        async with client:
            with pytest.raises(MetadataFetchError) as exc_info:
                await fetcher.fetch("https://example.com/missing")

        assert exc_info.value.error_type == "http_status"

    @pytest.mark.asyncio
    async def test_body_is_capped(self):
        """Should stop reading after max_body_bytes."""
        body = b"<title>Capped</title>" + b"x" * 10_000 + b'<meta property="og:description" content="late">'

        def handler(request):
            return httpx.Response(200, headers={"content-type": "text/html"}, content=body)

        fetcher, client = make_fetcher(handler, max_body_bytes=64)
        async with client:
            metadata = await fetcher.fetch("https://example.com/huge")

        assert metadata["title"] == "Capped"
        assert "description" not in metadata
