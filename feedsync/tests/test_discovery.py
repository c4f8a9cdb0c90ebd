"""
Tests for finding the feed a web page advertises.
"""

from unittest.mock import AsyncMock

import pytest

from feedsync.http_client import FetchResponse
from feedsync.sources.discovery import discover_feed_links, discover_feed_url, looks_like_html

from conftest import feed_response

PAGE_URL = "https://example.com/blog/"

BLOG_PAGE = """<!DOCTYPE html>
<html><head>
  <title>Example Blog</title>
  <link rel="stylesheet" href="/style.css">
  <link rel="alternate" type="application/rss+xml" title="Posts" href="/feed.xml">
  <link rel="alternate" type="application/atom+xml" href="https://example.com/atom.xml">
  <link rel="alternate" type="application/rss+xml" href="/feed.xml">
  <link rel="alternate" type="text/html" hreflang="fr" href="/fr/">
</head><body><p>Hello</p></body></html>"""


def page_response(body: str, content_type: str | None = "text/html; charset=utf-8") -> FetchResponse:
    headers = {"content-type": content_type} if content_type else {}
    return FetchResponse(PAGE_URL, 200, headers, body.encode())


class TestDiscoverFeedLinks:
    """Tests for scanning a page's link tags."""

    def test_rss_and_atom_in_document_order(self):
        feeds = discover_feed_links(BLOG_PAGE, PAGE_URL)

        assert [f.url for f in feeds] == [
            "https://example.com/feed.xml",
            "https://example.com/atom.xml",
        ]
        assert feeds[0].title == "Posts"
        assert feeds[1].title == "RSS Feed"
        assert feeds[1].type == "application/atom+xml"

    def test_relative_href_resolved_against_page(self):
        html = '<link rel="alternate" type="application/rss+xml" href="rss">'
        assert discover_feed_links(html, PAGE_URL)[0].url == "https://example.com/blog/rss"

    def test_page_without_feeds(self):
        assert discover_feed_links("<html><head></head></html>", PAGE_URL) == []


class TestLooksLikeHtml:
    """Tests for telling pages from feed documents."""

    def test_declared_html(self):
        assert looks_like_html(page_response("<p>hi</p>"))

    def test_declared_feed_type(self):
        assert not looks_like_html(page_response(BLOG_PAGE, "application/rss+xml"))

    def test_sniffs_undeclared_body(self):
        assert looks_like_html(page_response("  <!doctype html><html></html>", None))
        assert not looks_like_html(feed_response())


class TestDiscoverFeedUrl:
    """Tests for resolving a subscription URL."""

    @pytest.mark.asyncio
    async def test_page_resolves_to_first_feed(self):
        transport = AsyncMock()
        transport.fetch.return_value = page_response(BLOG_PAGE)

        assert await discover_feed_url(transport, PAGE_URL) == "https://example.com/feed.xml"
        assert transport.fetch.call_args.kwargs["retries"] == 0

    @pytest.mark.asyncio
    async def test_feed_url_is_kept(self):
        transport = AsyncMock()
        transport.fetch.return_value = feed_response()

        assert await discover_feed_url(transport, "https://example.com/feed.xml") == "https://example.com/feed.xml"

    @pytest.mark.asyncio
    async def test_page_without_feed(self):
        transport = AsyncMock()
        transport.fetch.return_value = page_response("<html><body>No feeds</body></html>")

        assert await discover_feed_url(transport, PAGE_URL) is None

    @pytest.mark.asyncio
    async def test_unreachable_url_is_kept(self):
        transport = AsyncMock()
        transport.fetch.side_effect = ConnectionResetError("reset")

        assert await discover_feed_url(transport, PAGE_URL) == PAGE_URL
