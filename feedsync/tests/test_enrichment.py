"""
Tests for content enrichment helpers and readability extraction.
"""

from unittest.mock import AsyncMock

import pytest

from feedsync.enrichment import (
    better_icon,
    decode_entities,
    extract_hero_image,
    favicon_for,
    is_generic_icon,
    make_summary,
    truncate,
)
from feedsync.http_client import FetchResponse
from feedsync.readability import ReadabilityExtractor, extract_readable

ARTICLE_PAGE = """
<html>
<head><meta property="og:image" content="https://example.com/og.jpg"></head>
<body>
  <nav>Home | About</nav>
  <article>
    <h2>A long read</h2>
    <p>{paragraph}</p>
    <p>{paragraph}</p>
  </article>
  <footer>Copyright</footer>
</body>
</html>
""".format(paragraph="This sentence is part of the main body of the article. " * 6)


class TestSummaries:
    """Tests for summary and entity helpers."""

    def test_strips_tags_and_whitespace(self):
        assert make_summary("<p>Hello</p>\n\n<p>there   friend</p>") == "Hello there friend"

    def test_decodes_entities(self):
        assert make_summary("Fish &amp; chips &#8212; cheap") == "Fish & chips — cheap"
        assert decode_entities("&lt;b&gt;") == "<b>"

    def test_empty_summary_is_none(self):
        assert make_summary("<p> </p>") is None
        assert make_summary(None) is None

    def test_truncates_at_word_boundary(self):
        text = "word " * 200
        summary = make_summary(text)
        assert summary.endswith("...")
        assert len(summary) <= 503
        assert not summary[:-3].endswith(" ")

    def test_short_text_untouched(self):
        assert truncate("short", 10) == "short"


class TestHeroImage:
    """Tests for extract_hero_image."""

    def test_explicit_candidates_win_in_order(self):
        assert extract_hero_image(
            '<img src="https://example.com/inline.jpg">',
            explicit=[None, "https://example.com/media.jpg", "https://example.com/other.jpg"],
        ) == "https://example.com/media.jpg"

    def test_meta_tags(self):
        assert extract_hero_image(ARTICLE_PAGE) == "https://example.com/og.jpg"

    def test_skips_decorative_images(self):
        markup = '<img src="/img/logo.png"><img src="data:image/png;base64,xx"><img src="/img/photo.jpg">'
        assert extract_hero_image(markup, base_url="https://example.com/post") == "https://example.com/img/photo.jpg"

    def test_plain_text_has_no_image(self):
        assert extract_hero_image("no markup here") is None


class TestIcons:
    """Tests for favicon fallback and icon preference."""

    def test_favicon_for(self):
        assert favicon_for("https://blog.example.com/posts/1") == "https://blog.example.com/favicon.ico"
        assert favicon_for("mailto:someone@example.com") is None
        assert favicon_for(None) is None

    @pytest.mark.parametrize("url", [
        None,
        "https://www.google.com/s2/favicons?domain=example.com",
        "https://www.redditstatic.com/desktop2x/img/favicon/favicon-32x32.png",
        "https://www.youtube.com/favicon.ico",
    ])
    def test_generic_icons(self, url):
        assert is_generic_icon(url)

    def test_site_icon_is_not_generic(self):
        assert not is_generic_icon("https://example.com/icon.png")

    def test_better_icon_replaces_missing_or_generic(self):
        assert better_icon(None, "https://example.com/a.png") == "https://example.com/a.png"
        assert better_icon(
            "https://www.youtube.com/favicon.ico", "https://yt3.ggpht.com/avatar.jpg"
        ) == "https://yt3.ggpht.com/avatar.jpg"

    def test_better_icon_keeps_specific_icon(self):
        assert better_icon("https://example.com/a.png", "https://example.com/b.png") is None
        assert better_icon("https://example.com/a.png", "https://example.com/a.png") is None
        assert better_icon("https://example.com/a.png", None) is None


class TestReadability:
    """Tests for readable content extraction."""

    def test_extracts_article_body(self):
        result = extract_readable("https://example.com/post", ARTICLE_PAGE)
        assert result.ok
        assert "main body of the article" in result.value.content
        assert result.value.hero_image == "https://example.com/og.jpg"

    def test_empty_page_is_a_failure_not_an_exception(self):
        result = extract_readable("https://example.com/post", "<html><body></body></html>")
        assert not result.ok
        assert result.error

    @pytest.mark.asyncio
    async def test_extractor_rejects_non_html(self):
        transport = AsyncMock()
        transport.fetch.return_value = FetchResponse(
            "https://example.com/file.pdf", 200, {"content-type": "application/pdf"}, b"%PDF"
        )
        result = await ReadabilityExtractor(transport).extract("https://example.com/file.pdf")
        assert not result.ok
        assert "Not an HTML page" in result.error

    @pytest.mark.asyncio
    async def test_extractor_reports_http_errors(self):
        transport = AsyncMock()
        transport.fetch.return_value = FetchResponse("https://example.com/gone", 410)
        result = await ReadabilityExtractor(transport).extract("https://example.com/gone")
        assert result.error == "HTTP 410"

    @pytest.mark.asyncio
    async def test_extractor_reports_transport_errors(self):
        transport = AsyncMock()
        transport.fetch.side_effect = ConnectionResetError("reset")
        result = await ReadabilityExtractor(transport).extract("https://example.com/post")
        assert result.error.startswith("ConnectionResetError")
