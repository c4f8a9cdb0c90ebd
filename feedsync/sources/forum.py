"""
Forum normalizer - community feeds (reddit-style link aggregators).

Forum items wrap the post in a trailing table of "submitted by / [link] /
[comments]" links; it is removed before the summary is derived.
"""

import json
import re
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from ..database.models import FeedType
from ..enrichment import (
    PREVIEW_SUMMARY_LENGTH,
    EnrichmentResult,
    decode_entities,
    make_summary,
)
from ..http_client import HttpTransport
from .base import FeedContext, FeedMetadataPatch, NormalizedArticle, SourceNormalizer
from .syndication import ParsedDocument, ParsedEntry

FORUM_DEFAULT_ICON = "https://www.redditstatic.com/desktop2x/img/favicon/favicon-32x32.png"

_TABLE_BLOCK = re.compile(r"<table[^>]*>.*?</table>", re.IGNORECASE | re.DOTALL)
_IMG_SRC = re.compile(r"<img[^>]+src=\"([^\">]+)\"", re.IGNORECASE)
_IMAGE_LINK = re.compile(r"<a[^>]+href=\"([^\">]+\.(?:jpg|jpeg|png|gif|webp)[^\">]*)\"", re.IGNORECASE)
_COMMUNITY = re.compile(r"/r/([^/?#]+)")

# Preview hosts and the query parameters that select a 640px variant
_PREVIEW_VARIANTS = {
    "preview.redd.it": {"width": "640", "crop": "smart", "auto": "webp"},
    "external-preview.redd.it": {"width": "640", "format": "jpg", "auto": "webp"},
}


def clean_forum_content(markup: str) -> str:
    """Drop the link table forums append to every item body."""
    return _TABLE_BLOCK.sub("", markup).strip()


def upgrade_preview_url(url: str) -> str:
    """Rewrite preview image URLs to the 640px variant unless already signed."""
    parsed = urlparse(url)
    variant = _PREVIEW_VARIANTS.get(parsed.hostname or "")
    if not variant:
        return url
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    if query.get("s"):
        return url
    query.update(variant)
    return urlunparse(parsed._replace(query=urlencode(query)))


def community_name(*urls: str | None) -> str | None:
    for url in urls:
        if url:
            match = _COMMUNITY.search(url)
            if match:
                return match.group(1)
    return None


class ForumNormalizer(SourceNormalizer):
    FEED_TYPE = FeedType.FORUM

    def adapt_article(
        self, article: NormalizedArticle, entry: ParsedEntry, ctx: FeedContext
    ) -> NormalizedArticle:
        content = article.content
        if content:
            content = clean_forum_content(content)
            article.content = content
        article.summary = make_summary(content, PREVIEW_SUMMARY_LENGTH) if content else None

        author = article.author
        if author:
            author = author.lstrip("/")
            article.author = author if author.startswith("u/") else f"u/{author}"

        thumbnail = article.thumbnail_url
        if not thumbnail and content:
            match = _IMG_SRC.search(content) or _IMAGE_LINK.search(content)
            if match:
                thumbnail = match.group(1)
        if thumbnail:
            thumbnail = upgrade_preview_url(decode_entities(thumbnail))
        article.thumbnail_url = thumbnail
        return article

    def adapt_metadata(
        self, metadata: FeedMetadataPatch, document: ParsedDocument, ctx: FeedContext
    ) -> FeedMetadataPatch:
        metadata.community = community_name(metadata.site_url, ctx.site_url, ctx.url)
        if not metadata.icon_url:
            metadata.icon_url = FORUM_DEFAULT_ICON
        return metadata


async def fetch_community_icon(
    transport: HttpTransport, community: str, timeout: float = 8
) -> EnrichmentResult[str]:
    """Look up a community's own icon from its about endpoint."""
    try:
        response = await transport.fetch(
            f"https://www.reddit.com/r/{community}/about.json", timeout=timeout, retries=1
        )
    except Exception as e:
        return EnrichmentResult.failure(f"{type(e).__name__}: {e}")
    if not response.ok:
        return EnrichmentResult.failure(f"HTTP {response.status}")

    try:
        data = json.loads(response.text()).get("data") or {}
    except (ValueError, AttributeError):
        return EnrichmentResult.failure("Invalid about payload")
    icon = data.get("community_icon") or data.get("icon_img")
    if not icon:
        return EnrichmentResult.failure("No community icon")
    # Signed query strings on community icons expire
    return EnrichmentResult.success(icon.split("?")[0].replace("&amp;", "&"))
