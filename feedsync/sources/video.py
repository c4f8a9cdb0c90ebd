"""
Video channel normalizer - channel and playlist feeds.

Also resolves arbitrary channel URLs (channel id, @handle, playlist) into the
canonical feed URL, and scrapes channel avatars for icons.
"""

import re
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urlparse

from ..database.models import FeedType
from ..enrichment import EnrichmentResult
from ..http_client import HttpTransport
from .base import FeedContext, FeedMetadataPatch, NormalizedArticle, SourceNormalizer
from .syndication import ParsedDocument, ParsedEntry

VIDEO_HOSTS = ("youtube.com", "youtu.be")
CHANNEL_FEED_URL = "https://www.youtube.com/feeds/videos.xml?channel_id={}"
PLAYLIST_FEED_URL = "https://www.youtube.com/feeds/videos.xml?playlist_id={}"
WATCH_URL = "https://www.youtube.com/watch?v={}"
THUMBNAIL_URL = "https://img.youtube.com/vi/{}/maxresdefault.jpg"

_VIDEO_ID_IN_GUID = re.compile(r"(?:yt:video:|video:)([a-zA-Z0-9_-]{11})")
_VIDEO_ID_IN_LINK = re.compile(r"(?:v=|youtu\.be/|/embed/|/shorts/)([a-zA-Z0-9_-]{11})")
_CHANNEL_PATH = re.compile(r"/channel/(UC[a-zA-Z0-9_-]+)")
_HANDLE_PATH = re.compile(r"/@([a-zA-Z0-9_.-]+)")
_CHANNEL_ID_IN_PAGE = re.compile(r"channel_id=([a-zA-Z0-9_-]+)")

_AVATAR_PATTERNS = [
    re.compile(r'"avatar":\{"thumbnails":\[\{"url":"([^"]+)"'),
    re.compile(r'"channelMetadataRenderer".*?"avatar".*?"url":"([^"]+)"', re.DOTALL),
    re.compile(r'yt-img-shadow.*?src="(https://yt3\.googleusercontent\.com/[^"]+)"', re.DOTALL),
    re.compile(r'<meta property="og:image" content="([^"]+)"'),
]
_AVATAR_SIZE = re.compile(r"=s\d+.*")


def is_video_url(url: str | None) -> bool:
    if not url:
        return False
    host = (urlparse(url).hostname or "").lower()
    return any(host == h or host.endswith("." + h) for h in VIDEO_HOSTS)


def extract_video_id(guid: str | None, link: str | None) -> str | None:
    """Video id from the entry id, falling back to the watch link."""
    if guid:
        match = _VIDEO_ID_IN_GUID.search(guid)
        if match:
            return match.group(1)
    if link:
        match = _VIDEO_ID_IN_LINK.search(link)
        if match:
            return match.group(1)
    return None


def channel_id_from_feed_url(url: str) -> str | None:
    values = parse_qs(urlparse(url).query).get("channel_id")
    return values[0] if values else None


def extract_channel_avatar(page: str) -> str | None:
    """Avatar URL from a channel page, resized to 176px."""
    for pattern in _AVATAR_PATTERNS:
        match = pattern.search(page)
        if match:
            avatar = match.group(1).replace("\\u0026", "&").replace("\\", "")
            if "=s" in avatar:
                avatar = _AVATAR_SIZE.sub("=s176-c-k-c0x00ffffff-no-rj-mo", avatar)
            return avatar
    return None


async def resolve_channel_feed_url(
    url: str, fetch_page: Callable[[str], Awaitable[str | None]]
) -> str | None:
    """
    Canonical feed URL for a channel, handle or playlist page.

    Strategies in priority order: a channel id in the path, the channel id
    scraped from an @handle page, an explicit playlist id.

    Args:
        url: Any video-host URL
        fetch_page: Returns page HTML or None on failure

    Returns:
        Feed URL, or None when the URL cannot be resolved
    """
    parsed = urlparse(url)
    if "/feeds/videos.xml" in parsed.path:
        return url

    match = _CHANNEL_PATH.search(parsed.path)
    if match:
        return CHANNEL_FEED_URL.format(match.group(1))

    if _HANDLE_PATH.search(parsed.path):
        page = await fetch_page(url)
        if page:
            match = _CHANNEL_ID_IN_PAGE.search(page)
            if match:
                return CHANNEL_FEED_URL.format(match.group(1))

    playlist = parse_qs(parsed.query).get("list")
    if playlist:
        return PLAYLIST_FEED_URL.format(playlist[0])
    return None


class VideoNormalizer(SourceNormalizer):
    FEED_TYPE = FeedType.VIDEO

    def adapt_article(
        self, article: NormalizedArticle, entry: ParsedEntry, ctx: FeedContext
    ) -> NormalizedArticle:
        video_id = entry.video_id or extract_video_id(entry.guid, entry.link)
        if video_id:
            if not article.url:
                article.url = WATCH_URL.format(video_id)
            if not article.thumbnail_url:
                article.thumbnail_url = THUMBNAIL_URL.format(video_id)
        return article

    def adapt_metadata(
        self, metadata: FeedMetadataPatch, document: ParsedDocument, ctx: FeedContext
    ) -> FeedMetadataPatch:
        channel_id = channel_id_from_feed_url(ctx.url) or document.channel_id
        if channel_id and not channel_id.startswith("UC"):
            channel_id = f"UC{channel_id}"
        metadata.channel_id = channel_id
        return metadata


async def fetch_channel_avatar(
    transport: HttpTransport, channel_id: str, timeout: float = 10
) -> EnrichmentResult[str]:
    """Scrape the channel page for its avatar."""
    if not channel_id.startswith("UC") or len(channel_id) != 24:
        return EnrichmentResult.failure(f"Invalid channel id: {channel_id}")
    try:
        response = await transport.fetch(
            f"https://www.youtube.com/channel/{channel_id}",
            headers={"Accept-Language": "en-US,en;q=0.9"},
            timeout=timeout,
        )
    except Exception as e:
        return EnrichmentResult.failure(f"{type(e).__name__}: {e}")
    if not response.ok:
        return EnrichmentResult.failure(f"HTTP {response.status}")
    avatar = extract_channel_avatar(response.text())
    if not avatar:
        return EnrichmentResult.failure("No avatar found on channel page")
    return EnrichmentResult.success(avatar)
