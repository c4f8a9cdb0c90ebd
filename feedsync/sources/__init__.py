"""
Source Normalizers - one implementation per feed type.

Every feed is parsed as a syndication document, then handed to the
normalizer registered for its type:
- web: generic RSS/Atom sites
- video: channel and playlist feeds (video ids, watch URLs, thumbnails)
- forum: community feeds (link table cleanup, u/ authors, preview images)
- audio: podcasts (enclosures, durations, episode artwork)

normalize() is pure: no network and no storage.
"""

from ..database.models import FeedType
from .audio import AudioNormalizer
from .base import (
    FeedContext,
    FeedMetadataPatch,
    NormalizedArticle,
    NormalizeResult,
    SourceNormalizer,
)
from .forum import ForumNormalizer
from .syndication import ParsedDocument, parse_document
from .video import VideoNormalizer, is_video_url
from .web import WebNormalizer

FORUM_HOSTS = ("reddit.com",)

# Registry of normalizers, one per feed type
NORMALIZERS: dict[FeedType, SourceNormalizer] = {
    FeedType.WEB: WebNormalizer(),
    FeedType.VIDEO: VideoNormalizer(),
    FeedType.FORUM: ForumNormalizer(),
    FeedType.AUDIO: AudioNormalizer(),
}

_missing = set(FeedType) - set(NORMALIZERS)
if _missing:
    raise RuntimeError(f"No normalizer registered for: {sorted(t.value for t in _missing)}")


def _is_forum_url(url: str | None) -> bool:
    return bool(url) and any(host in url.lower() for host in FORUM_HOSTS)


def detect_feed_type(url: str, site_url: str | None, document: ParsedDocument | None = None) -> FeedType:
    """
    Infer a feed's type from its URLs and, when available, its content.

    Video hosts win, then forum hosts, then audio enclosures or podcast
    metadata; everything else is a web feed.
    """
    if is_video_url(url) or is_video_url(site_url):
        return FeedType.VIDEO
    if _is_forum_url(url) or _is_forum_url(site_url):
        return FeedType.FORUM
    if document is not None and (document.has_audio_enclosures or document.has_itunes_metadata):
        return FeedType.AUDIO
    return FeedType.WEB


def normalize(feed_type: FeedType, payload: bytes | str, ctx: FeedContext) -> NormalizeResult:
    """
    Parse and normalize a fetched payload.

    A feed stored as web is re-typed when detection finds a more specific
    type; the new type is reported in the metadata patch.

    Raises:
        ParseError: The payload is not a feed document
    """
    document = parse_document(payload)

    effective = feed_type
    if feed_type is FeedType.WEB:
        effective = detect_feed_type(ctx.url, document.site_url or ctx.site_url, document)

    result = NORMALIZERS[effective].normalize(document, ctx)
    if effective is not feed_type:
        result.metadata.feed_type = effective
    return result


__all__ = [
    "NORMALIZERS",
    "FeedContext",
    "FeedMetadataPatch",
    "NormalizedArticle",
    "NormalizeResult",
    "SourceNormalizer",
    "detect_feed_type",
    "normalize",
    "parse_document",
]
