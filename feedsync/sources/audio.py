"""
Audio normalizer - podcast feeds with episode enclosures.
"""

import re

from ..database.models import FeedType
from ..enrichment import favicon_for
from .base import FeedContext, FeedMetadataPatch, NormalizedArticle, SourceNormalizer
from .syndication import ParsedDocument, ParsedEntry

_CLOCK_DURATION = re.compile(r"^(?:(\d+):)?(\d{1,2}):(\d{1,2})$")


def parse_duration(value: str | None) -> int | None:
    """
    Parse itunes:duration into seconds.

    Accepts plain seconds ("3600"), "MM:SS" and "HH:MM:SS".
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    match = _CLOCK_DURATION.match(value)
    if not match:
        return None
    hours, minutes, seconds = match.groups()
    return int(hours or 0) * 3600 + int(minutes) * 60 + int(seconds)


class AudioNormalizer(SourceNormalizer):
    """Prefers the audio enclosure and episode artwork."""

    FEED_TYPE = FeedType.AUDIO

    def adapt_article(
        self, article: NormalizedArticle, entry: ParsedEntry, ctx: FeedContext
    ) -> NormalizedArticle:
        audio = next(
            (e for e in entry.enclosures if (e.type or "").startswith("audio/")),
            None,
        )
        if audio:
            article.enclosure_url = audio.url
            article.enclosure_type = audio.type
            article.enclosure_length = audio.length
        article.duration_seconds = parse_duration(entry.itunes_duration)
        if entry.image_url:
            article.thumbnail_url = entry.image_url
        return article

    def adapt_metadata(
        self, metadata: FeedMetadataPatch, document: ParsedDocument, ctx: FeedContext
    ) -> FeedMetadataPatch:
        if not metadata.icon_url:
            metadata.icon_url = favicon_for(metadata.site_url or ctx.site_url)
        return metadata
