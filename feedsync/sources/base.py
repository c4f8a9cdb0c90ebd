"""
Base types for per-source-type normalization.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import ClassVar

from ..database.models import DBFeed, FeedType
from ..enrichment import decode_entities, extract_hero_image, make_summary
from .syndication import ParsedDocument, ParsedEntry


@dataclass
class NormalizedArticle:
    """Canonical article shape produced by every normalizer."""
    guid: str
    title: str
    url: str | None = None
    author: str | None = None
    summary: str | None = None
    content: str | None = None
    published_at: str | None = None
    enclosure_url: str | None = None
    enclosure_type: str | None = None
    enclosure_length: int | None = None
    duration_seconds: int | None = None
    thumbnail_url: str | None = None


@dataclass
class FeedMetadataPatch:
    """Feed fields learned from the payload; None means no information."""
    title: str | None = None
    site_url: str | None = None
    description: str | None = None
    icon_url: str | None = None
    feed_type: FeedType | None = None
    # Platform identifiers used by background icon discovery
    channel_id: str | None = None
    community: str | None = None


@dataclass
class NormalizeResult:
    metadata: FeedMetadataPatch
    articles: list[NormalizedArticle] = field(default_factory=list)


@dataclass(frozen=True)
class FeedContext:
    """The parts of a feed a normalizer may look at."""
    feed_id: int
    url: str
    feed_type: FeedType
    title: str | None = None
    site_url: str | None = None
    icon_url: str | None = None

    @classmethod
    def from_feed(cls, feed: DBFeed) -> "FeedContext":
        return cls(
            feed_id=feed.id,
            url=feed.url,
            feed_type=feed.type,
            title=feed.title,
            site_url=feed.site_url,
            icon_url=feed.icon_url,
        )


class SourceNormalizer(ABC):
    """
    Turns a parsed syndication document into canonical articles.

    Subclasses adjust the generic result through adapt_article() and
    adapt_metadata(); both must stay free of I/O.
    """

    FEED_TYPE: ClassVar[FeedType]

    def normalize(self, document: ParsedDocument, ctx: FeedContext) -> NormalizeResult:
        metadata = FeedMetadataPatch(
            title=decode_entities(document.title) or None,
            site_url=document.site_url,
            description=document.description,
            icon_url=document.icon_url,
        )
        metadata = self.adapt_metadata(metadata, document, ctx)

        articles = []
        for entry in document.entries:
            article = self.base_article(entry)
            articles.append(self.adapt_article(article, entry, ctx))
        return NormalizeResult(metadata=metadata, articles=articles)

    def base_article(self, entry: ParsedEntry) -> NormalizedArticle:
        """Type-independent mapping of one entry."""
        enclosure = entry.enclosures[0] if entry.enclosures else None
        return NormalizedArticle(
            guid=entry.guid,
            title=decode_entities(entry.title),
            url=entry.link,
            author=entry.author,
            summary=make_summary(entry.summary or entry.content),
            content=entry.content,
            published_at=entry.published_at,
            enclosure_url=enclosure.url if enclosure else None,
            enclosure_type=enclosure.type if enclosure else None,
            enclosure_length=enclosure.length if enclosure else None,
            thumbnail_url=extract_hero_image(
                entry.content or entry.summary,
                explicit=[entry.image_url, entry.media_thumbnail, entry.media_image],
                base_url=entry.link,
            ),
        )

    @abstractmethod
    def adapt_article(
        self, article: NormalizedArticle, entry: ParsedEntry, ctx: FeedContext
    ) -> NormalizedArticle:
        """Apply type-specific article rules."""

    def adapt_metadata(
        self, metadata: FeedMetadataPatch, document: ParsedDocument, ctx: FeedContext
    ) -> FeedMetadataPatch:
        return metadata
