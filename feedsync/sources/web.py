"""
Web feed normalizer - plain RSS/Atom sites.
"""

from ..database.models import FeedType
from ..enrichment import favicon_for
from .base import FeedContext, FeedMetadataPatch, NormalizedArticle, SourceNormalizer
from .syndication import ParsedDocument, ParsedEntry


class WebNormalizer(SourceNormalizer):
    """Generic syndication mapping with a favicon fallback."""

    FEED_TYPE = FeedType.WEB

    def adapt_article(
        self, article: NormalizedArticle, entry: ParsedEntry, ctx: FeedContext
    ) -> NormalizedArticle:
        return article

    def adapt_metadata(
        self, metadata: FeedMetadataPatch, document: ParsedDocument, ctx: FeedContext
    ) -> FeedMetadataPatch:
        if not metadata.icon_url:
            metadata.icon_url = favicon_for(metadata.site_url or ctx.site_url or ctx.url)
        return metadata
