"""
Feed refresh pipeline: fetch, normalize, persist, update state.

One call to FeedRefresher.refresh() is one isolated pipeline run. Every
failure inside it becomes persisted feed state; nothing propagates to the
caller. Optional enrichment (icons, thumbnails, readability) runs in
background tasks after the feed's outcome is already committed.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass

from .asset_cache import ICONS, THUMBNAILS, AssetCache
from .database import Database, DBFeed, FeedType
from .enrichment import better_icon, is_generic_icon
from .events import FEED_FAILED, FEED_REFRESHED, FEED_UPDATED, ChangeBroker
from .exceptions import FetchError
from .feed_state import compute_next_fetch, describe_error, parse_retry_after
from .http_client import HttpTransport
from .readability import ReadabilityExtractor
from .sources import FeedContext, FeedMetadataPatch, normalize
from .sources.forum import fetch_community_icon
from .sources.video import fetch_channel_avatar

logger = logging.getLogger(__name__)

FEED_ACCEPT = "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.9, */*;q=0.8"
MAX_THUMBNAILS_PER_REFRESH = 50


@dataclass
class RefreshResult:
    feed_id: int
    success: bool
    new_articles: int = 0
    not_modified: bool = False
    error: str | None = None
    next_fetch_at: str | None = None


def conditional_headers(feed: DBFeed) -> dict[str, str]:
    """Validators from the previous successful fetch."""
    headers = {"Accept": FEED_ACCEPT}
    if feed.etag:
        headers["If-None-Match"] = feed.etag
    if feed.last_modified:
        headers["If-Modified-Since"] = feed.last_modified
    return headers


def merge_metadata(feed: DBFeed, patch: FeedMetadataPatch) -> dict:
    """
    Fields of the patch worth writing back to the feed.

    The title is only replaced while it is still the URL placeholder,
    site URL and description only fill gaps, and icons only replace a
    missing or generic icon.
    """
    changes: dict = {}
    if patch.title and (not feed.title or feed.title == feed.url):
        changes["title"] = patch.title
    if patch.site_url and not feed.site_url:
        changes["site_url"] = patch.site_url
    if patch.description and not feed.description:
        changes["description"] = patch.description
    icon = better_icon(feed.icon_url, patch.icon_url)
    if icon:
        changes["icon_url"] = icon
    if patch.feed_type and patch.feed_type != feed.type:
        changes["feed_type"] = patch.feed_type
    return changes


class FeedRefresher:
    """Runs the ingestion pipeline for one feed at a time."""

    def __init__(
        self,
        db: Database,
        transport: HttpTransport,
        broker: ChangeBroker | None = None,
        assets: AssetCache | None = None,
        readability: ReadabilityExtractor | None = None,
        readability_on_ingest: bool = False,
        feed_timeout: float = 30,
    ):
        self.db = db
        self.transport = transport
        self.broker = broker
        self.assets = assets
        self.readability = readability
        self.readability_on_ingest = readability_on_ingest
        self.feed_timeout = feed_timeout
        self._background: set[asyncio.Task] = set()

    async def refresh(self, feed: DBFeed) -> RefreshResult:
        """Fetch and ingest one feed, persisting success or failure."""
        now = self.db.connection.clock()
        try:
            response = await self.transport.fetch(
                feed.url, headers=conditional_headers(feed), timeout=self.feed_timeout
            )
            retry_after = parse_retry_after(response.header("retry-after"), now)

            if response.not_modified:
                update = compute_next_fetch(feed, True, now, retry_after)
                self.db.feeds.apply_fetch_state(feed.id, **asdict(update))
                logger.info(f"Feed {feed.id} not modified")
                self._publish(FEED_REFRESHED, feed.id, new_articles=0, not_modified=True)
                return RefreshResult(
                    feed.id, True, not_modified=True, next_fetch_at=update.next_fetch_at
                )

            if not response.ok:
                raise FetchError(
                    f"HTTP {response.status} from {response.url}",
                    status=response.status,
                    retry_after=retry_after,
                )

            result = normalize(feed.type, response.body, FeedContext.from_feed(feed))
            changes = merge_metadata(feed, result.metadata)
            update = compute_next_fetch(feed, True, now, retry_after)
            with self.db.transaction():
                new_ids = self.db.articles.insert_many(feed.id, result.articles)
                metadata_changed = self.db.feeds.update_metadata(feed.id, **changes)
                self.db.feeds.apply_fetch_state(
                    feed.id,
                    **asdict(update),
                    etag=response.header("etag"),
                    last_modified=response.header("last-modified"),
                )
        except Exception as e:
            return self._record_failure(feed, now, e)

        logger.info(
            f"Feed {feed.id} refreshed: {len(new_ids)} new of {len(result.articles)} items"
        )
        if metadata_changed:
            self._publish(FEED_UPDATED, feed.id, **{k: str(v) for k, v in changes.items()})
        self._publish(FEED_REFRESHED, feed.id, new_articles=len(new_ids), not_modified=False)
        self._spawn(self._enrich(feed.id, new_ids, result.metadata))
        return RefreshResult(
            feed.id, True, new_articles=len(new_ids), next_fetch_at=update.next_fetch_at
        )

    def _record_failure(self, feed: DBFeed, now, err: Exception) -> RefreshResult:
        error = describe_error(err)
        logger.warning(f"Feed {feed.id} ({feed.url}) failed: {error}")
        update = compute_next_fetch(
            feed, False, now, getattr(err, "retry_after", None), error
        )
        try:
            self.db.feeds.apply_fetch_state(feed.id, **asdict(update))
        except Exception:
            logger.exception(f"Could not record failure state for feed {feed.id}")
        self._publish(FEED_FAILED, feed.id, error=error, error_count=update.error_count)
        return RefreshResult(
            feed.id, False, error=error, next_fetch_at=update.next_fetch_at
        )

    def _publish(self, event_type: str, feed_id: int, **data):
        if self.broker:
            self.broker.publish(event_type, feed_id, **data)

    # ─────────────────────────────────────────────────────────────
    # Background enrichment
    # ─────────────────────────────────────────────────────────────

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task):
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background enrichment crashed", exc_info=exc)

    async def drain(self):
        """Wait for outstanding enrichment tasks."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self):
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _enrich(self, feed_id: int, article_ids: list[int], metadata: FeedMetadataPatch):
        await self._discover_icon(feed_id, metadata)
        if self.assets:
            await self._cache_icon(feed_id)
            await self._cache_thumbnails(article_ids[:MAX_THUMBNAILS_PER_REFRESH])
        if self.readability and self.readability_on_ingest:
            await self._extract_readability(article_ids)

    async def _discover_icon(self, feed_id: int, metadata: FeedMetadataPatch):
        """Replace generic icons with the channel avatar or community icon."""
        feed = self.db.feeds.get(feed_id)
        if not feed or not is_generic_icon(feed.icon_url):
            return
        if feed.type is FeedType.VIDEO and metadata.channel_id:
            result = await fetch_channel_avatar(self.transport, metadata.channel_id)
        elif feed.type is FeedType.FORUM and metadata.community:
            result = await fetch_community_icon(self.transport, metadata.community)
        else:
            return
        if not result.ok:
            logger.debug(f"Icon discovery for feed {feed_id} failed: {result.error}")
            return
        if self.db.feeds.update_metadata(feed_id, icon_url=result.value):
            if self.assets and feed.icon_cached_path:
                self.assets.remove(ICONS, feed.icon_cached_path)
            self.db.feeds.clear_icon_cache(feed_id)
            self._publish(FEED_UPDATED, feed_id, icon_url=result.value)

    async def _cache_icon(self, feed_id: int):
        feed = self.db.feeds.get(feed_id)
        if not feed or not feed.icon_url or feed.icon_cached_path:
            return
        result = await self.assets.cache_remote(ICONS, f"feed-{feed_id}", feed.icon_url)
        if result.ok:
            self.db.feeds.set_icon_cache(feed_id, result.value.filename, result.value.content_type)
        else:
            logger.debug(f"Icon cache for feed {feed_id} failed: {result.error}")

    async def _cache_thumbnails(self, article_ids: list[int]):
        for article in self.db.articles.get_many(article_ids):
            if not article.thumbnail_url or article.thumbnail_cached_path:
                continue
            result = await self.assets.cache_remote(
                THUMBNAILS, f"article-{article.id}", article.thumbnail_url
            )
            if result.ok:
                self.db.articles.set_thumbnail_cache(
                    article.id, result.value.filename, result.value.content_type
                )
            else:
                logger.debug(f"Thumbnail cache for article {article.id} failed: {result.error}")

    async def _extract_readability(self, article_ids: list[int]):
        for article in self.db.articles.get_many(article_ids):
            if not article.url or article.readability_content:
                continue
            result = await self.readability.extract(article.url)
            if result.ok:
                self.db.articles.set_readability(
                    article.id, result.value.content, result.value.hero_image
                )
            else:
                logger.debug(f"Readability for article {article.id} skipped: {result.error}")
