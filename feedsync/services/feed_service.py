"""
Feed service: business logic for feed and folder management.

Handles subscription (with video channel resolution and type detection),
manual refresh, pause/resume and the direct read/bookmark actions. Every
user-visible mutation is published on the change broker.
"""

import asyncio
import logging
import sqlite3

from fastapi import HTTPException

from ..asset_cache import ICONS
from ..database import Database, DBArticle, DBFeed, DBFolder
from ..events import (
    FEED_CREATED,
    FEED_DELETED,
    FEED_UPDATED,
    FOLDER_CREATED,
    FOLDER_DELETED,
    FOLDER_UPDATED,
    ChangeBroker,
)
from ..exceptions import SSRFError, require_article, require_feed, require_resource
from ..http_client import HttpTransport
from ..opml import OPMLFeed, OPMLImportResult, generate_opml, parse_opml
from ..sources import detect_feed_type
from ..sources.discovery import discover_feed_url
from ..sources.video import is_video_url, resolve_channel_feed_url
from ..tasks import FeedRefresher, RefreshResult
from ..url_validator import validate_url

logger = logging.getLogger(__name__)

ALREADY_SUBSCRIBED = "Already subscribed"


class FeedService:
    """Service for feed-related business logic."""

    def __init__(
        self,
        db: Database,
        refresher: FeedRefresher,
        transport: HttpTransport,
        broker: ChangeBroker | None = None,
    ):
        self.db = db
        self.refresher = refresher
        self.transport = transport
        self.broker = broker

    def _publish(self, event_type: str, entity_id: int, **data):
        if self.broker:
            self.broker.publish(event_type, entity_id, **data)

    def _owned_feed(self, feed_id: int, user_id: int) -> DBFeed:
        feed = self.db.get_feed(feed_id)
        if feed is None or feed.user_id != user_id or feed.deleted_at:
            return require_feed(None)
        return feed

    # ─────────────────────────────────────────────────────────────
    # Feed Management
    # ─────────────────────────────────────────────────────────────

    def list_feeds(self, user_id: int) -> list[DBFeed]:
        return self.db.get_feeds(user_id)

    async def _fetch_page(self, url: str) -> str | None:
        try:
            response = await self.transport.fetch(url, headers={"Accept": "text/html"}, retries=0)
        except Exception as e:
            logger.debug(f"Channel page fetch failed for {url}: {e}")
            return None
        return response.text() if response.ok else None

    async def _validated(self, url: str) -> str:
        try:
            await asyncio.to_thread(validate_url, url)
        except SSRFError as e:
            raise HTTPException(status_code=400, detail=f"Invalid feed URL: {e}")
        return url

    async def subscribe(
        self,
        user_id: int,
        url: str,
        title: str | None = None,
        folder_id: int | None = None,
        refresh_interval_minutes: int = 30,
        fetch_now: bool = True,
        discover: bool = True,
    ) -> DBFeed:
        """
        Subscribe a user to a feed.

        Video channel, handle and playlist pages are resolved to their
        canonical feed URL first; with discover, any other web page is
        resolved to the feed it advertises. Subscribing again to a feed the
        user removed restores it. The feed is due immediately; with
        fetch_now it is refreshed before returning.

        Raises:
            HTTPException: 400 for a blocked or unresolvable URL or a page
                without a feed, 409 if the user is already subscribed
        """
        url = await self._validated(url)

        if is_video_url(url):
            resolved = await resolve_channel_feed_url(url, self._fetch_page)
            if not resolved:
                raise HTTPException(status_code=400, detail="Could not resolve video channel feed")
            url = resolved
        elif discover:
            discovered = await discover_feed_url(self.transport, url)
            if discovered is None:
                raise HTTPException(status_code=400, detail="No feed found at this URL")
            if discovered != url:
                url = await self._validated(discovered)

        if folder_id is not None:
            self._owned_folder(folder_id, user_id)

        existing = self.db.feeds.get_by_url(user_id, url)
        if existing is not None and existing.deleted_at is None:
            raise HTTPException(status_code=409, detail="Already subscribed to this feed")

        if existing is not None:
            feed_id = self._restore(existing, title, folder_id, refresh_interval_minutes)
        else:
            feed_type = detect_feed_type(url, None)
            try:
                feed_id = self.db.feeds.add(
                    user_id, url, title, feed_type,
                    folder_id=folder_id,
                    refresh_interval_minutes=refresh_interval_minutes,
                )
            except sqlite3.IntegrityError:
                raise HTTPException(status_code=409, detail="Already subscribed to this feed")
            logger.info(f"Subscribed user {user_id} to {url} as {feed_type.value} feed {feed_id}")
            self._publish(FEED_CREATED, feed_id, url=url, type=feed_type.value)

        feed = self.db.get_feed(feed_id)
        if fetch_now:
            await self.refresher.refresh(feed)
            feed = self.db.get_feed(feed_id)
        return feed

    def _restore(
        self,
        feed: DBFeed,
        title: str | None,
        folder_id: int | None,
        refresh_interval_minutes: int,
    ) -> int:
        """Undo an unsubscribe; fetch and failure state start over."""
        assets = self.refresher.assets
        if assets and feed.icon_cached_path:
            assets.remove(ICONS, feed.icon_cached_path)
        self.db.feeds.restore(
            feed.id,
            title=title,
            folder_id=folder_id,
            refresh_interval_minutes=refresh_interval_minutes,
        )
        logger.info(f"Restored feed {feed.id} ({feed.url}) for user {feed.user_id}")
        self._publish(FEED_UPDATED, feed.id, url=feed.url, restored=True)
        return feed.id

    def update_feed(
        self,
        user_id: int,
        feed_id: int,
        title: str | None = None,
        folder_id: int | None = None,
        clear_folder: bool = False,
        refresh_interval_minutes: int | None = None,
    ) -> DBFeed:
        self._owned_feed(feed_id, user_id)
        self.db.feeds.update(
            feed_id,
            title=title,
            folder_id=folder_id,
            clear_folder=clear_folder,
            refresh_interval_minutes=refresh_interval_minutes,
        )
        self._publish(FEED_UPDATED, feed_id)
        return self.db.get_feed(feed_id)

    def unsubscribe(self, user_id: int, feed_id: int) -> None:
        self._owned_feed(feed_id, user_id)
        self.db.delete_feed(feed_id)
        self._publish(FEED_DELETED, feed_id)

    async def refresh_one(self, user_id: int, feed_id: int) -> RefreshResult:
        """
        Refresh a feed now, bypassing due selection.

        Paused and circuit-open feeds are refreshed too; the outcome updates
        their state like any scheduled run.
        """
        feed = self._owned_feed(feed_id, user_id)
        return await self.refresher.refresh(feed)

    def pause_feed(self, user_id: int, feed_id: int) -> DBFeed:
        self._owned_feed(feed_id, user_id)
        self.db.feeds.pause(feed_id)
        self._publish(FEED_UPDATED, feed_id, paused=True)
        return self.db.get_feed(feed_id)

    def resume_feed(self, user_id: int, feed_id: int) -> DBFeed:
        """Clear pause and error state; the feed becomes due immediately."""
        self._owned_feed(feed_id, user_id)
        self.db.feeds.resume(feed_id)
        self._publish(FEED_UPDATED, feed_id, paused=False)
        return self.db.get_feed(feed_id)

    # ─────────────────────────────────────────────────────────────
    # Folders
    # ─────────────────────────────────────────────────────────────

    def list_folders(self, user_id: int) -> list[DBFolder]:
        return self.db.get_folders(user_id)

    def _owned_folder(self, folder_id: int, user_id: int) -> DBFolder:
        folder = self.db.folders.get(folder_id)
        if folder is None or folder.user_id != user_id or folder.deleted_at:
            return require_resource(None, "Folder not found")
        return folder

    def create_folder(self, user_id: int, name: str, position: int = 0) -> DBFolder:
        folder_id = self.db.add_folder(user_id, name, position)
        self._publish(FOLDER_CREATED, folder_id, name=name)
        return self.db.folders.get(folder_id)

    def rename_folder(self, user_id: int, folder_id: int, name: str) -> DBFolder:
        self._owned_folder(folder_id, user_id)
        self.db.rename_folder(folder_id, name)
        self._publish(FOLDER_UPDATED, folder_id, name=name)
        return self.db.folders.get(folder_id)

    def delete_folder(self, user_id: int, folder_id: int) -> None:
        """Soft-delete a folder; its feeds move to the top level."""
        self._owned_folder(folder_id, user_id)
        self.db.delete_folder(folder_id)
        self._publish(FOLDER_DELETED, folder_id)

    # ─────────────────────────────────────────────────────────────
    # Article actions
    # ─────────────────────────────────────────────────────────────

    def mark_read(self, user_id: int, article_id: int, is_read: bool = True):
        require_article(self.db.articles.get_for_user(article_id, user_id))
        self.db.mark_read(user_id, article_id, is_read)

    def mark_feed_read(self, user_id: int, feed_id: int) -> int:
        self._owned_feed(feed_id, user_id)
        return self.db.read_state.mark_feed_read(user_id, feed_id)

    def set_bookmark(self, user_id: int, article_id: int, is_bookmarked: bool):
        require_article(self.db.articles.get_for_user(article_id, user_id))
        self.db.set_bookmark(article_id, is_bookmarked)

    async def load_readability(self, user_id: int, article_id: int) -> DBArticle:
        """
        Fill an article's full-text content on demand.

        Already extracted content is returned as is. Extraction failures
        leave the article unchanged; the reader falls back to the feed's
        own content.
        """
        article = require_article(self.db.articles.get_for_user(article_id, user_id))
        extractor = self.refresher.readability
        if article.readability_content or not article.url or extractor is None:
            return article

        result = await extractor.extract(article.url)
        if not result.ok:
            logger.debug(f"Readability for article {article_id} skipped: {result.error}")
            return article
        self.db.articles.set_readability(article_id, result.value.content, result.value.hero_image)
        return self.db.get_article(article_id)

    # ─────────────────────────────────────────────────────────────
    # OPML
    # ─────────────────────────────────────────────────────────────

    async def import_opml(self, user_id: int, opml_content: str) -> dict:
        """
        Subscribe to every feed in an OPML document.

        Categories become folders (reusing one with the same name). Feeds are
        not fetched here; they are due immediately and the scheduler picks
        them up.

        Returns:
            Dict with total, imported, skipped, failed counts and results list

        Raises:
            HTTPException: 400 if the OPML is invalid or lists no feeds
        """
        try:
            opml_doc = parse_opml(opml_content)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=f"Invalid OPML: {e}")

        if not opml_doc.feeds:
            raise HTTPException(status_code=400, detail="No feeds found in OPML")

        existing_urls = {f.url.lower() for f in self.db.get_feeds(user_id)}
        folders = {f.name.lower(): f.id for f in self.db.get_folders(user_id)}

        results: list[OPMLImportResult] = []
        for opml_feed in opml_doc.feeds:
            if opml_feed.url.lower() in existing_urls:
                results.append(OPMLImportResult(
                    url=opml_feed.url,
                    name=opml_feed.title,
                    success=False,
                    error=ALREADY_SUBSCRIBED,
                ))
                continue

            folder_id = None
            if opml_feed.category:
                key = opml_feed.category.lower()
                if key not in folders:
                    folders[key] = self.create_folder(user_id, opml_feed.category).id
                folder_id = folders[key]

            try:
                feed = await self.subscribe(
                    user_id,
                    opml_feed.url,
                    title=opml_feed.title,
                    folder_id=folder_id,
                    fetch_now=False,
                    discover=False,
                )
            except HTTPException as e:
                error = ALREADY_SUBSCRIBED if e.status_code == 409 else str(e.detail)
                results.append(OPMLImportResult(
                    url=opml_feed.url, name=opml_feed.title, success=False, error=error
                ))
                continue

            existing_urls.add(opml_feed.url.lower())
            results.append(OPMLImportResult(
                url=opml_feed.url, name=feed.title, success=True, feed_id=feed.id
            ))

        imported = sum(1 for r in results if r.success)
        skipped = sum(1 for r in results if not r.success and r.error == ALREADY_SUBSCRIBED)
        logger.info(f"OPML import for user {user_id}: {imported} imported, {skipped} skipped")
        return {
            "total": len(opml_doc.feeds),
            "imported": imported,
            "skipped": skipped,
            "failed": len(results) - imported - skipped,
            "results": results,
        }

    def export_opml(self, user_id: int, title: str = "FeedSync Subscriptions") -> dict:
        """Export the user's live feeds as OPML, grouped by folder."""
        feeds = self.db.get_feeds(user_id)
        folder_names = {f.id: f.name for f in self.db.get_folders(user_id)}
        opml_feeds = [
            OPMLFeed(
                url=f.url,
                title=f.title,
                category=folder_names.get(f.folder_id),
                site_url=f.site_url,
            )
            for f in feeds
        ]
        return {
            "opml": generate_opml(opml_feeds, title=title),
            "feed_count": len(feeds),
        }
