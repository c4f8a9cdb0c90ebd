"""
Sync Protocol Handler - incremental deltas against an opaque cursor.

A cursor is base64 of {"last_sync_at": "<timestamp>"}. Clients store it
and send it back unchanged; anything that fails to decode means "full
resync from the epoch".
"""

import base64
import binascii
import json
import logging
import sqlite3
from dataclasses import dataclass, field

from ..database import Database
from ..database.sync_repository import ARTICLE_PAGE_SIZE, EntityDelta
from ..timeutil import EPOCH, normalize_ts

logger = logging.getLogger(__name__)

SYNC_KINDS = ("feeds", "folders", "articles", "read_state")


@dataclass(frozen=True)
class SyncCursor:
    """A single sync watermark with its wire encoding."""
    last_sync_at: str = EPOCH

    def encode(self) -> str:
        payload = json.dumps({"last_sync_at": self.last_sync_at})
        return base64.b64encode(payload.encode("utf-8")).decode("ascii")

    @classmethod
    def decode(cls, token: str | None) -> "SyncCursor":
        """Decode a client token; absent or invalid tokens give the epoch."""
        if not token:
            return cls()
        try:
            data = json.loads(base64.b64decode(token, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, ValueError):
            logger.debug("Undecodable sync cursor, falling back to full resync")
            return cls()
        if not isinstance(data, dict) or not isinstance(data.get("last_sync_at"), str):
            return cls()
        watermark = normalize_ts(data["last_sync_at"])
        return cls(watermark) if watermark else cls()


@dataclass
class ReadStateDelta:
    read: list[int] = field(default_factory=list)
    unread: list[int] = field(default_factory=list)


@dataclass
class SyncChanges:
    feeds: EntityDelta | None = None
    folders: EntityDelta | None = None
    articles: EntityDelta | None = None
    read_state: ReadStateDelta | None = None


@dataclass
class SyncResult:
    changes: SyncChanges
    next_cursor: str
    server_time: str


@dataclass
class PushResult:
    accepted: int = 0
    rejected: int = 0


def parse_include(include: str | None) -> set[str]:
    """Comma-separated kinds; empty means everything."""
    if not include:
        return set(SYNC_KINDS)
    kinds = {part.strip() for part in include.split(",") if part.strip()}
    return kinds & set(SYNC_KINDS)


class SyncService:
    """Computes deltas for pull and applies read-state pushes."""

    def __init__(self, db: Database, article_page_size: int = ARTICLE_PAGE_SIZE):
        self.db = db
        self.article_page_size = article_page_size

    def get_changes(self, user_id: int, cursor: str | None = None, include: str | None = None) -> SyncResult:
        """
        Everything that changed strictly after the cursor's watermark.

        The next cursor is the server time read before any delta query runs,
        never earlier than the incoming watermark, so rows written while the
        response is built are picked up next time.
        """
        watermark = SyncCursor.decode(cursor).last_sync_at
        server_time = max(self.db.now(), watermark)
        kinds = parse_include(include)

        changes = SyncChanges()
        if "feeds" in kinds:
            changes.feeds = self.db.sync.feed_changes(user_id, watermark)
        if "folders" in kinds:
            changes.folders = self.db.sync.folder_changes(user_id, watermark)
        if "articles" in kinds:
            changes.articles = EntityDelta(
                created=self.db.sync.articles_created(user_id, watermark, self.article_page_size)
            )
        if "read_state" in kinds:
            read, unread = self.db.sync.read_state_changes(user_id, watermark)
            changes.read_state = ReadStateDelta(read=read, unread=unread)

        return SyncResult(
            changes=changes,
            next_cursor=SyncCursor(server_time).encode(),
            server_time=server_time,
        )

    def push_changes(self, user_id: int, read_state: list[tuple[int, bool]]) -> PushResult:
        """Apply each read-state delta independently; bad rows are rejected, not fatal."""
        result = PushResult()
        for article_id, is_read in read_state:
            if self.db.articles.get_for_user(article_id, user_id) is None:
                result.rejected += 1
                continue
            try:
                self.db.read_state.upsert(user_id, article_id, is_read)
            except sqlite3.Error as e:
                logger.warning(f"Rejected read state for article {article_id}: {e}")
                result.rejected += 1
                continue
            result.accepted += 1
        return result
