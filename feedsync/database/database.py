"""
Database facade - provides unified access to all repositories.
"""

from pathlib import Path

from ..timeutil import Clock, utcnow
from .article_repository import ArticleRepository
from .connection import DatabaseConnection
from .feed_repository import FeedRepository
from .folder_repository import FolderRepository
from .maintenance_repository import MaintenanceRepository
from .models import DBArticle, DBFeed, DBFolder, FeedType
from .read_state_repository import ReadStateRepository
from .retention_repository import RetentionRepository
from .sync_repository import SyncRepository
from .user_repository import UserRepository


class Database:
    """
    Unified database access facade.

    Repositories are exposed as attributes; the most common calls also have
    flat helpers below.
    """

    def __init__(self, db_path: Path, clock: Clock = utcnow):
        self._connection = DatabaseConnection(db_path, clock=clock)

        # Initialize repositories
        self.users = UserRepository(self._connection)
        self.folders = FolderRepository(self._connection)
        self.feeds = FeedRepository(self._connection)
        self.articles = ArticleRepository(self._connection)
        self.read_state = ReadStateRepository(self._connection)
        self.sync = SyncRepository(self._connection)
        self.retention = RetentionRepository(self._connection)
        self.maintenance = MaintenanceRepository(self._connection)

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    def now(self) -> str:
        return self._connection.now()

    def transaction(self):
        return self._connection.transaction()

    def close(self):
        self._connection.close()

    # ─────────────────────────────────────────────────────────────
    # Feed operations (delegated to FeedRepository)
    # ─────────────────────────────────────────────────────────────

    def add_feed(
        self,
        user_id: int,
        url: str,
        title: str | None = None,
        feed_type: FeedType = FeedType.WEB,
        folder_id: int | None = None,
        refresh_interval_minutes: int = 30,
    ) -> int:
        return self.feeds.add(
            user_id, url, title, feed_type,
            folder_id=folder_id, refresh_interval_minutes=refresh_interval_minutes,
        )

    def get_feed(self, feed_id: int) -> DBFeed | None:
        return self.feeds.get(feed_id)

    def get_feeds(self, user_id: int) -> list[DBFeed]:
        return self.feeds.get_all(user_id)

    def get_due_feeds(self, limit: int = 10) -> list[DBFeed]:
        return self.feeds.get_due(self.now(), limit)

    def delete_feed(self, feed_id: int) -> bool:
        return self.feeds.soft_delete(feed_id)

    # ─────────────────────────────────────────────────────────────
    # Folder operations (delegated to FolderRepository)
    # ─────────────────────────────────────────────────────────────

    def add_folder(self, user_id: int, name: str, position: int = 0) -> int:
        return self.folders.add(user_id, name, position)

    def get_folders(self, user_id: int) -> list[DBFolder]:
        return self.folders.get_all(user_id)

    def rename_folder(self, folder_id: int, name: str) -> bool:
        return self.folders.rename(folder_id, name)

    def delete_folder(self, folder_id: int) -> bool:
        return self.folders.soft_delete(folder_id)

    # ─────────────────────────────────────────────────────────────
    # Article operations (delegated to ArticleRepository / ReadStateRepository)
    # ─────────────────────────────────────────────────────────────

    def get_article(self, article_id: int) -> DBArticle | None:
        return self.articles.get(article_id)

    def mark_read(self, user_id: int, article_id: int, is_read: bool = True):
        return self.read_state.upsert(user_id, article_id, is_read)

    def set_bookmark(self, article_id: int, is_bookmarked: bool) -> bool:
        return self.articles.set_bookmark(article_id, is_bookmarked)
