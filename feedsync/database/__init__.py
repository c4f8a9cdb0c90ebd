"""
Database module - SQLite persistence for feeds, articles and sync state.

Uses repository pattern for better separation of concerns.
"""

from .connection import DatabaseConnection
from .models import DBArticle, DBFeed, DBFolder, DBReadState, FeedType
from .article_repository import ArticleRepository
from .feed_repository import FeedRepository
from .folder_repository import FolderRepository
from .read_state_repository import ReadStateRepository
from .sync_repository import SyncRepository
from .database import Database

__all__ = [
    "Database",
    "DatabaseConnection",
    "DBArticle",
    "DBFeed",
    "DBFolder",
    "DBReadState",
    "FeedType",
    "ArticleRepository",
    "FeedRepository",
    "FolderRepository",
    "ReadStateRepository",
    "SyncRepository",
]
