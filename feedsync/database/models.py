"""
Database models - dataclasses for database entities.
"""

from dataclasses import dataclass
from enum import Enum

# Consecutive failures after which a feed leaves due selection until resumed
ERROR_CEILING = 5


class FeedType(str, Enum):
    """Kind of remote source a feed points at."""
    WEB = "web"
    VIDEO = "video"
    FORUM = "forum"
    AUDIO = "audio"


@dataclass
class DBFeed:
    id: int
    user_id: int
    folder_id: int | None
    type: FeedType
    title: str
    url: str
    site_url: str | None
    description: str | None
    icon_url: str | None
    icon_cached_path: str | None
    icon_cached_content_type: str | None
    refresh_interval_minutes: int
    etag: str | None
    last_modified: str | None
    last_fetched_at: str | None
    next_fetch_at: str | None
    error_count: int
    last_error: str | None
    last_error_at: str | None
    paused_at: str | None
    created_at: str
    updated_at: str
    deleted_at: str | None = None


@dataclass
class DBArticle:
    id: int
    feed_id: int
    guid: str
    title: str
    url: str | None
    author: str | None
    summary: str | None
    content: str | None
    fetched_at: str
    published_at: str | None = None
    readability_content: str | None = None
    enclosure_url: str | None = None
    enclosure_type: str | None = None
    enclosure_length: int | None = None
    duration_seconds: int | None = None
    thumbnail_url: str | None = None
    thumbnail_cached_path: str | None = None
    thumbnail_cached_content_type: str | None = None
    is_bookmarked: bool = False


@dataclass
class DBFolder:
    id: int
    user_id: int
    name: str
    position: int
    created_at: str
    updated_at: str
    deleted_at: str | None = None


@dataclass
class DBReadState:
    user_id: int
    article_id: int
    is_read: bool
    read_at: str | None
    updated_at: str
