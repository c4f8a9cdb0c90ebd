"""
Database row converters - convert SQLite rows to dataclasses.
"""

import sqlite3

from .models import DBArticle, DBFeed, DBFolder, DBReadState, FeedType


def row_to_feed(row: sqlite3.Row) -> DBFeed:
    """Convert a database row to a DBFeed."""
    return DBFeed(
        id=row["id"],
        user_id=row["user_id"],
        folder_id=row["folder_id"],
        type=FeedType(row["type"]),
        title=row["title"],
        url=row["url"],
        site_url=row["site_url"],
        description=row["description"],
        icon_url=row["icon_url"],
        icon_cached_path=row["icon_cached_path"],
        icon_cached_content_type=row["icon_cached_content_type"],
        refresh_interval_minutes=row["refresh_interval_minutes"],
        etag=row["etag"],
        last_modified=row["last_modified"],
        last_fetched_at=row["last_fetched_at"],
        next_fetch_at=row["next_fetch_at"],
        error_count=row["error_count"] or 0,
        last_error=row["last_error"],
        last_error_at=row["last_error_at"],
        paused_at=row["paused_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row["deleted_at"],
    )


def row_to_article(row: sqlite3.Row) -> DBArticle:
    """Convert a database row to a DBArticle."""
    return DBArticle(
        id=row["id"],
        feed_id=row["feed_id"],
        guid=row["guid"],
        title=row["title"],
        url=row["url"],
        author=row["author"],
        summary=row["summary"],
        content=row["content"],
        fetched_at=row["fetched_at"],
        published_at=row["published_at"],
        readability_content=row["readability_content"],
        enclosure_url=row["enclosure_url"],
        enclosure_type=row["enclosure_type"],
        enclosure_length=row["enclosure_length"],
        duration_seconds=row["duration_seconds"],
        thumbnail_url=row["thumbnail_url"],
        thumbnail_cached_path=row["thumbnail_cached_path"],
        thumbnail_cached_content_type=row["thumbnail_cached_content_type"],
        is_bookmarked=bool(row["is_bookmarked"]),
    )


def row_to_folder(row: sqlite3.Row) -> DBFolder:
    """Convert a database row to a DBFolder."""
    return DBFolder(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        position=row["position"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row["deleted_at"],
    )


def row_to_read_state(row: sqlite3.Row) -> DBReadState:
    """Convert a database row to a DBReadState."""
    return DBReadState(
        user_id=row["user_id"],
        article_id=row["article_id"],
        is_read=bool(row["is_read"]),
        read_at=row["read_at"],
        updated_at=row["updated_at"],
    )
