"""
Article repository - ingestion inserts and enrichment updates.

Articles are immutable once inserted apart from enrichment columns
(readability content, cached thumbnail) and the bookmark flag.
"""

from typing import TYPE_CHECKING, Iterable

from .connection import DatabaseConnection
from .converters import row_to_article
from .models import DBArticle

if TYPE_CHECKING:
    from ..sources.base import NormalizedArticle


class ArticleRepository:
    """Repository for article operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def insert_many(self, feed_id: int, articles: Iterable["NormalizedArticle"]) -> list[int]:
        """
        Insert normalized articles, skipping ones whose guid already exists.

        Runs in a single transaction (joining the caller's if one is open).
        Every row of the batch shares one fetched_at.

        Returns:
            IDs of newly inserted articles, in input order
        """
        now = self._db.now()
        inserted: list[int] = []
        with self._db.transaction() as conn:
            for article in articles:
                cursor = conn.execute(
                    """INSERT OR IGNORE INTO articles
                       (feed_id, guid, title, url, author, summary, content,
                        enclosure_url, enclosure_type, enclosure_length, duration_seconds,
                        thumbnail_url, published_at, fetched_at, updated_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (feed_id, article.guid, article.title, article.url, article.author,
                     article.summary, article.content,
                     article.enclosure_url, article.enclosure_type, article.enclosure_length,
                     article.duration_seconds, article.thumbnail_url, article.published_at,
                     now, now)
                )
                if cursor.rowcount:
                    inserted.append(cursor.lastrowid)
        return inserted

    def get(self, article_id: int) -> DBArticle | None:
        """Get single article by ID."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM articles WHERE id = ?", (article_id,)
            ).fetchone()
            return row_to_article(row) if row else None

    def get_for_user(self, article_id: int, user_id: int) -> DBArticle | None:
        """Get an article only if it belongs to one of the user's feeds."""
        with self._db.conn() as conn:
            row = conn.execute(
                """SELECT a.* FROM articles a
                   JOIN feeds f ON f.id = a.feed_id
                   WHERE a.id = ? AND f.user_id = ?""",
                (article_id, user_id)
            ).fetchone()
            return row_to_article(row) if row else None

    def get_many(self, article_ids: list[int]) -> list[DBArticle]:
        if not article_ids:
            return []
        placeholders = ",".join("?" * len(article_ids))
        with self._db.conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM articles WHERE id IN ({placeholders}) ORDER BY id",
                article_ids
            ).fetchall()
            return [row_to_article(row) for row in rows]

    def get_by_feed(self, feed_id: int, limit: int = 50) -> list[DBArticle]:
        """Newest articles of a feed."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM articles WHERE feed_id = ?
                   ORDER BY published_at DESC NULLS LAST, id DESC LIMIT ?""",
                (feed_id, limit)
            ).fetchall()
            return [row_to_article(row) for row in rows]

    def count_by_feed(self, feed_id: int) -> int:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n FROM articles WHERE feed_id = ?", (feed_id,)
            ).fetchone()
            return row["n"]

    def set_bookmark(self, article_id: int, is_bookmarked: bool) -> bool:
        """Set bookmark flag. Returns False if article not found."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                "UPDATE articles SET is_bookmarked = ?, updated_at = ? WHERE id = ?",
                (int(is_bookmarked), self._db.now(), article_id)
            )
            return cursor.rowcount > 0

    def set_readability(self, article_id: int, content: str, hero_image: str | None = None):
        """Store extracted full-text content; the hero image fills a missing thumbnail."""
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE articles SET readability_content = ?,
                   thumbnail_url = COALESCE(thumbnail_url, ?), updated_at = ?
                   WHERE id = ?""",
                (content, hero_image, self._db.now(), article_id)
            )

    def set_thumbnail_cache(self, article_id: int, path: str, content_type: str):
        """Record a locally cached thumbnail."""
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE articles SET thumbnail_cached_path = ?,
                   thumbnail_cached_content_type = ?, updated_at = ? WHERE id = ?""",
                (path, content_type, self._db.now(), article_id)
            )

    def clear_thumbnail_cache(self) -> int:
        """Forget every cached thumbnail path."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE articles SET thumbnail_cached_path = NULL,
                   thumbnail_cached_content_type = NULL
                   WHERE thumbnail_cached_path IS NOT NULL"""
            )
            return cursor.rowcount
