"""
Sync repository - delta queries against a watermark.

All comparisons are strict (>) so a row sitting exactly on the watermark was
already delivered by the previous response.
"""

from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

from .connection import DatabaseConnection
from .converters import row_to_article, row_to_feed, row_to_folder
from .models import DBArticle, DBFeed, DBFolder

T = TypeVar("T")

ARTICLE_PAGE_SIZE = 500


@dataclass
class EntityDelta(Generic[T]):
    """Created/updated/deleted partition for one entity kind."""
    created: list[T] = field(default_factory=list)
    updated: list[T] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)


class SyncRepository:
    """Read-only delta queries used by the sync protocol."""

    # Tables with full created/updated/deleted lifecycle tracking
    _LIFECYCLE_TABLES: dict[str, Callable] = {
        "feeds": row_to_feed,
        "folders": row_to_folder,
    }

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def _entity_changes(self, table: str, user_id: int, watermark: str) -> EntityDelta:
        converter = self._LIFECYCLE_TABLES[table]
        with self._db.conn() as conn:
            created = conn.execute(
                f"""SELECT * FROM {table}
                    WHERE user_id = ? AND created_at > ? AND deleted_at IS NULL
                    ORDER BY id""",
                (user_id, watermark)
            ).fetchall()
            updated = conn.execute(
                f"""SELECT * FROM {table}
                    WHERE user_id = ? AND updated_at > ? AND created_at <= ?
                      AND deleted_at IS NULL
                    ORDER BY id""",
                (user_id, watermark, watermark)
            ).fetchall()
            deleted = conn.execute(
                f"""SELECT id FROM {table}
                    WHERE user_id = ? AND deleted_at > ?
                    ORDER BY id""",
                (user_id, watermark)
            ).fetchall()
        return EntityDelta(
            created=[converter(row) for row in created],
            updated=[converter(row) for row in updated],
            deleted=[row["id"] for row in deleted],
        )

    def feed_changes(self, user_id: int, watermark: str) -> EntityDelta[DBFeed]:
        return self._entity_changes("feeds", user_id, watermark)

    def folder_changes(self, user_id: int, watermark: str) -> EntityDelta[DBFolder]:
        return self._entity_changes("folders", user_id, watermark)

    def articles_created(
        self, user_id: int, watermark: str, limit: int = ARTICLE_PAGE_SIZE
    ) -> list[DBArticle]:
        """Articles ingested after the watermark, newest first, capped."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT a.* FROM articles a
                   JOIN feeds f ON f.id = a.feed_id
                   WHERE f.user_id = ? AND f.deleted_at IS NULL AND a.fetched_at > ?
                   ORDER BY a.fetched_at DESC, a.id DESC
                   LIMIT ?""",
                (user_id, watermark, limit)
            ).fetchall()
            return [row_to_article(row) for row in rows]

    def read_state_changes(self, user_id: int, watermark: str) -> tuple[list[int], list[int]]:
        """Article IDs whose read flag changed after the watermark, as (read, unread)."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT article_id, is_read FROM read_state
                   WHERE user_id = ? AND updated_at > ?
                   ORDER BY article_id""",
                (user_id, watermark)
            ).fetchall()
        read = [row["article_id"] for row in rows if row["is_read"]]
        unread = [row["article_id"] for row in rows if not row["is_read"]]
        return read, unread
