"""
Read state repository - per-user read flags.

Rows are written from two paths (direct actions and sync push); both go
through upsert() so every mutation bumps updated_at and the last write wins.
"""

from .connection import DatabaseConnection
from .converters import row_to_read_state
from .models import DBReadState


class ReadStateRepository:
    """Repository for per-user article read state."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def get(self, user_id: int, article_id: int) -> DBReadState | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM read_state WHERE user_id = ? AND article_id = ?",
                (user_id, article_id)
            ).fetchone()
            return row_to_read_state(row) if row else None

    def upsert(self, user_id: int, article_id: int, is_read: bool):
        """Set the read flag, creating the row if needed."""
        now = self._db.now()
        read_at = now if is_read else None
        with self._db.conn() as conn:
            conn.execute(
                """INSERT INTO read_state (user_id, article_id, is_read, read_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(user_id, article_id) DO UPDATE SET
                   is_read = excluded.is_read,
                   read_at = excluded.read_at,
                   updated_at = excluded.updated_at""",
                (user_id, article_id, int(is_read), read_at, now)
            )

    def mark_feed_read(self, user_id: int, feed_id: int) -> int:
        """Mark every article of a feed read. Returns rows touched."""
        now = self._db.now()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO read_state (user_id, article_id, is_read, read_at, updated_at)
                   SELECT ?, a.id, 1, ?, ? FROM articles a WHERE a.feed_id = ?
                   ON CONFLICT(user_id, article_id) DO UPDATE SET
                   is_read = 1, read_at = excluded.read_at, updated_at = excluded.updated_at
                   WHERE read_state.is_read = 0""",
                (user_id, now, now, feed_id)
            )
            return cursor.rowcount
