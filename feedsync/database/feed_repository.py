"""
Feed repository - subscriptions, due selection and fetch state.
"""

from .connection import DatabaseConnection
from .converters import row_to_feed
from .models import ERROR_CEILING, DBFeed, FeedType


class FeedRepository:
    """Repository for feed operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(
        self,
        user_id: int,
        url: str,
        title: str | None = None,
        feed_type: FeedType = FeedType.WEB,
        folder_id: int | None = None,
        site_url: str | None = None,
        refresh_interval_minutes: int = 30,
    ) -> int:
        """Subscribe a user to a feed. Returns feed ID."""
        now = self._db.now()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO feeds
                   (user_id, folder_id, type, title, url, site_url,
                    refresh_interval_minutes, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (user_id, folder_id, feed_type.value, title or url, url, site_url,
                 refresh_interval_minutes, now, now)
            )
            return cursor.lastrowid

    def get(self, feed_id: int) -> DBFeed | None:
        """Get single feed by ID, including soft-deleted ones."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM feeds WHERE id = ?", (feed_id,)
            ).fetchone()
            return row_to_feed(row) if row else None

    def get_by_url(self, user_id: int, url: str) -> DBFeed | None:
        """Find a user's subscription by URL, including a soft-deleted one."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM feeds WHERE user_id = ? AND url = ?", (user_id, url)
            ).fetchone()
            return row_to_feed(row) if row else None

    def get_all(self, user_id: int, include_deleted: bool = False) -> list[DBFeed]:
        """Get a user's feeds ordered by title."""
        query = "SELECT * FROM feeds WHERE user_id = ?"
        if not include_deleted:
            query += " AND deleted_at IS NULL"
        query += " ORDER BY title COLLATE NOCASE"
        with self._db.conn() as conn:
            rows = conn.execute(query, (user_id,)).fetchall()
            return [row_to_feed(row) for row in rows]

    def get_due(self, now: str, limit: int = 10) -> list[DBFeed]:
        """
        Select feeds eligible for a refresh tick.

        Excludes deleted, paused and circuit-open feeds; oldest-due first with
        never-fetched feeds at the front.
        """
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM feeds
                   WHERE deleted_at IS NULL
                     AND paused_at IS NULL
                     AND error_count < ?
                     AND (next_fetch_at IS NULL OR next_fetch_at <= ?)
                   ORDER BY next_fetch_at ASC NULLS FIRST, id ASC
                   LIMIT ?""",
                (ERROR_CEILING, now, limit)
            ).fetchall()
            return [row_to_feed(row) for row in rows]

    def apply_fetch_state(
        self,
        feed_id: int,
        next_fetch_at: str,
        error_count: int,
        last_error: str | None,
        last_error_at: str | None,
        last_fetched_at: str | None,
        etag: str | None = None,
        last_modified: str | None = None,
    ):
        """
        Persist the outcome of a refresh attempt.

        Validators are only overwritten when new ones are supplied, so a
        304 or a failure keeps the previous pair. Fetch bookkeeping is not a
        user-visible change and leaves updated_at alone.
        """
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE feeds SET
                   next_fetch_at = ?, error_count = ?, last_error = ?,
                   last_error_at = ?, last_fetched_at = ?,
                   etag = COALESCE(?, etag),
                   last_modified = COALESCE(?, last_modified)
                   WHERE id = ?""",
                (next_fetch_at, error_count, last_error, last_error_at,
                 last_fetched_at, etag, last_modified, feed_id)
            )

    def update_metadata(
        self,
        feed_id: int,
        title: str | None = None,
        site_url: str | None = None,
        description: str | None = None,
        icon_url: str | None = None,
        feed_type: FeedType | None = None,
    ) -> bool:
        """Apply non-null metadata fields. Returns True if anything changed."""
        fields: dict[str, object] = {
            "title": title,
            "site_url": site_url,
            "description": description,
            "icon_url": icon_url,
            "type": feed_type.value if feed_type else None,
        }
        fields = {k: v for k, v in fields.items() if v is not None}
        if not fields:
            return False

        # Only count it as a change when a value actually differs
        assignments = ", ".join(f"{column} = ?" for column in fields)
        differs = " OR ".join(f"{column} IS NOT ?" for column in fields)
        values = list(fields.values())
        with self._db.conn() as conn:
            cursor = conn.execute(
                f"UPDATE feeds SET {assignments}, updated_at = ? WHERE id = ? AND ({differs})",
                [*values, self._db.now(), feed_id, *values]
            )
            return cursor.rowcount > 0

    def update(
        self,
        feed_id: int,
        title: str | None = None,
        folder_id: int | None = None,
        clear_folder: bool = False,
        refresh_interval_minutes: int | None = None,
    ):
        """Update user-editable feed settings."""
        with self._db.conn() as conn:
            now = self._db.now()
            if title is not None:
                conn.execute(
                    "UPDATE feeds SET title = ?, updated_at = ? WHERE id = ?",
                    (title, now, feed_id)
                )
            if clear_folder:
                conn.execute(
                    "UPDATE feeds SET folder_id = NULL, updated_at = ? WHERE id = ?",
                    (now, feed_id)
                )
            elif folder_id is not None:
                conn.execute(
                    "UPDATE feeds SET folder_id = ?, updated_at = ? WHERE id = ?",
                    (folder_id, now, feed_id)
                )
            if refresh_interval_minutes is not None:
                conn.execute(
                    "UPDATE feeds SET refresh_interval_minutes = ?, updated_at = ? WHERE id = ?",
                    (refresh_interval_minutes, now, feed_id)
                )

    def pause(self, feed_id: int) -> bool:
        """Exclude a feed from scheduling. Returns False if not found."""
        now = self._db.now()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE feeds SET paused_at = ?, updated_at = ?
                   WHERE id = ? AND deleted_at IS NULL""",
                (now, now, feed_id)
            )
            return cursor.rowcount > 0

    def resume(self, feed_id: int) -> bool:
        """
        Return a feed to scheduling: clears the pause, closes the circuit
        breaker and makes it due immediately.
        """
        now = self._db.now()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE feeds SET
                   paused_at = NULL, error_count = 0, last_error = NULL,
                   last_error_at = NULL, next_fetch_at = NULL, updated_at = ?
                   WHERE id = ? AND deleted_at IS NULL""",
                (now, feed_id)
            )
            return cursor.rowcount > 0

    def soft_delete(self, feed_id: int) -> bool:
        """Mark feed deleted. Articles stay until purge."""
        now = self._db.now()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE feeds SET deleted_at = ?, updated_at = ?
                   WHERE id = ? AND deleted_at IS NULL""",
                (now, now, feed_id)
            )
            return cursor.rowcount > 0

    def restore(
        self,
        feed_id: int,
        title: str | None = None,
        folder_id: int | None = None,
        refresh_interval_minutes: int = 30,
    ) -> bool:
        """
        Bring back a soft-deleted subscription as if newly added.

        Articles kept since the delete stay; fetch validators, failure state
        and the cached icon are reset so the feed is due immediately.
        """
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE feeds SET
                   deleted_at = NULL, paused_at = NULL,
                   title = COALESCE(?, title), folder_id = ?, refresh_interval_minutes = ?,
                   error_count = 0, last_error = NULL, last_error_at = NULL,
                   next_fetch_at = NULL, etag = NULL, last_modified = NULL,
                   icon_cached_path = NULL, icon_cached_content_type = NULL,
                   updated_at = ?
                   WHERE id = ? AND deleted_at IS NOT NULL""",
                (title, folder_id, refresh_interval_minutes, self._db.now(), feed_id)
            )
            return cursor.rowcount > 0

    def purge(self, feed_id: int) -> bool:
        """Hard delete a feed and, by cascade, its articles."""
        with self._db.conn() as conn:
            cursor = conn.execute("DELETE FROM feeds WHERE id = ?", (feed_id,))
            return cursor.rowcount > 0

    def set_icon_cache(self, feed_id: int, path: str, content_type: str):
        """Record a locally cached icon."""
        with self._db.conn() as conn:
            conn.execute(
                """UPDATE feeds SET icon_cached_path = ?, icon_cached_content_type = ?,
                   updated_at = ? WHERE id = ?""",
                (path, content_type, self._db.now(), feed_id)
            )

    def clear_icon_cache(self, feed_id: int | None = None) -> int:
        """Forget cached icon paths for one feed, or all feeds when feed_id is None."""
        with self._db.conn() as conn:
            if feed_id is None:
                cursor = conn.execute(
                    """UPDATE feeds SET icon_cached_path = NULL, icon_cached_content_type = NULL
                       WHERE icon_cached_path IS NOT NULL"""
                )
            else:
                cursor = conn.execute(
                    """UPDATE feeds SET icon_cached_path = NULL, icon_cached_content_type = NULL
                       WHERE id = ?""",
                    (feed_id,)
                )
            return cursor.rowcount
