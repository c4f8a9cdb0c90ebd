"""
Folder repository - user folders with soft delete.
"""

from .connection import DatabaseConnection
from .converters import row_to_folder
from .models import DBFolder


class FolderRepository:
    """Repository for folder operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def add(self, user_id: int, name: str, position: int = 0) -> int:
        """Create a folder. Returns folder ID."""
        now = self._db.now()
        with self._db.conn() as conn:
            cursor = conn.execute(
                """INSERT INTO folders (user_id, name, position, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (user_id, name, position, now, now)
            )
            return cursor.lastrowid

    def get(self, folder_id: int) -> DBFolder | None:
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT * FROM folders WHERE id = ?", (folder_id,)
            ).fetchone()
            return row_to_folder(row) if row else None

    def get_all(self, user_id: int) -> list[DBFolder]:
        """Get a user's live folders in display order."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT * FROM folders
                   WHERE user_id = ? AND deleted_at IS NULL
                   ORDER BY position, name""",
                (user_id,)
            ).fetchall()
            return [row_to_folder(row) for row in rows]

    def rename(self, folder_id: int, name: str) -> bool:
        with self._db.conn() as conn:
            cursor = conn.execute(
                """UPDATE folders SET name = ?, updated_at = ?
                   WHERE id = ? AND deleted_at IS NULL""",
                (name, self._db.now(), folder_id)
            )
            return cursor.rowcount > 0

    def soft_delete(self, folder_id: int) -> bool:
        """Mark folder deleted and detach its feeds."""
        now = self._db.now()
        with self._db.transaction() as conn:
            cursor = conn.execute(
                """UPDATE folders SET deleted_at = ?, updated_at = ?
                   WHERE id = ? AND deleted_at IS NULL""",
                (now, now, folder_id)
            )
            if cursor.rowcount == 0:
                return False
            conn.execute(
                """UPDATE feeds SET folder_id = NULL, updated_at = ?
                   WHERE folder_id = ? AND deleted_at IS NULL""",
                (now, folder_id)
            )
            return True
