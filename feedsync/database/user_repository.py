"""
Repository for users and their JSON settings blob.
"""

import json

from .connection import DatabaseConnection


class UserRepository:
    """Repository for user operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def get_or_create(self, username: str) -> int:
        """Get existing user by username or create one. Returns user ID."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT id FROM users WHERE username = ?", (username,)
            ).fetchone()
            if row:
                return row["id"]

            now = self._db.now()
            cursor = conn.execute(
                """INSERT INTO users (username, settings_json, created_at, updated_at)
                   VALUES (?, '{}', ?, ?)""",
                (username, now, now)
            )
            return cursor.lastrowid

    def ensure(self, user_id: int, username: str = "default") -> int:
        """Make sure a user row with this ID exists."""
        now = self._db.now()
        with self._db.conn() as conn:
            conn.execute(
                """INSERT OR IGNORE INTO users (id, username, settings_json, created_at, updated_at)
                   VALUES (?, ?, '{}', ?, ?)""",
                (user_id, username, now, now)
            )
        return user_id

    def get_settings(self, user_id: int) -> dict:
        """Get the user's settings, empty when unset or unreadable."""
        with self._db.conn() as conn:
            row = conn.execute(
                "SELECT settings_json FROM users WHERE id = ?", (user_id,)
            ).fetchone()
        if not row or not row["settings_json"]:
            return {}
        try:
            settings = json.loads(row["settings_json"])
        except json.JSONDecodeError:
            return {}
        return settings if isinstance(settings, dict) else {}

    def set_setting(self, user_id: int, key: str, value) -> dict:
        """Replace one top-level settings key. Returns the full settings."""
        settings = self.get_settings(user_id)
        settings[key] = value
        with self._db.conn() as conn:
            conn.execute(
                "UPDATE users SET settings_json = ?, updated_at = ? WHERE id = ?",
                (json.dumps(settings), self._db.now(), user_id)
            )
        return settings
