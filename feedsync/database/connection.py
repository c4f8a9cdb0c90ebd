"""
Database connection management and schema migrations.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..timeutil import Clock, format_ts, utcnow
from .migrations import MIGRATIONS

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """
    Owns the single process-wide SQLite connection.

    The connection runs in autocommit mode so single-row writes are durable on
    their own; multi-row writes go through transaction().
    """

    def __init__(self, db_path: Path, clock: Clock = utcnow):
        self.db_path = db_path
        self.clock = clock
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._connection = sqlite3.connect(
            self.db_path,
            isolation_level=None,
            check_same_thread=False,
        )
        self._connection.row_factory = sqlite3.Row
        self._connection.execute("PRAGMA journal_mode = WAL")
        self._connection.execute("PRAGMA foreign_keys = ON")
        self._connection.execute("PRAGMA busy_timeout = 5000")
        self._apply_migrations()

    def now(self) -> str:
        """Current time in storage format."""
        return format_ts(self.clock())

    @contextmanager
    def conn(self) -> Iterator[sqlite3.Connection]:
        """Borrow the shared connection."""
        with self._lock:
            yield self._connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Run a block inside an explicit transaction, rolling back on error.

        Nested calls join the enclosing transaction.
        """
        with self._lock:
            if self._connection.in_transaction:
                yield self._connection
                return
            self._connection.execute("BEGIN")
            try:
                yield self._connection
            except BaseException:
                self._connection.execute("ROLLBACK")
                raise
            self._connection.execute("COMMIT")

    def close(self):
        with self._lock:
            self._connection.close()

    def _apply_migrations(self):
        """Apply pending schema migrations, each exactly once."""
        with self.conn() as connection:
            connection.execute("""
                CREATE TABLE IF NOT EXISTS schema_migrations (
                    version INTEGER PRIMARY KEY,
                    name TEXT NOT NULL,
                    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
                )
            """)
            applied = {
                row["version"]
                for row in connection.execute("SELECT version FROM schema_migrations")
            }

        for version, name, statements in MIGRATIONS:
            if version in applied:
                continue
            logger.info(f"Applying migration {version:03d}_{name}")
            try:
                with self.transaction() as connection:
                    for statement in statements:
                        connection.execute(statement)
                    connection.execute(
                        "INSERT INTO schema_migrations (version, name) VALUES (?, ?)",
                        (version, name)
                    )
            except sqlite3.OperationalError as e:
                message = str(e).lower()
                if "duplicate column name" not in message and "already exists" not in message:
                    raise
                logger.info(f"Migration {version} already applied, marking as complete")
                with self.conn() as connection:
                    connection.execute(
                        "INSERT OR IGNORE INTO schema_migrations (version, name) VALUES (?, ?)",
                        (version, name)
                    )
