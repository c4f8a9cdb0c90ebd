"""
Maintenance repository - storage statistics and compaction primitives.
"""

from .connection import DatabaseConnection


class MaintenanceRepository:
    """Low-level SQLite maintenance operations."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def page_stats(self) -> dict[str, int]:
        """Page size, page count and free-list page count."""
        with self._db.conn() as conn:
            page_size = conn.execute("PRAGMA page_size").fetchone()[0]
            page_count = conn.execute("PRAGMA page_count").fetchone()[0]
            freelist_count = conn.execute("PRAGMA freelist_count").fetchone()[0]
        return {
            "page_size": page_size,
            "page_count": page_count,
            "freelist_count": freelist_count,
        }

    def size_bytes(self) -> int:
        stats = self.page_stats()
        return stats["page_size"] * stats["page_count"]

    def table_counts(self) -> dict[str, int]:
        """Row count per user table."""
        with self._db.conn() as conn:
            tables = [
                row["name"] for row in conn.execute(
                    """SELECT name FROM sqlite_master
                       WHERE type = 'table' AND name NOT LIKE 'sqlite_%'
                       ORDER BY name"""
                )
            ]
            return {
                table: conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()[0]
                for table in tables
            }

    def index_names(self) -> list[tuple[str, str]]:
        """(index, table) pairs for named indexes."""
        with self._db.conn() as conn:
            rows = conn.execute(
                """SELECT name, tbl_name FROM sqlite_master
                   WHERE type = 'index' AND name NOT LIKE 'sqlite_%'
                   ORDER BY name"""
            ).fetchall()
            return [(row["name"], row["tbl_name"]) for row in rows]

    def article_summary(self) -> dict:
        """Article and live feed counts plus the oldest article date."""
        with self._db.conn() as conn:
            articles = conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]
            feeds = conn.execute(
                "SELECT COUNT(*) FROM feeds WHERE deleted_at IS NULL"
            ).fetchone()[0]
            oldest = conn.execute(
                "SELECT MIN(COALESCE(published_at, fetched_at)) FROM articles"
            ).fetchone()[0]
        return {"article_count": articles, "feed_count": feeds, "oldest_article_date": oldest}

    def analyze(self):
        with self._db.conn() as conn:
            conn.execute("ANALYZE")

    def reindex(self):
        with self._db.conn() as conn:
            conn.execute("REINDEX")

    def vacuum(self):
        """Rewrite the database file. Fails if a transaction is open."""
        with self._db.conn() as conn:
            conn.execute("VACUUM")
            # Fold the WAL back so the main file size reflects the rewrite
            conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
