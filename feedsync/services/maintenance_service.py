"""
Maintenance service: storage statistics, optimize and compaction.

These are operator-invoked actions. Faults are reported back to the caller
as an unsuccessful result with a message and the elapsed time.
"""

import logging
import sqlite3
import time
from dataclasses import dataclass, field

from ..database import Database

logger = logging.getLogger(__name__)

# Free pages / total pages
VACUUM_THRESHOLD = 0.2
OPTIMIZE_THRESHOLD = 0.1


@dataclass
class DatabaseStats:
    total_size_bytes: int
    page_size: int
    page_count: int
    freelist_count: int
    fragmentation_ratio: float
    tables: dict[str, int]
    indexes: list[dict]
    article_count: int
    feed_count: int
    oldest_article_date: str | None


@dataclass
class MaintenanceCheck:
    needs_vacuum: bool
    needs_optimize: bool
    fragmentation_ratio: float
    recommendations: list[str] = field(default_factory=list)


@dataclass
class MaintenanceResult:
    success: bool
    message: str
    duration_ms: int
    bytes_reclaimed: int = 0


def fragmentation_ratio(freelist_count: int, page_count: int) -> float:
    return freelist_count / max(page_count, 1)


class MaintenanceService:
    """Service for database maintenance operations."""

    def __init__(self, db: Database):
        self.db = db

    def stats(self) -> DatabaseStats:
        pages = self.db.maintenance.page_stats()
        summary = self.db.maintenance.article_summary()
        return DatabaseStats(
            total_size_bytes=pages["page_size"] * pages["page_count"],
            page_size=pages["page_size"],
            page_count=pages["page_count"],
            freelist_count=pages["freelist_count"],
            fragmentation_ratio=fragmentation_ratio(pages["freelist_count"], pages["page_count"]),
            tables=self.db.maintenance.table_counts(),
            indexes=[
                {"name": name, "table": table}
                for name, table in self.db.maintenance.index_names()
            ],
            article_count=summary["article_count"],
            feed_count=summary["feed_count"],
            oldest_article_date=summary["oldest_article_date"],
        )

    def check(self) -> MaintenanceCheck:
        """Suggest compaction or optimize based on fragmentation."""
        pages = self.db.maintenance.page_stats()
        ratio = fragmentation_ratio(pages["freelist_count"], pages["page_count"])
        needs_vacuum = ratio > VACUUM_THRESHOLD
        needs_optimize = ratio > OPTIMIZE_THRESHOLD

        recommendations = []
        if needs_vacuum:
            recommendations.append(
                f"Database fragmentation is {ratio * 100:.1f}%. Run compaction to reclaim space."
            )
        elif needs_optimize:
            recommendations.append(
                f"Database fragmentation is {ratio * 100:.1f}%. "
                "Consider compaction during a low-traffic period."
            )
        return MaintenanceCheck(needs_vacuum, needs_optimize, ratio, recommendations)

    def optimize(self) -> MaintenanceResult:
        """Refresh planner statistics and rebuild indexes. Safe to run anytime."""
        started = time.monotonic()
        try:
            self.db.maintenance.analyze()
            self.db.maintenance.reindex()
        except sqlite3.Error as e:
            logger.exception(f"Optimize failed: {e}")
            return MaintenanceResult(False, f"Optimization failed: {e}", _elapsed_ms(started))
        logger.info("Database optimized (ANALYZE + REINDEX)")
        return MaintenanceResult(
            True, "Database optimized successfully (ANALYZE + REINDEX)", _elapsed_ms(started)
        )

    def compact(self, force: bool = True) -> MaintenanceResult:
        """
        Rewrite the database file to reclaim free pages.

        Without force, compaction only runs when check() recommends it.
        Fails if another transaction is open on the connection.
        """
        started = time.monotonic()
        if not force:
            check = self.check()
            if not check.needs_vacuum:
                return MaintenanceResult(
                    True,
                    f"Compaction not needed (fragmentation {check.fragmentation_ratio * 100:.1f}%)",
                    _elapsed_ms(started),
                )

        size_before = self.db.maintenance.size_bytes()
        try:
            self.db.maintenance.vacuum()
        except sqlite3.Error as e:
            logger.exception(f"Compaction failed: {e}")
            return MaintenanceResult(False, f"Compaction failed: {e}", _elapsed_ms(started))

        reclaimed = max(0, size_before - self.db.maintenance.size_bytes())
        logger.info(f"Database compacted, reclaimed {reclaimed} bytes")
        return MaintenanceResult(
            True,
            f"Database compacted, reclaimed {reclaimed / (1024 * 1024):.2f} MB",
            _elapsed_ms(started),
            bytes_reclaimed=reclaimed,
        )


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
