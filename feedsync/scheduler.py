"""
Feed Refresh Scheduler.

Background tasks that periodically refresh due feeds and run daily
retention and compaction.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Awaitable, Callable

from .tasks import FeedRefresher, RefreshResult

if TYPE_CHECKING:
    from .database import Database
    from .services import MaintenanceService, RetentionEngine


logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    """Outcome of one refresh tick."""
    selected: int = 0
    succeeded: int = 0
    failed: int = 0
    new_articles: int = 0
    skipped: bool = False
    duration_seconds: float = 0.0
    results: list[RefreshResult] = field(default_factory=list)


def seconds_until_hour(now: datetime, hour: int) -> float:
    """Seconds from now until the next occurrence of hour:00 local time."""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class FeedScheduler:
    """
    Background scheduler for feed refreshes.

    Runs three loops: a refresh tick every `tick_minutes` (with a warm start
    shortly after boot) and a daily maintenance pass at `maintenance_hour`.
    A tick always runs to completion; a tick that fires while the previous
    one is still running is skipped.
    """

    def __init__(
        self,
        db: "Database",
        refresher: FeedRefresher,
        retention: "RetentionEngine | None" = None,
        maintenance: "MaintenanceService | None" = None,
        tick_minutes: float = 5,
        batch_size: int = 10,
        inter_feed_delay: float = 1.0,
        warm_start_delay: float = 10,
        maintenance_hour: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        local_now: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.refresher = refresher
        self.retention = retention
        self.maintenance = maintenance
        self.tick_minutes = tick_minutes
        self.batch_size = batch_size
        self.inter_feed_delay = inter_feed_delay
        self.warm_start_delay = warm_start_delay
        self.maintenance_hour = maintenance_hour
        self._sleep = sleep
        self._local_now = local_now
        self._tasks: list[asyncio.Task] = []
        self._running = False
        self._ticking = False
        self.last_tick: TickReport | None = None
        self.last_tick_at: str | None = None
        self.last_maintenance_at: str | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ticking(self) -> bool:
        return self._ticking

    async def start(self):
        """Start the refresh and maintenance loops."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self._tick_loop()),
            asyncio.create_task(self._maintenance_loop()),
        ]
        logger.info(
            f"Feed scheduler started (tick: {self.tick_minutes} minutes, "
            f"batch: {self.batch_size}, maintenance at {self.maintenance_hour:02d}:00)"
        )

    async def stop(self):
        """Stop all loops and wait for them to exit."""
        self._running = False

        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []

        await self.refresher.close()
        logger.info("Feed scheduler stopped")

    async def run_tick(self) -> TickReport:
        """
        Refresh one batch of due feeds, sequentially.

        Returns a skipped report if a tick is already in progress.
        """
        if self._ticking:
            logger.info("Previous refresh tick still running, skipping")
            return TickReport(skipped=True)

        self._ticking = True
        started = time.monotonic()
        report = TickReport()
        try:
            feeds = self.db.get_due_feeds(limit=self.batch_size)
            report.selected = len(feeds)
            logger.info(f"Refresh tick: {len(feeds)} due feeds")

            for index, feed in enumerate(feeds):
                if index > 0 and self.inter_feed_delay > 0:
                    await self._sleep(self.inter_feed_delay)
                try:
                    result = await self.refresher.refresh(feed)
                except Exception as e:
                    logger.exception(f"Unexpected error refreshing feed {feed.id}: {e}")
                    result = RefreshResult(feed.id, False, error=f"[unknown] {e}")
                report.results.append(result)
                if result.success:
                    report.succeeded += 1
                    report.new_articles += result.new_articles
                else:
                    report.failed += 1
        finally:
            self._ticking = False
            report.duration_seconds = time.monotonic() - started
            self.last_tick = report
            self.last_tick_at = self.db.now()

        logger.info(
            f"Refresh tick done: {report.succeeded} ok, {report.failed} failed, "
            f"{report.new_articles} new articles in {report.duration_seconds:.1f}s"
        )
        return report

    async def run_maintenance(self):
        """Daily pass: retention for every user, then compaction if warranted."""
        if self.retention:
            results = self.retention.enforce_all()
            deleted = sum(r.articles_deleted for r in results.values())
            logger.info(f"Retention pass: {deleted} articles deleted across {len(results)} users")
        if self.maintenance:
            check = self.maintenance.check()
            if check.needs_vacuum:
                result = self.maintenance.compact()
                logger.info(f"Scheduled compaction: {result.message}")
        self.last_maintenance_at = self.db.now()

    async def _tick_loop(self):
        """Main refresh loop."""
        # Warm start so a fresh process doesn't wait a full tick
        await self._sleep(self.warm_start_delay)

        while self._running:
            try:
                await self.run_tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in refresh loop: {e}")

            await self._sleep(self.tick_minutes * 60)

    async def _maintenance_loop(self):
        """Daily maintenance loop."""
        while self._running:
            await self._sleep(seconds_until_hour(self._local_now(), self.maintenance_hour))
            try:
                await self.run_maintenance()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.exception(f"Error in maintenance loop: {e}")
