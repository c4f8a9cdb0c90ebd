"""
Tests for the refresh scheduler.
"""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from feedsync.database.models import ERROR_CEILING
from feedsync.scheduler import FeedScheduler, seconds_until_hour
from feedsync.tasks import RefreshResult

from conftest import USER_ID


def make_scheduler(test_db, refresher, **kwargs) -> tuple[FeedScheduler, AsyncMock]:
    sleep = AsyncMock()
    scheduler = FeedScheduler(test_db, refresher, sleep=sleep, **kwargs)
    return scheduler, sleep


class TestSecondsUntilHour:
    """Tests for the maintenance-time calculation."""

    def test_later_today(self):
        assert seconds_until_hour(datetime(2025, 1, 10, 1, 30), 3) == 90 * 60

    def test_tomorrow_when_passed(self):
        assert seconds_until_hour(datetime(2025, 1, 10, 3, 0), 3) == 24 * 3600


def schedule(db, feed_id: int, next_fetch_at: str | None, error_count: int = 0):
    db.feeds.apply_fetch_state(
        feed_id,
        next_fetch_at=next_fetch_at,
        error_count=error_count,
        last_error=None,
        last_error_at=None,
        last_fetched_at=None,
    )


class TestDueSelection:
    """Tests for which feeds a tick picks up, and in what order."""

    NOW = "2025-01-10 12:00:00.000000"

    def test_oldest_due_first_with_never_fetched_leading(self, test_db):
        a, b, c, future = (test_db.feeds.add(USER_ID, f"https://example.com/{n}.xml") for n in "abcd")
        schedule(test_db, a, "2025-01-10 11:50:00.000000")
        schedule(test_db, b, "2025-01-10 11:00:00.000000")
        schedule(test_db, c, None)
        schedule(test_db, future, "2025-01-10 12:30:00.000000")

        due = test_db.feeds.get_due(self.NOW)

        assert [f.id for f in due] == [c, b, a]

    def test_exactly_due_is_selected(self, test_db):
        feed_id = test_db.feeds.add(USER_ID, "https://example.com/a.xml")
        schedule(test_db, feed_id, self.NOW)
        assert [f.id for f in test_db.feeds.get_due(self.NOW)] == [feed_id]

    def test_error_ceiling_opens_the_circuit(self, test_db):
        failing = test_db.feeds.add(USER_ID, "https://example.com/a.xml")
        broken = test_db.feeds.add(USER_ID, "https://example.com/b.xml")
        schedule(test_db, failing, None, error_count=ERROR_CEILING - 1)
        schedule(test_db, broken, None, error_count=ERROR_CEILING)

        assert [f.id for f in test_db.feeds.get_due(self.NOW)] == [failing]

    def test_deleted_and_paused_are_skipped(self, test_db):
        deleted = test_db.feeds.add(USER_ID, "https://example.com/a.xml")
        paused = test_db.feeds.add(USER_ID, "https://example.com/b.xml")
        test_db.delete_feed(deleted)
        test_db.feeds.pause(paused)

        assert test_db.feeds.get_due(self.NOW) == []

    @pytest.mark.asyncio
    async def test_tick_processes_feeds_in_due_order(self, test_db):
        a, b, c = (test_db.feeds.add(USER_ID, f"https://example.com/{n}.xml") for n in "abc")
        schedule(test_db, a, "2025-01-10 11:50:00.000000")
        schedule(test_db, b, "2025-01-10 11:00:00.000000")
        schedule(test_db, c, None)
        seen = []

        async def record(feed):
            seen.append(feed.id)
            return RefreshResult(feed.id, True)

        refresher = MagicMock()
        refresher.refresh = AsyncMock(side_effect=record)
        scheduler, _ = make_scheduler(test_db, refresher)

        await scheduler.run_tick()

        assert seen == [c, b, a]


class TestRunTick:
    """Tests for a single refresh tick."""

    @pytest.mark.asyncio
    async def test_refreshes_due_feeds(self, test_db, refresher):
        ids = [test_db.feeds.add(USER_ID, f"https://example.com/{n}.xml") for n in range(3)]
        scheduler, sleep = make_scheduler(test_db, refresher, inter_feed_delay=1.0)

        report = await scheduler.run_tick()
        await refresher.drain()

        assert report.selected == 3
        assert report.succeeded == 3
        assert report.new_articles == 6
        # Delay between feeds, never before the first
        assert sleep.await_count == 2
        assert scheduler.last_tick is report
        assert scheduler.last_tick_at == "2025-01-10 12:00:00.000000"
        assert all(test_db.get_feed(i).next_fetch_at for i in ids)

    @pytest.mark.asyncio
    async def test_respects_batch_size(self, test_db, refresher):
        for n in range(5):
            test_db.feeds.add(USER_ID, f"https://example.com/{n}.xml")
        scheduler, _ = make_scheduler(test_db, refresher, batch_size=2)

        report = await scheduler.run_tick()
        await refresher.drain()

        assert report.selected == 2
        assert len(test_db.get_due_feeds()) == 3

    @pytest.mark.asyncio
    async def test_skips_paused_feeds(self, test_db, refresher):
        feed_id = test_db.feeds.add(USER_ID, "https://example.com/a.xml")
        test_db.feeds.pause(feed_id)
        scheduler, _ = make_scheduler(test_db, refresher)

        report = await scheduler.run_tick()

        assert report.selected == 0

    @pytest.mark.asyncio
    async def test_one_feed_crashing_does_not_stop_the_batch(self, test_db):
        for n in range(3):
            test_db.feeds.add(USER_ID, f"https://example.com/{n}.xml")
        refresher = MagicMock()
        refresher.refresh = AsyncMock(side_effect=[
            RefreshResult(1, True, new_articles=1),
            RuntimeError("unexpected"),
            RefreshResult(3, True, new_articles=2),
        ])
        scheduler, _ = make_scheduler(test_db, refresher)

        report = await scheduler.run_tick()

        assert report.succeeded == 2
        assert report.failed == 1
        assert report.new_articles == 3
        assert report.results[1].error.startswith("[unknown]")

    @pytest.mark.asyncio
    async def test_overlapping_tick_is_skipped(self, test_db):
        test_db.feeds.add(USER_ID, "https://example.com/a.xml")
        release = asyncio.Event()

        async def slow_refresh(feed):
            await release.wait()
            return RefreshResult(feed.id, True)

        refresher = MagicMock()
        refresher.refresh = AsyncMock(side_effect=slow_refresh)
        scheduler, _ = make_scheduler(test_db, refresher)

        first = asyncio.create_task(scheduler.run_tick())
        await asyncio.sleep(0)
        assert scheduler.ticking

        second = await scheduler.run_tick()
        release.set()
        report = await first

        assert second.skipped
        assert report.succeeded == 1
        assert not scheduler.ticking


class TestMaintenance:
    """Tests for the daily maintenance pass."""

    @pytest.mark.asyncio
    async def test_runs_retention_then_compacts_when_needed(self, test_db, refresher):
        retention = MagicMock()
        retention.enforce_all.return_value = {}
        maintenance = MagicMock()
        maintenance.check.return_value = MagicMock(needs_vacuum=True)
        scheduler, _ = make_scheduler(test_db, refresher, retention=retention, maintenance=maintenance)

        await scheduler.run_maintenance()

        retention.enforce_all.assert_called_once()
        maintenance.compact.assert_called_once()
        assert scheduler.last_maintenance_at is not None

    @pytest.mark.asyncio
    async def test_no_compaction_when_healthy(self, test_db, refresher):
        maintenance = MagicMock()
        maintenance.check.return_value = MagicMock(needs_vacuum=False)
        scheduler, _ = make_scheduler(test_db, refresher, maintenance=maintenance)

        await scheduler.run_maintenance()

        maintenance.compact.assert_not_called()


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, test_db, refresher):
        scheduler = FeedScheduler(test_db, refresher, warm_start_delay=3600)

        await scheduler.start()
        assert scheduler.running
        await scheduler.start()

        await scheduler.stop()
        assert not scheduler.running
