"""
Pytest fixtures for feedsync tests.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from feedsync.asset_cache import AssetCache
from feedsync.config import config, state
from feedsync.database import Database
from feedsync.events import ChangeBroker
from feedsync.http_client import FetchResponse, HttpTransport
from feedsync.scheduler import FeedScheduler
from feedsync.server import app
from feedsync.services import FeedService, MaintenanceService, RetentionEngine, SyncService
from feedsync.tasks import FeedRefresher

USER_ID = 1

RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Blog</title>
    <link>https://example.com/</link>
    <description>Posts about examples</description>
    <item>
      <title>First post</title>
      <link>https://example.com/posts/1</link>
      <guid>post-1</guid>
      <pubDate>Mon, 06 Jan 2025 10:00:00 GMT</pubDate>
      <description>&lt;p&gt;Hello &lt;b&gt;world&lt;/b&gt;&lt;/p&gt;</description>
    </item>
    <item>
      <title>Second post</title>
      <link>https://example.com/posts/2</link>
      <guid>post-2</guid>
      <pubDate>Tue, 07 Jan 2025 10:00:00 GMT</pubDate>
      <description>Another one</description>
    </item>
  </channel>
</rss>
"""


class FakeClock:
    """Settable UTC clock; advances only when told to."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2025, 1, 10, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


def feed_response(body: bytes = RSS_FEED, status: int = 200, **headers) -> FetchResponse:
    """A canned transport response."""
    return FetchResponse(
        url="https://example.com/feed.xml",
        status=status,
        headers={k.lower().replace("_", "-"): v for k, v in headers.items()},
        body=body,
    )


@pytest.fixture
def temp_db_path():
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        yield Path(f.name)
    # Cleanup
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(f.name + suffix):
            os.unlink(f.name + suffix)


@pytest.fixture
def temp_asset_dir():
    """Create a temporary asset directory."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_db(temp_db_path, clock):
    """Create a test database with the default user."""
    db = Database(temp_db_path, clock=clock)
    db.users.ensure(USER_ID)
    yield db
    db.close()


@pytest.fixture
def transport():
    """Transport whose fetch is an AsyncMock; tests set return values."""
    transport = HttpTransport(resolve_dns=False)
    transport.fetch = AsyncMock(return_value=feed_response())
    return transport


@pytest.fixture
def broker(clock):
    return ChangeBroker(clock=clock)


@pytest.fixture
def refresher(test_db, transport, broker):
    return FeedRefresher(test_db, transport, broker=broker)


@pytest.fixture
def client(test_db, transport, broker, temp_asset_dir):
    """Create a test client with isolated state and no background scheduler."""
    # Store original state
    saved = {name: getattr(state, name) for name in (
        "db", "transport", "assets", "broker", "feeds",
        "sync", "retention", "maintenance", "scheduler",
    )}
    original_auth_key = config.AUTH_API_KEY
    config.AUTH_API_KEY = ""

    refresher = FeedRefresher(test_db, transport, broker=broker)
    state.db = test_db
    state.transport = transport
    state.broker = broker
    state.assets = AssetCache(temp_asset_dir, transport)
    state.maintenance = MaintenanceService(test_db)
    state.retention = RetentionEngine(test_db, maintenance=state.maintenance)
    state.sync = SyncService(test_db)
    state.feeds = FeedService(test_db, refresher, transport, broker=broker)
    state.scheduler = FeedScheduler(test_db, refresher, inter_feed_delay=0)

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    # Restore original state
    for name, value in saved.items():
        setattr(state, name, value)
    config.AUTH_API_KEY = original_auth_key
