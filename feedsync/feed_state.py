"""
Feed State Machine - fetch cadence and failure bookkeeping per feed.

Transitions are pure: given a feed, an outcome and the current time they
return the fields to persist. The repository writes them; nothing here does I/O.

A failing feed keeps its normal cadence. Load shedding comes only from the
circuit breaker: once error_count reaches ERROR_CEILING the feed drops out of
due selection until it is explicitly resumed.
"""

import asyncio
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta
from email.utils import parsedate_to_datetime

import aiohttp

from .database.models import ERROR_CEILING, DBFeed
from .exceptions import FetchError, ParseError, SSRFError
from .timeutil import format_ts

MAX_ERROR_LENGTH = 500


@dataclass(frozen=True)
class FeedStateUpdate:
    """Fields written back to a feed after a refresh attempt."""
    next_fetch_at: str
    error_count: int
    last_error: str | None
    last_error_at: str | None
    last_fetched_at: str | None


def compute_next_fetch(
    feed: DBFeed,
    success: bool,
    now: datetime,
    retry_after: float | None = None,
    error: str | None = None,
) -> FeedStateUpdate:
    """
    Compute the persisted state after a refresh attempt.

    Args:
        feed: The feed as it was before the attempt
        success: Whether the attempt succeeded (a 304 counts as success)
        now: Time of the attempt
        retry_after: Server-provided retry hint in seconds, if any
        error: Short diagnostic for failures

    Returns:
        FeedStateUpdate with next_fetch_at never earlier than now
    """
    delay = timedelta(minutes=max(feed.refresh_interval_minutes, 1))
    if retry_after and retry_after > 0:
        delay = max(delay, timedelta(seconds=retry_after))
    next_fetch_at = format_ts(now + delay)

    if success:
        return FeedStateUpdate(
            next_fetch_at=next_fetch_at,
            error_count=0,
            last_error=None,
            last_error_at=None,
            last_fetched_at=format_ts(now),
        )

    return FeedStateUpdate(
        next_fetch_at=next_fetch_at,
        error_count=feed.error_count + 1,
        last_error=(error or "[unknown] Refresh failed")[:MAX_ERROR_LENGTH],
        last_error_at=format_ts(now),
        last_fetched_at=feed.last_fetched_at,
    )


def is_circuit_open(feed: DBFeed) -> bool:
    """True when the feed has failed often enough to leave scheduling."""
    return feed.error_count >= ERROR_CEILING


def parse_retry_after(value: str | None, now: datetime) -> float | None:
    """Parse a Retry-After header (delta seconds or HTTP date) into seconds."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        return None
    seconds = (when - now).total_seconds()
    return seconds if seconds > 0 else None


def describe_error(err: BaseException) -> str:
    """Categorize a refresh failure into a short diagnostic string."""
    message = str(err) or err.__class__.__name__
    if isinstance(err, (asyncio.TimeoutError, aiohttp.ServerTimeoutError)):
        category = "timeout"
    elif isinstance(err, ParseError):
        category = "parse"
    elif isinstance(err, FetchError):
        category = "http"
    elif isinstance(err, SSRFError):
        category = "blocked"
    elif isinstance(err, sqlite3.Error):
        category = "storage"
    elif isinstance(err, (aiohttp.ClientError, OSError)):
        category = "network"
    else:
        category = "unknown"
    return f"[{category}] {message}"
