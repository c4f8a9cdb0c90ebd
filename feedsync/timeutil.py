"""Timestamp utilities.

Every stored timestamp is UTC text in one fixed-width format so that plain
string comparison in SQL orders them correctly.
"""

from datetime import datetime, timezone
from typing import Callable

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
EPOCH = "1970-01-01 00:00:00.000000"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_ts(value: datetime) -> str:
    """Format a datetime in the storage format (naive values are taken as UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_ts(value: str | None) -> datetime | None:
    """Parse a stored or ISO-8601 timestamp into an aware UTC datetime."""
    if not value:
        return None
    text = value.strip().replace("Z", "+00:00")
    if " " in text and "T" not in text:
        text = text.replace(" ", "T", 1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_ts(value: str | None) -> str | None:
    """Re-format any accepted timestamp text into the storage format."""
    parsed = parse_ts(value)
    return format_ts(parsed) if parsed else None
