"""
Domain errors and HTTP exception helpers.

Fetch and parse errors never leave the per-feed pipeline; they are turned into
persisted failure state. The HTTP helpers reduce 404 boilerplate in routes.
"""

from typing import TypeVar

from fastapi import HTTPException

T = TypeVar("T")


class FeedSyncError(Exception):
    """Base class for ingestion engine errors."""


class FetchError(FeedSyncError):
    """The origin answered with a non-success status."""

    def __init__(self, message: str, status: int | None = None, retry_after: float | None = None):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after


class ParseError(FeedSyncError):
    """A payload could not be normalized into articles."""


class SSRFError(FeedSyncError):
    """Raised when a URL fails SSRF validation."""


def require_resource(resource: T | None, detail: str = "Resource not found") -> T:
    """
    Raise 404 if resource is None, otherwise return the resource.

    Usage:
        feed = require_resource(db.get_feed(id), "Feed not found")
    """
    if resource is None:
        raise HTTPException(status_code=404, detail=detail)
    return resource


def require_feed(feed: T | None) -> T:
    """Raise 404 if feed is None."""
    return require_resource(feed, "Feed not found")


def require_article(article: T | None) -> T:
    """Raise 404 if article is None."""
    return require_resource(article, "Article not found")
