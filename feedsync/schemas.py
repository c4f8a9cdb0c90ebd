"""
Pydantic models for API request/response validation.
"""

from pydantic import BaseModel, Field

from .database import DBArticle, DBFeed, DBFolder
from .database.sync_repository import EntityDelta
from .opml import OPMLImportResult
from .services.maintenance_service import DatabaseStats, MaintenanceCheck, MaintenanceResult
from .services.retention import (
    RetentionPolicy,
    RetentionPreview,
    RetentionResult,
    TypeRetentionCaps,
)
from .services.sync_service import SyncResult
from .tasks import RefreshResult


# ─────────────────────────────────────────────────────────────
# Feed Schemas
# ─────────────────────────────────────────────────────────────

class FeedResponse(BaseModel):
    """Feed with its fetch state."""
    id: int
    folder_id: int | None
    type: str
    title: str
    url: str
    site_url: str | None
    description: str | None
    icon_url: str | None
    has_cached_icon: bool
    refresh_interval_minutes: int
    last_fetched_at: str | None
    next_fetch_at: str | None
    error_count: int
    last_error: str | None
    last_error_at: str | None
    paused: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_db(cls, feed: DBFeed) -> "FeedResponse":
        return cls(
            id=feed.id,
            folder_id=feed.folder_id,
            type=feed.type.value,
            title=feed.title,
            url=feed.url,
            site_url=feed.site_url,
            description=feed.description,
            icon_url=feed.icon_url,
            has_cached_icon=feed.icon_cached_path is not None,
            refresh_interval_minutes=feed.refresh_interval_minutes,
            last_fetched_at=feed.last_fetched_at,
            next_fetch_at=feed.next_fetch_at,
            error_count=feed.error_count,
            last_error=feed.last_error,
            last_error_at=feed.last_error_at,
            paused=feed.paused_at is not None,
            created_at=feed.created_at,
            updated_at=feed.updated_at,
        )


class AddFeedRequest(BaseModel):
    """Request to subscribe to a feed."""
    url: str
    title: str | None = None
    folder_id: int | None = None
    refresh_interval_minutes: int = Field(default=30, ge=1, le=1440)
    # Resolve a web page to the feed it advertises
    discover: bool = True


class OPMLImportRequest(BaseModel):
    """Request to import feeds from OPML."""
    opml_content: str


class OPMLImportResponse(BaseModel):
    """Per-feed results of an OPML import."""
    total: int
    imported: int
    skipped: int
    failed: int
    results: list[OPMLImportResult]


class OPMLExportResponse(BaseModel):
    opml: str
    feed_count: int


class UpdateFeedRequest(BaseModel):
    """Request to update a feed's settings."""
    title: str | None = None
    folder_id: int | None = None
    clear_folder: bool = False
    refresh_interval_minutes: int | None = Field(default=None, ge=1, le=1440)


class RefreshResponse(BaseModel):
    """Outcome of a manual refresh."""
    feed_id: int
    success: bool
    new_articles: int
    not_modified: bool
    error: str | None
    next_fetch_at: str | None

    @classmethod
    def from_result(cls, result: RefreshResult) -> "RefreshResponse":
        return cls(
            feed_id=result.feed_id,
            success=result.success,
            new_articles=result.new_articles,
            not_modified=result.not_modified,
            error=result.error,
            next_fetch_at=result.next_fetch_at,
        )


# ─────────────────────────────────────────────────────────────
# Folder Schemas
# ─────────────────────────────────────────────────────────────

class FolderResponse(BaseModel):
    id: int
    name: str
    position: int
    created_at: str
    updated_at: str

    @classmethod
    def from_db(cls, folder: DBFolder) -> "FolderResponse":
        return cls(
            id=folder.id,
            name=folder.name,
            position=folder.position,
            created_at=folder.created_at,
            updated_at=folder.updated_at,
        )


class FolderRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    position: int = 0


# ─────────────────────────────────────────────────────────────
# Article Schemas
# ─────────────────────────────────────────────────────────────

class ArticleResponse(BaseModel):
    """Article as delivered to sync clients."""
    id: int
    feed_id: int
    guid: str
    title: str
    url: str | None
    author: str | None
    summary: str | None
    content: str | None
    readability_content: str | None
    enclosure_url: str | None
    enclosure_type: str | None
    enclosure_length: int | None
    duration_seconds: int | None
    thumbnail_url: str | None
    is_bookmarked: bool
    published_at: str | None
    fetched_at: str

    @classmethod
    def from_db(cls, article: DBArticle) -> "ArticleResponse":
        return cls(
            id=article.id,
            feed_id=article.feed_id,
            guid=article.guid,
            title=article.title,
            url=article.url,
            author=article.author,
            summary=article.summary,
            content=article.content,
            readability_content=article.readability_content,
            enclosure_url=article.enclosure_url,
            enclosure_type=article.enclosure_type,
            enclosure_length=article.enclosure_length,
            duration_seconds=article.duration_seconds,
            thumbnail_url=article.thumbnail_url,
            is_bookmarked=article.is_bookmarked,
            published_at=article.published_at,
            fetched_at=article.fetched_at,
        )


class MarkReadRequest(BaseModel):
    is_read: bool = True


class BookmarkRequest(BaseModel):
    is_bookmarked: bool = True


# ─────────────────────────────────────────────────────────────
# Sync Schemas
# ─────────────────────────────────────────────────────────────

class FeedDelta(BaseModel):
    created: list[FeedResponse] = []
    updated: list[FeedResponse] = []
    deleted: list[int] = []


class FolderDelta(BaseModel):
    created: list[FolderResponse] = []
    updated: list[FolderResponse] = []
    deleted: list[int] = []


class ArticleDelta(BaseModel):
    created: list[ArticleResponse] = []
    updated: list[ArticleResponse] = []
    deleted: list[int] = []


class ReadStateChanges(BaseModel):
    read: list[int] = []
    unread: list[int] = []


class SyncChangesResponse(BaseModel):
    feeds: FeedDelta | None = None
    folders: FolderDelta | None = None
    articles: ArticleDelta | None = None
    read_state: ReadStateChanges | None = None


class SyncResponse(BaseModel):
    changes: SyncChangesResponse
    next_cursor: str
    server_time: str

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResponse":
        changes = result.changes
        return cls(
            changes=SyncChangesResponse(
                feeds=_delta(FeedDelta, FeedResponse, changes.feeds),
                folders=_delta(FolderDelta, FolderResponse, changes.folders),
                articles=_delta(ArticleDelta, ArticleResponse, changes.articles),
                read_state=(
                    ReadStateChanges(read=changes.read_state.read, unread=changes.read_state.unread)
                    if changes.read_state else None
                ),
            ),
            next_cursor=result.next_cursor,
            server_time=result.server_time,
        )


def _delta(delta_cls, item_cls, delta: EntityDelta | None):
    if delta is None:
        return None
    return delta_cls(
        created=[item_cls.from_db(row) for row in delta.created],
        updated=[item_cls.from_db(row) for row in delta.updated],
        deleted=delta.deleted,
    )


class ReadStateChange(BaseModel):
    article_id: int
    is_read: bool


class SyncPushRequest(BaseModel):
    read_state: list[ReadStateChange] = []


class PushCounts(BaseModel):
    accepted: int
    rejected: int


class SyncPushResponse(BaseModel):
    read_state: PushCounts


# ─────────────────────────────────────────────────────────────
# Retention Schemas
# ─────────────────────────────────────────────────────────────

class RetentionPolicySchema(BaseModel):
    enabled: bool
    max_article_age_days: int
    max_articles_per_feed: int
    keep_starred: bool
    keep_unread: bool


class TypeRetentionCapsSchema(BaseModel):
    web_days: int
    forum_days: int
    video_days: int
    video_count: int
    audio_count: int


class RetentionSettingsResponse(BaseModel):
    policy: RetentionPolicySchema
    caps: TypeRetentionCapsSchema

    @classmethod
    def from_settings(cls, policy: RetentionPolicy, caps: TypeRetentionCaps) -> "RetentionSettingsResponse":
        return cls(
            policy=RetentionPolicySchema(**policy.__dict__),
            caps=TypeRetentionCapsSchema(**caps.__dict__),
        )


class RetentionPolicyUpdate(BaseModel):
    enabled: bool | None = None
    max_article_age_days: int | None = Field(default=None, ge=0)
    max_articles_per_feed: int | None = Field(default=None, ge=0)
    keep_starred: bool | None = None
    keep_unread: bool | None = None


class TypeRetentionCapsUpdate(BaseModel):
    web_days: int | None = Field(default=None, ge=0)
    forum_days: int | None = Field(default=None, ge=0)
    video_days: int | None = Field(default=None, ge=0)
    video_count: int | None = Field(default=None, ge=0)
    audio_count: int | None = Field(default=None, ge=0)


class RetentionSettingsUpdate(BaseModel):
    policy: RetentionPolicyUpdate | None = None
    caps: TypeRetentionCapsUpdate | None = None


class RetentionPreviewResponse(BaseModel):
    articles_affected: int
    oldest_article_date: str | None
    estimated_space_saved: int

    @classmethod
    def from_preview(cls, preview: RetentionPreview) -> "RetentionPreviewResponse":
        return cls(**preview.__dict__)


class RetentionRunResponse(BaseModel):
    articles_deleted: int
    bytes_reclaimed: int
    duration_ms: int
    compacted: bool
    errors: list[str]

    @classmethod
    def from_result(cls, result: RetentionResult) -> "RetentionRunResponse":
        return cls(**result.__dict__)


# ─────────────────────────────────────────────────────────────
# Maintenance Schemas
# ─────────────────────────────────────────────────────────────

class IndexInfo(BaseModel):
    name: str
    table: str


class DatabaseStatsResponse(BaseModel):
    total_size_bytes: int
    page_size: int
    page_count: int
    freelist_count: int
    fragmentation_ratio: float
    tables: dict[str, int]
    indexes: list[IndexInfo]
    article_count: int
    feed_count: int
    oldest_article_date: str | None

    @classmethod
    def from_stats(cls, stats: DatabaseStats) -> "DatabaseStatsResponse":
        return cls(**stats.__dict__)


class MaintenanceCheckResponse(BaseModel):
    needs_vacuum: bool
    needs_optimize: bool
    fragmentation_ratio: float
    recommendations: list[str]

    @classmethod
    def from_check(cls, check: MaintenanceCheck) -> "MaintenanceCheckResponse":
        return cls(**check.__dict__)


class MaintenanceResultResponse(BaseModel):
    success: bool
    message: str
    duration_ms: int
    bytes_reclaimed: int

    @classmethod
    def from_result(cls, result: MaintenanceResult) -> "MaintenanceResultResponse":
        return cls(**result.__dict__)
