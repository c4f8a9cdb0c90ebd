"""
Retention Engine - bounds article storage per user.

Two independent layers:
- the user's policy: max age and max articles per feed, with optional
  bookmark and unread exemptions
- type-aware hard caps: web and forum feeds by age, video feeds by age and
  count, audio feeds by count. Bookmarks are always exempt.

Every rule runs as its own DELETE, so rules that already ran stay applied
when a later one fails.
"""

import logging
import sqlite3
import time
from dataclasses import asdict, dataclass, field, fields
from datetime import timedelta

from ..database import Database, FeedType
from ..database.retention_repository import RetentionRule, age_rule, count_rule
from ..timeutil import format_ts
from .maintenance_service import MaintenanceService

logger = logging.getLogger(__name__)

# Deletions at or above this count trigger a compaction
COMPACTION_THRESHOLD = 100

POLICY_SETTINGS_KEY = "retention"
CAPS_SETTINGS_KEY = "retention_caps"


@dataclass
class RetentionPolicy:
    """User-level retention policy. Zero disables a limit."""
    enabled: bool = True
    max_article_age_days: int = 90
    max_articles_per_feed: int = 500
    keep_starred: bool = True
    keep_unread: bool = True


@dataclass
class TypeRetentionCaps:
    """Per-type hard caps. Zero disables a limit."""
    web_days: int = 90
    forum_days: int = 30
    video_days: int = 90
    video_count: int = 50
    audio_count: int = 100


@dataclass
class RetentionResult:
    articles_deleted: int = 0
    bytes_reclaimed: int = 0
    duration_ms: int = 0
    compacted: bool = False
    errors: list[str] = field(default_factory=list)


@dataclass
class RetentionPreview:
    articles_affected: int
    oldest_article_date: str | None
    estimated_space_saved: int


def _merge(cls, stored: dict | None, patch: dict | None = None):
    """Build a settings dataclass from defaults, stored values and a patch."""
    known = {f.name for f in fields(cls)}
    values = asdict(cls())
    for source in (stored or {}, patch or {}):
        values.update({k: v for k, v in source.items() if k in known and v is not None})
    return cls(**values)


class RetentionEngine:
    """Applies retention policies and reports what was reclaimed."""

    def __init__(self, db: Database, maintenance: MaintenanceService | None = None):
        self.db = db
        self.maintenance = maintenance

    # ─────────────────────────────────────────────────────────────
    # Settings
    # ─────────────────────────────────────────────────────────────

    def get_policy(self, user_id: int) -> RetentionPolicy:
        settings = self.db.users.get_settings(user_id)
        return _merge(RetentionPolicy, settings.get(POLICY_SETTINGS_KEY))

    def get_caps(self, user_id: int) -> TypeRetentionCaps:
        settings = self.db.users.get_settings(user_id)
        return _merge(TypeRetentionCaps, settings.get(CAPS_SETTINGS_KEY))

    def update_policy(self, user_id: int, patch: dict) -> RetentionPolicy:
        """Merge a partial update onto the current policy."""
        policy = _merge(RetentionPolicy, asdict(self.get_policy(user_id)), patch)
        self.db.users.set_setting(user_id, POLICY_SETTINGS_KEY, asdict(policy))
        return policy

    def update_caps(self, user_id: int, patch: dict) -> TypeRetentionCaps:
        caps = _merge(TypeRetentionCaps, asdict(self.get_caps(user_id)), patch)
        self.db.users.set_setting(user_id, CAPS_SETTINGS_KEY, asdict(caps))
        return caps

    # ─────────────────────────────────────────────────────────────
    # Rules
    # ─────────────────────────────────────────────────────────────

    def _cutoff(self, days: int) -> str:
        return format_ts(self.db.connection.clock() - timedelta(days=days))

    def rules(self, user_id: int) -> list[RetentionRule]:
        """Every deletion rule that applies to the user, policy first."""
        policy = self.get_policy(user_id)
        caps = self.get_caps(user_id)
        rules: list[RetentionRule] = []

        if policy.enabled:
            if policy.max_article_age_days > 0:
                rules.append(age_rule(
                    "policy_age", user_id, self._cutoff(policy.max_article_age_days),
                    keep_starred=policy.keep_starred, keep_unread=policy.keep_unread,
                ))
            if policy.max_articles_per_feed > 0:
                rules.append(count_rule(
                    "policy_per_feed", user_id, policy.max_articles_per_feed,
                    keep_starred=policy.keep_starred, keep_unread=policy.keep_unread,
                ))

        for feed_type, days in (
            (FeedType.WEB, caps.web_days),
            (FeedType.FORUM, caps.forum_days),
            (FeedType.VIDEO, caps.video_days),
        ):
            if days > 0:
                rules.append(age_rule(
                    f"{feed_type.value}_age", user_id, self._cutoff(days), feed_type=feed_type,
                ))
        for feed_type, count in (
            (FeedType.VIDEO, caps.video_count),
            (FeedType.AUDIO, caps.audio_count),
        ):
            if count > 0:
                rules.append(count_rule(
                    f"{feed_type.value}_count", user_id, count,
                    feed_type=feed_type, rank_unbookmarked_only=True,
                ))
        return rules

    # ─────────────────────────────────────────────────────────────
    # Enforcement
    # ─────────────────────────────────────────────────────────────

    def enforce(self, user_id: int) -> RetentionResult:
        """Run every rule for one user; compact after a large deletion."""
        started = time.monotonic()
        result = RetentionResult()
        size_before = self.db.maintenance.size_bytes()

        for rule in self.rules(user_id):
            try:
                deleted = self.db.retention.delete(rule)
            except sqlite3.Error as e:
                logger.exception(f"Retention rule {rule.name} failed for user {user_id}: {e}")
                result.errors.append(f"{rule.name}: {e}")
                continue
            if deleted:
                logger.info(f"Retention rule {rule.name} deleted {deleted} articles for user {user_id}")
            result.articles_deleted += deleted

        if self.maintenance and result.articles_deleted >= COMPACTION_THRESHOLD:
            compaction = self.maintenance.compact(force=True)
            result.compacted = compaction.success
            if not compaction.success:
                result.errors.append(compaction.message)

        result.bytes_reclaimed = max(0, size_before - self.db.maintenance.size_bytes())
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Retention for user {user_id}: {result.articles_deleted} deleted, "
            f"{result.bytes_reclaimed} bytes reclaimed in {result.duration_ms}ms"
        )
        return result

    def enforce_all(self) -> dict[int, RetentionResult]:
        """Run retention for every user owning a live feed."""
        results = {}
        for user_id in self.db.retention.user_ids_with_feeds():
            results[user_id] = self.enforce(user_id)
        return results

    def preview(self, user_id: int) -> RetentionPreview:
        """What enforce() would delete right now, without deleting."""
        summary = self.db.retention.preview(self.rules(user_id))
        return RetentionPreview(
            articles_affected=summary["count"],
            oldest_article_date=summary["oldest"],
            estimated_space_saved=summary["bytes"],
        )
