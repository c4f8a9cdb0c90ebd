"""
Retention repository - builds and runs article deletion rules.

Each rule is a SELECT of article IDs. enforce-style callers run one DELETE
per rule so earlier rules stay applied when a later one fails; previews union
the same SELECTs without deleting anything.
"""

from dataclasses import dataclass

from .connection import DatabaseConnection
from .models import FeedType

# Effective article date: source-declared when present, ingestion time otherwise
_ARTICLE_DATE = "COALESCE(a.published_at, a.fetched_at)"


@dataclass(frozen=True)
class RetentionRule:
    """A named SELECT of deletable article IDs."""
    name: str
    sql: str
    params: tuple


def _exemptions(user_id: int, keep_starred: bool, keep_unread: bool) -> tuple[str, list]:
    clauses: list[str] = []
    params: list = []
    if keep_starred:
        clauses.append("a.is_bookmarked = 0")
    if keep_unread:
        clauses.append(
            "a.id IN (SELECT article_id FROM read_state WHERE user_id = ? AND is_read = 1)"
        )
        params.append(user_id)
    return "".join(f" AND {c}" for c in clauses), params


def age_rule(
    name: str,
    user_id: int,
    cutoff: str,
    keep_starred: bool = True,
    keep_unread: bool = False,
    feed_type: FeedType | None = None,
) -> RetentionRule:
    """Articles of the user's live feeds dated before cutoff."""
    type_clause = " AND f.type = ?" if feed_type else ""
    exempt, exempt_params = _exemptions(user_id, keep_starred, keep_unread)
    sql = f"""SELECT a.id FROM articles a
              JOIN feeds f ON f.id = a.feed_id
              WHERE f.user_id = ? AND f.deleted_at IS NULL{type_clause}
                AND {_ARTICLE_DATE} < ?{exempt}"""
    params: list = [user_id]
    if feed_type:
        params.append(feed_type.value)
    params.append(cutoff)
    params.extend(exempt_params)
    return RetentionRule(name, sql, tuple(params))


def count_rule(
    name: str,
    user_id: int,
    keep: int,
    keep_starred: bool = True,
    keep_unread: bool = False,
    feed_type: FeedType | None = None,
    rank_unbookmarked_only: bool = False,
) -> RetentionRule:
    """
    Articles beyond the `keep` most recent per feed.

    With rank_unbookmarked_only the ranking ignores bookmarked rows, so
    bookmarks do not use up a feed's quota.
    """
    type_clause = " AND f.type = ?" if feed_type else ""
    rank_clause = " AND a.is_bookmarked = 0" if rank_unbookmarked_only else ""
    exempt, exempt_params = _exemptions(user_id, keep_starred, keep_unread)
    sql = f"""SELECT a.id FROM articles a
              JOIN (
                  SELECT a.id AS ranked_id,
                         ROW_NUMBER() OVER (
                             PARTITION BY a.feed_id
                             ORDER BY {_ARTICLE_DATE} DESC, a.id DESC
                         ) AS position
                  FROM articles a
                  JOIN feeds f ON f.id = a.feed_id
                  WHERE f.user_id = ? AND f.deleted_at IS NULL{type_clause}{rank_clause}
              ) ranked ON ranked.ranked_id = a.id
              WHERE ranked.position > ?{exempt}"""
    params: list = [user_id]
    if feed_type:
        params.append(feed_type.value)
    params.append(keep)
    params.extend(exempt_params)
    return RetentionRule(name, sql, tuple(params))


class RetentionRepository:
    """Runs retention rules against the articles table."""

    def __init__(self, db: DatabaseConnection):
        self._db = db

    def delete(self, rule: RetentionRule) -> int:
        """Delete the rule's articles as one statement. Returns rows deleted."""
        with self._db.conn() as conn:
            cursor = conn.execute(
                f"DELETE FROM articles WHERE id IN ({rule.sql})", rule.params
            )
            return cursor.rowcount

    def preview(self, rules: list[RetentionRule]) -> dict:
        """Summarize what the rules would delete, counting each article once."""
        if not rules:
            return {"count": 0, "oldest": None, "bytes": 0}
        union = " UNION ".join(rule.sql for rule in rules)
        params: list = []
        for rule in rules:
            params.extend(rule.params)
        with self._db.conn() as conn:
            row = conn.execute(
                f"""SELECT COUNT(*) AS n,
                           MIN(COALESCE(published_at, fetched_at)) AS oldest,
                           COALESCE(SUM(
                               COALESCE(LENGTH(content), 0)
                               + COALESCE(LENGTH(summary), 0)
                               + COALESCE(LENGTH(readability_content), 0)
                           ), 0) AS bytes
                    FROM articles WHERE id IN ({union})""",
                params
            ).fetchone()
        return {"count": row["n"], "oldest": row["oldest"], "bytes": row["bytes"]}

    def user_ids_with_feeds(self) -> list[int]:
        """Users owning at least one live feed."""
        with self._db.conn() as conn:
            rows = conn.execute(
                "SELECT DISTINCT user_id FROM feeds WHERE deleted_at IS NULL ORDER BY user_id"
            ).fetchall()
            return [row["user_id"] for row in rows]
