"""
Versioned schema migrations.

Each entry is (version, name, statements). Statements run in order inside one
transaction; the version is recorded in schema_migrations on success.
"""

from .models import ERROR_CEILING

MIGRATIONS: list[tuple[int, str, list[str]]] = [
    (1, "initial_schema", [
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            settings_json TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS folders (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            name TEXT NOT NULL,
            position INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            deleted_at TEXT
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_folders_user ON folders(user_id, deleted_at)",
        """
        CREATE TABLE IF NOT EXISTS feeds (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            folder_id INTEGER REFERENCES folders(id) ON DELETE SET NULL,
            type TEXT NOT NULL CHECK(type IN ('web', 'video', 'forum', 'audio')),
            title TEXT NOT NULL,
            url TEXT NOT NULL,
            site_url TEXT,
            description TEXT,
            icon_url TEXT,
            refresh_interval_minutes INTEGER NOT NULL DEFAULT 30,
            etag TEXT,
            last_modified TEXT,
            last_fetched_at TEXT,
            next_fetch_at TEXT,
            error_count INTEGER NOT NULL DEFAULT 0,
            last_error TEXT,
            last_error_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            deleted_at TEXT,
            UNIQUE(user_id, url)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_feeds_user ON feeds(user_id, deleted_at)",
        "CREATE INDEX IF NOT EXISTS idx_feeds_next_fetch ON feeds(next_fetch_at) WHERE deleted_at IS NULL",
        """
        CREATE TABLE IF NOT EXISTS articles (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            feed_id INTEGER NOT NULL REFERENCES feeds(id) ON DELETE CASCADE,
            guid TEXT NOT NULL,
            title TEXT NOT NULL,
            url TEXT,
            author TEXT,
            summary TEXT,
            content TEXT,
            readability_content TEXT,
            enclosure_url TEXT,
            enclosure_type TEXT,
            enclosure_length INTEGER,
            duration_seconds INTEGER,
            thumbnail_url TEXT,
            is_bookmarked INTEGER NOT NULL DEFAULT 0,
            published_at TEXT,
            fetched_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE(feed_id, guid)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_articles_feed ON articles(feed_id)",
        "CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at DESC)",
        "CREATE INDEX IF NOT EXISTS idx_articles_fetched ON articles(fetched_at DESC)",
        """
        CREATE TABLE IF NOT EXISTS read_state (
            user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            article_id INTEGER NOT NULL REFERENCES articles(id) ON DELETE CASCADE,
            is_read INTEGER NOT NULL DEFAULT 1,
            read_at TEXT,
            updated_at TEXT NOT NULL,
            PRIMARY KEY (user_id, article_id)
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_read_state_user ON read_state(user_id, updated_at)",
    ]),
    (2, "add_feed_paused", [
        "ALTER TABLE feeds ADD COLUMN paused_at TEXT",
    ]),
    (3, "add_cached_assets", [
        "ALTER TABLE feeds ADD COLUMN icon_cached_path TEXT",
        "ALTER TABLE feeds ADD COLUMN icon_cached_content_type TEXT",
        "ALTER TABLE articles ADD COLUMN thumbnail_cached_path TEXT",
        "ALTER TABLE articles ADD COLUMN thumbnail_cached_content_type TEXT",
    ]),
    (4, "due_selection_index", [
        f"""
        CREATE INDEX IF NOT EXISTS idx_feeds_due
        ON feeds(next_fetch_at)
        WHERE deleted_at IS NULL AND paused_at IS NULL AND error_count < {ERROR_CEILING}
        """,
        "CREATE INDEX IF NOT EXISTS idx_feeds_updated ON feeds(user_id, updated_at)",
        "CREATE INDEX IF NOT EXISTS idx_folders_updated ON folders(user_id, updated_at)",
    ]),
]
