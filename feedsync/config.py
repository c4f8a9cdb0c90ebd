"""
Configuration and application state management.
"""

import os
from pathlib import Path
from typing import TYPE_CHECKING

from dotenv import load_dotenv
from fastapi import HTTPException

if TYPE_CHECKING:
    from .asset_cache import AssetCache
    from .database import Database
    from .events import ChangeBroker
    from .http_client import HttpTransport
    from .scheduler import FeedScheduler
    from .services import FeedService, MaintenanceService, RetentionEngine, SyncService

# Load environment variables
load_dotenv()


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


class Config:
    """Application configuration from environment."""
    DB_PATH: Path = Path(os.getenv("DB_PATH", "./data/feeds.db"))
    ASSET_DIR: Path = Path(os.getenv("ASSET_DIR", "./data/assets"))
    PORT: int = int(os.getenv("PORT", "5005"))
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Empty key disables the API key guard (local development)
    AUTH_API_KEY: str = os.getenv("AUTH_API_KEY", "")

    # Single-user deployments resolve every request to this user
    DEFAULT_USER_ID: int = int(os.getenv("DEFAULT_USER_ID", "1"))

    # Scheduler cadence
    SCHEDULER_ENABLED: bool = _parse_bool(os.getenv("SCHEDULER_ENABLED"), default=True)
    REFRESH_TICK_MINUTES: int = int(os.getenv("REFRESH_TICK_MINUTES", "5"))
    REFRESH_BATCH_SIZE: int = int(os.getenv("REFRESH_BATCH_SIZE", "10"))
    INTER_FEED_DELAY_SECONDS: float = float(os.getenv("INTER_FEED_DELAY_SECONDS", "1.0"))
    WARM_START_DELAY_SECONDS: float = float(os.getenv("WARM_START_DELAY_SECONDS", "10"))
    MAINTENANCE_HOUR: int = int(os.getenv("MAINTENANCE_HOUR", "3"))

    # Outbound fetching
    FEED_TIMEOUT_SECONDS: float = float(os.getenv("FEED_TIMEOUT_SECONDS", "30"))
    READABILITY_TIMEOUT_SECONDS: float = float(os.getenv("READABILITY_TIMEOUT_SECONDS", "15"))
    READABILITY_ON_INGEST: bool = _parse_bool(os.getenv("READABILITY_ON_INGEST"), default=False)
    HTTP_RETRIES: int = int(os.getenv("HTTP_RETRIES", "2"))
    HTTP_BASE_DELAY_MS: int = int(os.getenv("HTTP_BASE_DELAY_MS", "300"))
    HTTP_MAX_DELAY_MS: int = int(os.getenv("HTTP_MAX_DELAY_MS", "2000"))
    HTTP_POOL_LIMIT: int = int(os.getenv("HTTP_POOL_LIMIT", "50"))
    HTTP_POOL_LIMIT_PER_HOST: int = int(os.getenv("HTTP_POOL_LIMIT_PER_HOST", "10"))
    HTTP_KEEPALIVE_SECONDS: float = float(os.getenv("HTTP_KEEPALIVE_SECONDS", "60"))
    USER_AGENT: str = os.getenv(
        "USER_AGENT",
        "FeedSync/1.0 (Feed Reader) Mozilla/5.0 (compatible)",
    )


config = Config()


class AppState:
    """Shared application state, populated by the server lifespan."""
    db: "Database | None" = None
    transport: "HttpTransport | None" = None
    assets: "AssetCache | None" = None
    broker: "ChangeBroker | None" = None
    feeds: "FeedService | None" = None
    sync: "SyncService | None" = None
    retention: "RetentionEngine | None" = None
    maintenance: "MaintenanceService | None" = None
    scheduler: "FeedScheduler | None" = None


state = AppState()


def get_db() -> "Database":
    """Dependency to get database instance."""
    if not state.db:
        raise HTTPException(status_code=500, detail="Database not initialized")
    return state.db


def get_user_id() -> int:
    """Dependency resolving the acting user (single-user deployments)."""
    return config.DEFAULT_USER_ID
