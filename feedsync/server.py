"""
Feed Sync API Server

FastAPI application providing endpoints for:
- Incremental sync (delta pull, read-state push)
- Feed and folder management (subscribe, refresh, pause/resume)
- Retention policy and maintenance
- Cached icon and thumbnail serving
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from . import __version__
from .asset_cache import AssetCache
from .config import config, state
from .database import Database
from .events import ChangeBroker
from .http_client import HttpTransport, RetryPolicy
from .readability import ReadabilityExtractor
from .routes import (
    articles_router,
    feeds_router,
    icons_router,
    maintenance_router,
    misc_public_router,
    misc_router,
    retention_router,
    sync_router,
)
from .scheduler import FeedScheduler
from .services import FeedService, MaintenanceService, RetentionEngine, SyncService
from .tasks import FeedRefresher

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_state():
    """Wire the engine's components onto the shared app state."""
    state.db = Database(config.DB_PATH)
    state.db.users.ensure(config.DEFAULT_USER_ID)

    state.transport = HttpTransport(
        policy=RetryPolicy(
            retries=config.HTTP_RETRIES,
            base_delay_ms=config.HTTP_BASE_DELAY_MS,
            max_delay_ms=config.HTTP_MAX_DELAY_MS,
        ),
        timeout=config.FEED_TIMEOUT_SECONDS,
        pool_limit=config.HTTP_POOL_LIMIT,
        pool_limit_per_host=config.HTTP_POOL_LIMIT_PER_HOST,
        keepalive_seconds=config.HTTP_KEEPALIVE_SECONDS,
        user_agent=config.USER_AGENT,
    )
    state.broker = ChangeBroker()
    state.assets = AssetCache(config.ASSET_DIR, state.transport)

    refresher = FeedRefresher(
        state.db,
        state.transport,
        broker=state.broker,
        assets=state.assets,
        readability=ReadabilityExtractor(
            state.transport, timeout=config.READABILITY_TIMEOUT_SECONDS
        ),
        readability_on_ingest=config.READABILITY_ON_INGEST,
        feed_timeout=config.FEED_TIMEOUT_SECONDS,
    )
    state.maintenance = MaintenanceService(state.db)
    state.retention = RetentionEngine(state.db, maintenance=state.maintenance)
    state.sync = SyncService(state.db)
    state.feeds = FeedService(state.db, refresher, state.transport, broker=state.broker)
    state.scheduler = FeedScheduler(
        state.db,
        refresher,
        retention=state.retention,
        maintenance=state.maintenance,
        tick_minutes=config.REFRESH_TICK_MINUTES,
        batch_size=config.REFRESH_BATCH_SIZE,
        inter_feed_delay=config.INTER_FEED_DELAY_SECONDS,
        warm_start_delay=config.WARM_START_DELAY_SECONDS,
        maintenance_hour=config.MAINTENANCE_HOUR,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize and cleanup application resources."""
    # Startup - skip if already initialized (e.g., by tests)
    if state.db is None:
        build_state()
        logger.info(f"Database opened at {config.DB_PATH}")

        if config.SCHEDULER_ENABLED:
            await state.scheduler.start()
        else:
            logger.info("Scheduler disabled by configuration")

    yield

    # Shutdown
    if state.scheduler:
        try:
            await state.scheduler.stop()
        except Exception as e:
            logger.warning(f"Error stopping scheduler: {e}")
    if state.transport:
        await state.transport.close()


app = FastAPI(
    title="Feed Sync API",
    version=__version__,
    lifespan=lifespan
)

# Include routers
app.include_router(misc_public_router)
app.include_router(misc_router)
app.include_router(sync_router)
app.include_router(feeds_router)
app.include_router(articles_router)
app.include_router(retention_router)
app.include_router(maintenance_router)
app.include_router(icons_router)


def main():
    import uvicorn

    uvicorn.run(app, host="127.0.0.1", port=config.PORT)


if __name__ == "__main__":
    main()
