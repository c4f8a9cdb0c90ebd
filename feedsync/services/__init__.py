"""
Service layer for business logic.

Services encapsulate business logic, keeping routes as thin HTTP adapters.
Each service receives its dependencies via constructor injection; the
server lifespan builds one of each and stores it on the app state.

Usage in routes:
    from ..services import SyncServiceDep

    @router.get("/sync")
    async def get_changes(service: SyncServiceDep, user_id: UserIdDep):
        return service.get_changes(user_id)
"""

from typing import Annotated

from fastapi import Depends, HTTPException

from ..config import state
from .feed_service import FeedService
from .maintenance_service import MaintenanceService
from .retention import RetentionEngine, RetentionPolicy, TypeRetentionCaps
from .sync_service import SyncCursor, SyncService

__all__ = [
    # Services
    "FeedService",
    "MaintenanceService",
    "RetentionEngine",
    "RetentionPolicy",
    "SyncCursor",
    "SyncService",
    "TypeRetentionCaps",
    # Dependency factories
    "get_feed_service",
    "get_maintenance_service",
    "get_retention_engine",
    "get_sync_service",
    # Type aliases for dependency injection
    "FeedServiceDep",
    "MaintenanceServiceDep",
    "RetentionEngineDep",
    "SyncServiceDep",
]


def _require(service, name: str):
    if service is None:
        raise HTTPException(status_code=500, detail=f"{name} not initialized")
    return service


def get_feed_service() -> FeedService:
    """Dependency to get FeedService instance."""
    return _require(state.feeds, "Feed service")


def get_sync_service() -> SyncService:
    """Dependency to get SyncService instance."""
    return _require(state.sync, "Sync service")


def get_retention_engine() -> RetentionEngine:
    """Dependency to get RetentionEngine instance."""
    return _require(state.retention, "Retention engine")


def get_maintenance_service() -> MaintenanceService:
    """Dependency to get MaintenanceService instance."""
    return _require(state.maintenance, "Maintenance service")


FeedServiceDep = Annotated[FeedService, Depends(get_feed_service)]
SyncServiceDep = Annotated[SyncService, Depends(get_sync_service)]
RetentionEngineDep = Annotated[RetentionEngine, Depends(get_retention_engine)]
MaintenanceServiceDep = Annotated[MaintenanceService, Depends(get_maintenance_service)]
