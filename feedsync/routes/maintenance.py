"""
Maintenance routes: storage statistics, optimize and compaction.
"""

from fastapi import APIRouter, Depends

from ..auth import verify_api_key
from ..schemas import (
    DatabaseStatsResponse,
    MaintenanceCheckResponse,
    MaintenanceResultResponse,
)
from ..services import MaintenanceServiceDep

router = APIRouter(prefix="/maintenance", tags=["maintenance"], dependencies=[Depends(verify_api_key)])


@router.get("/stats")
async def get_stats(service: MaintenanceServiceDep) -> DatabaseStatsResponse:
    return DatabaseStatsResponse.from_stats(service.stats())


@router.get("/check")
async def check_maintenance(service: MaintenanceServiceDep) -> MaintenanceCheckResponse:
    return MaintenanceCheckResponse.from_check(service.check())


@router.post("/optimize")
async def optimize(service: MaintenanceServiceDep) -> MaintenanceResultResponse:
    """ANALYZE + REINDEX. Safe to run anytime."""
    return MaintenanceResultResponse.from_result(service.optimize())


@router.post("/compact")
async def compact(service: MaintenanceServiceDep, force: bool = False) -> MaintenanceResultResponse:
    """Rewrite the database file; without force only when fragmentation warrants it."""
    return MaintenanceResultResponse.from_result(service.compact(force=force))
