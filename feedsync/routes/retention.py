"""
Retention routes: policy settings, preview and manual runs.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from ..auth import verify_api_key
from ..config import get_user_id
from ..schemas import (
    RetentionPreviewResponse,
    RetentionRunResponse,
    RetentionSettingsResponse,
    RetentionSettingsUpdate,
)
from ..services import RetentionEngineDep

router = APIRouter(prefix="/retention", tags=["retention"], dependencies=[Depends(verify_api_key)])

UserIdDep = Annotated[int, Depends(get_user_id)]


@router.get("")
async def get_retention(engine: RetentionEngineDep, user_id: UserIdDep) -> RetentionSettingsResponse:
    return RetentionSettingsResponse.from_settings(
        engine.get_policy(user_id), engine.get_caps(user_id)
    )


@router.put("")
async def update_retention(
    request: RetentionSettingsUpdate,
    engine: RetentionEngineDep,
    user_id: UserIdDep,
) -> RetentionSettingsResponse:
    """Merge the given fields onto the current policy and caps."""
    policy = engine.get_policy(user_id)
    caps = engine.get_caps(user_id)
    if request.policy:
        policy = engine.update_policy(user_id, request.policy.model_dump(exclude_none=True))
    if request.caps:
        caps = engine.update_caps(user_id, request.caps.model_dump(exclude_none=True))
    return RetentionSettingsResponse.from_settings(policy, caps)


@router.get("/preview")
async def preview_retention(engine: RetentionEngineDep, user_id: UserIdDep) -> RetentionPreviewResponse:
    """What a run would delete right now."""
    return RetentionPreviewResponse.from_preview(engine.preview(user_id))


@router.post("/run")
async def run_retention(engine: RetentionEngineDep, user_id: UserIdDep) -> RetentionRunResponse:
    return RetentionRunResponse.from_result(engine.enforce(user_id))
