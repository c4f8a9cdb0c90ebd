"""
Sync routes: delta pull and read-state push.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from ..auth import verify_api_key
from ..config import get_user_id
from ..schemas import PushCounts, SyncPushRequest, SyncPushResponse, SyncResponse
from ..services import SyncServiceDep

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[Depends(verify_api_key)])


@router.get("")
async def get_changes(
    service: SyncServiceDep,
    user_id: Annotated[int, Depends(get_user_id)],
    cursor: str | None = None,
    include: str = Query(default="feeds,folders,articles,read_state"),
) -> SyncResponse:
    """Changes since the cursor plus the cursor to send next time."""
    return SyncResponse.from_result(service.get_changes(user_id, cursor, include))


@router.post("/push")
async def push_changes(
    request: SyncPushRequest,
    service: SyncServiceDep,
    user_id: Annotated[int, Depends(get_user_id)],
) -> SyncPushResponse:
    """Apply client read-state changes, counting each one independently."""
    result = service.push_changes(
        user_id, [(change.article_id, change.is_read) for change in request.read_state]
    )
    return SyncPushResponse(read_state=PushCounts(accepted=result.accepted, rejected=result.rejected))
