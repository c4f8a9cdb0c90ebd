"""
Feed routes: subscription, OPML, settings, manual refresh, pause/resume, folders.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from ..auth import verify_api_key
from ..config import get_user_id
from ..schemas import (
    AddFeedRequest,
    FeedResponse,
    FolderRequest,
    FolderResponse,
    OPMLExportResponse,
    OPMLImportRequest,
    OPMLImportResponse,
    RefreshResponse,
    UpdateFeedRequest,
)
from ..services import FeedServiceDep

router = APIRouter(tags=["feeds"], dependencies=[Depends(verify_api_key)])

UserIdDep = Annotated[int, Depends(get_user_id)]


# ─────────────────────────────────────────────────────────────
# Feed Management
# ─────────────────────────────────────────────────────────────

@router.get("/feeds")
async def list_feeds(service: FeedServiceDep, user_id: UserIdDep) -> list[FeedResponse]:
    """List the user's live feeds."""
    return [FeedResponse.from_db(f) for f in service.list_feeds(user_id)]


@router.post("/feeds")
async def add_feed(
    request: AddFeedRequest,
    service: FeedServiceDep,
    user_id: UserIdDep,
) -> FeedResponse:
    """Subscribe to a new feed and fetch it once."""
    feed = await service.subscribe(
        user_id,
        request.url,
        title=request.title,
        folder_id=request.folder_id,
        refresh_interval_minutes=request.refresh_interval_minutes,
        discover=request.discover,
    )
    return FeedResponse.from_db(feed)


@router.post("/feeds/import-opml")
async def import_opml(
    request: OPMLImportRequest,
    service: FeedServiceDep,
    user_id: UserIdDep,
) -> OPMLImportResponse:
    """
    Import feeds from OPML content.

    Already subscribed URLs are skipped; outline folders become folders.
    """
    return OPMLImportResponse(**await service.import_opml(user_id, request.opml_content))


@router.get("/feeds/export-opml")
async def export_opml(service: FeedServiceDep, user_id: UserIdDep) -> OPMLExportResponse:
    """Export the user's feeds as OPML."""
    return OPMLExportResponse(**service.export_opml(user_id))


@router.put("/feeds/{feed_id}")
async def update_feed(
    feed_id: int,
    request: UpdateFeedRequest,
    service: FeedServiceDep,
    user_id: UserIdDep,
) -> FeedResponse:
    """Update a feed's title, folder or refresh interval."""
    feed = service.update_feed(
        user_id,
        feed_id,
        title=request.title,
        folder_id=request.folder_id,
        clear_folder=request.clear_folder,
        refresh_interval_minutes=request.refresh_interval_minutes,
    )
    return FeedResponse.from_db(feed)


@router.delete("/feeds/{feed_id}")
async def remove_feed(feed_id: int, service: FeedServiceDep, user_id: UserIdDep) -> dict:
    """Unsubscribe from a feed."""
    service.unsubscribe(user_id, feed_id)
    return {"success": True}


# ─────────────────────────────────────────────────────────────
# Refresh and scheduling state
# ─────────────────────────────────────────────────────────────

@router.post("/feeds/{feed_id}/refresh")
async def refresh_feed(feed_id: int, service: FeedServiceDep, user_id: UserIdDep) -> RefreshResponse:
    """Refresh a feed now and report the outcome."""
    result = await service.refresh_one(user_id, feed_id)
    return RefreshResponse.from_result(result)


@router.post("/feeds/{feed_id}/pause")
async def pause_feed(feed_id: int, service: FeedServiceDep, user_id: UserIdDep) -> FeedResponse:
    """Exclude a feed from scheduled refreshes."""
    return FeedResponse.from_db(service.pause_feed(user_id, feed_id))


@router.post("/feeds/{feed_id}/resume")
async def resume_feed(feed_id: int, service: FeedServiceDep, user_id: UserIdDep) -> FeedResponse:
    """Return a paused or failing feed to scheduling."""
    return FeedResponse.from_db(service.resume_feed(user_id, feed_id))


@router.post("/feeds/{feed_id}/read")
async def mark_feed_read(feed_id: int, service: FeedServiceDep, user_id: UserIdDep) -> dict:
    """Mark every article of a feed read."""
    count = service.mark_feed_read(user_id, feed_id)
    return {"success": True, "count": count}


# ─────────────────────────────────────────────────────────────
# Folders
# ─────────────────────────────────────────────────────────────

@router.get("/folders")
async def list_folders(service: FeedServiceDep, user_id: UserIdDep) -> list[FolderResponse]:
    return [FolderResponse.from_db(f) for f in service.list_folders(user_id)]


@router.post("/folders")
async def create_folder(
    request: FolderRequest, service: FeedServiceDep, user_id: UserIdDep
) -> FolderResponse:
    return FolderResponse.from_db(service.create_folder(user_id, request.name, request.position))


@router.put("/folders/{folder_id}")
async def rename_folder(
    folder_id: int, request: FolderRequest, service: FeedServiceDep, user_id: UserIdDep
) -> FolderResponse:
    return FolderResponse.from_db(service.rename_folder(user_id, folder_id, request.name))


@router.delete("/folders/{folder_id}")
async def delete_folder(folder_id: int, service: FeedServiceDep, user_id: UserIdDep) -> dict:
    """Delete a folder; its feeds move to the top level."""
    service.delete_folder(user_id, folder_id)
    return {"success": True}
