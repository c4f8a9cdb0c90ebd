"""
Asset routes: cached feed icons and article thumbnails.

A cached file is served with a weak ETag built from its mtime and size.
Without a local copy the client is redirected to the remote URL.
"""

from email.utils import formatdate
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import FileResponse, RedirectResponse, Response

from ..asset_cache import ICONS, THUMBNAILS, AssetCache, resolve_mime
from ..auth import verify_api_key
from ..config import get_db, get_user_id, state
from ..database import Database

router = APIRouter(tags=["assets"], dependencies=[Depends(verify_api_key)])


def get_assets() -> AssetCache:
    if not state.assets:
        raise HTTPException(status_code=500, detail="Asset cache not initialized")
    return state.assets


AssetsDep = Annotated[AssetCache, Depends(get_assets)]
DbDep = Annotated[Database, Depends(get_db)]
UserIdDep = Annotated[int, Depends(get_user_id)]


def serve_cached(
    request: Request,
    assets: AssetCache,
    kind: str,
    cached_path: str | None,
    content_type: str | None,
    remote_url: str | None,
) -> Response:
    """Serve a cached asset, falling back to a redirect to the remote URL."""
    if cached_path:
        path = assets.path_for(kind, cached_path)
        if path is None:
            raise HTTPException(status_code=400, detail="Invalid asset path")
        if path.exists():
            stats = path.stat()
            etag = f'W/"{int(stats.st_mtime * 1000):x}-{stats.st_size:x}"'
            headers = {
                "ETag": etag,
                "Cache-Control": "public, max-age=0, must-revalidate",
                "Last-Modified": formatdate(stats.st_mtime, usegmt=True),
            }
            if request.headers.get("if-none-match") == etag:
                return Response(status_code=304, headers=headers)
            return FileResponse(
                path, media_type=resolve_mime(cached_path, content_type), headers=headers
            )

    if remote_url:
        return RedirectResponse(remote_url, status_code=302)
    raise HTTPException(status_code=404, detail="Asset not cached yet")


@router.get("/icons/{feed_id}")
async def get_icon(
    feed_id: int, request: Request, db: DbDep, assets: AssetsDep, user_id: UserIdDep
) -> Response:
    """Feed icon: cached file, else redirect to the remote icon."""
    feed = db.get_feed(feed_id)
    if not feed or feed.user_id != user_id or feed.deleted_at:
        raise HTTPException(status_code=404, detail="Icon not found")
    return serve_cached(
        request, assets, ICONS,
        feed.icon_cached_path, feed.icon_cached_content_type, feed.icon_url,
    )


@router.get("/thumbnails/{article_id}")
async def get_thumbnail(
    article_id: int, request: Request, db: DbDep, assets: AssetsDep, user_id: UserIdDep
) -> Response:
    """Article thumbnail: cached file, else redirect to the remote image."""
    article = db.articles.get_for_user(article_id, user_id)
    if not article:
        raise HTTPException(status_code=404, detail="Thumbnail not found")
    return serve_cached(
        request, assets, THUMBNAILS,
        article.thumbnail_cached_path, article.thumbnail_cached_content_type, article.thumbnail_url,
    )


@router.delete("/icons/{feed_id}")
async def clear_icon(feed_id: int, db: DbDep, assets: AssetsDep, user_id: UserIdDep) -> dict:
    """Drop one feed's cached icon so it is fetched again."""
    feed = db.get_feed(feed_id)
    if not feed or feed.user_id != user_id:
        raise HTTPException(status_code=404, detail="Feed not found")
    if feed.icon_cached_path:
        assets.remove(ICONS, feed.icon_cached_path)
    db.feeds.clear_icon_cache(feed_id)
    return {"success": True}


@router.delete("/icons")
async def clear_icons(db: DbDep, assets: AssetsDep) -> dict:
    """Drop every cached icon."""
    files = assets.clear(ICONS)
    feeds = db.feeds.clear_icon_cache()
    return {"success": True, "files_removed": files, "feeds_cleared": feeds}


@router.delete("/thumbnails")
async def clear_thumbnails(db: DbDep, assets: AssetsDep) -> dict:
    """Drop every cached thumbnail."""
    files = assets.clear(THUMBNAILS)
    articles = db.articles.clear_thumbnail_cache()
    return {"success": True, "files_removed": files, "articles_cleared": articles}
