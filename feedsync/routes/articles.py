"""
Article routes: read state, bookmarks and on-demand full text.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from ..auth import verify_api_key
from ..config import get_user_id
from ..schemas import ArticleResponse, BookmarkRequest, MarkReadRequest
from ..services import FeedServiceDep

router = APIRouter(prefix="/articles", tags=["articles"], dependencies=[Depends(verify_api_key)])


@router.post("/{article_id}/read")
async def mark_read(
    article_id: int,
    service: FeedServiceDep,
    user_id: Annotated[int, Depends(get_user_id)],
    request: MarkReadRequest | None = None,
) -> dict:
    """Mark an article read or unread."""
    is_read = request.is_read if request else True
    service.mark_read(user_id, article_id, is_read)
    return {"success": True, "is_read": is_read}


@router.post("/{article_id}/bookmark")
async def set_bookmark(
    article_id: int,
    service: FeedServiceDep,
    user_id: Annotated[int, Depends(get_user_id)],
    request: BookmarkRequest | None = None,
) -> dict:
    """Bookmark or unbookmark an article."""
    is_bookmarked = request.is_bookmarked if request else True
    service.set_bookmark(user_id, article_id, is_bookmarked)
    return {"success": True, "is_bookmarked": is_bookmarked}


@router.post("/{article_id}/readability")
async def load_readability(
    article_id: int,
    service: FeedServiceDep,
    user_id: Annotated[int, Depends(get_user_id)],
) -> ArticleResponse:
    """
    Extract the article's full text from its page.

    Returns the article either way; readability_content stays empty when
    the page could not be fetched or yielded no readable content.
    """
    return ArticleResponse.from_db(await service.load_readability(user_id, article_id))
