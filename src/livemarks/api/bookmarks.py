"""Bookmark endpoints, scoped to the calling owner."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field, ValidationError

from ..core.store import BookmarkNotFoundError, StoreError
from ..models.bookmark import Bookmark, NewBookmark
from .dependencies import require_owner

logger = logging.getLogger(__name__)

router = APIRouter()


class UpdateBookmarkRequest(BaseModel):
    """Request model for updating a bookmark."""

    title: Optional[str] = Field(None, max_length=500)
    url: Optional[str] = Field(None, max_length=2048)


@router.get("/bookmarks", response_model=dict)
async def list_bookmarks(owner_id: str = Depends(require_owner)):
    """List the caller's bookmarks, newest first."""
    try:
        from . import store

        bookmarks = await store.select_all(owner_id)
        return {"bookmarks": bookmarks, "total": len(bookmarks)}

    except StoreError as e:
        logger.error(f"Failed to list bookmarks for {owner_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")


@router.post("/bookmarks", response_model=Bookmark, status_code=201)
async def create_bookmark(request: NewBookmark, owner_id: str = Depends(require_owner)):
    """Create a bookmark owned by the caller."""
    if request.user_id != owner_id:
        raise HTTPException(status_code=403, detail="Cannot create bookmarks for another owner")

    try:
        from . import store

        return await store.insert(request)

    except StoreError as e:
        logger.error(f"Failed to create bookmark for {owner_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")


@router.patch("/bookmarks/{bookmark_id}", response_model=Bookmark)
async def update_bookmark(
    bookmark_id: str,
    request: UpdateBookmarkRequest,
    owner_id: str = Depends(require_owner),
):
    """Change a bookmark's title and/or url."""
    try:
        from . import store

        return await store.update(
            bookmark_id,
            title=request.title,
            url=request.url,
            owner_id=owner_id,
        )

    except BookmarkNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except StoreError as e:
        logger.error(f"Failed to update bookmark {bookmark_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")


@router.delete("/bookmarks/{bookmark_id}", status_code=204)
async def delete_bookmark(bookmark_id: str, owner_id: str = Depends(require_owner)):
    """Delete one of the caller's bookmarks."""
    try:
        from . import store

        await store.delete_by_id(bookmark_id, owner_id=owner_id)
        return Response(status_code=204)

    except BookmarkNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StoreError as e:
        logger.error(f"Failed to delete bookmark {bookmark_id}: {e}")
        raise HTTPException(status_code=500, detail=f"Storage error: {e}")
