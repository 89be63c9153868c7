"""
Gallery API - media submission, approved galleries and tag options
"""
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from onkur.dependencies import get_current_actor, get_db
from onkur.services.auth_service import Actor
from onkur.services.gallery_service import gallery_service
from onkur.services.notifications import notifier

logger = logging.getLogger(__name__)
router = APIRouter()


class MediaSubmission(BaseModel):
    """A photo already stored upstream"""
    url: str = Field(..., description="Public URL of the stored photo")
    storage_key: str = Field(..., description="Object storage key")
    mime_type: Optional[str] = None
    file_size: Optional[int] = Field(None, ge=0)
    caption: Optional[str] = None
    tags: Optional[List[Any]] = None


@router.get("/events")
async def galleries(db: Session = Depends(get_db)):
    return {"events": gallery_service.list_events_with_galleries(db)}


@router.get("/events/{event_id}")
async def event_gallery(
    event_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(12, ge=1, le=50),
    db: Session = Depends(get_db)
):
    return gallery_service.get_event_gallery(db, event_id, page, page_size)


@router.get("/events/{event_id}/tags")
async def tag_options(
    event_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    return gallery_service.get_tag_options(db, event_id)


@router.post("/events/{event_id}/media", status_code=201)
async def submit_media(
    event_id: int,
    request: MediaSubmission,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    result = gallery_service.register_media(
        db, actor, event_id, request.url, request.storage_key,
        request.mime_type, request.file_size, request.caption, request.tags,
    )
    await notifier.dispatch(result.effects)
    return {"media": result.value}
