"""
Impact API - volunteer stories
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from onkur.dependencies import get_current_actor, get_db
from onkur.services.auth_service import Actor
from onkur.services.notifications import notifier
from onkur.services.story_service import story_service

logger = logging.getLogger(__name__)
router = APIRouter()


class StorySubmission(BaseModel):
    title: str
    body: str


@router.post("/events/{event_id}/stories", status_code=201)
async def submit_story(
    event_id: int,
    request: StorySubmission,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    result = story_service.submit_story(db, actor, event_id, request.title, request.body)
    await notifier.dispatch(result.effects)
    return {"story": result.value}


@router.get("/events/{event_id}/stories")
async def event_stories(event_id: int, db: Session = Depends(get_db)):
    return {"stories": story_service.list_event_stories(db, event_id)}
