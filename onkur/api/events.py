"""
Events API - event authoring, lifecycle, signups, tasks, attendance and reports
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from onkur.dependencies import get_db, require_roles
from onkur.domain.roles import Role
from onkur.services.attendance_service import attendance_service
from onkur.services.auth_service import Actor
from onkur.services.enrollment_service import enrollment_service
from onkur.services.event_service import event_service
from onkur.services.notifications import notifier
from onkur.services.sponsor_service import sponsor_service

logger = logging.getLogger(__name__)
router = APIRouter()

manager_only = require_roles(Role.EVENT_MANAGER, Role.ADMIN)
volunteer_only = require_roles(Role.VOLUNTEER)


# ============================================================
# REQUEST MODELS
# ============================================================

class EventPayload(BaseModel):
    title: str
    description: str
    category: str
    date_start: datetime
    date_end: datetime
    capacity: int = Field(..., description="Number of volunteer slots")
    location: Optional[str] = None
    is_online: bool = False
    theme: Optional[str] = None
    requirements: Optional[str] = None


class EventUpdatePayload(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    date_start: Optional[datetime] = None
    date_end: Optional[datetime] = None
    capacity: Optional[int] = None
    location: Optional[str] = None
    is_online: Optional[bool] = None
    theme: Optional[str] = None
    requirements: Optional[str] = None


class TaskPayload(BaseModel):
    title: str
    description: Optional[str] = None
    required_count: int = 1


class TasksRequest(BaseModel):
    tasks: List[TaskPayload]


class AssignmentPayload(BaseModel):
    task_id: int
    user_id: int


class AssignmentsRequest(BaseModel):
    assignments: List[AssignmentPayload]


class AttendanceRequest(BaseModel):
    user_id: int
    action: str = Field(..., description="'check-in' or 'check-out'")
    minutes_override: Optional[float] = None


class CategoryRequest(BaseModel):
    label: Optional[str] = Field(None, max_length=100)
    value: Optional[str] = Field(None, max_length=100, description="Existing category key to relabel")


# ============================================================
# PUBLIC
# ============================================================

@router.get("")
async def list_events(
    category: Optional[str] = Query(None),
    q: Optional[str] = Query(None, description="Search title and description"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """Published, upcoming events with available slots"""
    return {"events": event_service.list_published_events(db, category, q, True, limit, offset)}


@router.get("/lookups")
async def event_lookups(db: Session = Depends(get_db)):
    """Categories, skills, interests, availability and states for event forms"""
    return event_service.get_event_lookups(db)


@router.get("/{event_id}")
async def get_event(event_id: int, db: Session = Depends(get_db)):
    return {
        "event": event_service.get_public_event(db, event_id),
        "sponsors": sponsor_service.list_approved_event_sponsors(db, event_id),
    }


# ============================================================
# VOLUNTEER ENROLLMENT
# ============================================================

@router.post("/{event_id}/signup", status_code=201)
async def signup_for_event(
    event_id: int,
    actor: Actor = Depends(volunteer_only),
    db: Session = Depends(get_db)
):
    result = enrollment_service.signup(db, actor, event_id)
    await notifier.dispatch(result.effects)
    return result.value


@router.delete("/{event_id}/signup")
async def leave_event(
    event_id: int,
    actor: Actor = Depends(volunteer_only),
    db: Session = Depends(get_db)
):
    result = enrollment_service.cancel(db, actor, event_id)
    await notifier.dispatch(result.effects)
    return result.value


# ============================================================
# EVENT MANAGEMENT
# ============================================================

@router.post("/categories", status_code=201)
async def save_category(
    request: CategoryRequest,
    actor: Actor = Depends(manager_only),
    db: Session = Depends(get_db)
):
    return {"category": event_service.save_category(db, request.label, request.value)}


@router.post("", status_code=201)
async def create_event(
    payload: EventPayload,
    actor: Actor = Depends(manager_only),
    db: Session = Depends(get_db)
):
    result = event_service.create_event(db, actor, payload.model_dump())
    await notifier.dispatch(result.effects)
    return {"event": result.value}


@router.get("/manage/mine")
async def my_managed_events(actor: Actor = Depends(manager_only), db: Session = Depends(get_db)):
    return {"events": event_service.list_manager_events(db, actor)}


@router.patch("/{event_id}")
async def update_event(
    event_id: int,
    payload: EventUpdatePayload,
    actor: Actor = Depends(manager_only),
    db: Session = Depends(get_db)
):
    return {"event": event_service.update_event(db, actor, event_id, payload.model_dump(exclude_unset=True))}


@router.post("/{event_id}/publish")
async def publish_event(event_id: int, actor: Actor = Depends(manager_only), db: Session = Depends(get_db)):
    result = event_service.publish_event(db, actor, event_id)
    await notifier.dispatch(result.effects)
    return {"event": result.value}


@router.post("/{event_id}/complete")
async def complete_event(event_id: int, actor: Actor = Depends(manager_only), db: Session = Depends(get_db)):
    return {"event": event_service.complete_event(db, actor, event_id)}


@router.post("/{event_id}/cancel")
async def cancel_event(event_id: int, actor: Actor = Depends(manager_only), db: Session = Depends(get_db)):
    result = event_service.cancel_event(db, actor, event_id)
    await notifier.dispatch(result.effects)
    return {"event": result.value}


@router.get("/{event_id}/overview")
async def event_overview(event_id: int, actor: Actor = Depends(manager_only), db: Session = Depends(get_db)):
    return event_service.get_event_overview(db, actor, event_id)


@router.put("/{event_id}/tasks")
async def replace_tasks(
    event_id: int,
    request: TasksRequest,
    actor: Actor = Depends(manager_only),
    db: Session = Depends(get_db)
):
    tasks = [task.model_dump() for task in request.tasks]
    return {"tasks": event_service.replace_tasks(db, actor, event_id, tasks)}


@router.post("/{event_id}/assignments")
async def assign_volunteers(
    event_id: int,
    request: AssignmentsRequest,
    actor: Actor = Depends(manager_only),
    db: Session = Depends(get_db)
):
    result = event_service.assign_volunteers(
        db, actor, event_id, [item.model_dump() for item in request.assignments]
    )
    await notifier.dispatch(result.effects)
    return {"assignments": result.value}


@router.get("/{event_id}/signups")
async def event_signups(event_id: int, actor: Actor = Depends(manager_only), db: Session = Depends(get_db)):
    event_service.ensure_can_manage(event_service.get_event(db, event_id), actor)
    return {"signups": event_service.list_signups(db, event_id)}


@router.post("/{event_id}/attendance")
async def record_attendance(
    event_id: int,
    request: AttendanceRequest,
    actor: Actor = Depends(manager_only),
    db: Session = Depends(get_db)
):
    result = attendance_service.record_attendance(
        db, actor, event_id, request.user_id, request.action, request.minutes_override
    )
    await notifier.dispatch(result.effects)
    return {"attendance": result.value}


@router.get("/{event_id}/report")
async def event_report(event_id: int, actor: Actor = Depends(manager_only), db: Session = Depends(get_db)):
    return event_service.build_report(db, actor, event_id)
