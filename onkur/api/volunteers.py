"""
Volunteer API - profile, dashboard, my events, self-reported hours and badges
"""
import logging
from typing import List, Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from onkur.dependencies import get_current_actor, get_db, require_roles
from onkur.domain.roles import Role
from onkur.services.attendance_service import attendance_service
from onkur.services.auth_service import Actor
from onkur.services.enrollment_service import enrollment_service
from onkur.services.volunteer_service import volunteer_service

logger = logging.getLogger(__name__)
router = APIRouter()

volunteer_only = require_roles(Role.VOLUNTEER)


class HoursRequest(BaseModel):
    event_id: Optional[int] = Field(None, description="Event the time was spent on")
    minutes: float
    note: Optional[str] = Field(None, max_length=500)


class ProfileRequest(BaseModel):
    skills: Optional[Union[List[str], str]] = None
    interests: Optional[Union[List[str], str]] = None
    availability: Optional[Union[List[str], str]] = None
    location: Optional[str] = Field(None, max_length=120)
    state: Optional[str] = Field(None, max_length=120)
    bio: Optional[str] = Field(None, max_length=2000)


@router.get("/signups")
async def my_signups(actor: Actor = Depends(volunteer_only), db: Session = Depends(get_db)):
    return {"signups": enrollment_service.list_my_signups(db, actor)}


@router.get("/hours")
async def my_hours(actor: Actor = Depends(volunteer_only), db: Session = Depends(get_db)):
    """Hours ledger with totals and earned badges"""
    return attendance_service.get_volunteer_hours(db, actor.id)


@router.post("/hours", status_code=201)
async def log_hours(
    request: HoursRequest,
    actor: Actor = Depends(volunteer_only),
    db: Session = Depends(get_db)
):
    entry = attendance_service.record_volunteer_hours(
        db, actor, request.event_id, request.minutes, request.note
    )
    return {"entry": entry}


@router.get("/me/profile")
async def my_profile(actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return {
        "profile": volunteer_service.get_profile(db, actor.id),
        "catalogs": volunteer_service.get_profile_catalogs(db),
    }


@router.put("/me/profile")
async def update_my_profile(
    request: ProfileRequest,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    return {"profile": volunteer_service.update_profile(db, actor, request.model_dump())}


@router.get("/me/dashboard")
async def my_dashboard(actor: Actor = Depends(volunteer_only), db: Session = Depends(get_db)):
    """Profile, upcoming and past events, hours totals and badges in one call"""
    return volunteer_service.get_dashboard(db, actor)
