"""
Sponsors API - sponsor applications, pledges, dashboard and impact reports
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from onkur.dependencies import get_current_actor, get_db, require_roles
from onkur.domain.roles import Role
from onkur.services.auth_service import Actor
from onkur.services.notifications import notifier
from onkur.services.sponsor_service import serialize_profile, sponsor_service

logger = logging.getLogger(__name__)
router = APIRouter()

sponsor_only = require_roles(Role.SPONSOR)


class SponsorApplication(BaseModel):
    org_name: str
    logo_url: Optional[str] = None
    website: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    brand_assets: Optional[Dict[str, Any]] = None


class SponsorProfileUpdate(BaseModel):
    org_name: Optional[str] = None
    logo_url: Optional[str] = None
    website: Optional[str] = None
    contact_name: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    brand_assets: Optional[Dict[str, Any]] = None


class PledgeRequest(BaseModel):
    event_id: int
    type: str = Field(..., description="FUNDS or IN_KIND")
    amount: Optional[float] = None
    notes: Optional[str] = Field(None, max_length=1000)


@router.post("/apply", status_code=201)
async def apply_for_sponsor(
    request: SponsorApplication,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Any signed-in user can apply; the SPONSOR role is granted immediately"""
    result = sponsor_service.apply_for_sponsor(db, actor, request.model_dump())
    await notifier.dispatch(result.effects)
    return {"profile": result.value}


@router.get("/me")
async def my_profile(actor: Actor = Depends(sponsor_only), db: Session = Depends(get_db)):
    return {"profile": serialize_profile(sponsor_service.get_profile(db, actor.id))}


@router.patch("/me")
async def update_my_profile(
    request: SponsorProfileUpdate,
    actor: Actor = Depends(sponsor_only),
    db: Session = Depends(get_db)
):
    return {"profile": sponsor_service.update_profile(db, actor, request.model_dump(exclude_unset=True))}


@router.post("/sponsorships", status_code=201)
async def pledge(
    request: PledgeRequest,
    actor: Actor = Depends(sponsor_only),
    db: Session = Depends(get_db)
):
    result = sponsor_service.pledge(db, actor, request.event_id, request.type, request.amount, request.notes)
    await notifier.dispatch(result.effects)
    return {"sponsorship": result.value}


@router.get("/sponsorships")
async def my_sponsorships(actor: Actor = Depends(sponsor_only), db: Session = Depends(get_db)):
    return {"sponsorships": sponsor_service.list_sponsorships(db, actor.id)}


@router.get("/dashboard")
async def dashboard(actor: Actor = Depends(sponsor_only), db: Session = Depends(get_db)):
    return sponsor_service.get_sponsor_dashboard(db, actor.id)


@router.get("/reports")
async def reports(actor: Actor = Depends(sponsor_only), db: Session = Depends(get_db)):
    result = sponsor_service.get_sponsor_reports(db, actor.id)
    await notifier.dispatch(result.effects)
    return result.value
