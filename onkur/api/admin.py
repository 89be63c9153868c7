"""
Admin API - moderation, sponsorship approvals, users, analytics and exports
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from onkur.db.database import transaction
from onkur.dependencies import get_db, require_roles
from onkur.domain.roles import Role
from onkur.services.analytics_service import METRIC_DASHBOARD_VIEWS, analytics_service
from onkur.services.audit_service import audit_service
from onkur.services.auth_service import Actor, auth_service
from onkur.services.export_service import export_service
from onkur.services.moderation_service import moderation_service
from onkur.services.notifications import notifier
from onkur.services.sponsor_service import sponsor_service

logger = logging.getLogger(__name__)
router = APIRouter()

admin_only = require_roles(Role.ADMIN)


class ModerationRequest(BaseModel):
    note: Optional[str] = Field(None, max_length=1000, description="Reviewer note or rejection reason")


class SponsorshipDecision(BaseModel):
    status: str = Field(..., description="APPROVED or DECLINED")


class RolesRequest(BaseModel):
    roles: List[str]


class ActivationRequest(BaseModel):
    is_active: bool


# ============================================================
# MODERATION
# ============================================================

@router.get("/moderation/{entity_type}")
async def moderation_queue(entity_type: str, actor: Actor = Depends(admin_only), db: Session = Depends(get_db)):
    """Pending items for event, sponsor, media or story"""
    return {"entity_type": entity_type, "queue": moderation_service.get_moderation_queue(db, entity_type)}


@router.post("/moderation/{entity_type}/{entity_id}/approve")
async def approve(
    entity_type: str,
    entity_id: int,
    request: Optional[ModerationRequest] = None,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    result = moderation_service.approve(db, entity_type, entity_id, actor, request.note if request else None)
    await notifier.dispatch(result.effects)
    return {"entity": result.value}


@router.post("/moderation/{entity_type}/{entity_id}/reject")
async def reject(
    entity_type: str,
    entity_id: int,
    request: Optional[ModerationRequest] = None,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    result = moderation_service.reject(db, entity_type, entity_id, actor, request.note if request else None)
    await notifier.dispatch(result.effects)
    return {"entity": result.value}


@router.get("/sponsorships/pending")
async def pending_sponsorships(actor: Actor = Depends(admin_only), db: Session = Depends(get_db)):
    return {"sponsorships": sponsor_service.list_pending_sponsorships(db)}


@router.post("/sponsorships/{sponsorship_id}/status")
async def decide_sponsorship(
    sponsorship_id: int,
    request: SponsorshipDecision,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    result = sponsor_service.update_sponsorship_approval(db, actor, sponsorship_id, request.status)
    await notifier.dispatch(result.effects)
    return {"sponsorship": result.value}


@router.get("/audit-logs")
async def audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return {"logs": audit_service.list_logs(db, entity_type, entity_id, limit)}


# ============================================================
# USERS
# ============================================================

@router.get("/users")
async def list_users(
    search: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return {"users": auth_service.list_users(db, search, role, limit, offset)}


@router.put("/users/{user_id}/roles")
async def set_roles(
    user_id: int,
    request: RolesRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    result = auth_service.assign_roles(db, actor, user_id, request.roles)
    await notifier.dispatch(result.effects)
    return {"user": result.value}


@router.put("/users/{user_id}/active")
async def set_active(
    user_id: int,
    request: ActivationRequest,
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    return {"user": auth_service.set_user_active(db, actor, user_id, request.is_active)}


# ============================================================
# ANALYTICS & EXPORTS
# ============================================================

@router.get("/overview")
async def overview(actor: Actor = Depends(admin_only), db: Session = Depends(get_db)):
    return analytics_service.get_overview_metrics(db)


@router.get("/analytics/impact")
async def impact_analytics(
    days: int = Query(30, ge=1, le=365),
    actor: Actor = Depends(admin_only),
    db: Session = Depends(get_db)
):
    with transaction(db):
        analytics_service.increment_daily_metric(db, METRIC_DASHBOARD_VIEWS)
    return analytics_service.get_impact_analytics(db, days)


@router.get("/analytics/impact/export")
async def export_impact(actor: Actor = Depends(admin_only), db: Session = Depends(get_db)):
    return Response(
        content=export_service.export_impact_report(db),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="onkur-impact.csv"'},
    )


@router.get("/exports/{entity}")
async def export_entities(entity: str, actor: Actor = Depends(admin_only), db: Session = Depends(get_db)):
    return Response(
        content=export_service.export_entities(db, entity),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="onkur-{entity}.csv"'},
    )
