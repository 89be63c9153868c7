"""
Analytics Service - daily counters, admin overview and impact analytics
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from onkur.db.database import upsert
from onkur.db.models import (
    AnalyticsDaily, AuditLog, Event, EventGalleryMetrics, EventMedia, EventSignup,
    EventStory, SponsorProfile, Sponsorship, User, UserRole, VolunteerHours,
)
from onkur.domain.clock import utcnow
from onkur.domain.statuses import ModerationStatus, SponsorStatus
from onkur.errors import ValidationError

logger = logging.getLogger(__name__)

METRIC_STORIES_SUBMITTED = "stories_submitted"
METRIC_STORIES_PUBLISHED = "stories_published"
METRIC_STORIES_REJECTED = "stories_rejected"
METRIC_STORY_VIEWS = "story_views"
METRIC_DASHBOARD_VIEWS = "analytics_dashboard_views"

TREND_METRICS = (
    METRIC_STORIES_SUBMITTED,
    METRIC_STORIES_PUBLISHED,
    METRIC_STORIES_REJECTED,
    METRIC_STORY_VIEWS,
)


def compute_retention_change(active: int, previous: int) -> Optional[float]:
    """Percent change of active volunteers against the prior window"""
    if not previous:
        return None
    return round((active - previous) / previous * 100, 2)


class AnalyticsService:
    """Service for counters and aggregate reporting"""

    def increment_daily_metric(
        self, db: Session, metric_key: str, amount: int = 1, on: Optional[date] = None
    ) -> None:
        """Add to a daily counter inside the caller's transaction"""
        if not metric_key:
            raise ValidationError("Metric key is required")
        on = on or utcnow().date()
        amount = int(amount)
        upsert(
            db, AnalyticsDaily,
            {"metric_date": on, "metric_key": metric_key, "value": amount},
            keys=("metric_date", "metric_key"),
            updates={"value": AnalyticsDaily.value + amount},
        )

    def list_recent_metrics(
        self, db: Session, metric_keys: Iterable[str] = (), days: int = 30
    ) -> List[Dict[str, Any]]:
        since = utcnow().date() - timedelta(days=max(days, 1))
        query = db.query(AnalyticsDaily).filter(AnalyticsDaily.metric_date >= since)
        keys = list(metric_keys)
        if keys:
            query = query.filter(AnalyticsDaily.metric_key.in_(keys))
        rows = query.order_by(AnalyticsDaily.metric_date.asc(), AnalyticsDaily.metric_key.asc()).all()
        return [
            {"date": row.metric_date.isoformat(), "metric_key": row.metric_key, "value": row.value}
            for row in rows
        ]

    def get_overview_metrics(self, db: Session) -> Dict[str, Any]:
        week_ago = utcnow() - timedelta(days=7)
        role_counts = dict(
            db.query(UserRole.role, func.count(UserRole.user_id)).group_by(UserRole.role).all()
        )
        event_counts = dict(db.query(Event.status, func.count(Event.id)).group_by(Event.status).all())
        pending_events = db.query(func.count(Event.id)).filter(
            Event.approval_status == ModerationStatus.PENDING.value
        ).scalar() or 0
        sponsor_counts = dict(
            db.query(SponsorProfile.status, func.count(SponsorProfile.user_id))
            .group_by(SponsorProfile.status).all()
        )
        media_counts = dict(db.query(EventMedia.status, func.count(EventMedia.id)).group_by(EventMedia.status).all())

        return {
            "users": {
                "total": db.query(func.count(User.id)).scalar() or 0,
                "active": db.query(func.count(User.id)).filter(User.is_active.is_(True)).scalar() or 0,
                "by_role": role_counts,
            },
            "events": {
                "by_status": event_counts,
                "pending_approval": pending_events,
            },
            "volunteers": {
                "total_signups": db.query(func.count(EventSignup.id)).scalar() or 0,
                "total_minutes": int(db.query(func.coalesce(func.sum(VolunteerHours.minutes), 0)).scalar() or 0),
            },
            "sponsors": {
                "by_status": sponsor_counts,
                "approved_funds": float(
                    db.query(func.coalesce(func.sum(Sponsorship.amount), 0))
                    .filter(Sponsorship.status == SponsorStatus.APPROVED.value).scalar() or 0
                ),
            },
            "gallery": {
                "by_status": media_counts,
                "total_views": int(db.query(func.coalesce(func.sum(EventGalleryMetrics.view_count), 0)).scalar() or 0),
            },
            "audits_last_7_days": db.query(func.count(AuditLog.id)).filter(
                AuditLog.created_at >= week_ago
            ).scalar() or 0,
        }

    def get_impact_analytics(self, db: Session, days: int = 30) -> Dict[str, Any]:
        now = utcnow()
        stories = dict(db.query(EventStory.status, func.count(EventStory.id)).group_by(EventStory.status).all())

        total_minutes = int(db.query(func.coalesce(func.sum(VolunteerHours.minutes), 0)).scalar() or 0)
        active_90 = db.query(func.count(distinct(VolunteerHours.user_id))).filter(
            VolunteerHours.created_at >= now - timedelta(days=90)
        ).scalar() or 0
        previous_90 = db.query(func.count(distinct(VolunteerHours.user_id))).filter(
            VolunteerHours.created_at >= now - timedelta(days=180),
            VolunteerHours.created_at < now - timedelta(days=90),
        ).scalar() or 0

        participation = db.query(
            func.count(EventSignup.id),
            func.count(distinct(EventSignup.user_id)),
            func.count(distinct(EventSignup.event_id)),
        ).one()

        approved_media = db.query(func.count(EventMedia.id)).filter(
            EventMedia.status == ModerationStatus.APPROVED.value
        ).scalar() or 0
        gallery_views, tracked_events = db.query(
            func.coalesce(func.sum(EventGalleryMetrics.view_count), 0),
            func.count(EventGalleryMetrics.event_id),
        ).one()

        approved_sponsorships, approved_amount = db.query(
            func.count(Sponsorship.id), func.coalesce(func.sum(Sponsorship.amount), 0)
        ).filter(Sponsorship.status == SponsorStatus.APPROVED.value).one()

        return {
            "stories": {
                "pending": stories.get(ModerationStatus.PENDING.value, 0),
                "approved": stories.get(ModerationStatus.APPROVED.value, 0),
                "rejected": stories.get(ModerationStatus.REJECTED.value, 0),
            },
            "volunteer_hours": {
                "total_minutes": total_minutes,
                "total_hours": round(total_minutes / 60, 2),
                "active_last_90_days": active_90,
                "previous_90_days": previous_90,
                "retention_change": compute_retention_change(active_90, previous_90),
            },
            "participation": {
                "total_signups": participation[0] or 0,
                "unique_volunteers": participation[1] or 0,
                "events_supported": participation[2] or 0,
            },
            "gallery": {
                "total_views": int(gallery_views or 0),
                "tracked_events": tracked_events or 0,
                "approved_media": approved_media,
            },
            "sponsors": {
                "approved_sponsorships": approved_sponsorships or 0,
                "approved_amount": float(approved_amount or 0),
            },
            "trends": self.list_recent_metrics(db, TREND_METRICS, days),
        }


# Singleton instance
analytics_service = AnalyticsService()
