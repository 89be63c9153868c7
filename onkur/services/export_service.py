"""
Export Service - CSV downloads for admin reporting
"""
import csv
import io
import logging
from typing import Any, Callable, Dict, Iterable, List, Sequence

from sqlalchemy.orm import Session

from onkur.db.models import Event, EventMedia, Sponsorship, User
from onkur.errors import ValidationError
from onkur.services.analytics_service import analytics_service
from onkur.services.auth_service import serialize_user

logger = logging.getLogger(__name__)


def to_csv(columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(columns), extrasaction="ignore")
    writer.writeheader()
    for row in rows:
        writer.writerow({
            key: ";".join(map(str, value)) if isinstance(value, list)
            else value.isoformat() if hasattr(value, "isoformat")
            else "" if value is None else value
            for key, value in row.items()
        })
    return buffer.getvalue()


def _users(db: Session) -> List[Dict[str, Any]]:
    return [serialize_user(user) for user in db.query(User).order_by(User.id).all()]


def _events(db: Session) -> List[Dict[str, Any]]:
    return [
        {
            "id": e.id, "title": e.title, "category": e.category, "status": e.status,
            "approval_status": e.approval_status, "date_start": e.date_start,
            "date_end": e.date_end, "capacity": e.capacity, "created_by": e.created_by,
        }
        for e in db.query(Event).order_by(Event.id).all()
    ]


def _sponsorships(db: Session) -> List[Dict[str, Any]]:
    return [
        {
            "id": s.id, "sponsor_id": s.sponsor_id, "event_id": s.event_id, "type": s.type,
            "amount": float(s.amount) if s.amount is not None else None,
            "status": s.status, "approved_at": s.approved_at,
        }
        for s in db.query(Sponsorship).order_by(Sponsorship.id).all()
    ]


def _media(db: Session) -> List[Dict[str, Any]]:
    return [
        {
            "id": m.id, "event_id": m.event_id, "uploader_id": m.uploader_id, "status": m.status,
            "moderation_time_ms": m.moderation_time_ms, "created_at": m.created_at,
        }
        for m in db.query(EventMedia).order_by(EventMedia.id).all()
    ]


EXPORTS: Dict[str, tuple] = {
    "users": (("id", "name", "email", "role", "roles", "is_active", "created_at"), _users),
    "events": (
        ("id", "title", "category", "status", "approval_status", "date_start", "date_end",
         "capacity", "created_by"),
        _events,
    ),
    "sponsorships": (("id", "sponsor_id", "event_id", "type", "amount", "status", "approved_at"), _sponsorships),
    "media": (("id", "event_id", "uploader_id", "status", "moderation_time_ms", "created_at"), _media),
}


class ExportService:
    """Service for CSV exports"""

    def export_entities(self, db: Session, entity: str) -> str:
        spec = EXPORTS.get((entity or "").lower())
        if spec is None:
            raise ValidationError(f"Unsupported export: {entity}")
        columns, loader = spec
        rows = loader(db)
        logger.info(f"Exported {len(rows)} {entity} rows")
        return to_csv(columns, rows)

    def export_impact_report(self, db: Session) -> str:
        analytics = analytics_service.get_impact_analytics(db)
        rows = []
        for section in ("stories", "volunteer_hours", "participation", "gallery", "sponsors"):
            for metric, value in analytics[section].items():
                rows.append({"section": section, "metric": metric, "value": value})
        return to_csv(("section", "metric", "value"), rows)


# Singleton instance
export_service = ExportService()
