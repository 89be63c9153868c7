"""
Audit Service - append-only log of state-changing admin actions
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from onkur.db.models import AuditLog
from onkur.domain.snapshots import Snapshot

logger = logging.getLogger(__name__)


class AuditService:
    """Writes audit rows inside the caller's transaction"""

    def record(
        self,
        db: Session,
        actor_id: Optional[int],
        action: str,
        entity_type: str,
        entity_id: Any,
        before: Optional[Snapshot] = None,
        after: Optional[Snapshot] = None,
    ) -> AuditLog:
        entry = AuditLog(
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            before=before.to_dict() if before else None,
            after=after.to_dict() if after else None,
        )
        db.add(entry)
        db.flush()
        logger.info(f"Audit {action} on {entity_type}:{entity_id} by {actor_id}")
        return entry

    def list_logs(
        self,
        db: Session,
        entity_type: Optional[str] = None,
        entity_id: Optional[Any] = None,
        limit: int = 50
    ) -> List[Dict[str, Any]]:
        query = db.query(AuditLog)
        if entity_type:
            query = query.filter(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            query = query.filter(AuditLog.entity_id == str(entity_id))
        rows = query.order_by(AuditLog.id.desc()).limit(min(max(limit, 1), 200)).all()
        return [
            {
                "id": row.id,
                "actor_id": row.actor_id,
                "action": row.action,
                "entity_type": row.entity_type,
                "entity_id": row.entity_id,
                "before": row.before,
                "after": row.after,
                "created_at": row.created_at,
            }
            for row in rows
        ]


# Singleton instance
audit_service = AuditService()
