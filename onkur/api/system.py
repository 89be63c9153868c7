"""
System Router - Health checks
"""
import logging

import redis
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from onkur.config import settings
from onkur.dependencies import get_db
from onkur.domain.clock import utcnow

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check(db: Session = Depends(get_db)):
    """Database and broker status"""
    database_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        database_status = "healthy"
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")

    redis_status = "unhealthy"
    try:
        redis.from_url(settings.REDIS_URL, socket_connect_timeout=1).ping()
        redis_status = "healthy"
    except Exception as e:
        logger.debug(f"Redis health check failed: {e}")

    return {
        "status": "ok" if database_status == "healthy" else "degraded",
        "database": database_status,
        "redis": redis_status,
        "timestamp": utcnow().isoformat(),
    }
