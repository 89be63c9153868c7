"""
Schema synchronisation executed at startup

create_all builds missing tables; the statements below bring tables created by
earlier releases up to date. Each statement is idempotent.
"""
import logging
from typing import List, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine

from onkur.db.database import Base
from onkur.db import models  # noqa: F401  registers tables on Base.metadata

logger = logging.getLogger(__name__)

# (description, statement)
POSTGRES_MIGRATIONS: List[Tuple[str, str]] = [
    (
        "Add approval columns to events",
        """
        ALTER TABLE events
            ADD COLUMN IF NOT EXISTS approval_status VARCHAR(20) NOT NULL DEFAULT 'PENDING',
            ADD COLUMN IF NOT EXISTS approval_note TEXT,
            ADD COLUMN IF NOT EXISTS approval_decided_at TIMESTAMP,
            ADD COLUMN IF NOT EXISTS approval_decided_by INTEGER REFERENCES users(id),
            ADD COLUMN IF NOT EXISTS submitted_at TIMESTAMP
        """,
    ),
    (
        "Replace events approval status constraint",
        """
        ALTER TABLE events DROP CONSTRAINT IF EXISTS events_approval_status_check;
        ALTER TABLE events ADD CONSTRAINT events_approval_status_check
            CHECK (approval_status IN ('PENDING', 'APPROVED', 'REJECTED'))
        """,
    ),
    (
        "Replace events status constraint",
        """
        ALTER TABLE events DROP CONSTRAINT IF EXISTS events_status_check;
        ALTER TABLE events ADD CONSTRAINT events_status_check
            CHECK (status IN ('DRAFT', 'PUBLISHED', 'CANCELLED', 'COMPLETED'))
        """,
    ),
    (
        "Add reminder tracking to event_signups",
        "ALTER TABLE event_signups ADD COLUMN IF NOT EXISTS reminder_sent_at TIMESTAMP",
    ),
    (
        "Add hours link to event_attendance",
        """
        ALTER TABLE event_attendance
            ADD COLUMN IF NOT EXISTS hours_entry_id INTEGER
                REFERENCES volunteer_hours(id) ON DELETE SET NULL
        """,
    ),
    (
        "Add report columns to sponsorships and sponsor_profiles",
        """
        ALTER TABLE sponsorships ADD COLUMN IF NOT EXISTS report_snapshot JSONB;
        ALTER TABLE sponsor_profiles ADD COLUMN IF NOT EXISTS last_report_sent_at TIMESTAMP
        """,
    ),
    (
        "Add moderation columns to event_media",
        """
        ALTER TABLE event_media
            ADD COLUMN IF NOT EXISTS rejection_reason TEXT,
            ADD COLUMN IF NOT EXISTS approved_by INTEGER REFERENCES users(id),
            ADD COLUMN IF NOT EXISTS approved_at TIMESTAMP,
            ADD COLUMN IF NOT EXISTS moderation_time_ms INTEGER
        """,
    ),
    (
        "Add moderation columns to event_stories",
        """
        ALTER TABLE event_stories
            ADD COLUMN IF NOT EXISTS rejection_reason TEXT,
            ADD COLUMN IF NOT EXISTS approved_by INTEGER REFERENCES users(id),
            ADD COLUMN IF NOT EXISTS approved_at TIMESTAMP,
            ADD COLUMN IF NOT EXISTS published_at TIMESTAMP,
            ADD COLUMN IF NOT EXISTS moderation_time_ms INTEGER
        """,
    ),
    (
        "Treat accounts created before email verification as verified",
        """
        UPDATE users SET email_verified_at = COALESCE(created_at, NOW())
        WHERE email_verified_at IS NULL
          AND NOT EXISTS (
              SELECT 1 FROM email_verification_tokens t WHERE t.user_id = users.id
          )
        """,
    ),
]


def run_migrations(engine: Engine) -> Tuple[int, int]:
    """Apply column/constraint migrations; returns (applied, failed)"""
    if engine.dialect.name != "postgresql":
        logger.info(f"Skipping column migrations on {engine.dialect.name}")
        return 0, 0

    applied = 0
    failed = 0
    for description, statement in POSTGRES_MIGRATIONS:
        try:
            with engine.begin() as conn:
                for part in statement.split(";"):
                    if part.strip():
                        conn.execute(text(part.strip()))
            logger.info(f"Migration applied: {description}")
            applied += 1
        except Exception as e:
            logger.error(f"Migration failed: {description}: {e}")
            failed += 1
    return applied, failed


def ensure_schema(engine: Engine) -> None:
    """Create missing tables, then apply idempotent column migrations"""
    Base.metadata.create_all(bind=engine)
    applied, failed = run_migrations(engine)
    if failed:
        raise RuntimeError(f"{failed} schema migration(s) failed")
    logger.info(f"Schema ready ({applied} migration statements checked)")
