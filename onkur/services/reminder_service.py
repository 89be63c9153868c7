"""
Reminder Service - day-before reminders for registered volunteers

Claiming a signup and marking its reminder as sent happen in the same UPDATE,
so overlapping runs never both pick the same signup.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from onkur.config import settings
from onkur.db.database import SessionLocal, transaction
from onkur.db.models import Event, EventSignup, User
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage
from onkur.domain.statuses import EventStatus
from onkur.services.event_service import describe_location
from onkur.services.notifications import Notifier, cta, notifier

logger = logging.getLogger(__name__)


class ReminderService:
    """Finds due reminders, claims them and builds the emails"""

    def claim_due_reminders(self, db: Session, window_hours: Optional[int] = None) -> List[Dict[str, Any]]:
        now = utcnow()
        horizon = now + timedelta(hours=window_hours or settings.REMINDER_WINDOW_HOURS)
        due = (
            select(EventSignup.id)
            .join(Event, Event.id == EventSignup.event_id)
            .where(
                EventSignup.reminder_sent_at.is_(None),
                Event.status == EventStatus.PUBLISHED.value,
                Event.date_start > now,
                Event.date_start <= horizon,
            )
        )
        with transaction(db):
            claimed_ids = db.execute(
                update(EventSignup)
                .where(EventSignup.id.in_(due), EventSignup.reminder_sent_at.is_(None))
                .values(reminder_sent_at=now)
                .returning(EventSignup.id)
                .execution_options(synchronize_session=False)
            ).scalars().all()

        if not claimed_ids:
            return []
        rows = (
            db.query(EventSignup, Event, User)
            .join(Event, Event.id == EventSignup.event_id)
            .join(User, User.id == EventSignup.user_id)
            .filter(EventSignup.id.in_(claimed_ids))
            .all()
        )
        return [
            {"signup_id": signup.id, "event": event, "user": user}
            for signup, event, user in rows
        ]

    def build_message(self, event: Event, user: User) -> EmailMessage:
        return EmailMessage(
            to=user.email,
            subject=f"Reminder: {event.title} starts soon",
            heading="See you tomorrow!",
            body_lines=[
                f"Hi {user.name.split(' ')[0]},",
                f"{event.title} starts at {event.date_start.isoformat()} (UTC).",
                f"Location: {describe_location(event)}",
                "Thank you for volunteering with Onkur.",
            ],
            cta=cta("View event", f"/events/{event.id}"),
            preview_text=f"{event.title} starts within a day.",
        )

    async def dispatch_event_reminders(self, db: Session, sender: Optional[Notifier] = None) -> Dict[str, int]:
        claimed = self.claim_due_reminders(db)
        messages = [self.build_message(item["event"], item["user"]) for item in claimed]
        delivered = await (sender or notifier).dispatch(messages)
        if claimed:
            logger.info(f"Reminders: {len(claimed)} claimed, {delivered} delivered")
        return {"claimed": len(claimed), "delivered": delivered}


class ReminderScheduler:
    """Periodic in-process reminder loop with an explicit start/stop lifecycle"""

    def __init__(self, interval_seconds: Optional[int] = None, session_factory=SessionLocal):
        self.interval_seconds = interval_seconds or settings.REMINDER_INTERVAL_SECONDS
        self.session_factory = session_factory
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Dict[str, int]:
        db = self.session_factory()
        try:
            return await reminder_service.dispatch_event_reminders(db)
        finally:
            db.close()

    async def _loop(self) -> None:
        while True:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Reminder run failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())
        logger.info(f"Reminder scheduler started (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if not self._task:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Reminder scheduler stopped")


# Singleton instance
reminder_service = ReminderService()
