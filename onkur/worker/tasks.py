"""
Celery Tasks for background processing
"""
import asyncio
import logging

from celery import shared_task

from onkur.db.database import SessionLocal

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def dispatch_event_reminders(self):
    """
    Send day-before reminders.

    Claimed signups are marked sent in the same statement; failed runs are
    not retried.
    """
    from onkur.services.reminder_service import reminder_service

    db = SessionLocal()
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        result = loop.run_until_complete(reminder_service.dispatch_event_reminders(db))
        logger.info(f"Reminder dispatch completed: {result}")
        return result
    except Exception as e:
        logger.error(f"Reminder dispatch failed: {e}")
        raise
    finally:
        loop.close()
        db.close()
