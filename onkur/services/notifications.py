"""
Post-commit notification runner

Services return the emails they want sent; this runner attempts each one
after the transaction committed. A failed email is logged and dropped.
"""
import logging
from typing import Iterable

from onkur.config import settings
from onkur.domain.effects import Cta, EmailMessage
from onkur.services.email_service import email_service

logger = logging.getLogger(__name__)


def app_link(path: str) -> str:
    return f"{settings.APP_BASE_URL.rstrip('/')}/{path.lstrip('/')}"


def cta(label: str, path: str) -> Cta:
    return Cta(label=label, url=app_link(path))


class Notifier:
    """Runs email effects outside the database transaction"""

    def __init__(self, email=None):
        self.email = email or email_service

    async def dispatch(self, effects: Iterable[EmailMessage]) -> int:
        """Send every effect; returns how many were delivered"""
        delivered = 0
        for message in effects or []:
            try:
                await self.email.send_templated_email(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Notification to {message.to} failed ({message.subject}): {e}")
        return delivered


# Singleton instance
notifier = Notifier()
