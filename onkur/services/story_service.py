"""
Story Service - volunteer impact stories and their moderation transitions
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from onkur.db.database import transaction
from onkur.db.models import EventStory, User
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.domain.statuses import ModerationStatus
from onkur.errors import NotFoundError, ValidationError
from onkur.services.analytics_service import (
    METRIC_STORIES_PUBLISHED, METRIC_STORIES_REJECTED, METRIC_STORIES_SUBMITTED,
    METRIC_STORY_VIEWS, analytics_service,
)
from onkur.services.auth_service import Actor
from onkur.services.event_service import event_service
from onkur.services.gallery_service import gallery_service, moderation_time_ms
from onkur.services.notifications import cta
from onkur.services.sponsor_service import sponsor_service

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 6
MIN_BODY_LENGTH = 40


def serialize_story(story: EventStory, author_name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": story.id,
        "event_id": story.event_id,
        "author_id": story.author_id,
        "author_name": author_name,
        "title": story.title,
        "body": story.body,
        "status": story.status,
        "rejection_reason": story.rejection_reason,
        "published_at": story.published_at,
        "moderation_time_ms": story.moderation_time_ms,
        "created_at": story.created_at,
    }


class StoryService:
    """Service for impact stories"""

    def submit_story(self, db: Session, actor: Actor, event_id: int, title: str, body: str) -> Outcome:
        title = (title or "").strip()
        body = (body or "").strip()
        if len(title) < MIN_TITLE_LENGTH:
            raise ValidationError(f"Story title must be at least {MIN_TITLE_LENGTH} characters")
        if len(body) < MIN_BODY_LENGTH:
            raise ValidationError(f"Story body must be at least {MIN_BODY_LENGTH} characters")

        with transaction(db):
            event = event_service.get_event(db, event_id)
            gallery_service.ensure_uploader_is_participant(db, event, actor)
            story = EventStory(
                event_id=event.id,
                author_id=actor.id,
                title=title,
                body=body,
                status=ModerationStatus.PENDING.value,
            )
            db.add(story)
            db.flush()
            analytics_service.increment_daily_metric(db, METRIC_STORIES_SUBMITTED)

        logger.info(f"Story {story.id} submitted for event {event_id} by {actor.id}")
        receipt = None
        if actor.email:
            receipt = EmailMessage(
                to=actor.email,
                subject="Your impact story is pending review",
                heading="Thanks for sharing your story",
                body_lines=[
                    f'We received "{story.title}" for {event.title}.',
                    "Our moderators will review it shortly.",
                ],
            )
        return outcome(serialize_story(story, actor.name), receipt)

    def get_story(self, db: Session, story_id: int) -> EventStory:
        story = db.query(EventStory).filter(EventStory.id == story_id).first()
        if not story:
            raise NotFoundError("Story not found")
        return story

    def lock_story(self, db: Session, story_id: int) -> EventStory:
        story = (
            db.query(EventStory)
            .filter(EventStory.id == story_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not story:
            raise NotFoundError("Story not found")
        return story

    def list_event_stories(self, db: Session, event_id: int, limit: int = 12) -> List[Dict[str, Any]]:
        with transaction(db):
            event_service.get_event(db, event_id)
            rows = (
                db.query(EventStory, User.name)
                .outerjoin(User, User.id == EventStory.author_id)
                .filter(
                    EventStory.event_id == event_id,
                    EventStory.status == ModerationStatus.APPROVED.value,
                )
                .order_by(EventStory.published_at.desc(), EventStory.id.desc())
                .limit(min(max(limit, 1), 50))
                .all()
            )
            if rows:
                analytics_service.increment_daily_metric(db, METRIC_STORY_VIEWS, len(rows))
        return [serialize_story(story, name) for story, name in rows]

    def list_pending_stories(self, db: Session, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        page, page_size = max(page, 1), min(max(page_size, 1), 50)
        query = db.query(EventStory).filter(EventStory.status == ModerationStatus.PENDING.value)
        total = query.count()
        rows = query.order_by(EventStory.created_at.asc(), EventStory.id.asc()).offset(
            (page - 1) * page_size
        ).limit(page_size).all()
        return {
            "items": [serialize_story(story) for story in rows],
            "page": page,
            "page_size": page_size,
            "total": total,
        }

    def set_story_status(
        self,
        db: Session,
        story_id: int,
        status: ModerationStatus,
        moderator_id: Optional[int],
        reason: Optional[str] = None
    ) -> EventStory:
        """Apply a moderation status inside the caller's transaction"""
        story = self.lock_story(db, story_id)
        now = utcnow()
        first_decision = story.status == ModerationStatus.PENDING.value and status != ModerationStatus.PENDING
        if first_decision:
            story.moderation_time_ms = moderation_time_ms(story, now)

        previous = story.status
        story.status = status.value
        if status == ModerationStatus.APPROVED:
            story.approved_by = moderator_id
            story.approved_at = now
            story.published_at = story.published_at or now
            story.rejection_reason = None
            if previous != status.value:
                analytics_service.increment_daily_metric(db, METRIC_STORIES_PUBLISHED)
        elif status == ModerationStatus.REJECTED:
            story.approved_by = None
            story.approved_at = None
            story.published_at = None
            story.rejection_reason = (reason or "").strip() or None
            if previous != status.value:
                analytics_service.increment_daily_metric(db, METRIC_STORIES_REJECTED)
        db.flush()
        return story

    def decision_messages(self, db: Session, story: EventStory) -> List[EmailMessage]:
        event = event_service.get_event(db, story.event_id)
        author = db.query(User).filter(User.id == story.author_id).first() if story.author_id else None
        approved = story.status == ModerationStatus.APPROVED.value
        messages = []
        if author:
            messages.append(EmailMessage(
                to=author.email,
                subject="Your impact story is live" if approved else "Update on your impact story",
                heading="Story published" if approved else "Story not approved",
                body_lines=[
                    f'"{story.title}" is now featured on {event.title}.' if approved
                    else f'"{story.title}" for {event.title} was not approved.',
                    f"Moderator note: {story.rejection_reason}" if story.rejection_reason else "",
                ],
                cta=cta("Read the story", f"/events/{event.id}/stories") if approved else None,
            ))
        if approved:
            for sponsor in sponsor_service.list_approved_event_sponsors(db, event.id):
                profile = sponsor_service.get_profile(db, sponsor["sponsor_id"])
                contact = sponsor_service.contact_for(db, profile)
                messages.append(EmailMessage(
                    to=contact["email"],
                    subject=f"A new story from {event.title}",
                    heading="Your sponsorship in action",
                    body_lines=[
                        f"Hi {contact['name']},",
                        f'Volunteers shared "{story.title}" from {event.title}, an event you support.',
                    ],
                    cta=cta("Read the story", f"/events/{event.id}/stories"),
                ))
        return messages


# Singleton instance
story_service = StoryService()
