"""
Moderation Service - uniform approve/reject for events, sponsors, media and stories

Every decision follows the same steps inside one transaction: snapshot the
entity, apply the entity's own status transition, snapshot again and append
an audit row. Notifications are built and returned after the commit.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Type

from sqlalchemy.orm import Session

from onkur.db.database import transaction
from onkur.db.models import User
from onkur.domain import lifecycle
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.domain.snapshots import (
    EventSnapshot, MediaSnapshot, Snapshot, SponsorProfileSnapshot, StorySnapshot,
)
from onkur.domain.statuses import ApprovalStatus, ModerationStatus, SponsorStatus
from onkur.errors import ValidationError
from onkur.services.audit_service import audit_service
from onkur.services.auth_service import Actor
from onkur.services.event_service import apply_state, describe_location, event_service, state_of
from onkur.services.gallery_service import gallery_service
from onkur.services.notifications import cta
from onkur.services.sponsor_service import sponsor_service
from onkur.services.story_service import story_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModerationTarget:
    entity_type: str
    snapshot: Type[Snapshot]
    # Must take the row lock so the before snapshot matches what the transition sees
    load: Callable[[Session, int], Any]
    transition: Callable[[Session, int, bool, Actor, Optional[str]], Any]
    messages: Callable[[Session, Any], List[EmailMessage]]
    queue: Callable[[Session], Any]


def _transition_event(db: Session, event_id: int, approve: bool, actor: Actor, note: Optional[str]):
    event = event_service.lock_event(db, event_id)
    decision = ApprovalStatus.APPROVED if approve else ApprovalStatus.REJECTED
    result = lifecycle.moderate(state_of(event), decision, actor.id, utcnow(), note)
    apply_state(event, result.state)
    db.flush()
    return event


def _event_messages(db: Session, event) -> List[EmailMessage]:
    owner = db.query(User).filter(User.id == event.created_by).first()
    if not owner:
        return []
    approved = event.approval_status == ApprovalStatus.APPROVED.value
    if approved:
        return [EmailMessage(
            to=owner.email,
            subject=f'Your event "{event.title}" is approved',
            heading="Event approved and published",
            body_lines=[
                f"Hi {owner.name.split(' ')[0]},",
                f"{event.title} was approved and is now visible to volunteers.",
                f"Capacity: {event.capacity} · Location: {describe_location(event)}",
            ],
            cta=cta("Open event workspace", f"/manager/events/{event.id}"),
        )]
    return [EmailMessage(
        to=owner.email,
        subject=f'Your event "{event.title}" needs changes',
        heading="Event not approved",
        body_lines=[
            f"Hi {owner.name.split(' ')[0]},",
            f"{event.title} was not approved and has been moved back to draft.",
            f"Reviewer note: {event.approval_note}" if event.approval_note
            else "Update the details and publish again when ready.",
        ],
        cta=cta("Edit event", f"/manager/events/{event.id}"),
    )]


def _transition_sponsor(db: Session, sponsor_id: int, approve: bool, actor: Actor, note: Optional[str]):
    return sponsor_service.set_sponsor_status(
        db, sponsor_id, SponsorStatus.APPROVED if approve else SponsorStatus.DECLINED
    )


def _sponsor_messages(db: Session, profile) -> List[EmailMessage]:
    contact = sponsor_service.contact_for(db, profile)
    if profile.status == SponsorStatus.APPROVED.value:
        return [EmailMessage(
            to=contact["email"],
            subject="Your sponsorship workspace is live",
            heading="Welcome aboard, sponsor!",
            body_lines=[
                f"Hi {contact['name']},",
                f"{profile.org_name} is approved. Your sponsor dashboard is ready.",
                "Pledge support to events and track the impact you make possible.",
            ],
            cta=cta("Open sponsor dashboard", "/sponsor"),
        )]
    return [EmailMessage(
        to=contact["email"],
        subject="Sponsor application update",
        heading="Sponsor application update",
        body_lines=[
            f"Hi {contact['name']},",
            f"We could not approve the sponsor application for {profile.org_name} at this time.",
            "Reach out to the Onkur team if you would like to discuss it.",
        ],
    )]


def _transition_media(db: Session, media_id: int, approve: bool, actor: Actor, note: Optional[str]):
    status = ModerationStatus.APPROVED if approve else ModerationStatus.REJECTED
    return gallery_service.set_media_status(db, media_id, status, actor.id, note)


def _transition_story(db: Session, story_id: int, approve: bool, actor: Actor, note: Optional[str]):
    status = ModerationStatus.APPROVED if approve else ModerationStatus.REJECTED
    return story_service.set_story_status(db, story_id, status, actor.id, note)


TARGETS: Dict[str, ModerationTarget] = {
    "event": ModerationTarget(
        entity_type="event",
        snapshot=EventSnapshot,
        load=event_service.lock_event,
        transition=_transition_event,
        messages=_event_messages,
        queue=event_service.list_pending_events,
    ),
    "sponsor": ModerationTarget(
        entity_type="sponsor",
        snapshot=SponsorProfileSnapshot,
        load=sponsor_service.lock_profile,
        transition=_transition_sponsor,
        messages=_sponsor_messages,
        queue=lambda db: sponsor_service.list_applications(db, [SponsorStatus.PENDING.value]),
    ),
    "media": ModerationTarget(
        entity_type="media",
        snapshot=MediaSnapshot,
        load=gallery_service.lock_media,
        transition=_transition_media,
        messages=gallery_service.decision_messages,
        queue=gallery_service.list_pending_media,
    ),
    "story": ModerationTarget(
        entity_type="story",
        snapshot=StorySnapshot,
        load=story_service.lock_story,
        transition=_transition_story,
        messages=story_service.decision_messages,
        queue=story_service.list_pending_stories,
    ),
}


class ModerationService:
    """Service for admin moderation decisions"""

    def target(self, entity_type: str) -> ModerationTarget:
        target = TARGETS.get((entity_type or "").strip().lower())
        if target is None:
            raise ValidationError(f"Unsupported moderation entity: {entity_type}")
        return target

    def decide(
        self,
        db: Session,
        entity_type: str,
        entity_id: int,
        actor: Actor,
        approve: bool,
        note: Optional[str] = None
    ) -> Outcome:
        target = self.target(entity_type)
        verb = "approve" if approve else "reject"
        note = (note or "").strip() or None

        with transaction(db):
            before = target.snapshot.from_model(target.load(db, entity_id))
            entity = target.transition(db, entity_id, approve, actor, note)
            after = target.snapshot.from_model(entity)
            audit_service.record(
                db, actor.id, f"admin.{target.entity_type}.{verb}",
                target.snapshot.entity_type, entity_id, before, after,
            )

        logger.info(f"{target.entity_type} {entity_id} {verb}d by {actor.id}")
        try:
            messages = target.messages(db, entity)
        except Exception as e:
            logger.warning(f"Could not build notifications for {target.entity_type} {entity_id}: {e}")
            messages = []
        return outcome(after.to_dict(), *messages)

    def approve(self, db: Session, entity_type: str, entity_id: int, actor: Actor, note: Optional[str] = None) -> Outcome:
        return self.decide(db, entity_type, entity_id, actor, True, note)

    def reject(self, db: Session, entity_type: str, entity_id: int, actor: Actor, note: Optional[str] = None) -> Outcome:
        return self.decide(db, entity_type, entity_id, actor, False, note)

    def get_moderation_queue(self, db: Session, entity_type: str) -> Any:
        return self.target(entity_type).queue(db)


# Singleton instance
moderation_service = ModerationService()
