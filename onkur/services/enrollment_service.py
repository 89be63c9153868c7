"""
Enrollment Service - capacity-safe event signup and cancellation

Both operations hold the event row lock for the whole unit of work, so two
volunteers racing for the last slot are serialised: the first to commit wins
and the second sees the updated count.
"""
import logging
from typing import Any, Dict, List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from onkur.db.database import transaction
from onkur.db.models import (
    Event, EventAssignment, EventAttendance, EventSignup, User, VolunteerHours,
)
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.domain.statuses import EventStatus
from onkur.errors import ConflictError, NotFoundError, ValidationError
from onkur.services.auth_service import Actor
from onkur.services.event_service import describe_location, event_service, serialize_event
from onkur.services.notifications import cta

logger = logging.getLogger(__name__)


class EnrollmentService:
    """Service for volunteer registrations"""

    def signup(self, db: Session, actor: Actor, event_id: int) -> Outcome:
        try:
            with transaction(db):
                event = event_service.lock_event(db, event_id)
                if event.status != EventStatus.PUBLISHED.value:
                    raise ValidationError("Event is not open for registration")

                existing = db.query(EventSignup).filter(
                    EventSignup.event_id == event_id, EventSignup.user_id == actor.id
                ).first()
                if existing:
                    raise ConflictError("You are already registered for this event")

                taken = event_service.signup_count(db, event_id)
                if taken >= event.capacity:
                    raise ConflictError("Event capacity has been reached")

                signup = EventSignup(event_id=event_id, user_id=actor.id)
                db.add(signup)
                db.flush()
        except IntegrityError:
            # Unique (event, user) constraint caught a concurrent duplicate
            raise ConflictError("You are already registered for this event")

        logger.info(f"User {actor.id} signed up for event {event_id} ({taken + 1}/{event.capacity})")

        volunteer_notice = None
        if actor.email:
            volunteer_notice = EmailMessage(
                to=actor.email,
                subject=f"You're registered for {event.title}",
                heading="Registration confirmed",
                body_lines=[
                    f"Hi {(actor.name or 'there').split(' ')[0]},",
                    f"Thank you for signing up for {event.title}.",
                    f"When: {event.date_start.isoformat()} → {event.date_end.isoformat()}",
                    f"Where: {describe_location(event)}",
                ],
                cta=cta("View my events", "/volunteer/events"),
                preview_text=f"You're confirmed for {event.title}.",
            )

        manager_notice = None
        manager = db.query(User).filter(User.id == event.created_by).first() if event.created_by else None
        if manager and manager.id != actor.id:
            manager_notice = EmailMessage(
                to=manager.email,
                subject=f"New volunteer for {event.title}",
                heading="A volunteer just signed up",
                body_lines=[
                    f"{actor.name or 'A volunteer'} registered for {event.title}.",
                    f"Registrations: {taken + 1} of {event.capacity}.",
                ],
                cta=cta("Open event workspace", f"/manager/events/{event.id}"),
            )

        value = {
            "signup": {
                "id": signup.id,
                "event_id": signup.event_id,
                "user_id": signup.user_id,
                "status": signup.status,
                "created_at": signup.created_at,
            },
            "event": serialize_event(event, taken + 1),
        }
        return outcome(value, volunteer_notice, manager_notice)

    def cancel(self, db: Session, actor: Actor, event_id: int) -> Outcome:
        """
        Leave an event and remove every trace of the volunteer's work on it:
        assignments, hours entries, attendance and the signup itself.
        """
        with transaction(db):
            event = event_service.lock_event(db, event_id)
            signup = db.query(EventSignup).filter(
                EventSignup.event_id == event_id, EventSignup.user_id == actor.id
            ).first()
            if not signup:
                raise NotFoundError("You are not registered for this event")

            removed_assignments = db.query(EventAssignment).filter(
                EventAssignment.event_id == event_id, EventAssignment.user_id == actor.id
            ).delete(synchronize_session=False)

            db.query(EventAttendance).filter(
                EventAttendance.event_id == event_id, EventAttendance.user_id == actor.id
            ).delete(synchronize_session=False)

            hours_filter = (VolunteerHours.event_id == event_id, VolunteerHours.user_id == actor.id)
            removed_minutes = db.query(
                func.coalesce(func.sum(VolunteerHours.minutes), 0)
            ).filter(*hours_filter).scalar() or 0
            db.query(VolunteerHours).filter(*hours_filter).delete(synchronize_session=False)

            db.delete(signup)
            manager = db.query(User).filter(User.id == event.created_by).first() if event.created_by else None

        logger.info(
            f"User {actor.id} left event {event_id}: removed {removed_assignments} assignments, "
            f"{removed_minutes} minutes"
        )

        manager_contact = {"id": manager.id, "name": manager.name, "email": manager.email} if manager else None
        manager_notice = None
        if manager and manager.id != actor.id:
            manager_notice = EmailMessage(
                to=manager.email,
                subject=f"A volunteer left {event.title}",
                heading="Volunteer cancellation",
                body_lines=[
                    f"{actor.name or 'A volunteer'} is no longer attending {event.title}.",
                    "One slot has opened up for new registrations.",
                ],
                cta=cta("Open event workspace", f"/manager/events/{event.id}"),
            )

        value = {
            "event_id": event_id,
            "removed_minutes": int(removed_minutes),
            "removed_assignments": removed_assignments,
            "event": {"id": event.id, "title": event.title, "date_start": event.date_start},
            "manager": manager_contact,
        }
        return outcome(value, manager_notice)

    def list_my_signups(self, db: Session, actor: Actor) -> List[Dict[str, Any]]:
        now = utcnow()
        rows = (
            db.query(EventSignup, Event)
            .join(Event, Event.id == EventSignup.event_id)
            .filter(EventSignup.user_id == actor.id)
            .order_by(Event.date_start.asc())
            .all()
        )
        return [
            {
                "signup_id": signup.id,
                "signed_up_at": signup.created_at,
                "upcoming": event.date_end >= now and event.status == EventStatus.PUBLISHED.value,
                "event": serialize_event(event),
            }
            for signup, event in rows
        ]


# Singleton instance
enrollment_service = EnrollmentService()
