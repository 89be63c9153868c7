"""
Attendance Service - check-in/check-out, hours ledger and badges
"""
import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from onkur.db.database import transaction
from onkur.db.models import Event, EventAttendance, EventSignup, User, VolunteerHours
from onkur.domain.badges import compute_badges
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.errors import NotFoundError, ValidationError
from onkur.services.auth_service import Actor
from onkur.services.event_service import event_service
from onkur.services.notifications import cta

logger = logging.getLogger(__name__)

AUTO_TRACKED_NOTE = "Auto-tracked via event attendance"


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def serialize_attendance(attendance: EventAttendance, **flags) -> Dict[str, Any]:
    data = {
        "id": attendance.id,
        "event_id": attendance.event_id,
        "user_id": attendance.user_id,
        "check_in_at": attendance.check_in_at,
        "check_out_at": attendance.check_out_at,
        "minutes": attendance.minutes,
        "hours_entry_id": attendance.hours_entry_id,
        "already_checked_in": False,
        "already_checked_out": False,
    }
    data.update(flags)
    return data


class AttendanceService:
    """Service for attendance and volunteer hours"""

    def _require_signup(self, db: Session, event_id: int, user_id: int) -> EventSignup:
        signup = db.query(EventSignup).filter(
            EventSignup.event_id == event_id, EventSignup.user_id == user_id
        ).first()
        if not signup:
            raise ValidationError("Volunteer must be registered for the event")
        return signup

    def _locked_attendance(self, db: Session, event_id: int, user_id: int) -> Optional[EventAttendance]:
        return db.query(EventAttendance).filter(
            EventAttendance.event_id == event_id, EventAttendance.user_id == user_id
        ).with_for_update().first()

    def check_in(
        self, db: Session, event_id: int, user_id: int, now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        with transaction(db):
            event_service.get_event(db, event_id)
            self._require_signup(db, event_id, user_id)
            attendance = self._locked_attendance(db, event_id, user_id)
            if attendance and attendance.check_in_at:
                return serialize_attendance(attendance, already_checked_in=True)
            if attendance is None:
                attendance = EventAttendance(event_id=event_id, user_id=user_id)
                db.add(attendance)
            attendance.check_in_at = now or utcnow()
            db.flush()

        logger.info(f"User {user_id} checked in to event {event_id}")
        return serialize_attendance(attendance)

    def check_out(
        self,
        db: Session,
        event_id: int,
        user_id: int,
        minutes_override: Optional[float] = None,
        verified_by: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> Outcome:
        if minutes_override is not None:
            try:
                minutes_override = float(minutes_override)
            except (TypeError, ValueError):
                raise ValidationError("Minutes override must be a positive number")
            if not math.isfinite(minutes_override) or minutes_override <= 0:
                raise ValidationError("Minutes override must be a positive number")

        with transaction(db):
            event = event_service.get_event(db, event_id)
            attendance = self._locked_attendance(db, event_id, user_id)
            if not attendance or not attendance.check_in_at:
                raise ValidationError("Volunteer has not checked in yet")
            if attendance.check_out_at:
                return outcome(serialize_attendance(attendance, already_checked_out=True))

            check_out_at = now or utcnow()
            if minutes_override is not None:
                minutes = max(1, round_half_up(minutes_override))
            else:
                elapsed = (check_out_at - attendance.check_in_at).total_seconds() / 60
                minutes = max(1, round_half_up(elapsed))

            if attendance.hours_entry_id is None:
                entry = VolunteerHours(
                    user_id=user_id,
                    event_id=event_id,
                    minutes=minutes,
                    note=AUTO_TRACKED_NOTE,
                    verified_by=verified_by,
                    created_at=check_out_at,
                )
                db.add(entry)
                db.flush()
                attendance.hours_entry_id = entry.id
            attendance.check_out_at = check_out_at
            attendance.minutes = minutes
            db.flush()
            volunteer = db.query(User).filter(User.id == user_id).first()

        logger.info(f"User {user_id} checked out of event {event_id} after {minutes} minutes")
        thank_you = None
        if volunteer:
            thank_you = EmailMessage(
                to=volunteer.email,
                subject=f"Thank you for supporting {event.title}",
                heading="You made a difference today",
                body_lines=[
                    f"We appreciate your time at {event.title}.",
                    f"Total time recorded: {minutes} minutes.",
                    "Your contribution keeps our community thriving!",
                ],
                cta=cta("See your impact", "/volunteer/hours"),
            )
        return outcome(serialize_attendance(attendance), thank_you)

    def record_attendance(
        self,
        db: Session,
        actor: Actor,
        event_id: int,
        user_id: int,
        action: str,
        minutes_override: Optional[float] = None
    ) -> Outcome:
        """Manager-facing entry point for the check-in/check-out actions"""
        event = event_service.get_event(db, event_id)
        event_service.ensure_can_manage(event, actor)
        if action == "check-in":
            return outcome(self.check_in(db, event_id, user_id))
        if action == "check-out":
            return self.check_out(db, event_id, user_id, minutes_override, verified_by=actor.id)
        raise ValidationError("Action must be check-in or check-out")

    def record_volunteer_hours(
        self,
        db: Session,
        actor: Actor,
        event_id: Optional[int],
        minutes: Any,
        note: Optional[str] = None
    ) -> Dict[str, Any]:
        try:
            minutes_value = float(minutes)
        except (TypeError, ValueError):
            raise ValidationError("Minutes must be greater than zero")
        if not math.isfinite(minutes_value) or minutes_value <= 0:
            raise ValidationError("Minutes must be greater than zero")
        if not event_id:
            raise ValidationError("Event is required to log hours")
        rounded = max(1, round_half_up(minutes_value))

        with transaction(db):
            event_service.get_event(db, event_id)
            self._require_signup(db, event_id, actor.id)
            entry = VolunteerHours(
                user_id=actor.id,
                event_id=event_id,
                minutes=rounded,
                note=(note or "").strip() or None,
                created_at=utcnow(),
            )
            db.add(entry)
            db.flush()

        logger.info(f"User {actor.id} logged {rounded} minutes for event {event_id}")
        return self._serialize_entry(entry, None)

    def _serialize_entry(self, entry: VolunteerHours, event_title: Optional[str]) -> Dict[str, Any]:
        return {
            "id": entry.id,
            "event_id": entry.event_id,
            "event_title": event_title,
            "minutes": entry.minutes,
            "note": entry.note,
            "verified": entry.verified_by is not None,
            "created_at": entry.created_at,
        }

    def get_volunteer_hours(self, db: Session, user_id: int) -> Dict[str, Any]:
        rows = (
            db.query(VolunteerHours, Event.title)
            .outerjoin(Event, Event.id == VolunteerHours.event_id)
            .filter(VolunteerHours.user_id == user_id)
            .order_by(VolunteerHours.created_at.asc(), VolunteerHours.id.asc())
            .all()
        )
        entries = [entry for entry, _ in rows]
        total_minutes = sum(entry.minutes for entry in entries)
        if not entries and not db.query(User.id).filter(User.id == user_id).first():
            raise NotFoundError("User not found")
        return {
            "user_id": user_id,
            "total_minutes": total_minutes,
            "total_hours": round(total_minutes / 60, 2),
            "badges": compute_badges(entries),
            "entries": [self._serialize_entry(entry, title) for entry, title in reversed(rows)],
        }


# Singleton instance
attendance_service = AttendanceService()
