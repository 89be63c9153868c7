"""
Event Service - event authoring, lifecycle transitions, tasks and reports
"""
import logging
import re
import unicodedata
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from onkur.db.database import transaction
from onkur.db.models import (
    Event, EventAssignment, EventAttendance, EventCategory, EventReport, EventSignup, EventTask,
    ProfileOption, User, VolunteerHours,
)
from onkur.domain import lifecycle
from onkur.domain import profile_options as options
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.domain.lifecycle import EventState
from onkur.domain.roles import Role
from onkur.domain.statuses import ApprovalStatus, AssignmentStatus, EventStatus
from onkur.errors import ForbiddenError, NotFoundError, ValidationError
from onkur.services.auth_service import Actor
from onkur.services.notifications import cta

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "title", "description", "category", "theme", "requirements",
    "date_start", "date_end", "location", "is_online", "capacity",
)


def category_slug(label: str) -> str:
    """URL-safe key for a category label, e.g. "Tree Planting!" becomes tree-planting"""
    text = unicodedata.normalize("NFKD", (label or "").lower())
    return re.sub(r"[^a-z0-9]+", "-", text).strip("-")


def _naive_utc(value: Optional[datetime], label: str) -> datetime:
    if value is None:
        raise ValidationError(f"{label} is required")
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{label} must be a valid ISO date/time")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def normalize_event_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate an event payload; returns the column values to store"""
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError("Title is required")
    description = (data.get("description") or "").strip()
    if not description:
        raise ValidationError("Description is required")
    category = (data.get("category") or "").strip()
    if not category:
        raise ValidationError("Category is required")

    date_start = _naive_utc(data.get("date_start"), "Start date")
    date_end = _naive_utc(data.get("date_end"), "End date")
    if date_end <= date_start:
        raise ValidationError("End date must be after the start date")

    capacity = data.get("capacity")
    try:
        capacity = int(capacity)
    except (TypeError, ValueError):
        raise ValidationError("Capacity is required")
    if capacity <= 0:
        raise ValidationError("Capacity must be greater than zero")

    is_online = bool(data.get("is_online"))
    location = (data.get("location") or "").strip() or None
    if not is_online and not location:
        raise ValidationError("Location is required for in-person events")

    return {
        "title": title,
        "description": description,
        "category": category,
        "theme": (data.get("theme") or "").strip() or None,
        "requirements": (data.get("requirements") or "").strip() or None,
        "date_start": date_start,
        "date_end": date_end,
        "location": "Online" if is_online and not location else location,
        "is_online": is_online,
        "capacity": capacity,
    }


def describe_location(event: Event) -> str:
    if event.is_online:
        return "Online"
    return event.location or "To be announced"


def state_of(event: Event) -> EventState:
    return EventState(
        status=EventStatus(event.status),
        approval_status=ApprovalStatus(event.approval_status),
        published_at=event.published_at,
        completed_at=event.completed_at,
        submitted_at=event.submitted_at,
        approval_note=event.approval_note,
        approval_decided_at=event.approval_decided_at,
        approval_decided_by=event.approval_decided_by,
    )


def apply_state(event: Event, state: EventState) -> None:
    for f in fields(state):
        value = getattr(state, f.name)
        setattr(event, f.name, value.value if isinstance(value, (EventStatus, ApprovalStatus)) else value)


def serialize_event(event: Event, signup_count: Optional[int] = None) -> Dict[str, Any]:
    data = {
        "id": event.id,
        "title": event.title,
        "description": event.description,
        "category": event.category,
        "theme": event.theme,
        "requirements": event.requirements,
        "date_start": event.date_start,
        "date_end": event.date_end,
        "location": event.location,
        "is_online": event.is_online,
        "capacity": event.capacity,
        "status": event.status,
        "approval_status": event.approval_status,
        "approval_note": event.approval_note,
        "submitted_at": event.submitted_at,
        "published_at": event.published_at,
        "completed_at": event.completed_at,
        "created_by": event.created_by,
        "created_at": event.created_at,
    }
    if signup_count is not None:
        data["signup_count"] = signup_count
        data["available_slots"] = max(event.capacity - signup_count, 0)
    return data


class EventService:
    """Service for event operations"""

    def get_event(self, db: Session, event_id: int) -> Event:
        event = db.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise NotFoundError("Event not found")
        return event

    def lock_event(self, db: Session, event_id: int) -> Event:
        """Load an event with a row lock held until the transaction ends"""
        event = (
            db.query(Event)
            .filter(Event.id == event_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not event:
            raise NotFoundError("Event not found")
        return event

    def ensure_can_manage(self, event: Event, actor: Actor) -> None:
        if actor.is_admin:
            return
        if not actor.has_any(Role.EVENT_MANAGER) or event.created_by != actor.id:
            raise ForbiddenError("You do not manage this event")

    def _signup_counts(self, db: Session):
        return (
            db.query(EventSignup.event_id.label("event_id"), func.count(EventSignup.id).label("total"))
            .group_by(EventSignup.event_id)
            .subquery()
        )

    def signup_count(self, db: Session, event_id: int) -> int:
        return db.query(func.count(EventSignup.id)).filter(EventSignup.event_id == event_id).scalar() or 0

    def create_event(self, db: Session, actor: Actor, data: Dict[str, Any]) -> Outcome:
        values = normalize_event_payload(data)
        with transaction(db):
            values["category"] = self.register_category(db, values["category"])
            event = Event(
                **values,
                status=EventStatus.DRAFT.value,
                approval_status=ApprovalStatus.PENDING.value,
                created_by=actor.id,
            )
            db.add(event)
            db.flush()

        logger.info(f"Event draft {event.id} created by {actor.id}")
        notice = None
        if actor.email:
            notice = EmailMessage(
                to=actor.email,
                subject=f'Draft saved: "{event.title}"',
                heading="Your event draft is saved",
                body_lines=[
                    f"{event.title} is saved as a draft.",
                    "Publish it when you are ready and an admin will review it.",
                    f"Capacity: {event.capacity} · Location: {describe_location(event)}",
                ],
                cta=cta("Open event workspace", f"/manager/events/{event.id}"),
            )
        return outcome(serialize_event(event), notice)

    def update_event(self, db: Session, actor: Actor, event_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
        with transaction(db):
            event = self.lock_event(db, event_id)
            self.ensure_can_manage(event, actor)
            merged = {name: getattr(event, name) for name in EDITABLE_FIELDS}
            merged.update({k: v for k, v in data.items() if k in EDITABLE_FIELDS and v is not None})
            values = normalize_event_payload(merged)
            values["category"] = self.register_category(db, values["category"])
            if values["capacity"] < self.signup_count(db, event_id):
                raise ValidationError("Capacity cannot be lower than the number of registered volunteers")
            for name, value in values.items():
                setattr(event, name, value)

        logger.info(f"Event {event_id} updated by {actor.id}")
        return serialize_event(event)

    def publish_event(self, db: Session, actor: Actor, event_id: int) -> Outcome:
        with transaction(db):
            event = self.lock_event(db, event_id)
            self.ensure_can_manage(event, actor)
            result = lifecycle.publish(state_of(event), utcnow())
            apply_state(event, result.state)

        payload = serialize_event(event)
        payload["awaiting_approval"] = result.awaiting_approval
        if not result.changed:
            return outcome(payload)

        logger.info(
            f"Event {event_id} {'submitted for review' if result.awaiting_approval else 'published'}"
        )
        first_name = (actor.name or "there").split(" ")[0]
        if result.awaiting_approval:
            message = EmailMessage(
                to=actor.email,
                subject=f'Your event "{event.title}" is awaiting approval',
                heading="Event submitted for review",
                body_lines=[
                    f"Hi {first_name},",
                    f"Your event {event.title} has been submitted to the admin team for review.",
                    "We will notify you as soon as it is approved and visible to volunteers.",
                    f"Capacity: {event.capacity} · Location: {describe_location(event)}",
                ],
            )
        else:
            message = EmailMessage(
                to=actor.email,
                subject=f'Your event "{event.title}" is now live',
                heading="Event published successfully",
                body_lines=[
                    f"Great news, {first_name}!",
                    f"Your event {event.title} has been published and is now visible to volunteers.",
                    f"Capacity: {event.capacity} · Location: {describe_location(event)}",
                ],
            )
        return outcome(payload, message if actor.email else None)

    def complete_event(self, db: Session, actor: Actor, event_id: int) -> Dict[str, Any]:
        with transaction(db):
            event = self.lock_event(db, event_id)
            self.ensure_can_manage(event, actor)
            result = lifecycle.complete(state_of(event), utcnow())
            apply_state(event, result.state)
        if result.changed:
            logger.info(f"Event {event_id} completed")
        return serialize_event(event)

    def cancel_event(self, db: Session, actor: Actor, event_id: int) -> Outcome:
        with transaction(db):
            event = self.lock_event(db, event_id)
            self.ensure_can_manage(event, actor)
            result = lifecycle.cancel(state_of(event))
            apply_state(event, result.state)
            volunteers = (
                db.query(User)
                .join(EventSignup, EventSignup.user_id == User.id)
                .filter(EventSignup.event_id == event_id)
                .all()
            ) if result.changed else []

        if result.changed:
            logger.info(f"Event {event_id} cancelled, notifying {len(volunteers)} volunteers")
        messages = [
            EmailMessage(
                to=volunteer.email,
                subject=f"{event.title} has been cancelled",
                heading="Event cancelled",
                body_lines=[
                    f"Hi {volunteer.name.split(' ')[0]},",
                    f"{event.title} scheduled for {event.date_start.isoformat()} has been cancelled.",
                    "Thank you for signing up. Explore other events that need your help.",
                ],
                cta=cta("Browse events", "/events"),
            )
            for volunteer in volunteers
        ]
        return outcome(serialize_event(event), *messages)

    def list_manager_events(self, db: Session, actor: Actor) -> List[Dict[str, Any]]:
        counts = self._signup_counts(db)
        rows = (
            db.query(Event, func.coalesce(counts.c.total, 0))
            .outerjoin(counts, counts.c.event_id == Event.id)
            .filter(Event.created_by == actor.id)
            .order_by(Event.date_start.desc())
            .all()
        )
        return [serialize_event(event, count) for event, count in rows]

    def list_published_events(
        self,
        db: Session,
        category: Optional[str] = None,
        search: Optional[str] = None,
        upcoming_only: bool = True,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        counts = self._signup_counts(db)
        query = (
            db.query(Event, func.coalesce(counts.c.total, 0))
            .outerjoin(counts, counts.c.event_id == Event.id)
            .filter(Event.status == EventStatus.PUBLISHED.value)
        )
        if category:
            query = query.filter(func.lower(Event.category) == category.strip().lower())
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.filter(
                func.lower(Event.title).like(pattern) | func.lower(Event.description).like(pattern)
            )
        if upcoming_only:
            query = query.filter(Event.date_end >= utcnow())
        rows = query.order_by(Event.date_start.asc()).offset(max(offset, 0)).limit(
            min(max(limit, 1), 100)
        ).all()
        return [serialize_event(event, count) for event, count in rows]

    def list_pending_events(self, db: Session) -> List[Dict[str, Any]]:
        events = (
            db.query(Event)
            .filter(Event.approval_status == ApprovalStatus.PENDING.value)
            .filter(Event.status != EventStatus.CANCELLED.value)
            .order_by(Event.submitted_at.is_(None), Event.submitted_at.asc(), Event.id.asc())
            .all()
        )
        return [serialize_event(event) for event in events]

    def register_category(self, db: Session, label: str) -> str:
        """Record a category used by an event; returns the stored label for its slug"""
        slug = category_slug(label)
        if not slug:
            raise ValidationError("Category is required")
        existing = db.query(EventCategory).filter(EventCategory.value == slug).first()
        if existing:
            return existing.label
        db.add(EventCategory(value=slug, label=label))
        db.flush()
        return label

    def save_category(self, db: Session, label: Optional[str] = None, value: Optional[str] = None) -> Dict[str, str]:
        """
        Create or relabel an event category.

        With a value the category is looked up by key and relabelled when a
        different label is given; an unknown value needs a label. Without a
        value the key is derived from the label.
        """
        label = (label or "").strip()
        value = (value or "").strip()
        if not value:
            value = category_slug(label)
            if not value:
                raise ValidationError("Category is required")

        with transaction(db):
            category = (
                db.query(EventCategory)
                .filter(EventCategory.value == value)
                .with_for_update()
                .first()
            )
            if category is None:
                if not label:
                    raise ValidationError("Selected category is no longer available")
                category = EventCategory(value=value, label=label)
                db.add(category)
            elif label and category.label != label:
                category.label = label
            db.flush()

        logger.info(f"Event category saved: {category.value}")
        return {"value": category.value, "label": category.label}

    def list_categories(self, db: Session) -> List[Dict[str, str]]:
        rows = db.query(EventCategory).order_by(EventCategory.label.asc()).all()
        return [{"value": row.value, "label": row.label} for row in rows]

    def get_event_lookups(self, db: Session) -> Dict[str, Any]:
        """Choices for the event form: categories plus the volunteer profile vocabulary"""
        saved: Dict[str, List[str]] = {option_type: [] for option_type in options.OPTION_TYPES}
        for row in db.query(ProfileOption).all():
            saved.setdefault(row.option_type, []).append(row.value)
        return {
            "categories": self.list_categories(db),
            "skills": options.to_options(
                options.normalize_tags(options.DEFAULT_OPTIONS[options.SKILL]) + saved[options.SKILL]
            ),
            "interests": options.to_options(
                options.normalize_tags(options.DEFAULT_OPTIONS[options.INTEREST]) + saved[options.INTEREST]
            ),
            "availability": [dict(preset) for preset in options.AVAILABILITY_PRESETS],
            "states": [{"value": state, "label": state} for state in options.STATE_OPTIONS],
        }

    def replace_tasks(
        self, db: Session, actor: Actor, event_id: int, tasks: Iterable[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        cleaned = []
        for task in tasks or []:
            title = (task.get("title") or "").strip()
            if not title:
                raise ValidationError("Task title is required")
            try:
                required = int(task.get("required_count", 1))
            except (TypeError, ValueError):
                raise ValidationError("Task required count must be greater than zero")
            if required <= 0:
                raise ValidationError("Task required count must be greater than zero")
            cleaned.append({
                "title": title,
                "description": (task.get("description") or "").strip() or None,
                "required_count": required,
            })

        with transaction(db):
            event = self.lock_event(db, event_id)
            self.ensure_can_manage(event, actor)
            db.query(EventTask).filter(EventTask.event_id == event_id).delete(synchronize_session=False)
            for values in cleaned:
                db.add(EventTask(event_id=event_id, **values))
        logger.info(f"Event {event_id} tasks replaced ({len(cleaned)} tasks)")
        return self.list_tasks(db, event_id)

    def list_tasks(self, db: Session, event_id: int) -> List[Dict[str, Any]]:
        tasks = db.query(EventTask).filter(EventTask.event_id == event_id).order_by(EventTask.id).all()
        return [
            {
                "id": task.id,
                "event_id": task.event_id,
                "title": task.title,
                "description": task.description,
                "required_count": task.required_count,
            }
            for task in tasks
        ]

    def list_assignments(self, db: Session, event_id: int) -> List[Dict[str, Any]]:
        rows = (
            db.query(EventAssignment, EventTask.title, User.name, User.email)
            .join(EventTask, EventTask.id == EventAssignment.task_id)
            .join(User, User.id == EventAssignment.user_id)
            .filter(EventAssignment.event_id == event_id)
            .order_by(EventAssignment.id)
            .all()
        )
        return [
            {
                "id": assignment.id,
                "event_id": assignment.event_id,
                "task_id": assignment.task_id,
                "task_title": task_title,
                "user_id": assignment.user_id,
                "volunteer_name": name,
                "volunteer_email": email,
                "status": assignment.status,
            }
            for assignment, task_title, name, email in rows
        ]

    def assign_volunteers(
        self, db: Session, actor: Actor, event_id: int, assignments: Iterable[Dict[str, Any]]
    ) -> Outcome:
        new_assignments = []
        with transaction(db):
            event = self.lock_event(db, event_id)
            self.ensure_can_manage(event, actor)
            for item in assignments or []:
                task_id = item.get("task_id")
                user_id = item.get("user_id")
                task = db.query(EventTask).filter(
                    EventTask.id == task_id, EventTask.event_id == event_id
                ).first()
                if not task:
                    raise ValidationError("Task does not belong to this event")
                signup = db.query(EventSignup).filter(
                    EventSignup.event_id == event_id, EventSignup.user_id == user_id
                ).first()
                if not signup:
                    raise ValidationError("Volunteer must be registered for the event before assignment")

                existing = db.query(EventAssignment).filter(
                    EventAssignment.event_id == event_id,
                    EventAssignment.task_id == task_id,
                    EventAssignment.user_id == user_id,
                ).first()
                if existing:
                    existing.status = AssignmentStatus.ASSIGNED.value
                    continue
                db.add(EventAssignment(
                    event_id=event_id, task_id=task_id, user_id=user_id,
                    status=AssignmentStatus.ASSIGNED.value,
                ))
                db.flush()
                new_assignments.append((task, signup.user))

        logger.info(f"Event {event_id}: {len(new_assignments)} new assignments")
        messages = [
            EmailMessage(
                to=volunteer.email,
                subject=f"You're assigned to {event.title}",
                heading="New volunteer assignment",
                body_lines=[
                    f"Hi {volunteer.name.split(' ')[0]},",
                    f"You've been assigned to {task.title} for {event.title}.",
                    f"Location: {describe_location(event)}",
                    f"Shift window: {event.date_start.isoformat()} → {event.date_end.isoformat()}",
                ],
            )
            for task, volunteer in new_assignments
        ]
        return outcome(self.list_assignments(db, event_id), *messages)

    def list_signups(self, db: Session, event_id: int) -> List[Dict[str, Any]]:
        rows = (
            db.query(EventSignup, User, EventAttendance)
            .join(User, User.id == EventSignup.user_id)
            .outerjoin(
                EventAttendance,
                (EventAttendance.event_id == EventSignup.event_id)
                & (EventAttendance.user_id == EventSignup.user_id),
            )
            .filter(EventSignup.event_id == event_id)
            .order_by(EventSignup.created_at.asc(), EventSignup.id.asc())
            .all()
        )
        return [
            {
                "id": signup.id,
                "user_id": user.id,
                "name": user.name,
                "email": user.email,
                "status": signup.status,
                "created_at": signup.created_at,
                "check_in_at": attendance.check_in_at if attendance else None,
                "check_out_at": attendance.check_out_at if attendance else None,
                "minutes": attendance.minutes if attendance else None,
            }
            for signup, user, attendance in rows
        ]

    def get_event_overview(self, db: Session, actor: Actor, event_id: int) -> Dict[str, Any]:
        event = self.get_event(db, event_id)
        self.ensure_can_manage(event, actor)
        return {
            "event": serialize_event(event, self.signup_count(db, event_id)),
            "tasks": self.list_tasks(db, event_id),
            "assignments": self.list_assignments(db, event_id),
            "signups": self.list_signups(db, event_id),
        }

    def get_public_event(self, db: Session, event_id: int) -> Dict[str, Any]:
        event = self.get_event(db, event_id)
        if event.status not in (EventStatus.PUBLISHED.value, EventStatus.COMPLETED.value):
            raise NotFoundError("Event not found")
        return serialize_event(event, self.signup_count(db, event_id))

    def compute_totals(self, db: Session, event_id: int) -> Dict[str, Any]:
        """Signup, attendance and hours totals for an event"""
        total_signups = self.signup_count(db, event_id)
        total_checked_in = db.query(func.count(EventAttendance.id)).filter(
            EventAttendance.event_id == event_id,
            EventAttendance.check_in_at.isnot(None),
        ).scalar() or 0
        total_minutes = int(db.query(func.coalesce(func.sum(VolunteerHours.minutes), 0)).filter(
            VolunteerHours.event_id == event_id
        ).scalar() or 0)
        return {
            "total_signups": total_signups,
            "total_checked_in": total_checked_in,
            "attendance_rate": (
                round(total_checked_in / total_signups * 100, 2) if total_signups else 0.0
            ),
            "total_minutes": total_minutes,
            "total_hours": round(total_minutes / 60, 2),
        }

    def build_report(self, db: Session, actor: Actor, event_id: int) -> Dict[str, Any]:
        with transaction(db):
            event = self.get_event(db, event_id)
            self.ensure_can_manage(event, actor)
            totals = self.compute_totals(db, event_id)

            report = db.query(EventReport).filter(EventReport.event_id == event_id).first()
            if report is None:
                report = EventReport(event_id=event_id)
                db.add(report)
            report.total_signups = totals["total_signups"]
            report.total_checked_in = totals["total_checked_in"]
            report.total_minutes = totals["total_minutes"]
            report.attendance_rate = totals["attendance_rate"]
            report.generated_at = utcnow()

        logger.info(f"Report generated for event {event_id}")
        return {
            "event": serialize_event(event),
            "totals": totals,
            "generated_at": report.generated_at,
        }


# Singleton instance
event_service = EventService()
