"""
Volunteer Service - profile, suggestion catalogs and the volunteer dashboard
"""
import logging
from typing import Any, Dict, List

from sqlalchemy.orm import Session

from onkur.db.database import transaction, upsert
from onkur.db.models import Event, EventSignup, ProfileOption, VolunteerProfile
from onkur.domain import profile_options as options
from onkur.domain.clock import utcnow
from onkur.services.attendance_service import attendance_service
from onkur.services.auth_service import Actor, auth_service

logger = logging.getLogger(__name__)

DASHBOARD_EVENT_LIMIT = 10
RECENT_HOURS_LIMIT = 5


def serialize_profile(profile: VolunteerProfile, user_id: int) -> Dict[str, Any]:
    if profile is None:
        return {
            "user_id": user_id,
            "skills": [],
            "interests": [],
            "availability": [],
            "location": "",
            "state": "",
            "bio": "",
            "created_at": None,
            "updated_at": None,
        }
    return {
        "user_id": profile.user_id,
        "skills": list(profile.skills or []),
        "interests": list(profile.interests or []),
        "availability": list(profile.availability or []),
        "location": profile.location or "",
        "state": profile.state or "",
        "bio": profile.bio or "",
        "created_at": profile.created_at,
        "updated_at": profile.updated_at,
    }


def _event_summary(event: Event, signup: EventSignup) -> Dict[str, Any]:
    return {
        "id": event.id,
        "title": event.title,
        "date_start": event.date_start,
        "date_end": event.date_end,
        "location": event.location,
        "theme": event.theme,
        "category": event.category,
        "joined_at": signup.created_at,
    }


class VolunteerService:
    """Service for volunteer profiles and dashboards"""

    def _save_options(self, db: Session, option_type: str, values: List[str]) -> None:
        for value in values:
            upsert(db, ProfileOption, {"option_type": option_type, "value": value},
                   keys=("option_type", "value"))

    def ensure_default_options(self, db: Session) -> None:
        for option_type, values in options.DEFAULT_OPTIONS.items():
            normalized = (
                [options.normalize_city(v) for v in values] if option_type == options.CITY
                else options.normalize_tags(values)
            )
            self._save_options(db, option_type, normalized)

    def get_profile_catalogs(self, db: Session) -> Dict[str, Any]:
        """Suggestions for the profile form: defaults plus everything volunteers entered"""
        with transaction(db):
            self.ensure_default_options(db)
        grouped: Dict[str, List[str]] = {option_type: [] for option_type in options.OPTION_TYPES}
        for row in db.query(ProfileOption).all():
            grouped.setdefault(row.option_type, []).append(row.value)
        return {
            "skills": options.to_options(grouped[options.SKILL]),
            "interests": options.to_options(grouped[options.INTEREST]),
            "locations": options.to_options(grouped[options.CITY]),
            "availability": [dict(preset) for preset in options.AVAILABILITY_PRESETS],
            "states": [{"value": state, "label": state} for state in options.STATE_OPTIONS],
        }

    def get_profile(self, db: Session, user_id: int) -> Dict[str, Any]:
        profile = db.query(VolunteerProfile).filter(VolunteerProfile.user_id == user_id).first()
        return serialize_profile(profile, user_id)

    def update_profile(self, db: Session, actor: Actor, data: Dict[str, Any]) -> Dict[str, Any]:
        """Replace the caller's profile; list fields accept arrays or comma separated text"""
        skills = options.normalize_tags(data.get("skills"))
        interests = options.normalize_tags(data.get("interests"))
        availability = options.normalize_availability(data.get("availability"))
        location = options.normalize_city(data.get("location"))
        state = options.normalize_state(data.get("state"))
        bio = options.clean_text(data.get("bio"))

        with transaction(db):
            auth_service.get_user(db, actor.id)
            self.ensure_default_options(db)
            self._save_options(db, options.SKILL, skills)
            self._save_options(db, options.INTEREST, interests)
            self._save_options(db, options.CITY, [location] if location else [])

            profile = (
                db.query(VolunteerProfile)
                .filter(VolunteerProfile.user_id == actor.id)
                .with_for_update()
                .first()
            )
            if profile is None:
                profile = VolunteerProfile(user_id=actor.id)
                db.add(profile)
            profile.skills = skills
            profile.interests = interests
            profile.availability = availability
            profile.location = location
            profile.state = state
            profile.bio = bio
            db.flush()

        db.refresh(profile)
        logger.info(
            f"Volunteer profile {actor.id} updated: {len(skills)} skills, "
            f"{len(interests)} interests, {len(availability)} availability slots"
        )
        return serialize_profile(profile, actor.id)

    def _my_events(self, db: Session, user_id: int, upcoming: bool) -> List[Dict[str, Any]]:
        now = utcnow()
        query = (
            db.query(Event, EventSignup)
            .join(EventSignup, EventSignup.event_id == Event.id)
            .filter(EventSignup.user_id == user_id)
        )
        if upcoming:
            query = query.filter(Event.date_end >= now).order_by(Event.date_start.asc())
        else:
            query = query.filter(Event.date_end < now).order_by(Event.date_end.desc())
        return [_event_summary(event, signup) for event, signup in query.limit(DASHBOARD_EVENT_LIMIT).all()]

    def get_dashboard(self, db: Session, actor: Actor) -> Dict[str, Any]:
        hours = attendance_service.get_volunteer_hours(db, actor.id)
        upcoming = self._my_events(db, actor.id, upcoming=True)
        past = self._my_events(db, actor.id, upcoming=False)
        return {
            "profile": self.get_profile(db, actor.id),
            "profile_catalogs": self.get_profile_catalogs(db),
            "upcoming_events": upcoming,
            "past_events": past,
            "stats": {
                "total_minutes": hours["total_minutes"],
                "total_hours": hours["total_hours"],
                "upcoming_count": len(upcoming),
                "past_count": len(past),
            },
            "achievements": hours["badges"],
            "recent_hours": hours["entries"][:RECENT_HOURS_LIMIT],
        }


# Singleton instance
volunteer_service = VolunteerService()
