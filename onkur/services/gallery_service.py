"""
Gallery Service - event media intake, moderation transitions and view metrics

Photos are stored upstream; this service receives the resulting
url/storage key pair and manages the moderated gallery record.
"""
import logging
import re
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from onkur.db.database import transaction, upsert
from onkur.db.models import Event, EventGalleryMetrics, EventMedia, EventSignup, SponsorProfile, User
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.domain.roles import Role
from onkur.domain.statuses import ModerationStatus, SponsorStatus
from onkur.errors import ForbiddenError, NotFoundError, ValidationError
from onkur.services.auth_service import Actor
from onkur.services.event_service import event_service, serialize_event
from onkur.services.notifications import cta

logger = logging.getLogger(__name__)

MAX_CAPTION_LENGTH = 400
MAX_TAGS = 12
MAX_PAGE_SIZE = 50


def to_slug(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")


def moderation_time_ms(row: Any, now) -> Optional[int]:
    """Milliseconds from submission to the first decision"""
    if row.moderation_time_ms is not None or row.created_at is None:
        return row.moderation_time_ms
    return max(int((now - row.created_at).total_seconds() * 1000), 0)


def serialize_media(media: EventMedia) -> Dict[str, Any]:
    return {
        "id": media.id,
        "event_id": media.event_id,
        "uploader_id": media.uploader_id,
        "url": media.url,
        "storage_key": media.storage_key,
        "mime_type": media.mime_type,
        "file_size": media.file_size,
        "caption": media.caption,
        "tags": media.tags or [],
        "status": media.status,
        "rejection_reason": media.rejection_reason,
        "approved_at": media.approved_at,
        "moderation_time_ms": media.moderation_time_ms,
        "created_at": media.created_at,
    }


class GalleryService:
    """Service for event galleries"""

    def get_media(self, db: Session, media_id: int) -> EventMedia:
        media = db.query(EventMedia).filter(EventMedia.id == media_id).first()
        if not media:
            raise NotFoundError("Media not found")
        return media

    def lock_media(self, db: Session, media_id: int) -> EventMedia:
        media = (
            db.query(EventMedia)
            .filter(EventMedia.id == media_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not media:
            raise NotFoundError("Media not found")
        return media

    def ensure_uploader_is_participant(self, db: Session, event: Event, actor: Actor) -> None:
        if actor.is_admin or event.created_by == actor.id:
            return
        if actor.has_any(Role.VOLUNTEER):
            signup = db.query(EventSignup.id).filter(
                EventSignup.event_id == event.id, EventSignup.user_id == actor.id
            ).first()
            if signup:
                return
        raise ForbiddenError("Only event participants can upload media")

    def _volunteer_options(self, db: Session, event_id: int) -> Dict[str, User]:
        users = (
            db.query(User)
            .join(EventSignup, EventSignup.user_id == User.id)
            .filter(EventSignup.event_id == event_id)
            .all()
        )
        return {str(user.id): user for user in users}

    def _sponsor_options(self, db: Session) -> Dict[str, SponsorProfile]:
        profiles = db.query(SponsorProfile).filter(
            SponsorProfile.status == SponsorStatus.APPROVED.value
        ).all()
        return {str(profile.user_id): profile for profile in profiles}

    def sanitize_tags(self, db: Session, event: Event, raw_tags: Any) -> List[Dict[str, str]]:
        if raw_tags is None:
            raw_tags = []
        if not isinstance(raw_tags, list):
            raise ValidationError("Tags must be provided as an array")

        volunteers = self._volunteer_options(db, event.id)
        sponsors = self._sponsor_options(db)
        sanitized = []
        seen = set()
        for raw in raw_tags[:MAX_TAGS]:
            if not isinstance(raw, dict):
                continue
            kind = str(raw.get("type") or "").upper()
            tag_id = str(raw.get("id") or "")
            label = str(raw.get("label") or "").strip()

            if kind == "VOLUNTEER":
                if tag_id not in volunteers:
                    raise ValidationError("Volunteer tags must reference registered participants")
                label = volunteers[tag_id].name or "Volunteer"
            elif kind == "SPONSOR":
                if tag_id not in sponsors:
                    raise ValidationError("Sponsor tags must reference active sponsors")
                label = sponsors[tag_id].org_name
            elif kind == "COMMUNITY":
                tag_id = tag_id or to_slug(label)
                if not tag_id:
                    continue
                label = label or tag_id.replace("-", " ").title()
            else:
                continue

            key = f"{kind}:{tag_id}"
            if key in seen:
                continue
            seen.add(key)
            sanitized.append({"type": kind, "id": tag_id, "label": label})

        if event.theme:
            key = f"COMMUNITY:theme:{to_slug(event.theme)}"
            if key not in seen:
                sanitized.append({"type": "COMMUNITY", "id": key.split(":", 1)[1], "label": event.theme.title()})
        return sanitized

    def register_media(
        self,
        db: Session,
        actor: Actor,
        event_id: int,
        url: str,
        storage_key: str,
        mime_type: Optional[str] = None,
        file_size: Optional[int] = None,
        caption: Optional[str] = None,
        tags: Any = None
    ) -> Outcome:
        if not (url or "").strip() or not (storage_key or "").strip():
            raise ValidationError("A stored photo url and storage key are required")
        caption = (caption or "").strip() or None
        if caption and len(caption) > MAX_CAPTION_LENGTH:
            raise ValidationError(f"Caption must be {MAX_CAPTION_LENGTH} characters or fewer")

        with transaction(db):
            event = event_service.get_event(db, event_id)
            self.ensure_uploader_is_participant(db, event, actor)
            media = EventMedia(
                event_id=event.id,
                uploader_id=actor.id,
                url=url.strip(),
                storage_key=storage_key.strip(),
                mime_type=mime_type,
                file_size=file_size,
                caption=caption,
                tags=self.sanitize_tags(db, event, tags),
                status=ModerationStatus.PENDING.value,
            )
            db.add(media)
            db.flush()

        logger.info(f"Media {media.id} submitted for event {event_id} by {actor.id}")
        receipt = None
        if actor.email:
            receipt = EmailMessage(
                to=actor.email,
                subject="Your gallery submission is pending review",
                heading="We received your event gallery submission",
                body_lines=[
                    f"Thanks for sharing memories from {event.title}. Our moderators will review the photo soon.",
                    "You will get an email once it is approved or if we need any changes.",
                ],
                cta=cta("View event gallery", f"/app/gallery?event={event.id}"),
                preview_text="Moderators will review your media shortly.",
            )
        return outcome(serialize_media(media), receipt)

    def set_media_status(
        self,
        db: Session,
        media_id: int,
        status: ModerationStatus,
        moderator_id: Optional[int],
        reason: Optional[str] = None
    ) -> EventMedia:
        """Apply a moderation status inside the caller's transaction"""
        media = self.lock_media(db, media_id)
        now = utcnow()
        if media.status == ModerationStatus.PENDING.value and status != ModerationStatus.PENDING:
            media.moderation_time_ms = moderation_time_ms(media, now)

        media.status = status.value
        if status == ModerationStatus.APPROVED:
            media.approved_by = moderator_id
            media.approved_at = now
            media.rejection_reason = None
        elif status == ModerationStatus.REJECTED:
            media.approved_by = None
            media.approved_at = None
            media.rejection_reason = (reason or "").strip() or None
        db.flush()
        return media

    def decision_messages(self, db: Session, media: EventMedia) -> List[EmailMessage]:
        event = event_service.get_event(db, media.event_id)
        uploader = db.query(User).filter(User.id == media.uploader_id).first() if media.uploader_id else None
        gallery = cta("Open gallery", f"/app/gallery?event={event.id}")
        messages = []

        approved = media.status == ModerationStatus.APPROVED.value
        if uploader:
            if approved:
                body = [
                    f"Your photo for {event.title} is now visible in the event gallery.",
                    "Thanks for helping us tell a richer story of the day.",
                ]
            else:
                body = [
                    f"We had to reject your photo for {event.title}.",
                    f"Moderator note: {media.rejection_reason}" if media.rejection_reason
                    else "Please review the guidelines and try uploading again.",
                ]
            messages.append(EmailMessage(
                to=uploader.email,
                subject="Your gallery submission was approved" if approved
                else "Your gallery submission was rejected",
                heading="Your gallery submission is live!" if approved
                else "Your gallery submission needs attention",
                body_lines=body,
                cta=gallery if approved else None,
                preview_text=body[0],
            ))

        if approved:
            sponsor_ids = [int(tag["id"]) for tag in media.tags or []
                           if tag.get("type") == "SPONSOR" and str(tag.get("id", "")).isdigit()]
            if sponsor_ids:
                rows = (
                    db.query(SponsorProfile, User)
                    .join(User, User.id == SponsorProfile.user_id)
                    .filter(SponsorProfile.user_id.in_(sponsor_ids))
                    .all()
                )
                for profile, user in rows:
                    messages.append(EmailMessage(
                        to=profile.contact_email or user.email,
                        subject=f"You were spotlighted in the {event.title} gallery",
                        heading=f"{event.title} just highlighted your support",
                        body_lines=[
                            f"{profile.org_name}, your logo or name was tagged in the latest gallery update for {event.title}.",
                            "Take a look and share it with your community!",
                        ],
                        cta=cta("View the gallery", f"/app/gallery?event={event.id}"),
                        preview_text="Dive in to see how your sponsorship made a difference.",
                    ))
        return messages

    def list_pending_media(self, db: Session, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        page, page_size = max(page, 1), min(max(page_size, 1), MAX_PAGE_SIZE)
        query = db.query(EventMedia).filter(EventMedia.status == ModerationStatus.PENDING.value)
        total = query.count()
        rows = query.order_by(EventMedia.created_at.asc(), EventMedia.id.asc()).offset(
            (page - 1) * page_size
        ).limit(page_size).all()
        return {
            "items": [serialize_media(media) for media in rows],
            "page": page,
            "page_size": page_size,
            "total": total,
        }

    def increment_view(self, db: Session, event_id: int) -> EventGalleryMetrics:
        now = utcnow()
        upsert(
            db, EventGalleryMetrics,
            {"event_id": event_id, "view_count": 1, "last_viewed_at": now},
            keys=("event_id",),
            updates={"view_count": EventGalleryMetrics.view_count + 1, "last_viewed_at": now},
        )
        return (
            db.query(EventGalleryMetrics)
            .filter(EventGalleryMetrics.event_id == event_id)
            .populate_existing()
            .one()
        )

    def get_event_gallery(self, db: Session, event_id: int, page: int = 1, page_size: int = 12) -> Dict[str, Any]:
        page, page_size = max(page, 1), min(max(page_size, 1), MAX_PAGE_SIZE)
        with transaction(db):
            event = event_service.get_event(db, event_id)
            query = db.query(EventMedia).filter(
                EventMedia.event_id == event_id,
                EventMedia.status == ModerationStatus.APPROVED.value,
            )
            total = query.count()
            rows = query.order_by(EventMedia.approved_at.desc(), EventMedia.id.desc()).offset(
                (page - 1) * page_size
            ).limit(page_size).all()
            metrics = self.increment_view(db, event_id)

        return {
            "event": serialize_event(event),
            "items": [serialize_media(media) for media in rows],
            "page": page,
            "page_size": page_size,
            "total": total,
            "metrics": {"view_count": metrics.view_count, "last_viewed_at": metrics.last_viewed_at},
        }

    def list_events_with_galleries(self, db: Session) -> List[Dict[str, Any]]:
        rows = (
            db.query(Event, func.count(EventMedia.id))
            .join(EventMedia, EventMedia.event_id == Event.id)
            .filter(EventMedia.status == ModerationStatus.APPROVED.value)
            .group_by(Event.id)
            .order_by(Event.date_start.desc())
            .all()
        )
        return [{"event": serialize_event(event), "media_count": count} for event, count in rows]

    def get_tag_options(self, db: Session, event_id: int) -> Dict[str, Any]:
        event_service.get_event(db, event_id)
        return {
            "volunteers": [
                {"type": "VOLUNTEER", "id": key, "label": user.name}
                for key, user in self._volunteer_options(db, event_id).items()
            ],
            "sponsors": [
                {"type": "SPONSOR", "id": key, "label": profile.org_name}
                for key, profile in self._sponsor_options(db).items()
            ],
        }


# Singleton instance
gallery_service = GalleryService()
