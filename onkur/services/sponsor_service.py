"""
Sponsor Service - sponsor profiles, pledges, approvals and impact reports
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from onkur.db.database import transaction
from onkur.db.models import Event, EventGalleryMetrics, SponsorProfile, Sponsorship, User
from onkur.domain.clock import utcnow
from onkur.domain.effects import EmailMessage, Outcome, outcome
from onkur.domain.roles import Role
from onkur.domain.snapshots import SponsorshipSnapshot
from onkur.domain.statuses import SPONSORABLE_EVENT_STATUSES, SponsorStatus, SponsorshipType
from onkur.errors import ConflictError, NotFoundError, ValidationError
from onkur.services.audit_service import audit_service
from onkur.services.auth_service import Actor, auth_service
from onkur.services.event_service import event_service, serialize_event
from onkur.services.notifications import cta

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("org_name", "logo_url", "website", "contact_name", "contact_email", "contact_phone")


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def sanitize_brand_assets(payload: Any) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        return {}
    result = {}
    guidelines = _clean(payload.get("guidelines"))
    if guidelines:
        result["guidelines"] = guidelines
    for key in ("colors", "files"):
        if isinstance(payload.get(key), list):
            result[key] = [item for item in (_clean(v) for v in payload[key]) if item]
    return result


def _money(value: Any) -> Optional[float]:
    if value is None:
        return None
    return float(value)


def compute_roi(amount: Any, total_hours: Any, view_count: Any) -> Dict[str, Optional[float]]:
    """Cost and impressions per volunteer hour; None when either side is zero"""
    hours = float(total_hours or 0)
    amount = float(amount or 0)
    views = float(view_count or 0)
    return {
        "cost_per_hour": round(amount / hours, 2) if hours > 0 and amount > 0 else None,
        "impressions_per_hour": round(views / hours, 2) if hours > 0 and views > 0 else None,
    }


def serialize_profile(profile: SponsorProfile) -> Dict[str, Any]:
    return {
        "user_id": profile.user_id,
        "org_name": profile.org_name,
        "logo_url": profile.logo_url,
        "website": profile.website,
        "contact_name": profile.contact_name,
        "contact_email": profile.contact_email,
        "contact_phone": profile.contact_phone,
        "brand_assets": profile.brand_assets or {},
        "status": profile.status,
        "approved_at": profile.approved_at,
        "last_report_sent_at": profile.last_report_sent_at,
        "created_at": profile.created_at,
    }


def serialize_sponsorship(sponsorship: Sponsorship, event_title: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": sponsorship.id,
        "sponsor_id": sponsorship.sponsor_id,
        "event_id": sponsorship.event_id,
        "event_title": event_title,
        "type": sponsorship.type,
        "amount": _money(sponsorship.amount),
        "notes": sponsorship.notes,
        "status": sponsorship.status,
        "approved_at": sponsorship.approved_at,
        "created_at": sponsorship.created_at,
    }


class SponsorService:
    """Service for the sponsorship ledger"""

    def get_profile(self, db: Session, sponsor_id: int) -> SponsorProfile:
        profile = db.query(SponsorProfile).filter(SponsorProfile.user_id == sponsor_id).first()
        if not profile:
            raise NotFoundError("Sponsor profile not found")
        return profile

    def lock_profile(self, db: Session, sponsor_id: int) -> SponsorProfile:
        profile = (
            db.query(SponsorProfile)
            .filter(SponsorProfile.user_id == sponsor_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not profile:
            raise NotFoundError("Sponsor profile not found")
        return profile

    def contact_for(self, db: Session, profile: SponsorProfile) -> Dict[str, Optional[str]]:
        user = db.query(User).filter(User.id == profile.user_id).first()
        return {
            "name": profile.contact_name or (user.name if user else None) or profile.org_name,
            "email": profile.contact_email or (user.email if user else None),
        }

    def apply_for_sponsor(self, db: Session, actor: Actor, data: Dict[str, Any]) -> Outcome:
        org_name = _clean(data.get("org_name"))
        if not org_name:
            raise ValidationError("Organization name is required")

        with transaction(db):
            user = auth_service.get_user(db, actor.id)
            profile = (
                db.query(SponsorProfile)
                .filter(SponsorProfile.user_id == actor.id)
                .with_for_update()
                .first()
            )
            if profile is None:
                profile = SponsorProfile(user_id=actor.id, status=SponsorStatus.PENDING.value)
                db.add(profile)
            for name in PROFILE_FIELDS:
                setattr(profile, name, _clean(data.get(name)))
            profile.org_name = org_name
            profile.brand_assets = sanitize_brand_assets(data.get("brand_assets"))
            db.flush()
            # Re-applying always goes back to review, sponsorships included
            self.set_sponsor_status(db, actor.id, SponsorStatus.PENDING)
            if Role.SPONSOR not in user.roles:
                auth_service.grant_role(db, user, Role.SPONSOR)

        logger.info(f"User {actor.id} applied as sponsor for {org_name}")
        contact = self.contact_for(db, profile)
        notice = EmailMessage(
            to=contact["email"],
            subject="Sponsor application received",
            heading="Thanks for applying to sponsor",
            body_lines=[
                f"Hi {contact['name']},",
                f"We received the sponsor application for {org_name}.",
                "An admin will review it shortly. You can pledge support while you wait.",
            ],
            cta=cta("Open sponsor workspace", "/sponsor"),
        )
        return outcome(serialize_profile(profile), notice)

    def update_profile(self, db: Session, actor: Actor, updates: Dict[str, Any]) -> Dict[str, Any]:
        with transaction(db):
            profile = self.get_profile(db, actor.id)
            for name in PROFILE_FIELDS:
                if name in updates:
                    setattr(profile, name, _clean(updates[name]))
            if not profile.org_name:
                raise ValidationError("Organization name is required")
            if "brand_assets" in updates:
                profile.brand_assets = sanitize_brand_assets(updates["brand_assets"])
        return serialize_profile(profile)

    def list_applications(self, db: Session, statuses: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
        query = db.query(SponsorProfile)
        wanted = [s.strip().upper() for s in statuses or [] if s and s.strip()]
        if wanted:
            query = query.filter(SponsorProfile.status.in_(wanted))
        profiles = query.order_by(SponsorProfile.created_at.asc(), SponsorProfile.user_id.asc()).all()
        return [serialize_profile(profile) for profile in profiles]

    def set_sponsor_status(self, db: Session, sponsor_id: int, status: str) -> SponsorProfile:
        """
        Move a profile to a new status inside the caller's transaction.

        A profile that is not APPROVED cannot keep approved sponsorships:
        every sponsorship not already in the new status is forced to it.
        """
        try:
            status = SponsorStatus(status)
        except ValueError:
            raise ValidationError("Invalid sponsor status")

        profile = self.lock_profile(db, sponsor_id)
        profile.status = status.value
        profile.approved_at = utcnow() if status == SponsorStatus.APPROVED else None

        if status != SponsorStatus.APPROVED:
            cascaded = db.query(Sponsorship).filter(
                Sponsorship.sponsor_id == sponsor_id,
                Sponsorship.status != status.value,
            ).update(
                {Sponsorship.status: status.value, Sponsorship.approved_at: None},
                synchronize_session=False,
            )
            if cascaded:
                logger.info(f"Sponsor {sponsor_id} -> {status.value}: {cascaded} sponsorships cascaded")
        db.flush()
        return profile

    def pledge(
        self,
        db: Session,
        actor: Actor,
        event_id: int,
        sponsorship_type: str,
        amount: Any = None,
        notes: Optional[str] = None
    ) -> Outcome:
        try:
            kind = SponsorshipType(str(sponsorship_type or "").strip().upper())
        except ValueError:
            raise ValidationError("Sponsorship type must be FUNDS or IN_KIND")

        value = None
        if amount is not None and amount != "":
            try:
                value = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            except InvalidOperation:
                raise ValidationError("Amount must be a number")
            if not value.is_finite():
                raise ValidationError("Amount must be a number")
        if kind == SponsorshipType.FUNDS and (value is None or value <= 0):
            raise ValidationError("Funds sponsorships require a positive amount")
        if kind == SponsorshipType.IN_KIND and value is not None and value < 0:
            value = None

        with transaction(db):
            profile = db.query(SponsorProfile).filter(SponsorProfile.user_id == actor.id).first()
            if not profile:
                raise ValidationError("Sponsor profile is required before pledging")
            event = event_service.get_event(db, event_id)
            if event.status not in [s.value for s in SPONSORABLE_EVENT_STATUSES]:
                raise ValidationError("Only active events can receive sponsorships")

            sponsorship = Sponsorship(
                sponsor_id=profile.user_id,
                event_id=event.id,
                type=kind.value,
                amount=value,
                notes=_clean(notes),
                status=SponsorStatus.PENDING.value,
            )
            db.add(sponsorship)
            db.flush()

        logger.info(f"Sponsor {actor.id} pledged {kind.value} {value} to event {event_id}")
        contact = self.contact_for(db, profile)
        thanks = EmailMessage(
            to=contact["email"],
            subject=f"Thanks for pledging support for {event.title}",
            heading="Pledge received",
            body_lines=[
                f"Hi {contact['name']},",
                f"Your {kind.value.replace('_', '-').lower()} pledge for {event.title} is awaiting admin approval.",
                f"Amount: {value}" if value is not None else "Details: in-kind support",
            ],
            cta=cta("Track sponsorships", "/sponsor"),
        )
        return outcome(serialize_sponsorship(sponsorship, event.title), thanks)

    def list_sponsorships(self, db: Session, sponsor_id: int) -> List[Dict[str, Any]]:
        rows = (
            db.query(Sponsorship, Event.title)
            .join(Event, Event.id == Sponsorship.event_id)
            .filter(Sponsorship.sponsor_id == sponsor_id)
            .order_by(Sponsorship.created_at.desc(), Sponsorship.id.desc())
            .all()
        )
        return [serialize_sponsorship(sponsorship, title) for sponsorship, title in rows]

    def list_pending_sponsorships(self, db: Session) -> List[Dict[str, Any]]:
        rows = (
            db.query(Sponsorship, Event.title)
            .join(Event, Event.id == Sponsorship.event_id)
            .filter(Sponsorship.status == SponsorStatus.PENDING.value)
            .order_by(Sponsorship.created_at.asc(), Sponsorship.id.asc())
            .all()
        )
        return [serialize_sponsorship(sponsorship, title) for sponsorship, title in rows]

    def update_sponsorship_approval(
        self, db: Session, actor: Actor, sponsorship_id: int, status: str
    ) -> Outcome:
        try:
            status = SponsorStatus(str(status or "").strip().upper())
        except ValueError:
            raise ValidationError("Invalid sponsorship status")
        if status == SponsorStatus.PENDING:
            raise ValidationError("Sponsorships can only be approved or declined")

        with transaction(db):
            sponsorship = (
                db.query(Sponsorship)
                .filter(Sponsorship.id == sponsorship_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not sponsorship:
                raise NotFoundError("Sponsorship not found")
            if sponsorship.status != SponsorStatus.PENDING.value:
                raise ConflictError("Sponsorship has already been decided")
            profile = self.get_profile(db, sponsorship.sponsor_id)
            if status == SponsorStatus.APPROVED and profile.status != SponsorStatus.APPROVED.value:
                raise ValidationError("Sponsor profile must be approved before its sponsorships")

            before = SponsorshipSnapshot.from_model(sponsorship)
            sponsorship.status = status.value
            sponsorship.approved_at = utcnow() if status == SponsorStatus.APPROVED else None
            db.flush()
            audit_service.record(
                db, actor.id, f"admin.sponsorship.{'approve' if status == SponsorStatus.APPROVED else 'decline'}",
                SponsorshipSnapshot.entity_type, sponsorship.id,
                before, SponsorshipSnapshot.from_model(sponsorship),
            )
            event = event_service.get_event(db, sponsorship.event_id)

        logger.info(f"Sponsorship {sponsorship_id} -> {status.value} by {actor.id}")
        contact = self.contact_for(db, profile)
        if status == SponsorStatus.APPROVED:
            message = EmailMessage(
                to=contact["email"],
                subject=f"Your sponsorship for {event.title} is confirmed",
                heading="Sponsorship approved",
                body_lines=[
                    f"Hi {contact['name']},",
                    f"Your support for {event.title} is approved and now featured on the event page.",
                ],
                cta=cta("View sponsorships", "/sponsor"),
            )
        else:
            message = EmailMessage(
                to=contact["email"],
                subject=f"Update on your sponsorship for {event.title}",
                heading="Sponsorship update",
                body_lines=[
                    f"Hi {contact['name']},",
                    f"Your sponsorship for {event.title} was not approved at this time.",
                    "Reach out to the Onkur team if you would like to discuss it.",
                ],
            )
        return outcome(serialize_sponsorship(sponsorship, event.title), message)

    def list_approved_event_sponsors(self, db: Session, event_id: int) -> List[Dict[str, Any]]:
        rows = (
            db.query(Sponsorship, SponsorProfile)
            .join(SponsorProfile, SponsorProfile.user_id == Sponsorship.sponsor_id)
            .filter(
                Sponsorship.event_id == event_id,
                Sponsorship.status == SponsorStatus.APPROVED.value,
                SponsorProfile.status == SponsorStatus.APPROVED.value,
            )
            .order_by(Sponsorship.approved_at.asc())
            .all()
        )
        return [
            {
                "sponsor_id": profile.user_id,
                "org_name": profile.org_name,
                "logo_url": profile.logo_url,
                "website": profile.website,
                "type": sponsorship.type,
            }
            for sponsorship, profile in rows
        ]

    def gallery_view_count(self, db: Session, event_id: int) -> int:
        metrics = db.query(EventGalleryMetrics).filter(EventGalleryMetrics.event_id == event_id).first()
        return metrics.view_count if metrics else 0

    def _event_impact(self, db: Session, event_id: int) -> Dict[str, Any]:
        event = event_service.get_event(db, event_id)
        return {
            "event": serialize_event(event),
            "totals": event_service.compute_totals(db, event_id),
            "gallery": {"view_count": self.gallery_view_count(db, event_id)},
        }

    def _approved(self, db: Session, sponsor_id: int) -> List[Sponsorship]:
        return db.query(Sponsorship).filter(
            Sponsorship.sponsor_id == sponsor_id,
            Sponsorship.status == SponsorStatus.APPROVED.value,
        ).order_by(Sponsorship.id).all()

    def get_sponsor_dashboard(self, db: Session, sponsor_id: int) -> Dict[str, Any]:
        profile = self.get_profile(db, sponsor_id)
        approved = self._approved(db, sponsor_id)
        impacts = {event_id: self._event_impact(db, event_id) for event_id in {s.event_id for s in approved}}

        total_funds = sum(
            float(s.amount) for s in approved
            if s.type == SponsorshipType.FUNDS.value and s.amount is not None
        )
        return {
            "profile": serialize_profile(profile),
            "sponsorships": self.list_sponsorships(db, sponsor_id),
            "metrics": {
                "total_approved_sponsorships": len(approved),
                "total_funds": round(total_funds, 2),
                "total_volunteer_hours": round(
                    sum(impacts[s.event_id]["totals"]["total_hours"] for s in approved), 2
                ),
                "total_gallery_views": sum(impacts[s.event_id]["gallery"]["view_count"] for s in approved),
            },
        }

    def get_sponsor_reports(self, db: Session, sponsor_id: int) -> Outcome:
        """Build per-sponsorship impact snapshots, store them and email a summary"""
        with transaction(db):
            profile = self.get_profile(db, sponsor_id)
            reports = []
            for sponsorship in self._approved(db, sponsor_id):
                impact = self._event_impact(db, sponsorship.event_id)
                snapshot = {
                    "sponsorship_id": sponsorship.id,
                    "event": impact["event"],
                    "totals": impact["totals"],
                    "gallery": impact["gallery"],
                    "contribution": {
                        "type": sponsorship.type,
                        "amount": _money(sponsorship.amount),
                        "notes": sponsorship.notes,
                        "approved_at": sponsorship.approved_at,
                    },
                    "roi": compute_roi(
                        sponsorship.amount, impact["totals"]["total_hours"], impact["gallery"]["view_count"]
                    ),
                }
                sponsorship.report_snapshot = _jsonable(snapshot)
                reports.append(snapshot)
            if reports:
                profile.last_report_sent_at = utcnow()

        if not reports:
            return outcome({"profile": serialize_profile(profile), "reports": []})

        total_hours = round(sum(r["totals"]["total_hours"] for r in reports), 2)
        total_views = sum(r["gallery"]["view_count"] for r in reports)
        total_funds = round(sum(
            r["contribution"]["amount"] or 0 for r in reports
            if r["contribution"]["type"] == SponsorshipType.FUNDS.value
        ), 2)
        contact = self.contact_for(db, profile)
        summary = EmailMessage(
            to=contact["email"],
            subject="Your latest Onkur impact report",
            heading="Impact snapshot ready",
            body_lines=[
                f"Hi {contact['name']},",
                f"Approved sponsorships covered {len(reports)} event{'' if len(reports) == 1 else 's'}.",
                f"Volunteers delivered {total_hours} hours and the galleries earned {total_views} views.",
                f"Direct funds contributed: {total_funds}." if total_funds
                else "In-kind support amplified every moment shared in the galleries.",
            ],
            cta=cta("Review detailed reports", "/app"),
            preview_text="Your sponsorship impact snapshot is ready",
        )
        return outcome({"profile": serialize_profile(profile), "reports": reports}, summary)


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


# Singleton instance
sponsor_service = SponsorService()
