from decimal import Decimal

import pytest

from onkur.db.models import AuditLog, SponsorProfile, Sponsorship
from onkur.domain.roles import Role
from onkur.errors import ConflictError, NotFoundError, ValidationError
from onkur.services.attendance_service import attendance_service
from onkur.services.moderation_service import moderation_service
from onkur.services.sponsor_service import compute_roi, sponsor_service


@pytest.fixture
def sponsor(db, make_user, as_actor):
    user = make_user(Role.SPONSOR, name="Sam Sponsor", email="sam@greenco.org")
    sponsor_service.apply_for_sponsor(db, as_actor(user), {"org_name": "Green Co", "website": " https://greenco.org "})
    return user


@pytest.fixture
def approved_sponsor(db, sponsor, admin, as_actor):
    moderation_service.approve(db, "sponsor", sponsor.id, as_actor(admin))
    return sponsor


def test_compute_roi():
    assert compute_roi(Decimal("500.00"), 10, 250) == {"cost_per_hour": 50.0, "impressions_per_hour": 25.0}
    assert compute_roi(100, 3, 0) == {"cost_per_hour": 33.33, "impressions_per_hour": None}
    assert compute_roi(None, 0, 40) == {"cost_per_hour": None, "impressions_per_hour": None}


def test_apply_creates_pending_profile(db, sponsor):
    profile = db.query(SponsorProfile).filter(SponsorProfile.user_id == sponsor.id).one()
    assert profile.status == "PENDING"
    assert profile.website == "https://greenco.org"


def test_reapplying_resets_approval(db, approved_sponsor, as_actor):
    result = sponsor_service.apply_for_sponsor(db, as_actor(approved_sponsor), {"org_name": "Green Co Ltd"})
    assert result.value["status"] == "PENDING"
    assert result.value["approved_at"] is None


def test_reapplying_sends_approved_sponsorships_back_to_review(db, approved_sponsor, admin, make_event, as_actor):
    pledge = sponsor_service.pledge(db, as_actor(approved_sponsor), make_event().id, "FUNDS", 100).value
    sponsor_service.update_sponsorship_approval(db, as_actor(admin), pledge["id"], "APPROVED")

    sponsor_service.apply_for_sponsor(db, as_actor(approved_sponsor), {"org_name": "Green Co Ltd"})
    db.expire_all()

    sponsorship = db.query(Sponsorship).filter(Sponsorship.id == pledge["id"]).one()
    assert sponsorship.status == "PENDING"
    assert sponsorship.approved_at is None
    assert sponsor_service.list_approved_event_sponsors(db, sponsorship.event_id) == []


@pytest.mark.parametrize("kind,amount", [("CASH", 10), ("FUNDS", None), ("FUNDS", 0), ("FUNDS", "abc")])
def test_pledge_validation(db, approved_sponsor, make_event, as_actor, kind, amount):
    with pytest.raises(ValidationError):
        sponsor_service.pledge(db, as_actor(approved_sponsor), make_event().id, kind, amount)


def test_pledge_requires_profile_and_active_event(db, make_user, approved_sponsor, make_event, as_actor):
    with pytest.raises(ValidationError):
        sponsor_service.pledge(db, as_actor(make_user()), make_event().id, "IN_KIND")
    with pytest.raises(NotFoundError):
        sponsor_service.pledge(db, as_actor(approved_sponsor), 9999, "IN_KIND")
    with pytest.raises(ValidationError):
        sponsor_service.pledge(db, as_actor(approved_sponsor), make_event(status="CANCELLED").id, "IN_KIND")


def test_new_pledges_start_pending(db, approved_sponsor, make_event, as_actor):
    result = sponsor_service.pledge(db, as_actor(approved_sponsor), make_event().id, "funds", "250.555")
    assert result.value["status"] == "PENDING"
    assert result.value["amount"] == 250.56
    assert result.effects[0].to == "sam@greenco.org"


def test_sponsorship_approval_needs_approved_profile(db, sponsor, admin, make_event, as_actor):
    pledge = sponsor_service.pledge(db, as_actor(sponsor), make_event().id, "IN_KIND").value
    with pytest.raises(ValidationError):
        sponsor_service.update_sponsorship_approval(db, as_actor(admin), pledge["id"], "APPROVED")
    with pytest.raises(ValidationError):
        sponsor_service.update_sponsorship_approval(db, as_actor(admin), pledge["id"], "PENDING")


def test_sponsorship_decisions_are_final(db, approved_sponsor, admin, make_event, as_actor):
    pledge = sponsor_service.pledge(db, as_actor(approved_sponsor), make_event().id, "IN_KIND").value
    sponsor_service.update_sponsorship_approval(db, as_actor(admin), pledge["id"], "DECLINED")

    with pytest.raises(ConflictError):
        sponsor_service.update_sponsorship_approval(db, as_actor(admin), pledge["id"], "APPROVED")
    assert db.query(Sponsorship).filter(Sponsorship.id == pledge["id"]).one().status == "DECLINED"
    assert db.query(AuditLog).filter(AuditLog.entity_type == "sponsorship").count() == 1


def test_declining_sponsor_cascades_to_sponsorships(db, approved_sponsor, admin, make_event, as_actor):
    actor = as_actor(approved_sponsor)
    ids = [
        sponsor_service.pledge(db, actor, make_event().id, "FUNDS", 100).value["id"],
        sponsor_service.pledge(db, actor, make_event().id, "IN_KIND").value["id"],
    ]
    for sponsorship_id in ids:
        sponsor_service.update_sponsorship_approval(db, as_actor(admin), sponsorship_id, "APPROVED")
    pending_id = sponsor_service.pledge(db, actor, make_event().id, "IN_KIND").value["id"]

    moderation_service.reject(db, "sponsor", approved_sponsor.id, as_actor(admin), "Paperwork expired")
    db.expire_all()

    rows = db.query(Sponsorship).filter(Sponsorship.id.in_(ids + [pending_id])).all()
    assert {row.status for row in rows} == {"DECLINED"}
    assert all(row.approved_at is None for row in rows)
    profile = db.query(SponsorProfile).filter(SponsorProfile.user_id == approved_sponsor.id).one()
    assert profile.status == "DECLINED"
    assert profile.approved_at is None

    audit = db.query(AuditLog).filter(AuditLog.action == "admin.sponsor.reject").one()
    assert audit.before["status"] == "APPROVED"
    assert audit.after["status"] == "DECLINED"
    assert db.query(AuditLog).filter(AuditLog.action == "admin.sponsorship.approve").count() == 2


def test_approved_sponsors_appear_on_event(db, approved_sponsor, admin, make_event, as_actor):
    event = make_event()
    pledge = sponsor_service.pledge(db, as_actor(approved_sponsor), event.id, "IN_KIND").value
    assert sponsor_service.list_approved_event_sponsors(db, event.id) == []

    sponsor_service.update_sponsorship_approval(db, as_actor(admin), pledge["id"], "APPROVED")
    sponsors = sponsor_service.list_approved_event_sponsors(db, event.id)
    assert len(sponsors) == 1


def test_reports_store_snapshot(db, approved_sponsor, admin, make_event, make_user, register, as_actor):
    event = make_event()
    volunteer = make_user()
    register(event, volunteer)
    attendance_service.record_volunteer_hours(db, as_actor(volunteer), event.id, 120)
    pledge = sponsor_service.pledge(db, as_actor(approved_sponsor), event.id, "FUNDS", 60).value
    sponsor_service.update_sponsorship_approval(db, as_actor(admin), pledge["id"], "APPROVED")

    result = sponsor_service.get_sponsor_reports(db, approved_sponsor.id)

    report = result.value["reports"][0]
    assert report["totals"]["total_hours"] == 2.0
    assert report["roi"]["cost_per_hour"] == 30.0
    db.expire_all()
    stored = db.query(Sponsorship).filter(Sponsorship.id == pledge["id"]).one()
    assert stored.report_snapshot["roi"]["cost_per_hour"] == 30.0
    profile = db.query(SponsorProfile).filter(SponsorProfile.user_id == approved_sponsor.id).one()
    assert profile.last_report_sent_at is not None
    assert len(result.effects) == 1
