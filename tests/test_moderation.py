from dataclasses import replace

import pytest

from onkur.db.database import SessionLocal
from onkur.db.models import AuditLog, Event, EventMedia
from onkur.domain.roles import Role
from onkur.errors import ForbiddenError, NotFoundError, ValidationError
from onkur.services.event_service import event_service
from onkur.services.gallery_service import gallery_service
from onkur.services.moderation_service import TARGETS, moderation_service
from onkur.services.story_service import story_service

STORY_BODY = "We cleared two tonnes of plastic from the riverbank before lunch."


def test_publish_without_approval_waits_for_review(db, make_event, manager, as_actor):
    event = make_event(status="DRAFT")
    result = event_service.publish_event(db, as_actor(manager), event.id)

    assert result.value["awaiting_approval"]
    assert result.value["status"] == "DRAFT"
    assert "awaiting approval" in result.effects[0].subject
    db.refresh(event)
    assert event.submitted_at is not None
    assert event.approval_status == "PENDING"


def test_approving_an_event_publishes_it(db, make_event, manager, admin, as_actor):
    event = make_event(status="DRAFT")
    event_service.publish_event(db, as_actor(manager), event.id)

    result = moderation_service.approve(db, "event", event.id, as_actor(admin), "Looks great")

    assert result.value["status"] == "PUBLISHED"
    assert result.value["approval_status"] == "APPROVED"
    assert result.effects[0].to == manager.email
    db.refresh(event)
    assert event.published_at is not None
    assert event.approval_decided_by == admin.id


def test_reject_after_publish_moves_back_to_draft(db, make_event, admin, as_actor):
    event = make_event(status="PUBLISHED")
    moderation_service.reject(db, "event", event.id, as_actor(admin), "Venue unavailable")

    db.refresh(event)
    assert event.status == "DRAFT"
    assert event.approval_status == "REJECTED"
    assert event.published_at is None
    assert event.approval_note == "Venue unavailable"

    audit = db.query(AuditLog).filter(AuditLog.entity_type == "event").one()
    assert audit.action == "admin.event.reject"
    assert audit.actor_id == admin.id
    assert audit.entity_id == str(event.id)
    assert audit.before["status"] == "PUBLISHED"
    assert audit.after["status"] == "DRAFT"


def test_failed_decision_leaves_no_audit_row(db, admin, as_actor):
    with pytest.raises(NotFoundError):
        moderation_service.approve(db, "event", 404, as_actor(admin))
    with pytest.raises(ValidationError):
        moderation_service.approve(db, "invoice", 1, as_actor(admin))
    assert db.query(AuditLog).count() == 0


def test_moderation_queue_lists_pending_events(db, make_event, manager, as_actor):
    event = make_event(status="DRAFT")
    make_event(status="PUBLISHED")
    event_service.publish_event(db, as_actor(manager), event.id)

    queue = moderation_service.get_moderation_queue(db, "event")
    assert [item["id"] for item in queue] == [event.id]


def test_media_upload_requires_participation(db, make_event, make_user, as_actor):
    with pytest.raises(ForbiddenError):
        gallery_service.register_media(
            db, as_actor(make_user()), make_event().id, "https://cdn.test/a.jpg", "events/1/a.jpg"
        )


def test_media_tags_are_sanitized(db, make_event, make_user, register, as_actor):
    event = make_event(theme="river care")
    volunteer = make_user(name="Vera Volunteer")
    register(event, volunteer)
    tags = [
        {"type": "VOLUNTEER", "id": volunteer.id},
        {"type": "COMMUNITY", "label": "Clean Water"},
        {"type": "COMMUNITY", "label": "Clean Water"},
        {"type": "UNKNOWN", "id": "x"},
    ]

    media = gallery_service.register_media(
        db, as_actor(volunteer), event.id, "https://cdn.test/a.jpg", "events/1/a.jpg", tags=tags
    ).value

    assert media["status"] == "PENDING"
    assert media["tags"] == [
        {"type": "VOLUNTEER", "id": str(volunteer.id), "label": "Vera Volunteer"},
        {"type": "COMMUNITY", "id": "clean-water", "label": "Clean Water"},
        {"type": "COMMUNITY", "id": "theme:river-care", "label": "River Care"},
    ]


def test_media_moderation_time_is_recorded_once(db, make_event, make_user, register, admin, as_actor):
    event = make_event()
    volunteer = make_user()
    register(event, volunteer)
    media = gallery_service.register_media(
        db, as_actor(volunteer), event.id, "https://cdn.test/a.jpg", "events/1/a.jpg"
    ).value

    approved = moderation_service.approve(db, "media", media["id"], as_actor(admin)).value
    assert approved["status"] == "APPROVED"
    assert approved["moderation_time_ms"] is not None

    rejected = moderation_service.reject(db, "media", media["id"], as_actor(admin), "Blurry").value
    assert rejected["moderation_time_ms"] == approved["moderation_time_ms"]
    row = db.query(EventMedia).one()
    assert row.rejection_reason == "Blurry"
    assert row.approved_at is None


def test_gallery_shows_only_approved_media(db, make_event, make_user, register, admin, as_actor):
    event = make_event()
    volunteer = make_user()
    register(event, volunteer)
    actor = as_actor(volunteer)
    first = gallery_service.register_media(db, actor, event.id, "https://cdn.test/1.jpg", "k1").value
    gallery_service.register_media(db, actor, event.id, "https://cdn.test/2.jpg", "k2")
    moderation_service.approve(db, "media", first["id"], as_actor(admin))

    gallery = gallery_service.get_event_gallery(db, event.id)

    assert [item["id"] for item in gallery["items"]] == [first["id"]]
    assert gallery_service.get_event_gallery(db, event.id)["metrics"]["view_count"] == 2


def test_story_lifecycle(db, make_event, make_user, register, admin, as_actor):
    event = make_event()
    volunteer = make_user()
    register(event, volunteer)
    actor = as_actor(volunteer)

    with pytest.raises(ValidationError):
        story_service.submit_story(db, actor, event.id, "Short", STORY_BODY)
    with pytest.raises(ValidationError):
        story_service.submit_story(db, actor, event.id, "River day", "Too short")
    with pytest.raises(ForbiddenError):
        story_service.submit_story(db, as_actor(make_user()), event.id, "River day", STORY_BODY)

    story = story_service.submit_story(db, actor, event.id, "River day", STORY_BODY).value
    assert story_service.list_event_stories(db, event.id) == []

    moderation_service.approve(db, "story", story["id"], as_actor(admin))
    stories = story_service.list_event_stories(db, event.id)
    assert [s["id"] for s in stories] == [story["id"]]
    assert stories[0]["published_at"] is not None


def test_notification_build_errors_do_not_fail_the_decision(db, make_event, admin, as_actor, monkeypatch):
    def broken(db, entity):
        raise RuntimeError("template missing")

    monkeypatch.setitem(TARGETS, "event", replace(TARGETS["event"], messages=broken))
    event = make_event(status="DRAFT")

    result = moderation_service.approve(db, "event", event.id, as_actor(admin))

    assert result.effects == []
    assert db.query(Event).filter(Event.id == event.id).one().status == "PUBLISHED"


def _commit_elsewhere(model, row_id, values):
    other = SessionLocal()
    try:
        other.query(model).filter(model.id == row_id).update(values)
        other.commit()
    finally:
        other.close()


def test_locked_load_sees_changes_committed_by_another_session(db, make_event):
    event = make_event(status="DRAFT")
    assert event.approval_note is None

    _commit_elsewhere(Event, event.id, {Event.approval_note: "changed elsewhere"})

    locked = event_service.lock_event(db, event.id)
    assert locked is event
    assert locked.approval_note == "changed elsewhere"
    db.rollback()


def test_decision_snapshots_the_row_as_locked(db, make_event, admin, as_actor):
    event = make_event(status="DRAFT")
    assert event.title == "River clean-up"

    _commit_elsewhere(Event, event.id, {Event.title: "Renamed while queued"})
    moderation_service.approve(db, "event", event.id, as_actor(admin))

    log = db.query(AuditLog).filter(AuditLog.action == "admin.event.approve").one()
    assert log.before["title"] == "Renamed while queued"
    assert log.after["title"] == "Renamed while queued"
