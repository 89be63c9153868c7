from datetime import datetime, timedelta

import pytest

from onkur.domain import lifecycle
from onkur.domain.lifecycle import EventState
from onkur.domain.statuses import ApprovalStatus, EventStatus
from onkur.errors import ConflictError, ValidationError

NOW = datetime(2026, 5, 1, 12, 0)


def draft(approval=ApprovalStatus.PENDING, **kwargs):
    return EventState(status=EventStatus.DRAFT, approval_status=approval, **kwargs)


def test_publish_unapproved_event_waits_for_review():
    result = lifecycle.publish(draft(), NOW)
    assert result.awaiting_approval
    assert result.state.status == EventStatus.DRAFT
    assert result.state.approval_status == ApprovalStatus.PENDING
    assert result.state.submitted_at == NOW
    assert result.state.published_at is None


def test_publish_approved_event_goes_live():
    result = lifecycle.publish(draft(ApprovalStatus.APPROVED), NOW)
    assert not result.awaiting_approval
    assert result.state.status == EventStatus.PUBLISHED
    assert result.state.published_at == NOW


def test_publish_keeps_original_published_at():
    earlier = NOW - timedelta(days=2)
    result = lifecycle.publish(draft(ApprovalStatus.APPROVED, published_at=earlier), NOW)
    assert result.state.published_at == earlier


def test_publish_is_noop_when_already_published():
    state = EventState(EventStatus.PUBLISHED, ApprovalStatus.APPROVED, published_at=NOW)
    result = lifecycle.publish(state, NOW + timedelta(hours=1))
    assert not result.changed
    assert result.state == state


@pytest.mark.parametrize("status", [EventStatus.COMPLETED, EventStatus.CANCELLED])
def test_publish_rejects_closed_events(status):
    with pytest.raises(ConflictError):
        lifecycle.publish(EventState(status, ApprovalStatus.APPROVED), NOW)


def test_complete_only_from_published():
    published = EventState(EventStatus.PUBLISHED, ApprovalStatus.APPROVED, published_at=NOW)
    result = lifecycle.complete(published, NOW)
    assert result.state.status == EventStatus.COMPLETED
    assert result.state.completed_at == NOW
    assert not lifecycle.complete(result.state, NOW).changed
    with pytest.raises(ConflictError):
        lifecycle.complete(draft(), NOW)


def test_cancel():
    assert lifecycle.cancel(draft()).state.status == EventStatus.CANCELLED
    cancelled = EventState(EventStatus.CANCELLED, ApprovalStatus.PENDING)
    assert not lifecycle.cancel(cancelled).changed
    with pytest.raises(ConflictError):
        lifecycle.cancel(EventState(EventStatus.COMPLETED, ApprovalStatus.APPROVED))


def test_approval_forces_published():
    result = lifecycle.moderate(draft(), ApprovalStatus.APPROVED, 7, NOW, "looks good")
    assert result.state.status == EventStatus.PUBLISHED
    assert result.state.approval_status == ApprovalStatus.APPROVED
    assert result.state.published_at == NOW
    assert result.state.approval_decided_by == 7
    assert result.state.approval_note == "looks good"


def test_rejecting_a_published_event_returns_it_to_draft():
    published = EventState(EventStatus.PUBLISHED, ApprovalStatus.APPROVED, published_at=NOW)
    result = lifecycle.moderate(published, ApprovalStatus.REJECTED, 7, NOW, "wrong venue")
    assert result.state.status == EventStatus.DRAFT
    assert result.state.approval_status == ApprovalStatus.REJECTED
    assert result.state.published_at is None


def test_moderate_rejects_unknown_decision():
    with pytest.raises(ValidationError):
        lifecycle.moderate(draft(), "MAYBE", 1, NOW)
