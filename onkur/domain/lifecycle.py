"""
Event lifecycle x approval state machine

Two axes live on an event: the lifecycle status and the approval status.
Every rule coupling them is expressed here as a pure transition so the
services only load, transition and store.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from onkur.domain.statuses import ApprovalStatus, EventStatus
from onkur.errors import ConflictError, ValidationError


@dataclass(frozen=True)
class EventState:
    status: EventStatus
    approval_status: ApprovalStatus
    published_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    approval_note: Optional[str] = None
    approval_decided_at: Optional[datetime] = None
    approval_decided_by: Optional[int] = None


@dataclass(frozen=True)
class Transition:
    state: EventState
    changed: bool
    awaiting_approval: bool = False


def publish(state: EventState, now: datetime) -> Transition:
    """
    Publish an event.

    Unapproved events stay DRAFT and are stamped as submitted for review;
    approval is only changed by a moderation decision.
    """
    if state.status == EventStatus.PUBLISHED:
        return Transition(state, changed=False)
    if state.status == EventStatus.COMPLETED:
        raise ConflictError("Completed events cannot be published")
    if state.status == EventStatus.CANCELLED:
        raise ConflictError("Cancelled events cannot be published")

    if state.approval_status != ApprovalStatus.APPROVED:
        return Transition(replace(state, submitted_at=now), changed=True, awaiting_approval=True)

    return Transition(
        replace(state, status=EventStatus.PUBLISHED, published_at=state.published_at or now),
        changed=True,
    )


def complete(state: EventState, now: datetime) -> Transition:
    if state.status == EventStatus.COMPLETED:
        return Transition(state, changed=False)
    if state.status != EventStatus.PUBLISHED:
        raise ConflictError("Only published events can be completed")
    return Transition(replace(state, status=EventStatus.COMPLETED, completed_at=now), changed=True)


def cancel(state: EventState) -> Transition:
    if state.status == EventStatus.CANCELLED:
        return Transition(state, changed=False)
    if state.status == EventStatus.COMPLETED:
        raise ConflictError("Completed events cannot be cancelled")
    return Transition(replace(state, status=EventStatus.CANCELLED), changed=True)


def moderate(
    state: EventState,
    decision: ApprovalStatus,
    actor_id: Optional[int],
    now: datetime,
    note: Optional[str] = None,
) -> Transition:
    """Apply an approval decision and the lifecycle status it forces"""
    try:
        decision = ApprovalStatus(decision)
    except ValueError:
        raise ValidationError("Invalid approval status")

    decided = replace(
        state,
        approval_status=decision,
        approval_note=note,
        approval_decided_at=now,
        approval_decided_by=actor_id,
    )
    if decision == ApprovalStatus.APPROVED:
        decided = replace(
            decided, status=EventStatus.PUBLISHED, published_at=state.published_at or now
        )
    elif decision == ApprovalStatus.REJECTED:
        decided = replace(decided, status=EventStatus.DRAFT, published_at=None)
    else:
        decided = replace(decided, approval_decided_at=None, approval_decided_by=None)
    return Transition(decided, changed=decided != state)
