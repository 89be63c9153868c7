"""
Typed before/after snapshots written to the audit log
"""
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional


def _json_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, list):
        return [_json_value(v) for v in value]
    return value


@dataclass(frozen=True)
class Snapshot:
    entity_type = "entity"

    @classmethod
    def from_model(cls, row: Any) -> Optional["Snapshot"]:
        if row is None:
            return None
        return cls(**{f.name: getattr(row, f.name) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Any]:
        return {key: _json_value(value) for key, value in asdict(self).items()}


@dataclass(frozen=True)
class EventSnapshot(Snapshot):
    entity_type = "event"

    id: int
    title: str
    status: str
    approval_status: str
    approval_note: Optional[str]
    published_at: Optional[datetime]
    created_by: Optional[int]


@dataclass(frozen=True)
class SponsorProfileSnapshot(Snapshot):
    entity_type = "sponsor_profile"

    user_id: int
    org_name: str
    status: str
    approved_at: Optional[datetime]


@dataclass(frozen=True)
class SponsorshipSnapshot(Snapshot):
    entity_type = "sponsorship"

    id: int
    sponsor_id: int
    event_id: int
    type: str
    amount: Optional[Decimal]
    status: str
    approved_at: Optional[datetime]


@dataclass(frozen=True)
class MediaSnapshot(Snapshot):
    entity_type = "event_media"

    id: int
    event_id: int
    uploader_id: Optional[int]
    status: str
    rejection_reason: Optional[str]
    approved_by: Optional[int]
    approved_at: Optional[datetime]
    moderation_time_ms: Optional[int]


@dataclass(frozen=True)
class StorySnapshot(Snapshot):
    entity_type = "event_story"

    id: int
    event_id: int
    author_id: Optional[int]
    status: str
    rejection_reason: Optional[str]
    published_at: Optional[datetime]
    moderation_time_ms: Optional[int]


@dataclass(frozen=True)
class UserSnapshot(Snapshot):
    entity_type = "user"

    id: int
    email: str
    role: str
    roles: List[str]
    is_active: bool
    email_verified_at: Optional[datetime]
