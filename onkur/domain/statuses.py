"""
Status vocabularies stored in the status columns
"""
import enum


class EventStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ApprovalStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class SponsorStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"


class SponsorshipType(str, enum.Enum):
    FUNDS = "FUNDS"
    IN_KIND = "IN_KIND"


class ModerationStatus(str, enum.Enum):
    """Shared by media and stories"""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AssignmentStatus(str, enum.Enum):
    ASSIGNED = "ASSIGNED"
    COMPLETED = "COMPLETED"


# Events that can receive sponsorships
SPONSORABLE_EVENT_STATUSES = (EventStatus.PUBLISHED, EventStatus.COMPLETED)
