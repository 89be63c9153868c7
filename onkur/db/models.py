"""
SQLAlchemy ORM models for the Onkur service
"""
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, Date,
    ForeignKey, JSON, Numeric, UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from onkur.db.database import Base

# JSONB on Postgres, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(120), nullable=False)
    email = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="VOLUNTEER")
    is_active = Column(Boolean, nullable=False, default=True)
    email_verified_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        Index("ix_users_email_lower", func.lower(email), unique=True),
    )

    # Relationships
    role_rows = relationship(
        "UserRole", back_populates="user", cascade="all, delete-orphan", lazy="selectin"
    )
    sponsor_profile = relationship("SponsorProfile", back_populates="user", uselist=False)
    volunteer_profile = relationship("VolunteerProfile", back_populates="user", uselist=False)

    @property
    def roles(self):
        return [row.role for row in self.role_rows]


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    role = Column(String(20), primary_key=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "role IN ('VOLUNTEER', 'EVENT_MANAGER', 'SPONSOR', 'ADMIN')",
            name="user_roles_role_check"
        ),
    )

    user = relationship("User", back_populates="role_rows")


class RevokedToken(Base):
    __tablename__ = "revoked_tokens"

    jti = Column(String(64), primary_key=True)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, server_default=func.now())


class EmailVerificationToken(Base):
    __tablename__ = "email_verification_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())


class VolunteerProfile(Base):
    __tablename__ = "volunteer_profiles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    skills = Column(JSONType, nullable=False, default=list)
    interests = Column(JSONType, nullable=False, default=list)
    availability = Column(JSONType, nullable=False, default=list)
    location = Column(String(120))
    state = Column(String(120))
    bio = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="volunteer_profile")


class ProfileOption(Base):
    """Skills, interests and cities offered as suggestions on the profile form"""
    __tablename__ = "profile_options"

    option_type = Column(String(20), primary_key=True)
    value = Column(String(120), primary_key=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint(
            "option_type IN ('skill', 'interest', 'city')",
            name="profile_options_type_check"
        ),
    )


class EventCategory(Base):
    __tablename__ = "event_categories"

    value = Column(String(100), primary_key=True)
    label = Column(String(100), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Event(Base):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    category = Column(String(100), nullable=False)
    theme = Column(String(100))
    requirements = Column(Text)
    date_start = Column(DateTime, nullable=False)
    date_end = Column(DateTime, nullable=False)
    location = Column(String(255))
    is_online = Column(Boolean, nullable=False, default=False)
    capacity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="DRAFT")
    approval_status = Column(String(20), nullable=False, default="PENDING")
    approval_note = Column(Text)
    approval_decided_at = Column(DateTime)
    approval_decided_by = Column(Integer, ForeignKey("users.id"))
    submitted_at = Column(DateTime)
    published_at = Column(DateTime)
    completed_at = Column(DateTime)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("capacity > 0", name="events_capacity_check"),
        CheckConstraint(
            "status IN ('DRAFT', 'PUBLISHED', 'CANCELLED', 'COMPLETED')",
            name="events_status_check"
        ),
        CheckConstraint(
            "approval_status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="events_approval_status_check"
        ),
        Index("ix_events_status_start", "status", "date_start"),
    )

    # Relationships
    creator = relationship("User", foreign_keys=[created_by])
    tasks = relationship("EventTask", back_populates="event", cascade="all, delete-orphan")
    signups = relationship("EventSignup", back_populates="event", cascade="all, delete-orphan")


class EventSignup(Base):
    __tablename__ = "event_signups"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default="REGISTERED")
    reminder_sent_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="unique_event_signup"),
    )

    event = relationship("Event", back_populates="signups")
    user = relationship("User")


class EventTask(Base):
    __tablename__ = "event_tasks"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    required_count = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("required_count > 0", name="event_tasks_required_count_check"),
    )

    event = relationship("Event", back_populates="tasks")


class EventAssignment(Base):
    __tablename__ = "event_assignments"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    task_id = Column(Integer, ForeignKey("event_tasks.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default="ASSIGNED")
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        UniqueConstraint("event_id", "task_id", "user_id", name="unique_event_assignment"),
        CheckConstraint("status IN ('ASSIGNED', 'COMPLETED')", name="event_assignments_status_check"),
    )

    task = relationship("EventTask")
    user = relationship("User")


class VolunteerHours(Base):
    __tablename__ = "volunteer_hours"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="SET NULL"))
    minutes = Column(Integer, nullable=False)
    note = Column(Text)
    verified_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        CheckConstraint("minutes > 0", name="volunteer_hours_minutes_check"),
        Index("ix_volunteer_hours_user", "user_id", "created_at"),
    )


class EventAttendance(Base):
    __tablename__ = "event_attendance"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    check_in_at = Column(DateTime)
    check_out_at = Column(DateTime)
    minutes = Column(Integer)
    hours_entry_id = Column(Integer, ForeignKey("volunteer_hours.id", ondelete="SET NULL"))
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="unique_event_attendance"),
    )


class EventReport(Base):
    __tablename__ = "event_reports"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    total_signups = Column(Integer, nullable=False, default=0)
    total_checked_in = Column(Integer, nullable=False, default=0)
    total_minutes = Column(Integer, nullable=False, default=0)
    attendance_rate = Column(Numeric(5, 2), nullable=False, default=0)
    generated_at = Column(DateTime, server_default=func.now())


class SponsorProfile(Base):
    __tablename__ = "sponsor_profiles"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    org_name = Column(String(255), nullable=False)
    logo_url = Column(String(500))
    website = Column(String(500))
    contact_name = Column(String(255))
    contact_email = Column(String(255))
    contact_phone = Column(String(50))
    brand_assets = Column(JSONType)
    status = Column(String(20), nullable=False, default="PENDING")
    approved_at = Column(DateTime)
    last_report_sent_at = Column(DateTime)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'DECLINED')",
            name="sponsor_profiles_status_check"
        ),
    )

    user = relationship("User", back_populates="sponsor_profile")


class Sponsorship(Base):
    __tablename__ = "sponsorships"

    id = Column(Integer, primary_key=True, index=True)
    sponsor_id = Column(
        Integer, ForeignKey("sponsor_profiles.user_id", ondelete="CASCADE"), nullable=False
    )
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)
    amount = Column(Numeric(12, 2))
    notes = Column(Text)
    status = Column(String(20), nullable=False, default="PENDING")
    approved_at = Column(DateTime)
    report_snapshot = Column(JSONType)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("type IN ('FUNDS', 'IN_KIND')", name="sponsorships_type_check"),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'DECLINED')",
            name="sponsorships_status_check"
        ),
    )

    event = relationship("Event")
    sponsor = relationship("SponsorProfile")


class EventMedia(Base):
    __tablename__ = "event_media"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    uploader_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    url = Column(String(1000), nullable=False)
    storage_key = Column(String(500), nullable=False)
    mime_type = Column(String(100))
    file_size = Column(Integer)
    caption = Column(Text)
    tags = Column(JSONType)
    status = Column(String(20), nullable=False, default="PENDING")
    rejection_reason = Column(Text)
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime)
    moderation_time_ms = Column(Integer)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="event_media_status_check"
        ),
    )

    event = relationship("Event")
    uploader = relationship("User", foreign_keys=[uploader_id])


class EventGalleryMetrics(Base):
    __tablename__ = "event_gallery_metrics"

    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), primary_key=True)
    view_count = Column(Integer, nullable=False, default=0)
    last_viewed_at = Column(DateTime)


class EventStory(Base):
    __tablename__ = "event_stories"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    author_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")
    rejection_reason = Column(Text)
    approved_by = Column(Integer, ForeignKey("users.id"))
    approved_at = Column(DateTime)
    published_at = Column(DateTime)
    moderation_time_ms = Column(Integer)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="event_stories_status_check"
        ),
    )

    event = relationship("Event")
    author = relationship("User", foreign_keys=[author_id])


class AnalyticsDaily(Base):
    __tablename__ = "analytics_daily"

    metric_date = Column(Date, primary_key=True)
    metric_key = Column(String(100), primary_key=True)
    value = Column(Integer, nullable=False, default=0)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    action = Column(String(100), nullable=False)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(64))
    before = Column(JSONType)
    after = Column(JSONType)
    created_at = Column(DateTime, server_default=func.now(), index=True)
