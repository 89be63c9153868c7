import os

# Settings are read at import time; point everything at an in-memory database
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUN_SCHEMA_SYNC"] = "false"
os.environ["RUN_REMINDER_SCHEDULER"] = "false"
os.environ["ADMIN_EMAIL"] = ""
os.environ["SMTP_HOST"] = "localhost"
os.environ["APP_BASE_URL"] = "https://onkur.test"

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402

from onkur.db.database import Base, SessionLocal, engine  # noqa: E402
from onkur.db.models import Event, EventSignup, User, UserRole  # noqa: E402
from onkur.domain.clock import utcnow  # noqa: E402
from onkur.domain.roles import Role, determine_primary_role  # noqa: E402
from onkur.services.auth_service import actor_for, auth_service  # noqa: E402
from onkur.services.notifications import notifier  # noqa: E402

PASSWORD = "correct-horse-battery"


class RecordingEmail:
    """Stands in for the SMTP transport and keeps every message"""

    def __init__(self, fail=False):
        self.sent = []
        self.fail = fail

    async def send_templated_email(self, message):
        if self.fail:
            raise RuntimeError("smtp down")
        self.sent.append(message)
        return {"success": True}

    def subjects(self):
        return [message.subject for message in self.sent]

    def recipients(self):
        return [message.to for message in self.sent]


@pytest.fixture(scope="session")
def password_hash():
    return auth_service.hash_password(PASSWORD)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def outbox(monkeypatch):
    recorder = RecordingEmail()
    monkeypatch.setattr(notifier, "email", recorder)
    return recorder


@pytest.fixture
def make_user(db, password_hash):
    counter = {"n": 0}

    def factory(*roles, name=None, email=None):
        counter["n"] += 1
        roles = roles or (Role.VOLUNTEER,)
        user = User(
            name=name or f"User {counter['n']}",
            email=email or f"user{counter['n']}@example.org",
            password_hash=password_hash,
            role=determine_primary_role(roles).value,
            email_verified_at=utcnow(),
        )
        user.role_rows = [UserRole(role=Role(r).value) for r in roles]
        db.add(user)
        db.commit()
        return user

    return factory


@pytest.fixture
def manager(make_user):
    return make_user(Role.EVENT_MANAGER, name="Maya Manager", email="maya@example.org")


@pytest.fixture
def admin(make_user):
    return make_user(Role.ADMIN, name="Ada Admin", email="ada@example.org")


@pytest.fixture
def make_event(db, manager):
    def factory(capacity=10, status="PUBLISHED", approval_status=None, starts_in=timedelta(days=3), **extra):
        start = utcnow() + starts_in
        if approval_status is None:
            approval_status = "APPROVED" if status in ("PUBLISHED", "COMPLETED") else "PENDING"
        event = Event(
            title=extra.pop("title", "River clean-up"),
            description="Clearing plastic from the riverbank.",
            category="Environment",
            date_start=start,
            date_end=start + timedelta(hours=3),
            location="Riverside Park",
            capacity=capacity,
            status=status,
            approval_status=approval_status,
            published_at=utcnow() if status == "PUBLISHED" else None,
            created_by=extra.pop("created_by", manager.id),
            **extra,
        )
        db.add(event)
        db.commit()
        return event

    return factory


@pytest.fixture
def register(db):
    def factory(event, user):
        signup = EventSignup(event_id=event.id, user_id=user.id)
        db.add(signup)
        db.commit()
        return signup

    return factory


@pytest.fixture
def as_actor():
    return actor_for


@pytest.fixture
def client(db):
    from fastapi.testclient import TestClient
    from onkur.main import app

    return TestClient(app)


@pytest.fixture
def auth_header():
    def factory(user):
        token = auth_service.create_access_token(user)["access_token"]
        return {"Authorization": f"Bearer {token}"}

    return factory
