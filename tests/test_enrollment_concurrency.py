import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from onkur.db.database import Base
from onkur.db.models import Event, EventSignup, User, UserRole
from onkur.domain.clock import utcnow
from onkur.errors import ConflictError
from onkur.services.auth_service import actor_for
from onkur.services.enrollment_service import enrollment_service

POSTGRES_URL = os.environ.get("ONKUR_TEST_POSTGRES_URL", "")

pytestmark = pytest.mark.skipif(
    not POSTGRES_URL.startswith("postgresql"),
    reason="set ONKUR_TEST_POSTGRES_URL to run row-lock tests against PostgreSQL",
)

VOLUNTEERS = 8
CAPACITY = 3


@pytest.fixture
def pg_sessions():
    engine = create_engine(POSTGRES_URL, pool_size=VOLUNTEERS, max_overflow=0)
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def test_simultaneous_signups_never_overfill_an_event(pg_sessions):
    with pg_sessions() as db:
        users = []
        for n in range(VOLUNTEERS):
            user = User(name=f"Racer {n}", email=f"racer{n}@example.org", password_hash="x", role="VOLUNTEER")
            user.role_rows = [UserRole(role="VOLUNTEER")]
            users.append(user)
        manager = User(name="Maya Manager", email="maya@example.org", password_hash="x", role="EVENT_MANAGER")
        manager.role_rows = [UserRole(role="EVENT_MANAGER")]
        db.add_all(users + [manager])
        db.flush()

        start = utcnow() + timedelta(days=2)
        event = Event(
            title="Tree planting", description="Saplings along the ring road.", category="Environment",
            date_start=start, date_end=start + timedelta(hours=2), location="Ring road",
            capacity=CAPACITY, status="PUBLISHED", approval_status="APPROVED", created_by=manager.id,
        )
        db.add(event)
        db.commit()
        event_id = event.id
        actors = [actor_for(user) for user in users]

    barrier = threading.Barrier(VOLUNTEERS)

    def attempt(actor):
        with pg_sessions() as session:
            barrier.wait()
            try:
                enrollment_service.signup(session, actor, event_id)
                return True
            except ConflictError:
                return False

    with ThreadPoolExecutor(max_workers=VOLUNTEERS) as pool:
        results = list(pool.map(attempt, actors))

    assert results.count(True) == CAPACITY
    with pg_sessions() as db:
        assert db.query(EventSignup).filter(EventSignup.event_id == event_id).count() == CAPACITY
