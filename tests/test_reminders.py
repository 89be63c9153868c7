import asyncio
from datetime import timedelta

from onkur.db.models import EventSignup
from onkur.services.notifications import Notifier
from onkur.services.reminder_service import ReminderScheduler, reminder_service
from tests.conftest import RecordingEmail


def test_only_soon_published_events_are_claimed(db, make_user, make_event, register):
    volunteer = make_user()
    soon = make_event(starts_in=timedelta(hours=5), title="Tree planting")
    later = make_event(starts_in=timedelta(days=3))
    draft = make_event(status="DRAFT", starts_in=timedelta(hours=2))
    past = make_event(starts_in=timedelta(hours=-1))
    for event in (soon, later, draft, past):
        register(event, volunteer)

    claimed = reminder_service.claim_due_reminders(db, window_hours=24)

    assert [item["event"].id for item in claimed] == [soon.id]
    db.expire_all()
    sent = db.query(EventSignup).filter(EventSignup.reminder_sent_at.isnot(None)).all()
    assert [signup.event_id for signup in sent] == [soon.id]


def test_reminders_are_sent_once(db, make_user, make_event, register):
    event = make_event(starts_in=timedelta(hours=5))
    volunteers = [make_user(), make_user()]
    for volunteer in volunteers:
        register(event, volunteer)
    recorder = RecordingEmail()
    sender = Notifier(email=recorder)

    first = asyncio.run(reminder_service.dispatch_event_reminders(db, sender=sender))
    second = asyncio.run(reminder_service.dispatch_event_reminders(db, sender=sender))

    assert first == {"claimed": 2, "delivered": 2}
    assert second == {"claimed": 0, "delivered": 0}
    assert sorted(recorder.recipients()) == sorted(v.email for v in volunteers)
    assert all(subject.startswith("Reminder:") for subject in recorder.subjects())


def test_failed_delivery_still_counts_as_claimed(db, make_user, make_event, register):
    event = make_event(starts_in=timedelta(hours=5))
    register(event, make_user())

    result = asyncio.run(
        reminder_service.dispatch_event_reminders(db, sender=Notifier(email=RecordingEmail(fail=True)))
    )

    assert result == {"claimed": 1, "delivered": 0}
    assert reminder_service.claim_due_reminders(db) == []


def test_scheduler_run_once_and_lifecycle(db, make_user, make_event, register, outbox):
    event = make_event(starts_in=timedelta(hours=5))
    volunteer = make_user()
    register(event, volunteer)

    async def scenario():
        scheduler = ReminderScheduler(interval_seconds=3600)
        result = await scheduler.run_once()
        scheduler.start()
        assert scheduler.running
        await scheduler.stop()
        assert not scheduler.running
        return result

    assert asyncio.run(scenario()) == {"claimed": 1, "delivered": 1}
    assert outbox.recipients() == [volunteer.email]


def test_celery_task_runs_a_dispatch(db, make_user, make_event, register, outbox):
    from onkur.worker.tasks import dispatch_event_reminders

    event = make_event(starts_in=timedelta(hours=5))
    volunteer = make_user()
    register(event, volunteer)

    assert dispatch_event_reminders() == {"claimed": 1, "delivered": 1}
    assert outbox.recipients() == [volunteer.email]
