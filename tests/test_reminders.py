"""
Tests for reminder emission at the configured lead horizons.
"""

from __future__ import annotations

from datetime import datetime, timezone

from appointment_engine.application.use_cases.reminders import ReminderUseCase
from appointment_engine.domain.entities.appointment import AppointmentStatus
from tests.conftest import ADMIN, CUSTOMER, TUESDAY, hm


def _reminders(store, directory, notifier, clock) -> ReminderUseCase:
    return ReminderUseCase(store=store, directory=directory, notifier=notifier, lead_hours=(24, 2), clock=clock)


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 1, day, hour, minute, tzinfo=timezone.utc)


def test_each_horizon_fires_once(engine, store, directory, notifier, clock):
    appointment = engine.book(CUSTOMER, "biz-1", "cut", TUESDAY, hm(9), staff_id="staff-a")
    notifier.events.clear()
    reminders = _reminders(store, directory, notifier, clock)

    # 25 hours out: nothing due yet
    assert reminders.run() == 0

    clock.set(_at(7, 9, 30))
    assert reminders.run() == 1
    assert reminders.run() == 0
    assert notifier.events[0].event_type == "appointment_reminder"
    assert notifier.events[0].recipient_id == "cust-1"
    assert notifier.events[0].payload["lead_hours"] == 24

    clock.set(_at(8, 7, 30))
    assert reminders.run() == 1
    assert notifier.events[-1].payload["lead_hours"] == 2
    assert store.get(appointment.id).reminders_sent == frozenset({24, 2})


def test_late_run_sends_only_the_nearest_reminder(engine, store, directory, notifier, clock):
    appointment = engine.book(CUSTOMER, "biz-1", "cut", TUESDAY, hm(9), staff_id="staff-a")
    notifier.events.clear()
    reminders = _reminders(store, directory, notifier, clock)

    assert reminders.run(now=_at(8, 8)) == 1
    assert reminders.run(now=_at(8, 8, 30)) == 0
    assert [e.payload["lead_hours"] for e in notifier.events] == [2]
    assert store.get(appointment.id).reminders_sent == frozenset({24, 2})


def test_cancelled_and_past_appointments_are_skipped(engine, store, directory, notifier, clock):
    cancelled = engine.book(CUSTOMER, "biz-1", "cut", TUESDAY, hm(10), staff_id="staff-a")
    engine.cancel(CUSTOMER, cancelled.id)
    engine.book(CUSTOMER, "biz-1", "cut", TUESDAY, hm(9), staff_id="staff-b")
    notifier.events.clear()
    reminders = _reminders(store, directory, notifier, clock)

    assert reminders.run(now=_at(8, 9, 30)) == 0
    assert notifier.events == []
    assert store.get(cancelled.id).status == AppointmentStatus.cancelled


def test_publish_failure_is_logged_and_run_continues(engine, store, directory, clock):
    engine.book(CUSTOMER, "biz-1", "cut", TUESDAY, hm(9), staff_id="staff-a")

    class BrokenNotifier:
        def publish(self, event):
            raise ConnectionError("down")

    reminders = ReminderUseCase(store=store, directory=directory, notifier=BrokenNotifier(), clock=clock)
    assert reminders.run(now=_at(8, 8)) == 0


def test_record_changed_after_listing_gets_no_reminder(engine, store, directory, notifier, clock, monkeypatch):
    appointment = engine.book(CUSTOMER, "biz-1", "cut", TUESDAY, hm(9), staff_id="staff-a")
    notifier.events.clear()
    reminders = _reminders(store, directory, notifier, clock)
    get_business = directory.get_business
    cancelled = []

    def cancel_then_lookup(business_id):
        # cancel between the candidate listing and the reminder mark
        if not cancelled:
            cancelled.append(True)
            engine.cancel(ADMIN, appointment.id)
        return get_business(business_id)

    monkeypatch.setattr(directory, "get_business", cancel_then_lookup)
    clock.set(_at(7, 9, 30))

    assert reminders.run() == 0
    assert [e for e in notifier.events if e.event_type == "appointment_reminder"] == []
    current = store.get(appointment.id)
    assert current.status == AppointmentStatus.cancelled
    assert current.reminders_sent == frozenset()
