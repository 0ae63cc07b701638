"""
Pytest fixtures shared by the scheduling tests.

All tests run against a fixed clock: Monday 2030-01-07 08:00 UTC.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from appointment_engine.application.ports.notifier import NotifierPort
from appointment_engine.application.use_cases.scheduling_engine import SchedulingEngine
from appointment_engine.domain.entities.actor import Actor, ActorRole
from appointment_engine.domain.entities.business import BookingPolicy, Business, ServiceSpec, StaffMember
from appointment_engine.domain.entities.calendar import (
    WEEKDAYS,
    BusinessCalendar,
    DaySchedule,
    StaffCalendar,
    TimeRange,
    WeeklySchedule,
)
from appointment_engine.infrastructure.directory.memory_directory import InMemoryDirectory
from appointment_engine.infrastructure.store.memory_store import MemoryAppointmentStore

NOW = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)
TUESDAY = date(2030, 1, 8)
WEDNESDAY = date(2030, 1, 9)

ADMIN = Actor(actor_id="admin-1", role=ActorRole.admin, business_id="biz-1")
OTHER_ADMIN = Actor(actor_id="admin-2", role=ActorRole.admin, business_id="biz-2")
CUSTOMER = Actor(actor_id="cust-1", role=ActorRole.customer)
OTHER_CUSTOMER = Actor(actor_id="cust-2", role=ActorRole.customer)
STAFF_A = Actor(actor_id="staff-a", role=ActorRole.staff)
STAFF_B = Actor(actor_id="staff-b", role=ActorRole.staff)


class FixedClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier(NotifierPort):
    def __init__(self, fail: bool = False) -> None:
        self.events = []
        self.fail = fail

    def publish(self, event) -> None:
        if self.fail:
            raise ConnectionError("mail transport down")
        self.events.append(event)


def hm(hours: int, minutes: int = 0) -> int:
    return hours * 60 + minutes


def open_week(
    start: int = hm(9),
    end: int = hm(17),
    breaks: tuple[TimeRange, ...] = (TimeRange(hm(12), hm(13)),),
    closed: tuple[str, ...] = (),
) -> WeeklySchedule:
    day = DaySchedule(is_open=True, work_slots=(TimeRange(start, end),), breaks=breaks)
    return WeeklySchedule(days={name: (DaySchedule() if name in closed else day) for name in WEEKDAYS})


def build_directory(policy: BookingPolicy | None = None, holidays=frozenset()) -> InMemoryDirectory:
    business = Business(
        business_id="biz-1",
        name="Corner Barbers",
        calendar=BusinessCalendar(schedule=open_week(closed=("sunday",)), holidays=frozenset(holidays)),
        policy=policy or BookingPolicy(),
    )
    return InMemoryDirectory(
        businesses=[business],
        services=[
            ServiceSpec(
                service_id="cut",
                business_id="biz-1",
                duration_minutes=30,
                buffer_minutes=0,
                eligible_staff_ids=frozenset({"staff-a", "staff-b"}),
            ),
            ServiceSpec(
                service_id="color",
                business_id="biz-1",
                duration_minutes=60,
                buffer_minutes=10,
                eligible_staff_ids=frozenset({"staff-a"}),
            ),
            ServiceSpec(service_id="consult", business_id="biz-1", duration_minutes=30),
        ],
        staff=[
            StaffMember(staff_id="staff-a", business_id="biz-1"),
            StaffMember(
                staff_id="staff-b",
                business_id="biz-1",
                calendar=StaffCalendar(unavailable_dates=frozenset({WEDNESDAY})),
            ),
        ],
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def store() -> MemoryAppointmentStore:
    return MemoryAppointmentStore(timeout_seconds=2.0)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def directory() -> InMemoryDirectory:
    return build_directory()


@pytest.fixture
def engine(directory, store, notifier, clock) -> SchedulingEngine:
    return SchedulingEngine(directory=directory, store=store, notifier=notifier, clock=clock)
