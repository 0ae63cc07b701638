"""
Tests for the point-in-time conflict check.
"""

from __future__ import annotations

import pytest

from appointment_engine.application.use_cases.conflict_checker import ConflictChecker, find_conflict
from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus
from appointment_engine.infrastructure.store.memory_store import MemoryAppointmentStore
from tests.conftest import TUESDAY, WEDNESDAY, hm


def _appointment(appointment_id: str, start: int, end: int, status=AppointmentStatus.scheduled, staff_id="staff-a"):
    return Appointment(
        id=appointment_id,
        business_id="biz-1",
        customer_id="cust-1",
        service_id="cut",
        staff_id=staff_id,
        date=TUESDAY,
        start_time=start,
        end_time=end,
        status=status,
    )


def test_overlapping_scheduled_booking_conflicts():
    existing = _appointment("a1", hm(10), hm(10, 30))
    assert find_conflict([existing], hm(9, 45), 30) == existing
    assert find_conflict([existing], hm(10, 15), 30) == existing


def test_touching_windows_do_not_conflict():
    existing = _appointment("a1", hm(10), hm(10, 30))
    assert find_conflict([existing], hm(9, 30), 30) is None
    assert find_conflict([existing], hm(10, 30), 30) is None


def test_only_scheduled_bookings_conflict():
    bookings = [
        _appointment("a1", hm(10), hm(10, 30), AppointmentStatus.cancelled),
        _appointment("a2", hm(10), hm(10, 30), AppointmentStatus.completed),
        _appointment("a3", hm(10), hm(10, 30), AppointmentStatus.no_show),
    ]
    assert find_conflict(bookings, hm(10), 30) is None


def test_ignored_record_is_skipped():
    existing = _appointment("a1", hm(10), hm(10, 30))
    assert find_conflict([existing], hm(10), 30, ignore_id="a1") is None


def test_checker_reads_the_store_for_one_staff_day():
    store = MemoryAppointmentStore()
    store.insert(_appointment("a1", hm(10), hm(10, 30)))
    checker = ConflictChecker(store)

    assert not checker.is_available("biz-1", "staff-a", TUESDAY, hm(10), 30)
    assert checker.is_available("biz-1", "staff-b", TUESDAY, hm(10), 30)
    assert checker.is_available("biz-1", "staff-a", WEDNESDAY, hm(10), 30)
    assert checker.is_available("biz-1", "staff-a", TUESDAY, hm(10), 30, ignore_id="a1")


def test_checker_rejects_non_positive_duration():
    checker = ConflictChecker(MemoryAppointmentStore())
    with pytest.raises(ValueError):
        checker.is_available("biz-1", "staff-a", TUESDAY, hm(10), 0)
