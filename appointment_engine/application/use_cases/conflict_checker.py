from __future__ import annotations

import logging
from datetime import date

from appointment_engine.application.ports.appointment_store import AppointmentStorePort
from appointment_engine.application.utils.time_math import overlaps
from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus


def find_conflict(
    bookings: list[Appointment],
    start_time: int,
    duration_minutes: int,
    ignore_id: str | None = None,
) -> Appointment | None:
    end_time = start_time + duration_minutes
    for booking in bookings:
        if booking.status != AppointmentStatus.scheduled or booking.id == ignore_id:
            continue
        if overlaps(start_time, end_time, booking.start_time, booking.end_time):
            return booking
    return None


class ConflictChecker:
    """Point-in-time check of one proposed window against scheduled bookings."""

    def __init__(self, store: AppointmentStorePort) -> None:
        self._store = store
        self._logger = logging.getLogger(__name__)

    def is_available(
        self,
        business_id: str,
        staff_id: str | None,
        day: date,
        start_time: int,
        duration_minutes: int,
        ignore_id: str | None = None,
    ) -> bool:
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        bookings = self._store.list_for_staff_day(
            business_id, staff_id, day, statuses=(AppointmentStatus.scheduled,)
        )
        conflict = find_conflict(bookings, start_time, duration_minutes, ignore_id=ignore_id)
        if conflict is not None:
            self._logger.info(
                "Slot conflict",
                extra={"staff_id": staff_id, "appointment_id": conflict.id},
            )
            return False
        return True
