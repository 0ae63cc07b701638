from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from typing import Iterable

from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus


class AppointmentStorePort(ABC):
    @abstractmethod
    def get(self, appointment_id: str) -> Appointment | None:
        raise NotImplementedError

    @abstractmethod
    def list_for_staff_day(
        self,
        business_id: str,
        staff_id: str | None,
        day: date,
        statuses: Iterable[AppointmentStatus] = (AppointmentStatus.scheduled, AppointmentStatus.completed),
    ) -> list[Appointment]:
        """All appointments with one of `statuses` for a staff member (or the business when None) on a day."""
        raise NotImplementedError

    @abstractmethod
    def find(
        self,
        business_id: str | None = None,
        customer_id: str | None = None,
        staff_id: str | None = None,
        status: AppointmentStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Appointment]:
        raise NotImplementedError

    @abstractmethod
    def day_lock(self, business_id: str, staff_id: str | None, day: date) -> AbstractContextManager[None]:
        """
        Mutual exclusion for one (business, staff, date) key.
        Held across load, validate and write; raises StoreTimeoutError when not acquired in time.
        """
        raise NotImplementedError

    @abstractmethod
    def insert(self, appointment: Appointment) -> Appointment:
        """
        Insert a new record. Enforces at most one scheduled record per
        (business, staff, date, start_time) and raises SlotTakenError otherwise.
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, appointment: Appointment, expected_status: AppointmentStatus) -> Appointment:
        """Compare-and-set on the stored status. Raises InvalidTransitionError if it moved on."""
        raise NotImplementedError

    @abstractmethod
    def reschedule(self, old: Appointment, new: Appointment) -> tuple[Appointment, Appointment]:
        """Apply old -> rescheduled and insert new as one all-or-nothing unit."""
        raise NotImplementedError
