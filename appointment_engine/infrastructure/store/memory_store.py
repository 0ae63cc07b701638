from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from typing import Iterable, Iterator

from appointment_engine.application.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SlotTakenError,
    StoreTimeoutError,
)
from appointment_engine.application.ports.appointment_store import AppointmentStorePort
from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus

SlotKey = tuple[str, "str | None", date, int]


class MemoryAppointmentStore(AppointmentStorePort):
    def __init__(self, timeout_seconds: float = 5.0) -> None:
        self._records: dict[str, Appointment] = {}
        self._scheduled_keys: dict[SlotKey, str] = {}
        self._timeout = timeout_seconds
        self._data_lock = threading.RLock()
        self._day_locks: dict[tuple[str, str | None, date], threading.Lock] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict

    def _get_lock(self, key: tuple[str, str | None, date]) -> threading.Lock:
        """Get or create the lock for a (business, staff, date) key."""
        with self._lock_lock:
            if key not in self._day_locks:
                self._day_locks[key] = threading.Lock()
            return self._day_locks[key]

    @contextmanager
    def day_lock(self, business_id: str, staff_id: str | None, day: date) -> Iterator[None]:
        lock = self._get_lock((business_id, staff_id, day))
        if not lock.acquire(timeout=self._timeout):
            raise StoreTimeoutError(f"Timed out waiting for the schedule of {staff_id or business_id} on {day}")
        try:
            yield
        finally:
            lock.release()

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._data_lock.acquire(timeout=self._timeout):
            raise StoreTimeoutError("Timed out waiting for the appointment store")
        try:
            yield
        finally:
            self._data_lock.release()

    def get(self, appointment_id: str) -> Appointment | None:
        with self._locked():
            return self._records.get(appointment_id)

    def list_for_staff_day(
        self,
        business_id: str,
        staff_id: str | None,
        day: date,
        statuses: Iterable[AppointmentStatus] = (AppointmentStatus.scheduled, AppointmentStatus.completed),
    ) -> list[Appointment]:
        wanted = set(statuses)
        with self._locked():
            return sorted(
                (
                    a
                    for a in self._records.values()
                    if a.business_id == business_id
                    and a.staff_id == staff_id
                    and a.date == day
                    and a.status in wanted
                ),
                key=lambda a: a.start_time,
            )

    def find(
        self,
        business_id: str | None = None,
        customer_id: str | None = None,
        staff_id: str | None = None,
        status: AppointmentStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Appointment]:
        with self._locked():
            records = list(self._records.values())
        return [
            a
            for a in records
            if (business_id is None or a.business_id == business_id)
            and (customer_id is None or a.customer_id == customer_id)
            and (staff_id is None or a.staff_id == staff_id)
            and (status is None or a.status == status)
            and (start_date is None or a.date >= start_date)
            and (end_date is None or a.date <= end_date)
        ]

    def insert(self, appointment: Appointment) -> Appointment:
        with self._locked():
            if appointment.id in self._records:
                raise ValueError(f"Appointment {appointment.id} already exists")
            if appointment.status == AppointmentStatus.scheduled and appointment.slot_key in self._scheduled_keys:
                raise SlotTakenError("This time slot is already booked", rule="unique_key")
            stored = replace(appointment, version=1)
            self._apply([stored])
            return stored

    def update(self, appointment: Appointment, expected_status: AppointmentStatus) -> Appointment:
        with self._locked():
            current = self._check_current(appointment, expected_status)
            stored = replace(appointment, version=current.version + 1)
            self._apply([stored])
            return stored

    def reschedule(self, old: Appointment, new: Appointment) -> tuple[Appointment, Appointment]:
        with self._locked():
            current = self._check_current(old, AppointmentStatus.scheduled)
            if new.id in self._records:
                raise ValueError(f"Appointment {new.id} already exists")
            holder = self._scheduled_keys.get(new.slot_key)
            if holder is not None and holder != old.id:
                raise SlotTakenError("This time slot is already booked", rule="unique_key")
            stored_old = replace(old, version=current.version + 1)
            stored_new = replace(new, version=1)
            self._apply([stored_old, stored_new])
            return stored_old, stored_new

    def _check_current(self, appointment: Appointment, expected_status: AppointmentStatus) -> Appointment:
        current = self._records.get(appointment.id)
        if current is None:
            raise NotFoundError("Appointment not found", rule="appointment")
        if current.status != expected_status or current.version != appointment.version:
            raise InvalidTransitionError("Appointment was modified concurrently", rule="stale_state")
        return current

    def _apply(self, records: list[Appointment]) -> None:
        """Stage, persist, then publish a batch of writes. Callers hold the data lock."""
        staged = dict(self._records)
        for record in records:
            staged[record.id] = record
        self._persist(staged)

        self._records = staged
        for record in records:
            for key in [k for k, holder in self._scheduled_keys.items() if holder == record.id]:
                del self._scheduled_keys[key]
        for record in records:
            if record.status == AppointmentStatus.scheduled:
                self._scheduled_keys[record.slot_key] = record.id

    def _persist(self, records: dict[str, Appointment]) -> None:
        """Durability hook; the in-memory store keeps nothing outside the process."""
        return None
