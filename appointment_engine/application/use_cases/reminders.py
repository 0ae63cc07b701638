from __future__ import annotations

import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable

from appointment_engine.application.exceptions import InvalidTransitionError
from appointment_engine.application.ports.appointment_store import AppointmentStorePort
from appointment_engine.application.ports.directory import DirectoryPort
from appointment_engine.application.ports.notifier import NotifierPort
from appointment_engine.application.utils.time_math import hours_until, safe_timezone
from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus
from appointment_engine.domain.entities.notification import NotificationEvent


class ReminderUseCase:
    """Emit one reminder per lead horizon for upcoming scheduled appointments."""

    def __init__(
        self,
        store: AppointmentStorePort,
        directory: DirectoryPort,
        notifier: NotifierPort,
        lead_hours: Iterable[int] = (24, 2),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        default_timezone: str = "UTC",
    ) -> None:
        self._store = store
        self._directory = directory
        self._notifier = notifier
        self._lead_hours = sorted(set(lead_hours))
        self._clock = clock
        self._default_timezone = default_timezone
        self._logger = logging.getLogger(__name__)

    def run(self, now: datetime | None = None) -> int:
        """Returns the number of reminders sent."""
        if not self._lead_hours:
            return 0
        now = now or self._clock()
        horizon_days = math.ceil(self._lead_hours[-1] / 24) + 1
        today = now.date()
        candidates = self._store.find(
            status=AppointmentStatus.scheduled,
            start_date=today - timedelta(days=1),
            end_date=today + timedelta(days=horizon_days),
        )

        sent = 0
        for appointment in candidates:
            try:
                if self._remind(appointment, now):
                    sent += 1
            except Exception as e:
                self._logger.error(
                    "Error sending reminder",
                    extra={"appointment_id": appointment.id, "error": str(e)},
                )
        self._logger.info("Reminder run completed", extra={"reason": f"sent={sent}"})
        return sent

    def _remind(self, appointment: Appointment, now: datetime) -> bool:
        if not appointment.customer_id:
            return False
        business = self._directory.get_business(appointment.business_id)
        tz = safe_timezone(business.calendar.timezone if business else None, self._default_timezone)
        remaining = hours_until(appointment.date, appointment.start_time, tz, now)
        if remaining <= 0:
            return False

        horizon = next((h for h in self._lead_hours if remaining <= h), None)
        if horizon is None or horizon in appointment.reminders_sent:
            return False

        # A shorter horizon also covers every longer one that was skipped.
        covered = frozenset(h for h in self._lead_hours if h >= horizon)
        try:
            self._store.update(
                replace(appointment, reminders_sent=appointment.reminders_sent | covered),
                expected_status=AppointmentStatus.scheduled,
            )
        except InvalidTransitionError as e:
            # changed since it was listed; the next run sees the current record
            self._logger.info(
                "Reminder skipped, appointment changed",
                extra={"appointment_id": appointment.id, "rule": e.rule},
            )
            return False

        self._notifier.publish(
            NotificationEvent(
                event_type="appointment_reminder",
                appointment_id=appointment.id,
                recipient_id=appointment.customer_id,
                payload={
                    "business_id": appointment.business_id,
                    "date": appointment.date.isoformat(),
                    "start_time": appointment.start_time,
                    "lead_hours": horizon,
                },
            )
        )
        return True
