from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class AppointmentStatus(str, Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"
    no_show = "no-show"
    rescheduled = "rescheduled"


TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.completed,
        AppointmentStatus.cancelled,
        AppointmentStatus.no_show,
        AppointmentStatus.rescheduled,
    }
)


@dataclass(frozen=True)
class ActionLogEntry:
    action: str  # "created", "confirmed", "cancelled", "rescheduled", "completed", "no-show"
    performed_by: str  # actor role
    actor_id: str | None
    at: datetime
    reason: str | None = None


@dataclass(frozen=True)
class Appointment:
    id: str
    business_id: str
    customer_id: str | None
    service_id: str
    staff_id: str | None
    date: date
    start_time: int
    end_time: int
    status: AppointmentStatus = AppointmentStatus.scheduled
    confirmed: bool = True
    reschedule_count: int = 0
    rescheduled_from: str | None = None
    rescheduled_to: str | None = None
    rescheduled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    cancelled_at: datetime | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    created_by: str = "customer"
    created_at: datetime | None = None
    is_walk_in: bool = False
    notes: str | None = None
    reminders_sent: frozenset[int] = frozenset()
    version: int = 0  # bumped by the store on every write
    action_log: tuple[ActionLogEntry, ...] = field(default_factory=tuple)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def slot_key(self) -> tuple[str, str | None, date, int]:
        """Uniqueness key for scheduled records."""
        return (self.business_id, self.staff_id, self.date, self.start_time)
