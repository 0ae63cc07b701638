from __future__ import annotations

from dataclasses import dataclass, field

from appointment_engine.domain.entities.calendar import BusinessCalendar, StaffCalendar


@dataclass(frozen=True)
class BookingPolicy:
    min_advance_hours: float = 1
    max_advance_days: float = 90
    cancellation_window_hours: float = 24
    reschedule_window_hours: float = 1
    max_reschedules_per_appointment: int = 2
    requires_approval: bool = False
    allow_walk_ins: bool = True

    def __post_init__(self) -> None:
        for name in (
            "min_advance_hours",
            "max_advance_days",
            "cancellation_window_hours",
            "reschedule_window_hours",
            "max_reschedules_per_appointment",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")


@dataclass(frozen=True)
class ServiceSpec:
    service_id: str
    business_id: str
    duration_minutes: int
    buffer_minutes: int = 0
    eligible_staff_ids: frozenset[str] = frozenset()
    name: str = ""
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if self.buffer_minutes < 0:
            raise ValueError("buffer_minutes must be non-negative")


@dataclass(frozen=True)
class Business:
    business_id: str
    calendar: BusinessCalendar
    policy: BookingPolicy = field(default_factory=BookingPolicy)
    name: str = ""
    is_active: bool = True


@dataclass(frozen=True)
class StaffMember:
    staff_id: str
    business_id: str
    calendar: StaffCalendar = field(default_factory=StaffCalendar)
    name: str = ""
    is_active: bool = True
