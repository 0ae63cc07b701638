from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

MINUTES_PER_DAY = 24 * 60

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(frozen=True)
class TimeRange:
    """Half-open interval of minute-of-day integers, [start, end)."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if not (0 <= self.start < self.end <= MINUTES_PER_DAY):
            raise ValueError(f"Invalid time range: {self.start}-{self.end}")

    @property
    def minutes(self) -> int:
        return self.end - self.start


def _check_sorted_disjoint(ranges: tuple[TimeRange, ...], label: str) -> None:
    for previous, current in zip(ranges, ranges[1:]):
        if current.start < previous.end:
            raise ValueError(f"{label} must be sorted and non-overlapping")


@dataclass(frozen=True)
class DaySchedule:
    is_open: bool = False
    work_slots: tuple[TimeRange, ...] = ()
    breaks: tuple[TimeRange, ...] = ()

    def __post_init__(self) -> None:
        _check_sorted_disjoint(self.work_slots, "work_slots")
        _check_sorted_disjoint(self.breaks, "breaks")

    @property
    def is_working(self) -> bool:
        return self.is_open and bool(self.work_slots)


@dataclass(frozen=True)
class WeeklySchedule:
    days: dict[str, DaySchedule] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.days) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"Unknown weekday(s): {sorted(unknown)}")

    def for_date(self, day: date) -> DaySchedule:
        return self.days.get(WEEKDAYS[day.weekday()], DaySchedule())


@dataclass(frozen=True)
class BusinessCalendar:
    schedule: WeeklySchedule
    holidays: frozenset[date] = frozenset()
    timezone: str = "UTC"

    def is_holiday(self, day: date) -> bool:
        return day in self.holidays


@dataclass(frozen=True)
class StaffCalendar:
    """A staff member's personal override of the business week."""

    schedule: WeeklySchedule | None = None
    unavailable_dates: frozenset[date] = frozenset()

    def effective_day(self, business: BusinessCalendar, day: date) -> DaySchedule:
        if self.schedule is not None:
            own = self.schedule.for_date(day)
            if own.is_open:
                return own
        return business.schedule.for_date(day)
