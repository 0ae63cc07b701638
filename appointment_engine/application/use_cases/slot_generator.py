from __future__ import annotations

from datetime import date, datetime
from typing import Iterable

from appointment_engine.application.utils.time_math import days_until, hours_until, overlaps, safe_timezone
from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus
from appointment_engine.domain.entities.business import BookingPolicy, ServiceSpec
from appointment_engine.domain.entities.calendar import BusinessCalendar, DaySchedule, StaffCalendar
from appointment_engine.domain.entities.slot import Slot

DEFAULT_STEP_MINUTES = 15

_OCCUPYING = (AppointmentStatus.scheduled, AppointmentStatus.completed)


def effective_day(
    calendar: BusinessCalendar,
    staff_calendar: StaffCalendar | None,
    target_date: date,
) -> DaySchedule | None:
    """Working day that applies to the target date, or None when nothing is bookable."""
    if calendar.is_holiday(target_date):
        return None
    if staff_calendar is not None:
        if target_date in staff_calendar.unavailable_dates:
            return None
        day = staff_calendar.effective_day(calendar, target_date)
    else:
        day = calendar.schedule.for_date(target_date)
    return day if day.is_working else None


def generate_slots(
    calendar: BusinessCalendar,
    policy: BookingPolicy,
    service: ServiceSpec,
    staff_calendar: StaffCalendar | None,
    existing_bookings: Iterable[Appointment],
    target_date: date,
    staff_id: str | None = None,
    *,
    now: datetime | None = None,
    step_minutes: int = DEFAULT_STEP_MINUTES,
) -> list[Slot]:
    """
    Enumerate bookable windows for one staff member (or the business when staff_id is None) on one day.

    Candidates start every `step_minutes` from the beginning of each work interval and are dropped
    when they run past the interval, touch a break, or overlap an existing booking extended by the
    service buffer. When `now` is given, slots outside the policy's advance window are dropped too.
    """
    if step_minutes <= 0:
        raise ValueError("step_minutes must be positive")

    day = effective_day(calendar, staff_calendar, target_date)
    if day is None:
        return []

    duration = service.duration_minutes
    buffer = service.buffer_minutes
    blocked = [
        (booking.start_time, booking.end_time + buffer)
        for booking in existing_bookings
        if booking.status in _OCCUPYING and booking.date == target_date
    ]
    tz = safe_timezone(calendar.timezone)

    slots: list[Slot] = []
    for interval in day.work_slots:
        start = interval.start
        while start + duration <= interval.end:
            end = start + duration
            if (
                not any(overlaps(start, end, b.start, b.end) for b in day.breaks)
                and not any(overlaps(start, end, b_start, b_end) for b_start, b_end in blocked)
                and (now is None or _inside_advance_window(policy, target_date, start, tz, now))
            ):
                slots.append(Slot(start_time=start, end_time=end, staff_id=staff_id))
            start += step_minutes

    return sorted(slots, key=Slot.sort_key)


def _inside_advance_window(policy: BookingPolicy, target_date: date, start: int, tz, now: datetime) -> bool:
    if hours_until(target_date, start, tz, now) < policy.min_advance_hours:
        return False
    return days_until(target_date, start, tz, now) <= policy.max_advance_days


def merge_staff_slots(per_staff: Iterable[list[Slot]], keep_staff: bool = True) -> list[Slot]:
    """
    Merge per-staff slot lists into one ordered sequence.

    With keep_staff=False identical (start, end) windows collapse to the entry of the lowest staff id.
    """
    merged = sorted((slot for slots in per_staff for slot in slots), key=Slot.sort_key)
    if keep_staff:
        return merged

    seen: set[tuple[int, int]] = set()
    unique: list[Slot] = []
    for slot in merged:
        window = (slot.start_time, slot.end_time)
        if window in seen:
            continue
        seen.add(window)
        unique.append(slot)
    return unique
