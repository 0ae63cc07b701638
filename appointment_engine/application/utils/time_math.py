from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from appointment_engine.domain.entities.calendar import MINUTES_PER_DAY

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def parse_hhmm(value: str) -> int:
    """Convert "HH:MM" to a minute-of-day integer."""
    match = _HHMM.match(value.strip())
    if not match:
        # 24:00 is accepted as the end of the day
        if value.strip() == "24:00":
            return MINUTES_PER_DAY
        raise ValueError(f"Invalid time format, expected HH:MM: {value!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_hhmm(minutes: int) -> str:
    if not 0 <= minutes <= MINUTES_PER_DAY:
        raise ValueError(f"Minute of day out of range: {minutes}")
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def overlaps(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """Half-open overlap: [a_start, a_end) and [b_start, b_end) intersect."""
    return a_start < b_end and b_start < a_end


def safe_timezone(name: str | None, fallback: str = "UTC") -> ZoneInfo:
    try:
        return ZoneInfo(name or fallback)
    except Exception:
        return ZoneInfo(fallback)


def local_datetime(day: date, minute_of_day: int, tz: ZoneInfo) -> datetime:
    # minute_of_day may be 1440 for an end-of-day boundary
    return datetime.combine(day, time(0, 0), tzinfo=tz) + timedelta(minutes=minute_of_day)


def hours_until(day: date, minute_of_day: int, tz: ZoneInfo, now: datetime) -> float:
    return (local_datetime(day, minute_of_day, tz) - now).total_seconds() / 3600


def days_until(day: date, minute_of_day: int, tz: ZoneInfo, now: datetime) -> float:
    return hours_until(day, minute_of_day, tz, now) / 24


def local_now(tz: ZoneInfo, now: datetime) -> tuple[date, int]:
    """Return the business-local date and minute-of-day for an aware instant."""
    current = now.astimezone(tz)
    return current.date(), current.hour * 60 + current.minute
