from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Any

from appointment_engine.application.ports.directory import DirectoryPort
from appointment_engine.application.utils.time_math import parse_hhmm
from appointment_engine.domain.entities.business import BookingPolicy, Business, ServiceSpec, StaffMember
from appointment_engine.domain.entities.calendar import (
    BusinessCalendar,
    DaySchedule,
    StaffCalendar,
    TimeRange,
    WeeklySchedule,
)

logger = logging.getLogger(__name__)


class InMemoryDirectory(DirectoryPort):
    def __init__(
        self,
        businesses: list[Business] | None = None,
        services: list[ServiceSpec] | None = None,
        staff: list[StaffMember] | None = None,
    ) -> None:
        self._businesses = {b.business_id: b for b in businesses or []}
        self._services = {(s.business_id, s.service_id): s for s in services or []}
        self._staff = {(m.business_id, m.staff_id): m for m in staff or []}

    def get_business(self, business_id: str) -> Business | None:
        return self._businesses.get(business_id)

    def get_service(self, business_id: str, service_id: str) -> ServiceSpec | None:
        return self._services.get((business_id, service_id))

    def get_staff(self, business_id: str, staff_id: str) -> StaffMember | None:
        return self._staff.get((business_id, staff_id))

    def add_business(self, business: Business) -> None:
        self._businesses[business.business_id] = business

    def add_service(self, service: ServiceSpec) -> None:
        self._services[(service.business_id, service.service_id)] = service

    def add_staff(self, member: StaffMember) -> None:
        self._staff[(member.business_id, member.staff_id)] = member


def load_directory(path: str | Path) -> InMemoryDirectory:
    """Build a directory from a JSON seed file of businesses, services and staff."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    directory = directory_from_dict(data)
    logger.info("Directory loaded", extra={"reason": str(path)})
    return directory


def directory_from_dict(data: dict[str, Any]) -> InMemoryDirectory:
    return InMemoryDirectory(
        businesses=[_parse_business(item) for item in data.get("businesses", [])],
        services=[_parse_service(item) for item in data.get("services", [])],
        staff=[_parse_staff(item) for item in data.get("staff", [])],
    )


def parse_week(data: dict[str, Any]) -> WeeklySchedule:
    """Parse {"monday": {"is_open": true, "slots": [{"start": "09:00", "end": "17:00"}], "breaks": [...]}}."""
    days = {}
    for day_name, day in data.items():
        days[day_name.lower()] = DaySchedule(
            is_open=bool(day.get("is_open", False)),
            work_slots=tuple(_parse_range(r) for r in day.get("slots", [])),
            breaks=tuple(_parse_range(r) for r in day.get("breaks", [])),
        )
    return WeeklySchedule(days=days)


def _parse_range(data: dict[str, Any]) -> TimeRange:
    start, end = data["start"], data["end"]
    return TimeRange(
        start=parse_hhmm(start) if isinstance(start, str) else int(start),
        end=parse_hhmm(end) if isinstance(end, str) else int(end),
    )


def _parse_dates(values: list[str]) -> frozenset[date]:
    return frozenset(date.fromisoformat(v) for v in values)


def _parse_business(data: dict[str, Any]) -> Business:
    settings = data.get("booking_settings", {})
    return Business(
        business_id=str(data["id"]),
        name=data.get("name", ""),
        is_active=data.get("is_active", True),
        calendar=BusinessCalendar(
            schedule=parse_week(data.get("working_hours", {})),
            holidays=_parse_dates(data.get("holidays", [])),
            timezone=data.get("timezone", "UTC"),
        ),
        policy=BookingPolicy(
            min_advance_hours=settings.get("min_advance_hours", 1),
            max_advance_days=settings.get("max_advance_days", 90),
            cancellation_window_hours=settings.get("cancellation_window_hours", 24),
            reschedule_window_hours=settings.get("reschedule_window_hours", 1),
            max_reschedules_per_appointment=settings.get("max_reschedules_per_appointment", 2),
            requires_approval=settings.get("requires_approval", False),
            allow_walk_ins=settings.get("allow_walk_ins", True),
        ),
    )


def _parse_service(data: dict[str, Any]) -> ServiceSpec:
    return ServiceSpec(
        service_id=str(data["id"]),
        business_id=str(data["business_id"]),
        name=data.get("name", ""),
        duration_minutes=int(data["duration"]),
        buffer_minutes=int(data.get("buffer_time", 0)),
        eligible_staff_ids=frozenset(str(s) for s in data.get("staff_ids", [])),
        is_active=data.get("is_active", True),
    )


def _parse_staff(data: dict[str, Any]) -> StaffMember:
    hours = data.get("working_hours")
    return StaffMember(
        staff_id=str(data["id"]),
        business_id=str(data["business_id"]),
        name=data.get("name", ""),
        is_active=data.get("is_active", True),
        calendar=StaffCalendar(
            schedule=parse_week(hours) if hours else None,
            unavailable_dates=_parse_dates(data.get("unavailable_dates", [])),
        ),
    )
