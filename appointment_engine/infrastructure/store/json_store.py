from __future__ import annotations

import json
import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any

from appointment_engine.domain.entities.appointment import ActionLogEntry, Appointment, AppointmentStatus
from appointment_engine.infrastructure.store.memory_store import MemoryAppointmentStore


class JsonAppointmentStore(MemoryAppointmentStore):
    """
    File-backed appointment store.

    The full record set is rewritten on every commit through a temp file and an atomic rename,
    so a reschedule is either entirely on disk or not at all.
    """

    def __init__(
        self,
        data_dir: str = "./data",
        filename: str = "appointments.json",
        timeout_seconds: float = 5.0,
    ) -> None:
        super().__init__(timeout_seconds=timeout_seconds)
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._file_path = self._data_dir / filename
        self._logger = logging.getLogger(__name__)
        self._load()

    def _load(self) -> None:
        if not self._file_path.exists():
            return
        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            # Keep the unreadable file for inspection and start empty.
            corrupt_path = self._file_path.with_suffix(".json.corrupt")
            self._file_path.replace(corrupt_path)
            self._logger.error(
                "Appointment file unreadable, moved aside",
                extra={"error": str(e), "reason": str(corrupt_path)},
            )
            return

        records = [self._deserialize(item) for item in data.get("appointments", [])]
        with self._locked():
            self._records = {}
            self._scheduled_keys = {}
            for record in records:
                self._records[record.id] = record
                if record.status == AppointmentStatus.scheduled:
                    self._scheduled_keys[record.slot_key] = record.id

    def _persist(self, records: dict[str, Appointment]) -> None:
        """Save all records to the JSON file atomically."""
        payload = {
            "version": 1,
            "appointments": [self._serialize(r) for r in sorted(records.values(), key=lambda r: r.id)],
        }
        temp_path = self._file_path.with_suffix(".json.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, ensure_ascii=False)
            temp_path.replace(self._file_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def _serialize(self, appointment: Appointment) -> dict[str, Any]:
        return {
            "id": appointment.id,
            "business_id": appointment.business_id,
            "customer_id": appointment.customer_id,
            "service_id": appointment.service_id,
            "staff_id": appointment.staff_id,
            "date": appointment.date.isoformat(),
            "start_time": appointment.start_time,
            "end_time": appointment.end_time,
            "status": appointment.status.value,
            "confirmed": appointment.confirmed,
            "reschedule_count": appointment.reschedule_count,
            "rescheduled_from": appointment.rescheduled_from,
            "rescheduled_to": appointment.rescheduled_to,
            "rescheduled_at": _iso(appointment.rescheduled_at),
            "cancelled_by": appointment.cancelled_by,
            "cancellation_reason": appointment.cancellation_reason,
            "cancelled_at": _iso(appointment.cancelled_at),
            "completed_by": appointment.completed_by,
            "completed_at": _iso(appointment.completed_at),
            "created_by": appointment.created_by,
            "created_at": _iso(appointment.created_at),
            "is_walk_in": appointment.is_walk_in,
            "notes": appointment.notes,
            "reminders_sent": sorted(appointment.reminders_sent),
            "version": appointment.version,
            "action_log": [
                {
                    "action": entry.action,
                    "performed_by": entry.performed_by,
                    "actor_id": entry.actor_id,
                    "at": entry.at.isoformat(),
                    "reason": entry.reason,
                }
                for entry in appointment.action_log
            ],
        }

    def _deserialize(self, data: dict[str, Any]) -> Appointment:
        return Appointment(
            id=data["id"],
            business_id=data["business_id"],
            customer_id=data.get("customer_id"),
            service_id=data["service_id"],
            staff_id=data.get("staff_id"),
            date=date.fromisoformat(data["date"]),
            start_time=int(data["start_time"]),
            end_time=int(data["end_time"]),
            status=AppointmentStatus(data.get("status", "scheduled")),
            confirmed=data.get("confirmed", True),
            reschedule_count=data.get("reschedule_count", 0),
            rescheduled_from=data.get("rescheduled_from"),
            rescheduled_to=data.get("rescheduled_to"),
            rescheduled_at=_parse_dt(data.get("rescheduled_at")),
            cancelled_by=data.get("cancelled_by"),
            cancellation_reason=data.get("cancellation_reason"),
            cancelled_at=_parse_dt(data.get("cancelled_at")),
            completed_by=data.get("completed_by"),
            completed_at=_parse_dt(data.get("completed_at")),
            created_by=data.get("created_by", "customer"),
            created_at=_parse_dt(data.get("created_at")),
            is_walk_in=data.get("is_walk_in", False),
            notes=data.get("notes"),
            reminders_sent=frozenset(data.get("reminders_sent", [])),
            version=data.get("version", 1),
            action_log=tuple(
                ActionLogEntry(
                    action=entry["action"],
                    performed_by=entry["performed_by"],
                    actor_id=entry.get("actor_id"),
                    at=datetime.fromisoformat(entry["at"]),
                    reason=entry.get("reason"),
                )
                for entry in data.get("action_log", [])
            ),
        )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except (ValueError, TypeError):
        return None
