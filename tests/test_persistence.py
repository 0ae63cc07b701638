"""
Tests for durable appointment persistence.
"""

from __future__ import annotations

import json
import tempfile
from dataclasses import replace
from datetime import date, datetime, timezone
from pathlib import Path

import pytest

from appointment_engine.application.exceptions import InvalidTransitionError, NotFoundError, SlotTakenError
from appointment_engine.domain.entities.appointment import ActionLogEntry, Appointment, AppointmentStatus
from appointment_engine.infrastructure.store.json_store import JsonAppointmentStore

DAY = date(2030, 1, 8)
AT = datetime(2030, 1, 7, 8, 0, tzinfo=timezone.utc)


def _appointment(appointment_id: str = "a1", start: int = 540, **overrides) -> Appointment:
    appointment = Appointment(
        id=appointment_id,
        business_id="biz-1",
        customer_id="cust-1",
        service_id="cut",
        staff_id="staff-a",
        date=DAY,
        start_time=start,
        end_time=start + 30,
        created_at=AT,
        action_log=(ActionLogEntry(action="created", performed_by="customer", actor_id="cust-1", at=AT),),
    )
    return replace(appointment, **overrides)


def test_json_store_persistence():
    """Test that records survive a reload with every field intact."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonAppointmentStore(data_dir=tmpdir)
        saved = store.insert(_appointment(notes="window seat", reminders_sent=frozenset({24})))

        reloaded = JsonAppointmentStore(data_dir=tmpdir).get("a1")

        assert reloaded == saved
        assert reloaded.version == 1
        assert reloaded.action_log[0].at == AT
        assert reloaded.reminders_sent == frozenset({24})


def test_unique_key_survives_reload():
    """Test that a reloaded store still refuses a second scheduled record for the same slot."""
    with tempfile.TemporaryDirectory() as tmpdir:
        JsonAppointmentStore(data_dir=tmpdir).insert(_appointment("a1"))

        store = JsonAppointmentStore(data_dir=tmpdir)
        with pytest.raises(SlotTakenError) as exc:
            store.insert(_appointment("a2"))
        assert exc.value.rule == "unique_key"


def test_cancelled_record_releases_unique_key():
    """Test that cancelling frees the slot key for a new record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonAppointmentStore(data_dir=tmpdir)
        saved = store.insert(_appointment("a1"))
        store.update(replace(saved, status=AppointmentStatus.cancelled), expected_status=AppointmentStatus.scheduled)

        again = store.insert(_appointment("a2"))
        assert again.status == AppointmentStatus.scheduled


def test_stale_update_is_rejected():
    """Test that an update based on an old version is refused."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonAppointmentStore(data_dir=tmpdir)
        saved = store.insert(_appointment())
        store.update(replace(saved, notes="first"), expected_status=AppointmentStatus.scheduled)

        with pytest.raises(InvalidTransitionError) as exc:
            store.update(replace(saved, notes="second"), expected_status=AppointmentStatus.scheduled)
        assert exc.value.rule == "stale_state"
        assert store.get("a1").notes == "first"
        assert store.get("a1").version == 2


def test_update_of_missing_record():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonAppointmentStore(data_dir=tmpdir)
        with pytest.raises(NotFoundError):
            store.update(_appointment(), expected_status=AppointmentStatus.scheduled)


def test_reschedule_writes_both_records():
    """Test that a reschedule lands both records in one write."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonAppointmentStore(data_dir=tmpdir)
        old = store.insert(_appointment("a1"))
        new = _appointment("a2", start=600, rescheduled_from="a1", reschedule_count=1)

        store.reschedule(replace(old, status=AppointmentStatus.rescheduled, rescheduled_to="a2"), new)

        reloaded = JsonAppointmentStore(data_dir=tmpdir)
        assert reloaded.get("a1").status == AppointmentStatus.rescheduled
        assert reloaded.get("a1").rescheduled_to == "a2"
        assert reloaded.get("a2").rescheduled_from == "a1"
        assert [a.id for a in reloaded.find(status=AppointmentStatus.scheduled)] == ["a2"]


def test_failed_reschedule_leaves_nothing_behind():
    """Test that a reschedule into a held slot changes neither record."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonAppointmentStore(data_dir=tmpdir)
        old = store.insert(_appointment("a1"))
        store.insert(_appointment("b1", start=600, customer_id="cust-2"))

        with pytest.raises(SlotTakenError):
            store.reschedule(
                replace(old, status=AppointmentStatus.rescheduled, rescheduled_to="a2"),
                _appointment("a2", start=600, rescheduled_from="a1"),
            )

        reloaded = JsonAppointmentStore(data_dir=tmpdir)
        assert reloaded.get("a1").status == AppointmentStatus.scheduled
        assert reloaded.get("a2") is None


def test_corrupt_file_is_moved_aside():
    """Test that an unreadable file is kept for inspection and the store starts empty."""
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "appointments.json"
        path.write_text("{not json", encoding="utf-8")

        store = JsonAppointmentStore(data_dir=tmpdir)

        assert store.find() == []
        assert (Path(tmpdir) / "appointments.json.corrupt").exists()


def test_file_layout():
    with tempfile.TemporaryDirectory() as tmpdir:
        JsonAppointmentStore(data_dir=tmpdir).insert(_appointment())

        data = json.loads((Path(tmpdir) / "appointments.json").read_text(encoding="utf-8"))
        assert data["version"] == 1
        record = data["appointments"][0]
        assert record["date"] == "2030-01-08"
        assert record["start_time"] == 540
        assert record["status"] == "scheduled"
        assert not (Path(tmpdir) / "appointments.json.tmp").exists()
