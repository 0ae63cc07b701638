from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from zoneinfo import ZoneInfo

from appointment_engine.application.exceptions import (
    InvalidTransitionError,
    LimitExceededError,
    UnauthorizedError,
    WindowViolationError,
)
from appointment_engine.application.utils.time_math import days_until, hours_until, local_now
from appointment_engine.domain.entities.actor import Actor, ActorRole
from appointment_engine.domain.entities.appointment import ActionLogEntry, Appointment, AppointmentStatus
from appointment_engine.domain.entities.business import BookingPolicy
from appointment_engine.domain.entities.calendar import BusinessCalendar

VALID_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.scheduled: frozenset(
        {
            AppointmentStatus.completed,
            AppointmentStatus.cancelled,
            AppointmentStatus.no_show,
            AppointmentStatus.rescheduled,
        }
    ),
    AppointmentStatus.completed: frozenset(),
    AppointmentStatus.cancelled: frozenset(),
    AppointmentStatus.no_show: frozenset(),
    AppointmentStatus.rescheduled: frozenset(),
}


def validate_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    if current == target:
        raise InvalidTransitionError(f"Appointment is already {current.value}", rule="same_state")
    if target not in VALID_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot change appointment from {current.value} to {target.value}",
            rule="terminal_state",
        )


def _log(appointment: Appointment, action: str, actor: Actor, now: datetime, reason: str | None = None):
    entry = ActionLogEntry(action=action, performed_by=actor.role.value, actor_id=actor.actor_id, at=now, reason=reason)
    return appointment.action_log + (entry,)


class AppointmentLifecycle:
    """
    Guards and applies appointment status transitions.

    Every method either returns new immutable record(s) or raises a SchedulingError;
    nothing is persisted here.
    """

    def __init__(self) -> None:
        self._logger = logging.getLogger(__name__)

    # -- create ---------------------------------------------------------------

    def check_booking_window(
        self,
        calendar: BusinessCalendar,
        policy: BookingPolicy,
        day: date,
        start_time: int,
        tz: ZoneInfo,
        now: datetime,
    ) -> None:
        today, _ = local_now(tz, now)
        if day < today or hours_until(day, start_time, tz, now) < 0:
            raise WindowViolationError("Cannot book appointments in the past", rule="past")
        if hours_until(day, start_time, tz, now) < policy.min_advance_hours:
            raise WindowViolationError(
                f"Appointments must be booked at least {policy.min_advance_hours} hours in advance",
                rule="min_advance",
            )
        if days_until(day, start_time, tz, now) > policy.max_advance_days:
            raise WindowViolationError(
                f"Appointments can only be booked up to {policy.max_advance_days} days in advance",
                rule="max_advance",
            )
        if calendar.is_holiday(day):
            raise WindowViolationError("Business is closed on this date", rule="holiday")

    def new_appointment(
        self,
        appointment_id: str,
        business_id: str,
        customer_id: str | None,
        service_id: str,
        staff_id: str | None,
        day: date,
        start_time: int,
        duration_minutes: int,
        policy: BookingPolicy,
        actor: Actor,
        now: datetime,
        notes: str | None = None,
    ) -> Appointment:
        if actor.role == ActorRole.customer:
            if customer_id not in (None, actor.actor_id):
                raise UnauthorizedError("Customers can only book for themselves", rule="not_owner")
            customer_id = actor.actor_id
        elif not actor.is_admin_of(business_id):
            raise UnauthorizedError("Only customers or business admins can book", rule="not_admin")

        appointment = Appointment(
            id=appointment_id,
            business_id=business_id,
            customer_id=customer_id,
            service_id=service_id,
            staff_id=staff_id,
            date=day,
            start_time=start_time,
            end_time=start_time + duration_minutes,
            status=AppointmentStatus.scheduled,
            confirmed=not policy.requires_approval,
            created_by=actor.role.value,
            created_at=now,
            notes=notes,
        )
        return replace(appointment, action_log=_log(appointment, "created", actor, now))

    # -- scheduled -> * -------------------------------------------------------

    def confirm(self, appointment: Appointment, actor: Actor, now: datetime) -> Appointment:
        if appointment.is_terminal:
            raise InvalidTransitionError(
                f"Cannot confirm a {appointment.status.value} appointment", rule="terminal_state"
            )
        if not actor.is_admin_of(appointment.business_id):
            raise UnauthorizedError("Only a business admin can confirm bookings", rule="not_admin")
        if appointment.confirmed:
            raise InvalidTransitionError("Appointment is already confirmed", rule="already_confirmed")
        return replace(appointment, confirmed=True, action_log=_log(appointment, "confirmed", actor, now))

    def cancel(
        self,
        appointment: Appointment,
        policy: BookingPolicy,
        actor: Actor,
        tz: ZoneInfo,
        now: datetime,
        reason: str | None = None,
    ) -> Appointment:
        validate_transition(appointment.status, AppointmentStatus.cancelled)
        is_admin = actor.is_admin_of(appointment.business_id)
        is_customer = actor.role == ActorRole.customer and actor.actor_id == appointment.customer_id
        if not (is_admin or is_customer):
            raise UnauthorizedError("Only the customer or a business admin can cancel", rule="not_owner")

        if not is_admin:
            remaining = hours_until(appointment.date, appointment.start_time, tz, now)
            if remaining < policy.cancellation_window_hours:
                raise WindowViolationError(
                    f"Appointments must be cancelled at least {policy.cancellation_window_hours} hours in advance",
                    rule="cancellation_window",
                )

        return replace(
            appointment,
            status=AppointmentStatus.cancelled,
            cancelled_by=actor.role.value,
            cancellation_reason=reason,
            cancelled_at=now,
            action_log=_log(appointment, "cancelled", actor, now, reason),
        )

    def check_reschedule(
        self,
        appointment: Appointment,
        policy: BookingPolicy,
        actor: Actor,
        tz: ZoneInfo,
        now: datetime,
    ) -> None:
        """Guards on the old record; the new slot is validated like a fresh booking."""
        validate_transition(appointment.status, AppointmentStatus.rescheduled)
        if not appointment.confirmed:
            raise InvalidTransitionError(
                "Only confirmed scheduled appointments can be rescheduled", rule="not_confirmed"
            )
        is_admin = actor.is_admin_of(appointment.business_id)
        is_customer = actor.role == ActorRole.customer and actor.actor_id == appointment.customer_id
        if not (is_admin or is_customer):
            raise UnauthorizedError("Only the customer or a business admin can reschedule", rule="not_owner")

        if not is_admin:
            remaining = hours_until(appointment.date, appointment.start_time, tz, now)
            if remaining < policy.reschedule_window_hours:
                raise WindowViolationError(
                    f"Appointments must be rescheduled at least {policy.reschedule_window_hours} hours in advance",
                    rule="reschedule_window",
                )

        if appointment.reschedule_count >= policy.max_reschedules_per_appointment:
            raise LimitExceededError(
                f"Maximum reschedule limit ({policy.max_reschedules_per_appointment}) reached",
                rule="max_reschedules",
            )

    def reschedule(
        self,
        appointment: Appointment,
        new_id: str,
        staff_id: str | None,
        day: date,
        start_time: int,
        duration_minutes: int,
        actor: Actor,
        now: datetime,
    ) -> tuple[Appointment, Appointment]:
        """Build the (old, new) pair. Callers run check_reschedule first."""
        new = Appointment(
            id=new_id,
            business_id=appointment.business_id,
            customer_id=appointment.customer_id,
            service_id=appointment.service_id,
            staff_id=staff_id,
            date=day,
            start_time=start_time,
            end_time=start_time + duration_minutes,
            status=AppointmentStatus.scheduled,
            confirmed=True,
            reschedule_count=appointment.reschedule_count + 1,
            rescheduled_from=appointment.id,
            created_by=actor.role.value,
            created_at=now,
            notes=appointment.notes,
        )
        new = replace(new, action_log=_log(new, "created", actor, now, f"Rescheduled from {appointment.id}"))
        old = replace(
            appointment,
            status=AppointmentStatus.rescheduled,
            rescheduled_to=new_id,
            rescheduled_at=now,
            action_log=_log(appointment, "rescheduled", actor, now),
        )
        return old, new

    def complete(self, appointment: Appointment, actor: Actor, now: datetime) -> Appointment:
        validate_transition(appointment.status, AppointmentStatus.completed)
        is_admin = actor.is_admin_of(appointment.business_id)
        is_staff = (
            actor.role == ActorRole.staff
            and appointment.staff_id is not None
            and actor.actor_id == appointment.staff_id
        )
        if not (is_admin or is_staff):
            raise UnauthorizedError(
                "Only the assigned staff member or a business admin can complete", rule="not_assigned_staff"
            )
        return replace(
            appointment,
            status=AppointmentStatus.completed,
            completed_by=actor.role.value,
            completed_at=now,
            action_log=_log(appointment, "completed", actor, now),
        )

    def no_show(self, appointment: Appointment, actor: Actor, tz: ZoneInfo, now: datetime) -> Appointment:
        validate_transition(appointment.status, AppointmentStatus.no_show)
        if not actor.is_admin_of(appointment.business_id):
            raise UnauthorizedError("Only a business admin can mark no-show", rule="not_admin")
        if hours_until(appointment.date, appointment.end_time, tz, now) > 0:
            raise WindowViolationError(
                "No-show can only be marked after the appointment end time", rule="no_show_before_end"
            )
        return replace(
            appointment,
            status=AppointmentStatus.no_show,
            action_log=_log(appointment, "no-show", actor, now),
        )

    # -- walk-ins -------------------------------------------------------------

    def walk_in(
        self,
        appointment_id: str,
        business_id: str,
        service_id: str,
        staff_id: str | None,
        duration_minutes: int,
        policy: BookingPolicy,
        actor: Actor,
        tz: ZoneInfo,
        now: datetime,
        notes: str | None = None,
    ) -> Appointment:
        if not actor.is_admin_of(business_id):
            raise UnauthorizedError("Only a business admin can record walk-ins", rule="not_admin")
        if not policy.allow_walk_ins:
            raise UnauthorizedError("Walk-ins are disabled for this business", rule="walk_ins_disabled")

        today, minute = local_now(tz, now)
        appointment = Appointment(
            id=appointment_id,
            business_id=business_id,
            customer_id=None,
            service_id=service_id,
            staff_id=staff_id,
            date=today,
            start_time=minute,
            # a walk-in late in the day is clipped at midnight
            end_time=min(minute + duration_minutes, 24 * 60),
            status=AppointmentStatus.completed,
            completed_by=actor.role.value,
            completed_at=now,
            created_by=actor.role.value,
            created_at=now,
            is_walk_in=True,
            notes=notes,
        )
        log = _log(appointment, "created", actor, now, "Walk-in")
        appointment = replace(appointment, action_log=log)
        return replace(appointment, action_log=_log(appointment, "completed", actor, now, "Walk-in"))
