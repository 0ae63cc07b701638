from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

from appointment_engine.application.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SchedulingError,
    SlotTakenError,
    UnauthorizedError,
    WindowViolationError,
)
from appointment_engine.application.ports.appointment_store import AppointmentStorePort
from appointment_engine.application.ports.directory import DirectoryPort
from appointment_engine.application.ports.notifier import NotifierPort
from appointment_engine.application.use_cases.conflict_checker import ConflictChecker
from appointment_engine.application.use_cases.lifecycle import AppointmentLifecycle
from appointment_engine.application.use_cases.slot_generator import (
    DEFAULT_STEP_MINUTES,
    effective_day,
    generate_slots,
    merge_staff_slots,
)
from appointment_engine.application.utils.time_math import safe_timezone
from appointment_engine.domain.entities.actor import Actor, ActorRole
from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus
from appointment_engine.domain.entities.business import Business, ServiceSpec, StaffMember
from appointment_engine.domain.entities.notification import NotificationEvent
from appointment_engine.domain.entities.slot import Slot


class TransitionKind(str, Enum):
    create = "create"
    confirm = "confirm"
    cancel = "cancel"
    reschedule = "reschedule"
    complete = "complete"
    no_show = "no_show"
    walk_in = "walk_in"


_EVENT_TYPES = {
    TransitionKind.create: "appointment_booked",
    TransitionKind.confirm: "appointment_confirmed",
    TransitionKind.cancel: "appointment_cancelled",
    TransitionKind.reschedule: "appointment_rescheduled",
    TransitionKind.complete: "appointment_completed",
    TransitionKind.no_show: "appointment_no_show",
}


_STALE_ATTEMPTS = 3


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SchedulingEngine:
    """
    Answers availability queries and commits appointment transitions.

    Availability is recomputed on every call and may be stale by the time a caller acts on it;
    every commit re-validates against the store while holding the store's per-day lock for the
    target (business, staff, date).
    """

    def __init__(
        self,
        directory: DirectoryPort,
        store: AppointmentStorePort,
        notifier: NotifierPort,
        clock: Callable[[], datetime] = _utc_now,
        step_minutes: int = DEFAULT_STEP_MINUTES,
        id_factory: Callable[[], str] | None = None,
        default_timezone: str = "UTC",
    ) -> None:
        self._directory = directory
        self._store = store
        self._notifier = notifier
        self._clock = clock
        self._step_minutes = step_minutes
        self._new_id = id_factory or (lambda: uuid.uuid4().hex)
        self._default_timezone = default_timezone
        self._lifecycle = AppointmentLifecycle()
        self._conflicts = ConflictChecker(store)
        self._logger = logging.getLogger(__name__)

    # -- availability ---------------------------------------------------------

    def list_availability(
        self,
        business_id: str,
        service_id: str,
        day: date,
        staff_id: str | None = None,
        distinct_staff: bool = True,
    ) -> list[Slot]:
        business = self._load_business(business_id)
        service = self._load_service(business, service_id)
        now = self._clock()

        per_staff = []
        for member in self._eligible_staff(business, service, staff_id):
            member_id = member.staff_id if member else None
            bookings = self._store.list_for_staff_day(business_id, member_id, day)
            per_staff.append(
                generate_slots(
                    business.calendar,
                    business.policy,
                    service,
                    member.calendar if member else None,
                    bookings,
                    day,
                    staff_id=member_id,
                    now=now,
                    step_minutes=self._step_minutes,
                )
            )
        return merge_staff_slots(per_staff, keep_staff=distinct_staff)

    # -- transitions ----------------------------------------------------------

    def commit_transition(
        self,
        kind: TransitionKind | str,
        actor: Actor,
        appointment_id: str | None = None,
        **params: Any,
    ) -> Appointment:
        """Single entry point for every state mutation. Guard failures are logged and re-raised."""
        kind = TransitionKind(kind)
        try:
            if kind == TransitionKind.create:
                return self.book(actor, **params)
            if kind == TransitionKind.walk_in:
                return self.record_walk_in(actor, **params)
            if appointment_id is None:
                raise ValueError(f"{kind.value} requires an appointment id")
            if kind == TransitionKind.confirm:
                return self.confirm(actor, appointment_id)
            if kind == TransitionKind.cancel:
                return self.cancel(actor, appointment_id, **params)
            if kind == TransitionKind.reschedule:
                return self.reschedule(actor, appointment_id, **params)
            if kind == TransitionKind.complete:
                return self.complete(actor, appointment_id)
            return self.mark_no_show(actor, appointment_id)
        except SchedulingError as e:
            self._logger.info(
                "Transition rejected",
                extra={"kind": kind.value, "appointment_id": appointment_id, "error": e.code, "rule": e.rule},
            )
            raise

    def book(
        self,
        actor: Actor,
        business_id: str,
        service_id: str,
        day: date,
        start_time: int,
        staff_id: str | None = None,
        customer_id: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        business = self._load_business(business_id)
        service = self._load_service(business, service_id)
        tz = self._timezone(business)
        now = self._clock()

        self._lifecycle.check_booking_window(business.calendar, business.policy, day, start_time, tz, now)

        def claim(member: StaffMember | None) -> Appointment:
            self._validate_claim(business, service, member, day, start_time)
            appointment = self._lifecycle.new_appointment(
                appointment_id=self._new_id(),
                business_id=business_id,
                customer_id=customer_id,
                service_id=service_id,
                staff_id=member.staff_id if member else None,
                day=day,
                start_time=start_time,
                duration_minutes=service.duration_minutes,
                policy=business.policy,
                actor=actor,
                now=now,
                notes=notes,
            )
            return self._store.insert(appointment)

        saved = self._claim_first(business_id, day, self._eligible_staff(business, service, staff_id), claim)
        self._logger.info(
            "Appointment booked",
            extra={"appointment_id": saved.id, "business_id": business_id, "staff_id": saved.staff_id},
        )
        self._notify(TransitionKind.create, saved)
        return saved

    def confirm(self, actor: Actor, appointment_id: str) -> Appointment:
        saved = self._update_with_retry(
            appointment_id, lambda appointment: self._lifecycle.confirm(appointment, actor, self._clock())
        )
        self._logger.info("Appointment confirmed", extra={"appointment_id": saved.id})
        self._notify(TransitionKind.confirm, saved)
        return saved

    def cancel(self, actor: Actor, appointment_id: str, reason: str | None = None) -> Appointment:
        def transform(appointment: Appointment) -> Appointment:
            business = self._load_business(appointment.business_id, require_active=False)
            return self._lifecycle.cancel(
                appointment, business.policy, actor, self._timezone(business), self._clock(), reason
            )

        saved = self._update_with_retry(appointment_id, transform)
        self._logger.info("Appointment cancelled", extra={"appointment_id": saved.id, "staff_id": saved.staff_id})
        self._notify(TransitionKind.cancel, saved)
        return saved

    def reschedule(
        self,
        actor: Actor,
        appointment_id: str,
        day: date,
        start_time: int,
        staff_id: str | None = None,
    ) -> Appointment:
        saved = self._retry_stale(lambda: self._reschedule_once(actor, appointment_id, day, start_time, staff_id))
        self._logger.info(
            "Appointment rescheduled",
            extra={"appointment_id": saved.id, "business_id": saved.business_id, "staff_id": saved.staff_id},
        )
        self._notify(TransitionKind.reschedule, saved)
        return saved

    def _reschedule_once(
        self,
        actor: Actor,
        appointment_id: str,
        day: date,
        start_time: int,
        staff_id: str | None,
    ) -> Appointment:
        old = self._load_appointment(appointment_id)
        business = self._load_business(old.business_id)
        service = self._load_service(business, old.service_id)
        tz = self._timezone(business)
        now = self._clock()

        self._lifecycle.check_reschedule(old, business.policy, actor, tz, now)
        self._lifecycle.check_booking_window(business.calendar, business.policy, day, start_time, tz, now)

        def claim(member: StaffMember | None) -> Appointment:
            self._validate_claim(business, service, member, day, start_time, ignore_id=old.id)
            old_updated, new = self._lifecycle.reschedule(
                old,
                new_id=self._new_id(),
                staff_id=member.staff_id if member else None,
                day=day,
                start_time=start_time,
                duration_minutes=service.duration_minutes,
                actor=actor,
                now=now,
            )
            _, saved = self._store.reschedule(old_updated, new)
            return saved

        candidates = self._eligible_staff(business, service, staff_id or old.staff_id)
        return self._claim_first(business.business_id, day, candidates, claim)

    def complete(self, actor: Actor, appointment_id: str) -> Appointment:
        saved = self._update_with_retry(
            appointment_id, lambda appointment: self._lifecycle.complete(appointment, actor, self._clock())
        )
        self._logger.info("Appointment completed", extra={"appointment_id": saved.id})
        self._notify(TransitionKind.complete, saved)
        return saved

    def mark_no_show(self, actor: Actor, appointment_id: str) -> Appointment:
        def transform(appointment: Appointment) -> Appointment:
            business = self._load_business(appointment.business_id, require_active=False)
            return self._lifecycle.no_show(appointment, actor, self._timezone(business), self._clock())

        saved = self._update_with_retry(appointment_id, transform)
        self._logger.info("Appointment marked no-show", extra={"appointment_id": saved.id})
        self._notify(TransitionKind.no_show, saved)
        return saved

    def record_walk_in(
        self,
        actor: Actor,
        business_id: str,
        service_id: str,
        staff_id: str | None = None,
        notes: str | None = None,
    ) -> Appointment:
        business = self._load_business(business_id)
        service = self._load_service(business, service_id)
        if staff_id is not None:
            self._eligible_staff(business, service, staff_id)
        appointment = self._lifecycle.walk_in(
            appointment_id=self._new_id(),
            business_id=business_id,
            service_id=service_id,
            staff_id=staff_id,
            duration_minutes=service.duration_minutes,
            policy=business.policy,
            actor=actor,
            tz=self._timezone(business),
            now=self._clock(),
            notes=notes,
        )
        saved = self._store.insert(appointment)
        self._logger.info("Walk-in recorded", extra={"appointment_id": saved.id, "business_id": business_id})
        return saved

    # -- queries --------------------------------------------------------------

    def get_appointment(self, actor: Actor, appointment_id: str) -> Appointment:
        appointment = self._load_appointment(appointment_id)
        allowed = (
            actor.is_admin_of(appointment.business_id)
            or (actor.role == ActorRole.customer and actor.actor_id == appointment.customer_id)
            or (actor.role == ActorRole.staff and actor.actor_id == appointment.staff_id)
        )
        if not allowed:
            raise UnauthorizedError("Access denied", rule="not_owner")
        return appointment

    def list_appointments(
        self,
        actor: Actor,
        business_id: str | None = None,
        status: AppointmentStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Appointment]:
        filters: dict[str, Any] = {"status": status, "start_date": start_date, "end_date": end_date}
        if actor.role == ActorRole.customer:
            filters["customer_id"] = actor.actor_id
        elif actor.role == ActorRole.staff:
            filters["staff_id"] = actor.actor_id
            filters["business_id"] = business_id
        else:
            if not business_id:
                raise ValueError("business_id is required for admins")
            if not actor.is_admin_of(business_id):
                raise UnauthorizedError("Access denied", rule="not_admin")
            filters["business_id"] = business_id

        appointments = self._store.find(**filters)
        return sorted(appointments, key=lambda a: (a.date, a.start_time), reverse=True)

    def reschedule_chain(self, appointment_id: str) -> list[Appointment]:
        """Every record linked to `appointment_id` by reschedules, oldest first."""
        current = self._load_appointment(appointment_id)
        seen = {current.id}
        while current.rescheduled_from and current.rescheduled_from not in seen:
            previous = self._store.get(current.rescheduled_from)
            if previous is None:
                break
            seen.add(previous.id)
            current = previous

        chain = [current]
        while current.rescheduled_to and current.rescheduled_to not in {a.id for a in chain}:
            following = self._store.get(current.rescheduled_to)
            if following is None:
                break
            chain.append(following)
            current = following
        return chain

    # -- helpers --------------------------------------------------------------

    def _retry_stale(self, action: Callable[[], Appointment]) -> Appointment:
        """Re-run `action` when the store reports the record changed under it."""
        for attempt in range(1, _STALE_ATTEMPTS):
            try:
                return action()
            except InvalidTransitionError as e:
                if e.rule != "stale_state":
                    raise
                self._logger.info("Stale appointment state, retrying", extra={"attempt": attempt})
        return action()

    def _update_with_retry(
        self,
        appointment_id: str,
        transform: Callable[[Appointment], Appointment],
    ) -> Appointment:
        def attempt() -> Appointment:
            appointment = self._load_appointment(appointment_id)
            return self._store.update(transform(appointment), expected_status=AppointmentStatus.scheduled)

        return self._retry_stale(attempt)

    def _claim_first(
        self,
        business_id: str,
        day: date,
        candidates: list[StaffMember | None],
        claim: Callable[[StaffMember | None], Appointment],
    ) -> Appointment:
        """Run `claim` under each candidate's day lock until one succeeds."""
        failure: SchedulingError | None = None
        for member in candidates:
            try:
                with self._store.day_lock(business_id, member.staff_id if member else None, day):
                    return claim(member)
            except (SlotTakenError, WindowViolationError) as e:
                # keep the most useful reason when auto-assigning across staff
                if failure is None or isinstance(e, SlotTakenError):
                    failure = e
        if failure is None:
            raise SlotTakenError("No staff member can take this slot", rule="booked")
        raise failure

    def _validate_claim(
        self,
        business: Business,
        service: ServiceSpec,
        member: StaffMember | None,
        day: date,
        start_time: int,
        ignore_id: str | None = None,
    ) -> None:
        """Re-run slot generation and the conflict check for one start; the caller holds the day lock."""
        member_id = member.staff_id if member else None
        staff_calendar = member.calendar if member else None

        if staff_calendar is not None and day in staff_calendar.unavailable_dates:
            raise WindowViolationError("Staff member is unavailable on this date", rule="staff_unavailable")
        if effective_day(business.calendar, staff_calendar, day) is None:
            raise WindowViolationError("Business is closed on this day", rule="closed")

        grid = generate_slots(
            business.calendar, business.policy, service, staff_calendar, [], day,
            staff_id=member_id, step_minutes=self._step_minutes,
        )
        if start_time not in {slot.start_time for slot in grid}:
            raise WindowViolationError(
                "Invalid time slot. Please select from available time slots.", rule="outside_working_hours"
            )

        bookings = [
            b for b in self._store.list_for_staff_day(business.business_id, member_id, day) if b.id != ignore_id
        ]
        free = generate_slots(
            business.calendar, business.policy, service, staff_calendar, bookings, day,
            staff_id=member_id, step_minutes=self._step_minutes,
        )
        if start_time not in {slot.start_time for slot in free} or not self._conflicts.is_available(
            business.business_id, member_id, day, start_time, service.duration_minutes, ignore_id=ignore_id
        ):
            raise SlotTakenError("This time slot is already booked", rule="booked")

    def _eligible_staff(
        self,
        business: Business,
        service: ServiceSpec,
        staff_id: str | None,
    ) -> list[StaffMember | None]:
        if staff_id is not None:
            if staff_id not in service.eligible_staff_ids:
                raise NotFoundError(
                    "Selected staff member is not assigned to this service", rule="staff_not_eligible"
                )
            return [self._load_staff(business, staff_id)]

        if not service.eligible_staff_ids:
            # business-level booking against the business calendar
            return [None]

        members: list[StaffMember | None] = []
        for eligible_id in sorted(service.eligible_staff_ids):
            member = self._directory.get_staff(business.business_id, eligible_id)
            if member is None or not member.is_active:
                self._logger.warning(
                    "Eligible staff member missing or inactive",
                    extra={"business_id": business.business_id, "staff_id": eligible_id},
                )
                continue
            members.append(member)
        if not members:
            raise NotFoundError("No staff available for this service", rule="staff")
        return members

    def _load_business(self, business_id: str, require_active: bool = True) -> Business:
        business = self._directory.get_business(business_id)
        if business is None or (require_active and not business.is_active):
            raise NotFoundError("Business not found or inactive", rule="business")
        return business

    def _load_service(self, business: Business, service_id: str) -> ServiceSpec:
        service = self._directory.get_service(business.business_id, service_id)
        if service is None or not service.is_active:
            raise NotFoundError("Service not found or inactive", rule="service")
        return service

    def _load_staff(self, business: Business, staff_id: str) -> StaffMember:
        member = self._directory.get_staff(business.business_id, staff_id)
        if member is None or not member.is_active:
            raise NotFoundError("Staff member not found or inactive", rule="staff")
        return member

    def _load_appointment(self, appointment_id: str) -> Appointment:
        appointment = self._store.get(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found", rule="appointment")
        return appointment

    def _timezone(self, business: Business):
        return safe_timezone(business.calendar.timezone, self._default_timezone)

    def _notify(self, kind: TransitionKind, appointment: Appointment) -> None:
        """Publish one event per affected party. Never raises: the commit is already durable."""
        event_type = _EVENT_TYPES[kind]
        recipients = [appointment.customer_id, appointment.staff_id, appointment.business_id]
        if kind in (TransitionKind.complete, TransitionKind.no_show, TransitionKind.confirm):
            recipients = [appointment.customer_id]

        for recipient_id in dict.fromkeys(r for r in recipients if r):
            event = NotificationEvent(
                event_type=event_type,
                appointment_id=appointment.id,
                recipient_id=recipient_id,
                payload={
                    "business_id": appointment.business_id,
                    "date": appointment.date.isoformat(),
                    "start_time": appointment.start_time,
                    "end_time": appointment.end_time,
                    "staff_id": appointment.staff_id,
                    "rescheduled_from": appointment.rescheduled_from,
                },
            )
            try:
                self._notifier.publish(event)
            except Exception as e:
                self._logger.error(
                    "Failed to publish notification",
                    extra={
                        "event_type": event_type,
                        "appointment_id": appointment.id,
                        "recipient_id": recipient_id,
                        "error": str(e),
                    },
                )
