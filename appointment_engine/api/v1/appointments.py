from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, Query

from appointment_engine.api.v1.schemas import (
    ActionLogSchema,
    AppointmentListSchema,
    AppointmentSchema,
    AvailabilityResponseSchema,
    BookRequestSchema,
    CancelRequestSchema,
    ReminderRunSchema,
    RescheduleRequestSchema,
    SlotSchema,
    WalkInRequestSchema,
)
from appointment_engine.application.exceptions import (
    InvalidTransitionError,
    NotFoundError,
    SchedulingError,
    SlotTakenError,
    StoreTimeoutError,
    UnauthorizedError,
)
from appointment_engine.application.use_cases.reminders import ReminderUseCase
from appointment_engine.application.use_cases.scheduling_engine import SchedulingEngine, TransitionKind
from appointment_engine.application.utils.time_math import format_hhmm
from appointment_engine.domain.entities.actor import Actor, ActorRole
from appointment_engine.domain.entities.appointment import Appointment, AppointmentStatus
from appointment_engine.infrastructure.notify.outbox import OutboxNotifier
from appointment_engine.wiring.dependencies import get_engine, get_outbox, get_reminder_use_case


router = APIRouter()
logger = logging.getLogger(__name__)

_STATUS_CODES: list[tuple[type[SchedulingError], int]] = [
    (NotFoundError, 404),
    (UnauthorizedError, 403),
    (InvalidTransitionError, 409),
    (SlotTakenError, 409),
    (StoreTimeoutError, 503),
]


def get_actor(
    x_actor_id: str = Header(...),
    x_actor_role: ActorRole = Header(...),
    x_actor_business_id: str | None = Header(None),
) -> Actor:
    return Actor(actor_id=x_actor_id, role=x_actor_role, business_id=x_actor_business_id)


def _to_http(e: Exception) -> HTTPException:
    if isinstance(e, SchedulingError):
        status_code = next((code for cls, code in _STATUS_CODES if isinstance(e, cls)), 422)
        return HTTPException(
            status_code=status_code,
            detail={"code": e.code, "rule": e.rule, "message": e.message, "retryable": e.retryable},
        )
    return HTTPException(status_code=400, detail={"code": "invalid_request", "rule": None, "message": str(e)})


def _to_schema(appointment: Appointment) -> AppointmentSchema:
    return AppointmentSchema(
        id=appointment.id,
        business_id=appointment.business_id,
        customer_id=appointment.customer_id,
        service_id=appointment.service_id,
        staff_id=appointment.staff_id,
        date=appointment.date,
        start_time=appointment.start_time,
        end_time=appointment.end_time,
        start_label=format_hhmm(appointment.start_time),
        end_label=format_hhmm(appointment.end_time),
        status=appointment.status,
        confirmed=appointment.confirmed,
        reschedule_count=appointment.reschedule_count,
        rescheduled_from=appointment.rescheduled_from,
        rescheduled_to=appointment.rescheduled_to,
        cancelled_by=appointment.cancelled_by,
        cancellation_reason=appointment.cancellation_reason,
        is_walk_in=appointment.is_walk_in,
        notes=appointment.notes,
        action_log=[
            ActionLogSchema(
                action=entry.action,
                performed_by=entry.performed_by,
                actor_id=entry.actor_id,
                at=entry.at,
                reason=entry.reason,
            )
            for entry in appointment.action_log
        ],
    )


@router.get("/availability", response_model=AvailabilityResponseSchema)
def list_availability(
    business_id: str = Query(...),
    service_id: str = Query(...),
    day: date = Query(..., alias="date"),
    staff_id: str | None = Query(None),
    engine: SchedulingEngine = Depends(get_engine),
):
    try:
        slots = engine.list_availability(business_id, service_id, day, staff_id=staff_id)
    except (SchedulingError, ValueError) as e:
        raise _to_http(e)

    return AvailabilityResponseSchema(
        business_id=business_id,
        service_id=service_id,
        date=day,
        count=len(slots),
        slots=[
            SlotSchema(
                start_time=s.start_time,
                end_time=s.end_time,
                start_label=format_hhmm(s.start_time),
                end_label=format_hhmm(s.end_time),
                staff_id=s.staff_id,
            )
            for s in slots
        ],
    )


def _commit(
    engine: SchedulingEngine,
    outbox: OutboxNotifier,
    background_tasks: BackgroundTasks,
    kind: TransitionKind,
    actor: Actor,
    appointment_id: str | None = None,
    **params,
) -> AppointmentSchema:
    try:
        appointment = engine.commit_transition(kind, actor, appointment_id, **params)
    except (SchedulingError, ValueError) as e:
        raise _to_http(e)
    background_tasks.add_task(outbox.flush)
    return _to_schema(appointment)


@router.post("/appointments", response_model=AppointmentSchema, status_code=201)
def book(
    req: BookRequestSchema,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    return _commit(
        engine,
        outbox,
        background_tasks,
        TransitionKind.create,
        actor,
        business_id=req.business_id,
        service_id=req.service_id,
        day=req.date,
        start_time=req.start_time,
        staff_id=req.staff_id,
        customer_id=req.customer_id,
        notes=req.notes,
    )


@router.get("/appointments", response_model=AppointmentListSchema)
def list_appointments(
    business_id: str | None = Query(None),
    status: AppointmentStatus | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
):
    try:
        appointments = engine.list_appointments(
            actor, business_id=business_id, status=status, start_date=start_date, end_date=end_date
        )
    except (SchedulingError, ValueError) as e:
        raise _to_http(e)
    return AppointmentListSchema(total=len(appointments), appointments=[_to_schema(a) for a in appointments])


@router.get("/appointments/{appointment_id}", response_model=AppointmentSchema)
def get_appointment(
    appointment_id: str,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
):
    try:
        return _to_schema(engine.get_appointment(actor, appointment_id))
    except SchedulingError as e:
        raise _to_http(e)


@router.get("/appointments/{appointment_id}/chain", response_model=list[AppointmentSchema])
def get_reschedule_chain(
    appointment_id: str,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
):
    try:
        engine.get_appointment(actor, appointment_id)
        return [_to_schema(a) for a in engine.reschedule_chain(appointment_id)]
    except SchedulingError as e:
        raise _to_http(e)


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentSchema)
def cancel(
    appointment_id: str,
    req: CancelRequestSchema,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    return _commit(
        engine, outbox, background_tasks, TransitionKind.cancel, actor, appointment_id, reason=req.reason
    )


@router.post("/appointments/{appointment_id}/reschedule", response_model=AppointmentSchema)
def reschedule(
    appointment_id: str,
    req: RescheduleRequestSchema,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    return _commit(
        engine,
        outbox,
        background_tasks,
        TransitionKind.reschedule,
        actor,
        appointment_id,
        day=req.date,
        start_time=req.start_time,
        staff_id=req.staff_id,
    )


@router.post("/appointments/{appointment_id}/confirm", response_model=AppointmentSchema)
def confirm(
    appointment_id: str,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    return _commit(engine, outbox, background_tasks, TransitionKind.confirm, actor, appointment_id)


@router.post("/appointments/{appointment_id}/complete", response_model=AppointmentSchema)
def complete(
    appointment_id: str,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    return _commit(engine, outbox, background_tasks, TransitionKind.complete, actor, appointment_id)


@router.post("/appointments/{appointment_id}/no-show", response_model=AppointmentSchema)
def no_show(
    appointment_id: str,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    return _commit(engine, outbox, background_tasks, TransitionKind.no_show, actor, appointment_id)


@router.post("/walk-ins", response_model=AppointmentSchema, status_code=201)
def walk_in(
    req: WalkInRequestSchema,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    engine: SchedulingEngine = Depends(get_engine),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    return _commit(
        engine,
        outbox,
        background_tasks,
        TransitionKind.walk_in,
        actor,
        business_id=req.business_id,
        service_id=req.service_id,
        staff_id=req.staff_id,
        notes=req.notes,
    )


@router.post("/reminders/run", response_model=ReminderRunSchema)
def run_reminders(
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_actor),
    reminders: ReminderUseCase = Depends(get_reminder_use_case),
    outbox: OutboxNotifier = Depends(get_outbox),
):
    if actor.role != ActorRole.system:
        raise HTTPException(status_code=403, detail={"code": "unauthorized", "rule": "not_admin", "message": "System only"})
    try:
        sent = reminders.run()
    except SchedulingError as e:
        raise _to_http(e)
    background_tasks.add_task(outbox.flush)
    return ReminderRunSchema(sent=sent)
