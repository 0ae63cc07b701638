from datetime import date, datetime

from pydantic import BaseModel, Field

from appointment_engine.domain.entities.appointment import AppointmentStatus


class SlotSchema(BaseModel):
    start_time: int
    end_time: int
    start_label: str
    end_label: str
    staff_id: str | None = None


class AvailabilityResponseSchema(BaseModel):
    business_id: str
    service_id: str
    date: date
    count: int
    slots: list[SlotSchema]


class BookRequestSchema(BaseModel):
    business_id: str
    service_id: str
    date: date
    start_time: int = Field(ge=0, lt=24 * 60, description="Minute of day")
    staff_id: str | None = None
    customer_id: str | None = None
    notes: str | None = Field(default=None, max_length=500)


class CancelRequestSchema(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class RescheduleRequestSchema(BaseModel):
    date: date
    start_time: int = Field(ge=0, lt=24 * 60)
    staff_id: str | None = None


class WalkInRequestSchema(BaseModel):
    business_id: str
    service_id: str
    staff_id: str | None = None
    notes: str | None = Field(default=None, max_length=500)


class ActionLogSchema(BaseModel):
    action: str
    performed_by: str
    actor_id: str | None = None
    at: datetime
    reason: str | None = None


class AppointmentSchema(BaseModel):
    id: str
    business_id: str
    customer_id: str | None = None
    service_id: str
    staff_id: str | None = None
    date: date
    start_time: int
    end_time: int
    start_label: str
    end_label: str
    status: AppointmentStatus
    confirmed: bool
    reschedule_count: int
    rescheduled_from: str | None = None
    rescheduled_to: str | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    is_walk_in: bool = False
    notes: str | None = None
    action_log: list[ActionLogSchema] = Field(default_factory=list)


class AppointmentListSchema(BaseModel):
    total: int
    appointments: list[AppointmentSchema]


class ReminderRunSchema(BaseModel):
    sent: int
