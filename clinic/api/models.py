"""Pydantic models for the clinic HTTP surface and its collaborators."""

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from clinic.db.models.enums import (
    AppointmentState,
    ChargeStatus,
    PaymentMethod,
    SlotState,
)
from clinic.db.models.schedules import Schedule

DNI_PATTERN = r"^\d{8}$"


class ErrorResponse(BaseModel):
    """Body returned for every failed request."""

    error: str = Field(..., description="Stable error kind")
    message: str = Field(..., description="Human readable message")


# Collaborators
class SpecialtyInfo(BaseModel):
    """Specialty as returned by the specialty lookup."""

    id: int = Field(..., description="ID of the specialty")
    name: str = Field(..., description="Name of the specialty")
    fixed_cost: Decimal = Field(
        ...,
        ge=0,
        description="Price of one appointment",
        alias="fixedCost",
    )

    model_config = ConfigDict(populate_by_name=True)


class PatientSummary(BaseModel):
    """Patient as returned by the patient lookup."""

    dni: str = Field(..., description="National identity number")
    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    phone: Optional[str] = Field(None, description="Phone number")
    email: Optional[str] = Field(None, description="Email")

    model_config = ConfigDict(populate_by_name=True)


# Schedules
class SlotResponse(BaseModel):
    """Slot of a schedule."""

    id: int
    schedule_id: int
    practitioner_id: int
    room: str
    start_time: dt.time
    end_time: dt.time
    state: SlotState
    appointment_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class SlotSnapshot(BaseModel):
    """Everything a booking needs to know about one slot."""

    schedule_id: int
    slot_id: int
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    state: SlotState
    practitioner_id: int
    room: str
    specialty: SpecialtyInfo


class CreateScheduleRequest(BaseModel):
    """Request to open a schedule."""

    practitioner_id: int = Field(..., gt=0)
    specialty_id: int = Field(..., gt=0)
    room: str = Field(..., min_length=1, max_length=20)
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    slot_duration_minutes: Optional[int] = Field(None, gt=0)


class ScheduleResponse(BaseModel):
    """Schedule with its slots and occupancy figures."""

    id: int
    practitioner_id: int
    specialty_id: int
    room: str
    date: dt.date
    start_time: dt.time
    end_time: dt.time
    slot_duration_minutes: int
    slots: List[SlotResponse]
    total_slots: int
    available_slots: int
    occupied_slots: int
    blocked_slots: int
    is_full: bool

    @classmethod
    def from_schedule(cls, schedule: Schedule) -> "ScheduleResponse":
        """Build the response from a schedule with its slots loaded."""
        return cls(
            id=schedule.id,
            practitioner_id=schedule.practitioner_id,
            specialty_id=schedule.specialty_id,
            room=schedule.room,
            date=schedule.date,
            start_time=schedule.start_time,
            end_time=schedule.end_time,
            slot_duration_minutes=schedule.slot_duration_minutes,
            slots=[SlotResponse.model_validate(slot) for slot in schedule.slots],
            total_slots=len(schedule.slots),
            available_slots=schedule.count_slots(SlotState.AVAILABLE),
            occupied_slots=schedule.count_slots(SlotState.OCCUPIED),
            blocked_slots=schedule.count_slots(SlotState.BLOCKED),
            is_full=schedule.is_full,
        )


class OccupySlotRequest(BaseModel):
    """Request to bind a slot to an appointment."""

    appointment_id: int = Field(..., gt=0)


class ReleaseSlotRequest(BaseModel):
    """Request to free a slot, optionally only from a given appointment."""

    appointment_id: Optional[int] = Field(default=None, gt=0)


# Appointments
class BookAppointmentRequest(BaseModel):
    """Request to book a slot for a patient."""

    patient_dni: str = Field(..., pattern=DNI_PATTERN)
    schedule_id: int = Field(..., gt=0)
    slot_id: int = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH


class UpdateAppointmentRequest(BaseModel):
    """Request to move a pending appointment to another slot."""

    patient_dni: str = Field(..., pattern=DNI_PATTERN)
    schedule_id: int = Field(..., gt=0)
    slot_id: int = Field(..., gt=0)


class AppointmentSlot(BaseModel):
    """Slot details embedded in an appointment response."""

    date: dt.date
    start_time: dt.time
    end_time: dt.time
    practitioner_id: int
    room: str
    specialty_name: str


class AppointmentResponse(BaseModel):
    """Appointment enriched with its slot and patient."""

    id: int
    patient_dni: str
    schedule_id: int
    slot_id: int
    cost: Decimal
    state: AppointmentState
    created_at: Optional[dt.datetime] = None
    patient: Optional[PatientSummary] = None
    slot: Optional[AppointmentSlot] = None
    payment_registered: Optional[bool] = Field(
        None,
        description="Set on booking: whether the charge could be registered",
    )

    model_config = ConfigDict(from_attributes=True)


# Charges
class ChargeRequest(BaseModel):
    """Request to register a charge for an appointment."""

    appointment_id: int = Field(..., gt=0)
    patient_dni: str = Field(..., pattern=DNI_PATTERN)
    amount: Decimal = Field(..., ge=0)
    method: PaymentMethod


class ChargeResponse(BaseModel):
    """Registered charge."""

    id: int
    appointment_id: int
    patient_dni: str
    amount: Decimal
    method: PaymentMethod
    status: ChargeStatus
    paid_at: Optional[dt.datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AvailableSlotQuery(BaseModel):
    """Query of ``GET /slots/available``."""

    practitioner_id: int = Field(..., gt=0)
    date: dt.date
    preferred_time: Optional[dt.time] = None

    @model_validator(mode="before")
    @classmethod
    def _drop_empty(cls, data: object) -> object:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value != ""}
        return data
