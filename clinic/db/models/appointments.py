from sqlalchemy import Enum, Index
from sqlalchemy.orm import Mapped, mapped_column

from clinic.db.base import Base
from clinic.db.models.enums import AppointmentState
from clinic.db.types import (
    created_at_an,
    dni_an,
    int_pk,
    money_an,
    updated_at_an,
)


class Appointment(Base):
    """A patient's claim on one slot."""

    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_schedule_slot", "schedule_id", "slot_id"),
    )

    id: Mapped[int_pk]
    patient_dni: Mapped[dni_an]

    # Schedule store references, by value only
    schedule_id: Mapped[int] = mapped_column(nullable=False)
    slot_id: Mapped[int] = mapped_column(nullable=False)

    # Copied from the specialty at booking time
    cost: Mapped[money_an]

    state: Mapped[AppointmentState] = mapped_column(
        Enum(AppointmentState),
        default=AppointmentState.PENDING,
    )

    created_at: Mapped[created_at_an]
    updated_at: Mapped[updated_at_an]
