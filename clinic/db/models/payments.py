"""Charges registered for booked appointments."""

from datetime import datetime

from sqlalchemy import DateTime, Enum
from sqlalchemy.orm import Mapped, mapped_column

from clinic.db.base import Base
from clinic.db.models.enums import ChargeStatus, PaymentMethod
from clinic.db.types import (
    created_at_an,
    dni_an,
    int_pk,
    money_an,
    updated_at_an,
)


class Charge(Base):
    """Amount owed for an appointment."""

    __tablename__ = "charges"

    id: Mapped[int_pk]
    appointment_id: Mapped[int] = mapped_column(index=True)
    patient_dni: Mapped[dni_an]
    amount: Mapped[money_an]
    method: Mapped[PaymentMethod] = mapped_column(Enum(PaymentMethod))
    status: Mapped[ChargeStatus] = mapped_column(
        Enum(ChargeStatus),
        default=ChargeStatus.PENDING,
    )

    # Timestamps
    created_at: Mapped[created_at_an]
    updated_at: Mapped[updated_at_an]
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
