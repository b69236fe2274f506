import datetime as dt
from typing import List

from sqlalchemy import Date, Enum, ForeignKey, Index, Integer, Time
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, mapped_column, relationship

from clinic.db.base import Base
from clinic.db.models.enums import SlotState
from clinic.db.types import created_at_an, int_pk, room_an, updated_at_an


class Schedule(Base):
    """A practitioner's block of availability in a room on a given date."""

    __tablename__ = "schedules"
    __table_args__ = (
        Index("ix_schedules_practitioner_date", "practitioner_id", "date"),
        Index("ix_schedules_room_date", "room", "date"),
    )

    id: Mapped[int_pk]
    practitioner_id: Mapped[int] = mapped_column(nullable=False)
    specialty_id: Mapped[int] = mapped_column(nullable=False)
    room: Mapped[room_an]

    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    slot_duration_minutes: Mapped[int] = mapped_column(Integer, default=30)

    created_at: Mapped[created_at_an]
    updated_at: Mapped[updated_at_an]

    # Relations
    slots: Mapped[List["Slot"]] = relationship(
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="Slot.start_time",
        lazy="selectin",
    )

    def count_slots(self, state: SlotState) -> int:
        """Count the loaded slots in the given state."""
        return sum(1 for slot in self.slots if slot.state is state)

    @property
    def is_full(self) -> bool:
        """True once no slot is left AVAILABLE."""
        return self.count_slots(SlotState.AVAILABLE) == 0


class Slot(Base):
    """One bookable time unit of a schedule."""

    __tablename__ = "slots"
    __table_args__ = (
        Index("ix_slots_schedule_times", "schedule_id", "start_time", "end_time"),
    )

    id: Mapped[int_pk]
    schedule_id: Mapped[int] = mapped_column(
        ForeignKey("schedules.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Denormalized from the schedule
    practitioner_id: Mapped[int] = mapped_column(nullable=False)
    room: Mapped[room_an]

    start_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    end_time: Mapped[dt.time] = mapped_column(Time, nullable=False)
    state: Mapped[SlotState] = mapped_column(
        Enum(SlotState),
        default=SlotState.AVAILABLE,
        index=True,
    )

    # Appointment id from the appointment store, kept by value
    appointment_id: Mapped[int | None] = mapped_column(nullable=True)

    # Relations
    schedule: Mapped["Schedule"] = relationship(back_populates="slots")

    @hybrid_property
    def is_available(self) -> bool:
        """Whether the slot can be booked."""
        return self.state == SlotState.AVAILABLE
