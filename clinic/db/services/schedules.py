import datetime as dt
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import or_, select

from clinic.db.models.enums import SlotState
from clinic.db.models.schedules import Schedule, Slot
from clinic.db.services.base import BaseService


class SchedulesService(BaseService[Schedule]):
    """Service for working with schedules."""

    model = Schedule

    async def find_conflict_candidates(
        self,
        date: dt.date,
        practitioner_id: int,
        room: str,
    ) -> Sequence[Schedule]:
        """
        Retrieve schedules that could overlap a new one.

        Only the date and the shared resource are filtered here; the time
        ranges are compared by the overlap validator.

        Args:
            date: The date of the new schedule.
            practitioner_id: The practitioner of the new schedule.
            room: The room of the new schedule.

        Returns:
            Schedules on the same date sharing the practitioner or the room.
        """
        return await self.find_all_where(
            Schedule.date == date,
            or_(
                Schedule.practitioner_id == practitioner_id,
                Schedule.room == room,
            ),
        )

    async def find_by_practitioner_and_date(
        self,
        practitioner_id: int,
        date: dt.date,
    ) -> Sequence[Schedule]:
        """
        Retrieve a practitioner's schedules on a date, earliest first.

        Args:
            practitioner_id: The practitioner ID to filter by.
            date: The date to filter by.

        Returns:
            A sequence of schedules with their slots loaded.
        """
        return await self.find_all(
            order_by=[Schedule.start_time],
            practitioner_id=practitioner_id,
            date=date,
        )

    async def list_schedules(self) -> Sequence[Schedule]:
        """Retrieve every schedule in calendar order."""
        return await self.find_all(order_by=[Schedule.date, Schedule.start_time])

    async def remove(self, schedule: Schedule) -> None:
        """
        Delete a schedule together with its slots.

        Args:
            schedule: The loaded schedule to delete.
        """
        await self.session.delete(schedule)
        await self.session.flush()


class SlotsService(BaseService[Slot]):
    """Service for working with slots."""

    model = Slot

    async def find_in_schedule(self, schedule_id: int, slot_id: int) -> Slot | None:
        """
        Retrieve a slot only if it belongs to the given schedule.

        Args:
            schedule_id: The owning schedule ID.
            slot_id: The slot ID.

        Returns:
            The slot if found, otherwise None.
        """
        return await self.find_one_or_none(id=slot_id, schedule_id=schedule_id)

    async def transition(
        self,
        schedule_id: int,
        slot_id: int,
        sources: Iterable[SlotState],
        held_by: Optional[int] = None,
        **update_data: Any,
    ) -> bool:
        """
        Move a slot to a new state if it is currently in one of the sources.

        The guard and the write are a single statement, so two concurrent
        callers can never both succeed.

        Args:
            schedule_id: The owning schedule ID.
            slot_id: The slot ID.
            sources: States the slot is allowed to leave.
            held_by: If given, the slot must be bound to this appointment.
            **update_data: New column values, including ``state``.

        Returns:
            True if the slot was updated, False otherwise.
        """
        guards = [
            Slot.id == slot_id,
            Slot.schedule_id == schedule_id,
            Slot.state.in_(list(sources)),
        ]
        if held_by is not None:
            guards.append(Slot.appointment_id == held_by)
        affected = await self.update_where(*guards, **update_data)
        return affected == 1

    async def find_available_for_practitioner(
        self,
        practitioner_id: int,
        date: dt.date,
    ) -> Sequence[Slot]:
        """
        Retrieve AVAILABLE slots of a practitioner on a date, earliest first.

        Args:
            practitioner_id: The practitioner ID to filter by.
            date: The date to filter by.

        Returns:
            A sequence of available slots.
        """
        query = (
            select(Slot)
            .join(Slot.schedule)
            .where(
                Schedule.date == date,
                Slot.practitioner_id == practitioner_id,
                Slot.is_available,
            )
            .order_by(Slot.start_time, Slot.id)
        )
        result = await self.session.execute(query)
        return result.scalars().all()
