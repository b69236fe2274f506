import datetime as dt
from typing import Any, Optional, Protocol, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic.api.models import SlotSnapshot, SpecialtyInfo
from clinic.db.context import get_or_create_session
from clinic.db.models.enums import SlotState
from clinic.db.models.schedules import Schedule, Slot
from clinic.db.services import SchedulesService, SlotsService
from clinic.exceptions import ConflictError, NotFoundError, ValidationError
from clinic.scheduling.overlap import ScheduleWindow, find_conflicting_schedule
from clinic.scheduling.slots import (
    TRANSITIONS,
    SlotEvent,
    generate_slots,
    next_state,
    seconds_between,
)
from clinic.settings import settings


class SpecialtyLookup(Protocol):
    """Resolves a specialty and its fixed cost."""

    async def get_specialty(self, specialty_id: int) -> SpecialtyInfo: ...


def _window(schedule: Schedule) -> ScheduleWindow:
    return ScheduleWindow(
        practitioner_id=schedule.practitioner_id,
        room=schedule.room,
        date=schedule.date,
        start_time=schedule.start_time,
        end_time=schedule.end_time,
    )


class ScheduleManager:
    """
    Owns schedules and their slots.

    Every public operation runs in its own transaction opened from
    ``session_factory``.
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        specialty_lookup: Optional[SpecialtyLookup] = None,
    ) -> None:
        self._session_factory = session_factory
        self._specialty_lookup = specialty_lookup

    def _session(self) -> Any:
        return get_or_create_session(session_factory=self._session_factory)

    async def create_schedule(
        self,
        practitioner_id: int,
        specialty_id: int,
        room: str,
        date: dt.date,
        start_time: dt.time,
        end_time: dt.time,
        slot_duration_minutes: Optional[int] = None,
    ) -> Schedule:
        """
        Open a schedule and generate its slots.

        Args:
            practitioner_id: The practitioner working the schedule.
            specialty_id: The specialty offered.
            room: The room used.
            date: The day, strictly after today.
            start_time: Start of the block.
            end_time: End of the block.
            slot_duration_minutes: Slot length; the configured default if None.

        Returns:
            The persisted schedule with all slots AVAILABLE.

        Raises:
            ValidationError: On an empty range, a bad duration or a past date.
            ConflictError: If the practitioner or the room is already booked.
        """
        duration = (
            settings.DEFAULT_SLOT_DURATION_MINUTES
            if slot_duration_minutes is None
            else slot_duration_minutes
        )
        if date <= dt.date.today():
            raise ValidationError("Schedule date must be in the future")
        slot_times = generate_slots(start_time, end_time, duration)

        candidate = ScheduleWindow(
            practitioner_id=practitioner_id,
            room=room,
            date=date,
            start_time=start_time,
            end_time=end_time,
        )
        async with self._session() as session:
            schedules = SchedulesService(session)
            existing = await schedules.find_conflict_candidates(
                date,
                practitioner_id,
                room,
            )
            clash = find_conflicting_schedule(candidate, map(_window, existing))
            if clash is not None:
                logger.warning(
                    f"Schedule for practitioner {practitioner_id} in room {room} "
                    f"on {date} overlaps {clash.start_time}-{clash.end_time}",
                )
                raise ConflictError(
                    "Practitioner or room already has a schedule in this range",
                )

            schedule = Schedule(
                practitioner_id=practitioner_id,
                specialty_id=specialty_id,
                room=room,
                date=date,
                start_time=start_time,
                end_time=end_time,
                slot_duration_minutes=duration,
                slots=[
                    Slot(
                        practitioner_id=practitioner_id,
                        room=room,
                        start_time=slot_start,
                        end_time=slot_end,
                        state=SlotState.AVAILABLE,
                        appointment_id=None,
                    )
                    for slot_start, slot_end in slot_times
                ],
            )
            await schedules.add_model(schedule)

        logger.info(
            f"Created schedule {schedule.id} with {len(slot_times)} slots "
            f"for practitioner {practitioner_id} on {date}",
        )
        return schedule

    async def get_schedule(self, schedule_id: int) -> Schedule:
        """Return a schedule with its slots or raise NotFoundError."""
        async with self._session() as session:
            schedule = await SchedulesService(session).find_one_or_none(
                id=schedule_id,
            )
        if schedule is None:
            raise NotFoundError(f"Schedule {schedule_id} not found")
        return schedule

    async def list_schedules(self) -> Sequence[Schedule]:
        async with self._session() as session:
            return await SchedulesService(session).list_schedules()

    async def find_by_practitioner_and_date(
        self,
        practitioner_id: int,
        date: dt.date,
    ) -> Sequence[Schedule]:
        async with self._session() as session:
            return await SchedulesService(session).find_by_practitioner_and_date(
                practitioner_id,
                date,
            )

    async def delete_schedule(self, schedule_id: int) -> None:
        """Delete a schedule and all of its slots."""
        async with self._session() as session:
            schedules = SchedulesService(session)
            schedule = await schedules.find_one_or_none(id=schedule_id)
            if schedule is None:
                raise NotFoundError(f"Schedule {schedule_id} not found")
            await schedules.remove(schedule)
        logger.info(f"Deleted schedule {schedule_id}")

    async def get_slot(self, schedule_id: int, slot_id: int) -> Slot:
        """Return a slot of a schedule or raise NotFoundError."""
        async with self._session() as session:
            slot = await SlotsService(session).find_in_schedule(schedule_id, slot_id)
        if slot is None:
            raise NotFoundError(f"Slot {slot_id} not found in schedule {schedule_id}")
        return slot

    async def get_slot_snapshot(self, schedule_id: int, slot_id: int) -> SlotSnapshot:
        """
        Describe a slot together with its schedule and specialty.

        Raises:
            NotFoundError: If the schedule, the slot or the specialty is unknown.
            UnavailableError: If the specialty lookup cannot be reached.
        """
        if self._specialty_lookup is None:
            raise RuntimeError("Specialty lookup is not configured")

        schedule = await self.get_schedule(schedule_id)
        slot = next((slot for slot in schedule.slots if slot.id == slot_id), None)
        if slot is None:
            raise NotFoundError(f"Slot {slot_id} not found in schedule {schedule_id}")
        specialty = await self._specialty_lookup.get_specialty(schedule.specialty_id)

        return SlotSnapshot(
            schedule_id=schedule.id,
            slot_id=slot.id,
            date=schedule.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            state=slot.state,
            practitioner_id=slot.practitioner_id,
            room=slot.room,
            specialty=specialty,
        )

    async def _transition(
        self,
        schedule_id: int,
        slot_id: int,
        event: SlotEvent,
        held_by: Optional[int] = None,
        **update_data: Any,
    ) -> Slot:
        sources, target = TRANSITIONS[event]
        async with self._session() as session:
            moved = await SlotsService(session).transition(
                schedule_id,
                slot_id,
                sources,
                held_by=held_by,
                state=target,
                **update_data,
            )
            slot = await session.get(Slot, slot_id, populate_existing=True)
            if slot is None or slot.schedule_id != schedule_id:
                raise NotFoundError(
                    f"Slot {slot_id} not found in schedule {schedule_id}",
                )
            if not moved:
                logger.warning(
                    f"Rejected {event.value} on slot {slot_id}: {slot.state.value}",
                )
                next_state(slot.state, event)
                if held_by is not None and slot.appointment_id != held_by:
                    raise ConflictError(
                        f"Slot {slot_id} is not held by appointment {held_by}",
                    )
                # Another transaction moved the slot between the two statements
                raise ConflictError(f"Slot {slot_id} changed concurrently")

        logger.info(f"Slot {slot_id} of schedule {schedule_id}: {event.value}")
        return slot

    async def occupy_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: int,
    ) -> Slot:
        """AVAILABLE -> OCCUPIED, bound to ``appointment_id``."""
        return await self._transition(
            schedule_id,
            slot_id,
            SlotEvent.OCCUPY,
            appointment_id=appointment_id,
        )

    async def release_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: Optional[int] = None,
    ) -> Slot:
        """
        OCCUPIED -> AVAILABLE, unbinding the appointment.

        With ``appointment_id`` the slot is only released while that
        appointment holds it; otherwise ConflictError is raised.
        """
        return await self._transition(
            schedule_id,
            slot_id,
            SlotEvent.RELEASE,
            held_by=appointment_id,
            appointment_id=None,
        )

    async def block_slot(self, schedule_id: int, slot_id: int) -> Slot:
        """AVAILABLE -> BLOCKED."""
        return await self._transition(schedule_id, slot_id, SlotEvent.BLOCK)

    async def unblock_slot(self, schedule_id: int, slot_id: int) -> Slot:
        """BLOCKED -> AVAILABLE."""
        return await self._transition(schedule_id, slot_id, SlotEvent.UNBLOCK)

    async def find_available_slot(
        self,
        practitioner_id: int,
        date: dt.date,
        preferred_time: Optional[dt.time] = None,
    ) -> Slot:
        """
        Pick a free slot of a practitioner on a date.

        With ``preferred_time`` the slot starting closest to it wins, the
        earlier one on a tie. Without it the first free slot of the day wins.

        Raises:
            NotFoundError: If the practitioner has no free slot that day.
        """
        async with self._session() as session:
            available = await SlotsService(session).find_available_for_practitioner(
                practitioner_id,
                date,
            )
        if not available:
            raise NotFoundError(
                f"No available slot for practitioner {practitioner_id} on {date}",
            )
        if preferred_time is None:
            return available[0]
        # min keeps the first of equal candidates, and the list is chronological
        return min(
            available,
            key=lambda slot: seconds_between(slot.start_time, preferred_time),
        )
