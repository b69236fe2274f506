import datetime as dt
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic.api.models import SlotResponse, SlotSnapshot
from clinic.booking import BookingOrchestrator
from clinic.booking.gateways import LocalPaymentGateway, LocalScheduleGateway
from clinic.db.models.enums import (
    AppointmentState,
    ChargeStatus,
    PaymentMethod,
    SlotState,
)
from clinic.db.models.schedules import Schedule
from clinic.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnavailableError,
)
from clinic.scheduling import ScheduleManager

from .fakes import FailingPayments, FakePatients, FlakyScheduleGateway

PATIENT = "12345678"
OTHER_PATIENT = "87654321"


class StaleScheduleGateway(LocalScheduleGateway):
    """Reports every slot as free, like a read taken before a concurrent booking."""

    async def get_slot_snapshot(self, schedule_id: int, slot_id: int) -> SlotSnapshot:
        snapshot = await super().get_slot_snapshot(schedule_id, slot_id)
        return snapshot.model_copy(update={"state": SlotState.AVAILABLE})


class SnatchingScheduleGateway(LocalScheduleGateway):
    """Runs a rival booking right before refusing to occupy ``target_slot_id``."""

    def __init__(self, manager: ScheduleManager, target_slot_id: int) -> None:
        super().__init__(manager)
        self.target_slot_id = target_slot_id
        self.rival: Optional[Callable[[], Awaitable[Any]]] = None

    async def occupy_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: int,
    ) -> SlotResponse:
        if slot_id == self.target_slot_id and self.rival is not None:
            rival, self.rival = self.rival, None
            await rival()
            raise ConflictError(f"Slot {slot_id} went to someone else")
        return await super().occupy_slot(schedule_id, slot_id, appointment_id)


def build(
    session_factory: async_sessionmaker[AsyncSession],
    schedules: LocalScheduleGateway,
    payments: object,
    patients: FakePatients,
) -> BookingOrchestrator:
    return BookingOrchestrator(
        schedules=schedules,
        payments=payments,  # type: ignore[arg-type]
        patients=patients,
        session_factory=session_factory,
    )


async def test_booking_scenario(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id

    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    assert booked.state is AppointmentState.PENDING
    assert booked.cost == Decimal("50.00")
    assert booked.payment_registered is True
    assert booked.patient is not None
    assert booked.patient.last_name == "Quispe"
    assert booked.slot is not None
    assert booked.slot.start_time == dt.time(9, 0)
    assert booked.slot.specialty_name == "Cardiology"

    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.state is SlotState.OCCUPIED
    assert slot.appointment_id == booked.id

    with pytest.raises(ConflictError):
        await orchestrator.book_appointment(OTHER_PATIENT, schedule.id, slot_id)

    assert len(await orchestrator.list_pending_by_patient(PATIENT)) == 1
    assert await orchestrator.list_pending_by_patient(OTHER_PATIENT) == []

    charges = await ledger.list_charges(PATIENT)
    assert [(charge.appointment_id, charge.amount) for charge in charges] == [
        (booked.id, Decimal("50.00")),
    ]
    assert charges[0].method is PaymentMethod.CASH


async def test_same_patient_cannot_book_twice(
    orchestrator: BookingOrchestrator,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    with pytest.raises(ConflictError):
        await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)


async def test_booking_blocked_slot_fails(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    await manager.block_slot(schedule.id, slot_id)

    with pytest.raises(ConflictError):
        await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)


async def test_booking_unknown_slot(
    orchestrator: BookingOrchestrator,
    schedule: Schedule,
) -> None:
    with pytest.raises(NotFoundError):
        await orchestrator.book_appointment(PATIENT, schedule.id, 9999)

    assert await orchestrator.list_pending_by_patient(PATIENT) == []


async def test_failed_occupy_deletes_appointment(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    patients: FakePatients,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    orchestrator = build(
        session_factory,
        FlakyScheduleGateway(manager, fail_on=[slot_id]),
        ledger,
        patients,
    )

    with pytest.raises(UnavailableError):
        await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    with pytest.raises(NotFoundError):
        await orchestrator.find_by_slot(schedule.id, slot_id)
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.state is SlotState.AVAILABLE
    assert await ledger.list_charges(PATIENT) == []


async def test_lost_race_is_a_conflict(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    patients: FakePatients,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    await manager.occupy_slot(schedule.id, slot_id, appointment_id=999)
    orchestrator = build(
        session_factory,
        StaleScheduleGateway(manager),
        ledger,
        patients,
    )

    with pytest.raises(ConflictError):
        await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    assert await orchestrator.list_pending_by_patient(PATIENT) == []
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.appointment_id == 999


async def test_payment_failure_keeps_booking(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    patients: FakePatients,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    orchestrator = build(
        session_factory,
        LocalScheduleGateway(manager),
        FailingPayments(),
        patients,
    )

    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    assert booked.payment_registered is False
    assert booked.state is AppointmentState.PENDING
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.state is SlotState.OCCUPIED


async def test_patient_lookup_failure_degrades_response(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    schedule: Schedule,
) -> None:
    orchestrator = build(
        session_factory,
        LocalScheduleGateway(manager),
        ledger,
        FakePatients(fail=True),
    )

    booked = await orchestrator.book_appointment(
        PATIENT,
        schedule.id,
        schedule.slots[0].id,
    )

    assert booked.patient is not None
    assert booked.patient.dni == PATIENT
    assert booked.patient.last_name is None


async def test_cancel_releases_slot(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    cancelled = await orchestrator.cancel_appointment(booked.id)

    assert cancelled.state is AppointmentState.CANCELLED
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.state is SlotState.AVAILABLE
    assert slot.appointment_id is None

    with pytest.raises(InvalidStateError):
        await orchestrator.cancel_appointment(booked.id)
    with pytest.raises(InvalidStateError):
        await orchestrator.complete_appointment(booked.id)

    rebooked = await orchestrator.book_appointment(OTHER_PATIENT, schedule.id, slot_id)
    assert rebooked.state is AppointmentState.PENDING


async def test_cancel_with_free_slot_is_accepted(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)
    await manager.release_slot(schedule.id, slot_id)

    cancelled = await orchestrator.cancel_appointment(booked.id)

    assert cancelled.state is AppointmentState.CANCELLED


async def test_cancel_leaves_slot_of_another_appointment(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)
    await manager.release_slot(schedule.id, slot_id)
    rival = await orchestrator.book_appointment(OTHER_PATIENT, schedule.id, slot_id)

    cancelled = await orchestrator.cancel_appointment(booked.id)

    assert cancelled.state is AppointmentState.CANCELLED
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.state is SlotState.OCCUPIED
    assert slot.appointment_id == rival.id


async def test_complete_keeps_slot_and_captures_charge(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    booked = await orchestrator.book_appointment(
        PATIENT,
        schedule.id,
        slot_id,
        PaymentMethod.DEBIT_CARD,
    )

    completed = await orchestrator.complete_appointment(booked.id)

    assert completed.state is AppointmentState.COMPLETED
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.state is SlotState.OCCUPIED
    charges = await ledger.list_charges(PATIENT)
    assert charges[0].status is ChargeStatus.PAID
    assert charges[0].paid_at is not None

    with pytest.raises(InvalidStateError):
        await orchestrator.cancel_appointment(booked.id)


async def test_complete_survives_payment_outage(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    patients: FakePatients,
    schedule: Schedule,
) -> None:
    orchestrator = build(
        session_factory,
        LocalScheduleGateway(manager),
        FailingPayments(),
        patients,
    )
    booked = await orchestrator.book_appointment(
        PATIENT,
        schedule.id,
        schedule.slots[0].id,
    )

    completed = await orchestrator.complete_appointment(booked.id)

    assert completed.state is AppointmentState.COMPLETED


async def test_update_moves_to_another_slot(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    schedule: Schedule,
) -> None:
    first, second = schedule.slots
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, first.id)

    updated = await orchestrator.update_appointment(
        booked.id,
        schedule_id=schedule.id,
        slot_id=second.id,
        patient_dni=PATIENT,
    )

    assert updated.slot_id == second.id
    assert updated.cost == booked.cost
    assert updated.state is AppointmentState.PENDING
    old_slot = await manager.get_slot(schedule.id, first.id)
    new_slot = await manager.get_slot(schedule.id, second.id)
    assert old_slot.state is SlotState.AVAILABLE
    assert new_slot.state is SlotState.OCCUPIED
    assert new_slot.appointment_id == booked.id


async def test_update_keeping_slot_changes_patient(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    updated = await orchestrator.update_appointment(
        booked.id,
        schedule_id=schedule.id,
        slot_id=slot_id,
        patient_dni=OTHER_PATIENT,
    )

    assert updated.patient_dni == OTHER_PATIENT
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.appointment_id == booked.id


async def test_update_to_taken_slot_fails(
    orchestrator: BookingOrchestrator,
    schedule: Schedule,
) -> None:
    first, second = schedule.slots
    mine = await orchestrator.book_appointment(PATIENT, schedule.id, first.id)
    await orchestrator.book_appointment(OTHER_PATIENT, schedule.id, second.id)

    with pytest.raises(ConflictError):
        await orchestrator.update_appointment(
            mine.id,
            schedule_id=schedule.id,
            slot_id=second.id,
            patient_dni=PATIENT,
        )

    unchanged = await orchestrator.get_appointment(mine.id)
    assert unchanged.slot_id == first.id


async def test_update_rolls_back_when_new_slot_cannot_be_occupied(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    patients: FakePatients,
    schedule: Schedule,
) -> None:
    first, second = schedule.slots
    orchestrator = build(
        session_factory,
        FlakyScheduleGateway(manager, fail_on=[second.id]),
        ledger,
        patients,
    )
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, first.id)

    with pytest.raises(UnavailableError):
        await orchestrator.update_appointment(
            booked.id,
            schedule_id=schedule.id,
            slot_id=second.id,
            patient_dni=PATIENT,
        )

    restored = await orchestrator.get_appointment(booked.id)
    assert restored.slot_id == first.id
    old_slot = await manager.get_slot(schedule.id, first.id)
    assert old_slot.state is SlotState.OCCUPIED
    assert old_slot.appointment_id == booked.id
    new_slot = await manager.get_slot(schedule.id, second.id)
    assert new_slot.state is SlotState.AVAILABLE


async def test_update_cancels_appointment_that_lost_its_old_slot(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    patients: FakePatients,
    schedule: Schedule,
) -> None:
    first, second = schedule.slots
    gateway = SnatchingScheduleGateway(manager, target_slot_id=second.id)
    orchestrator = build(session_factory, gateway, ledger, patients)
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, first.id)
    gateway.rival = lambda: orchestrator.book_appointment(
        OTHER_PATIENT,
        schedule.id,
        first.id,
    )

    with pytest.raises(ConflictError):
        await orchestrator.update_appointment(
            booked.id,
            schedule_id=schedule.id,
            slot_id=second.id,
            patient_dni=PATIENT,
        )

    moved = await orchestrator.get_appointment(booked.id)
    assert moved.state is AppointmentState.CANCELLED
    assert moved.slot_id == first.id
    assert await orchestrator.list_pending_by_patient(PATIENT) == []
    (rival,) = await orchestrator.list_pending_by_patient(OTHER_PATIENT)
    assert rival.slot_id == first.id

    old_slot = await manager.get_slot(schedule.id, first.id)
    assert old_slot.state is SlotState.OCCUPIED
    assert old_slot.appointment_id == rival.id
    new_slot = await manager.get_slot(schedule.id, second.id)
    assert new_slot.state is SlotState.AVAILABLE


async def test_update_of_completed_appointment_fails(
    orchestrator: BookingOrchestrator,
    schedule: Schedule,
) -> None:
    first, second = schedule.slots
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, first.id)
    await orchestrator.complete_appointment(booked.id)

    with pytest.raises(InvalidStateError):
        await orchestrator.update_appointment(
            booked.id,
            schedule_id=schedule.id,
            slot_id=second.id,
            patient_dni=PATIENT,
        )


async def test_get_and_find_by_slot(
    orchestrator: BookingOrchestrator,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[1].id
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    fetched = await orchestrator.get_appointment(booked.id)
    assert fetched.slot is not None
    assert fetched.slot.start_time == dt.time(9, 30)

    found = await orchestrator.find_by_slot(schedule.id, slot_id)
    assert found.id == booked.id

    with pytest.raises(NotFoundError):
        await orchestrator.get_appointment(booked.id + 100)


async def test_delete_appointment_frees_slot(
    orchestrator: BookingOrchestrator,
    manager: ScheduleManager,
    schedule: Schedule,
) -> None:
    slot_id = schedule.slots[0].id
    booked = await orchestrator.book_appointment(PATIENT, schedule.id, slot_id)

    await orchestrator.delete_appointment(booked.id)

    with pytest.raises(NotFoundError):
        await orchestrator.get_appointment(booked.id)
    slot = await manager.get_slot(schedule.id, slot_id)
    assert slot.state is SlotState.AVAILABLE
