"""Collaborators of the booking orchestrator.

The orchestrator only talks to these protocols. Schedule and payment
have an in-process implementation, used when the service runs alone, and
an HTTP one in ``clinic.api.client``.
"""

from decimal import Decimal
from typing import List, Optional, Protocol

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic.api.models import (
    ChargeResponse,
    PatientSummary,
    SlotResponse,
    SlotSnapshot,
)
from clinic.db.context import get_or_create_session
from clinic.db.models.enums import PaymentMethod
from clinic.db.services import ChargesService
from clinic.exceptions import NotFoundError
from clinic.scheduling import ScheduleManager


class ScheduleGateway(Protocol):
    """Schedule store as seen by the booking side."""

    async def get_slot_snapshot(
        self,
        schedule_id: int,
        slot_id: int,
    ) -> SlotSnapshot: ...

    async def occupy_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: int,
    ) -> SlotResponse: ...

    async def release_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: Optional[int] = None,
    ) -> SlotResponse: ...


class PaymentGateway(Protocol):
    """Charge registration."""

    async def register_charge(
        self,
        appointment_id: int,
        patient_dni: str,
        amount: Decimal,
        method: PaymentMethod,
    ) -> ChargeResponse: ...

    async def capture_charge(self, appointment_id: int) -> ChargeResponse: ...


class PatientLookup(Protocol):
    """Patient directory."""

    async def get_patient_by_dni(self, dni: str) -> Optional[PatientSummary]: ...


class LocalScheduleGateway:
    """Schedule gateway backed by a ScheduleManager in the same process."""

    def __init__(self, manager: ScheduleManager) -> None:
        self._manager = manager

    async def get_slot_snapshot(self, schedule_id: int, slot_id: int) -> SlotSnapshot:
        return await self._manager.get_slot_snapshot(schedule_id, slot_id)

    async def occupy_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: int,
    ) -> SlotResponse:
        slot = await self._manager.occupy_slot(schedule_id, slot_id, appointment_id)
        return SlotResponse.model_validate(slot)

    async def release_slot(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: Optional[int] = None,
    ) -> SlotResponse:
        slot = await self._manager.release_slot(schedule_id, slot_id, appointment_id)
        return SlotResponse.model_validate(slot)


class LocalPaymentGateway:
    """Charge ledger stored in the clinic database."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._session_factory = session_factory

    async def register_charge(
        self,
        appointment_id: int,
        patient_dni: str,
        amount: Decimal,
        method: PaymentMethod,
    ) -> ChargeResponse:
        """Register a PENDING charge for an appointment."""
        async with get_or_create_session(
            session_factory=self._session_factory,
        ) as session:
            charge = await ChargesService(session).create_charge(
                appointment_id=appointment_id,
                patient_dni=patient_dni,
                amount=amount,
                method=method,
            )
        logger.info(
            f"Registered charge {charge.id} of {amount} for appointment "
            f"{appointment_id} ({method.value})",
        )
        return ChargeResponse.model_validate(charge)

    async def capture_charge(self, appointment_id: int) -> ChargeResponse:
        """
        Mark the pending charge of an appointment as paid.

        Raises:
            NotFoundError: If the appointment has no pending charge.
        """
        async with get_or_create_session(
            session_factory=self._session_factory,
        ) as session:
            charges = ChargesService(session)
            charge = await charges.find_pending_for_appointment(appointment_id)
            if charge is None:
                raise NotFoundError(
                    f"No pending charge for appointment {appointment_id}",
                )
            charge = await charges.mark_paid(charge)
        logger.info(f"Captured charge {charge.id} of appointment {appointment_id}")
        return ChargeResponse.model_validate(charge)

    async def list_charges(self, patient_dni: str) -> List[ChargeResponse]:
        async with get_or_create_session(
            session_factory=self._session_factory,
        ) as session:
            charges = await ChargesService(session).find_by_patient(patient_dni)
        return [ChargeResponse.model_validate(charge) for charge in charges]
