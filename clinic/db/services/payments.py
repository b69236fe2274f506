from datetime import datetime
from decimal import Decimal
from typing import Sequence

from clinic.db.models.enums import ChargeStatus, PaymentMethod
from clinic.db.models.payments import Charge
from clinic.db.services.base import BaseService


class ChargesService(BaseService[Charge]):
    """Service for working with charges."""

    model = Charge

    async def create_charge(
        self,
        appointment_id: int,
        patient_dni: str,
        amount: Decimal,
        method: PaymentMethod,
    ) -> Charge:
        """Register a PENDING charge for an appointment."""
        charge = Charge(
            appointment_id=appointment_id,
            patient_dni=patient_dni,
            amount=amount,
            method=method,
            status=ChargeStatus.PENDING,
            paid_at=None,
        )
        return await self.add_model(charge)

    async def find_by_patient(self, patient_dni: str) -> Sequence[Charge]:
        """Retrieve a patient's charges, oldest first."""
        return await self.find_all(order_by=[Charge.id], patient_dni=patient_dni)

    async def find_pending_for_appointment(self, appointment_id: int) -> Charge | None:
        """Retrieve the latest PENDING charge of an appointment."""
        charges = await self.find_all_where(
            Charge.appointment_id == appointment_id,
            Charge.status == ChargeStatus.PENDING,
            order_by=[Charge.id.desc()],
            limit=1,
        )
        return charges[0] if charges else None

    async def mark_paid(self, charge: Charge) -> Charge:
        """Move a charge to PAID and stamp the payment time."""
        return await self.update_by_model(
            charge,
            status=ChargeStatus.PAID,
            paid_at=datetime.now(),
        )
