from typing import Sequence

from clinic.db.models.appointments import Appointment
from clinic.db.models.enums import AppointmentState
from clinic.db.services.base import BaseService


class AppointmentsService(BaseService[Appointment]):
    """Service for working with appointments."""

    model = Appointment

    async def find_active_claims(
        self,
        schedule_id: int,
        slot_id: int,
    ) -> Sequence[Appointment]:
        """
        Retrieve non-cancelled appointments on a slot.

        Args:
            schedule_id: The schedule ID.
            slot_id: The slot ID.

        Returns:
            A sequence of appointments still claiming the slot.
        """
        return await self.find_all_where(
            Appointment.schedule_id == schedule_id,
            Appointment.slot_id == slot_id,
            Appointment.state != AppointmentState.CANCELLED,
        )

    async def find_by_slot(self, schedule_id: int, slot_id: int) -> Appointment | None:
        """
        Retrieve the appointment bound to a slot.

        A live claim wins over cancelled history; among equals the most
        recent one is returned.
        """
        active = await self.find_active_claims(schedule_id, slot_id)
        if active:
            return active[0]
        history = await self.find_all_where(
            Appointment.schedule_id == schedule_id,
            Appointment.slot_id == slot_id,
            order_by=[Appointment.id.desc()],
            limit=1,
        )
        return history[0] if history else None

    async def find_pending_by_patient(self, patient_dni: str) -> Sequence[Appointment]:
        """
        Retrieve a patient's PENDING appointments, oldest first.

        Args:
            patient_dni: The patient's DNI.

        Returns:
            A sequence of pending appointments.
        """
        return await self.find_all(
            order_by=[Appointment.id],
            patient_dni=patient_dni,
            state=AppointmentState.PENDING,
        )
