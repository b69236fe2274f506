from dataclasses import dataclass
from typing import Any, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic.api.models import (
    AppointmentResponse,
    AppointmentSlot,
    PatientSummary,
    SlotSnapshot,
)
from clinic.booking.gateways import PatientLookup, PaymentGateway, ScheduleGateway
from clinic.booking.lifecycle import (
    AppointmentEvent,
    ensure_editable,
    next_appointment_state,
)
from clinic.booking.saga import Saga
from clinic.db.context import get_or_create_session
from clinic.db.models.appointments import Appointment
from clinic.db.models.enums import AppointmentState, PaymentMethod, SlotState
from clinic.db.services import AppointmentsService
from clinic.exceptions import (
    ClinicError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
)
from clinic.scheduling.overlap import has_conflicting_claim


@dataclass
class BookingContext:
    """State shared by the steps of one booking."""

    patient_dni: str
    snapshot: SlotSnapshot
    appointment: Optional[Appointment] = None

    @property
    def appointment_id(self) -> int:
        if self.appointment is None:
            raise RuntimeError("Appointment has not been persisted yet")
        return self.appointment.id


class BookingOrchestrator:
    """
    Books, moves and closes appointments.

    Appointments live in this service's store while slots belong to the
    schedule gateway, so every operation touching both runs as a saga.
    """

    def __init__(
        self,
        schedules: ScheduleGateway,
        payments: PaymentGateway,
        patients: PatientLookup,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ) -> None:
        self._schedules = schedules
        self._payments = payments
        self._patients = patients
        self._session_factory = session_factory

    def _session(self) -> Any:
        return get_or_create_session(session_factory=self._session_factory)

    # Booking
    async def book_appointment(
        self,
        patient_dni: str,
        schedule_id: int,
        slot_id: int,
        payment_method: PaymentMethod = PaymentMethod.CASH,
    ) -> AppointmentResponse:
        """
        Book a slot for a patient.

        The appointment is persisted first and the slot occupied second; if
        occupying fails the appointment is deleted again. A charge that
        cannot be registered afterwards does not undo the booking, it is
        reported through ``payment_registered``.

        Raises:
            NotFoundError: If the schedule or the slot does not exist.
            ConflictError: If the slot is taken or already claimed.
            UnavailableError: If the schedule store cannot be reached.
        """
        snapshot = await self._schedules.get_slot_snapshot(schedule_id, slot_id)
        if snapshot.state is not SlotState.AVAILABLE:
            raise ConflictError(f"Slot {slot_id} is {snapshot.state.value}")
        await self._ensure_unclaimed(schedule_id, slot_id, patient_dni)

        context = BookingContext(patient_dni=patient_dni, snapshot=snapshot)
        saga = Saga(f"book slot {slot_id} of schedule {schedule_id}")
        saga.add_step(
            "persist appointment",
            lambda: self._persist_appointment(context),
            lambda: self._remove(context.appointment_id),
        )
        saga.add_step(
            "occupy slot",
            lambda: self._occupy(schedule_id, slot_id, context.appointment_id),
        )
        appointment = (await saga.execute())[0]
        logger.info(
            f"Booked appointment {appointment.id} for {patient_dni} "
            f"on slot {slot_id} of schedule {schedule_id}",
        )

        payment_registered = await self._register_charge(appointment, payment_method)
        return await self._render(appointment, snapshot, payment_registered)

    async def update_appointment(
        self,
        appointment_id: int,
        schedule_id: int,
        slot_id: int,
        patient_dni: str,
    ) -> AppointmentResponse:
        """
        Point a pending appointment at another slot or patient.

        When the slot changes, the old one is released before the new one
        is occupied. The cost booked originally is kept.

        Raises:
            NotFoundError: If the appointment or the new slot does not exist.
            InvalidStateError: If the appointment is no longer pending.
            ConflictError: If the new slot is taken or already claimed.
        """
        current = await self._load(appointment_id)
        ensure_editable(current.state)

        previous = {
            "schedule_id": current.schedule_id,
            "slot_id": current.slot_id,
            "patient_dni": current.patient_dni,
        }
        slot_changed = (current.schedule_id, current.slot_id) != (schedule_id, slot_id)

        snapshot = await self._schedules.get_slot_snapshot(schedule_id, slot_id)
        if slot_changed and snapshot.state is not SlotState.AVAILABLE:
            raise ConflictError(f"Slot {slot_id} is {snapshot.state.value}")
        await self._ensure_unclaimed(
            schedule_id,
            slot_id,
            patient_dni,
            exclude_id=appointment_id,
        )

        previous_slot_lost = False

        async def take_back_previous_slot() -> None:
            nonlocal previous_slot_lost
            try:
                await self._schedules.occupy_slot(
                    previous["schedule_id"],
                    previous["slot_id"],
                    appointment_id,
                )
            except Exception:
                previous_slot_lost = True
                raise

        async def restore_references() -> None:
            if not previous_slot_lost:
                await self._set_fields(appointment_id, **previous)
                return
            # The old slot now belongs to another appointment, so this one
            # must not stay pending on it
            logger.error(
                f"Appointment {appointment_id} lost slot {previous['slot_id']} "
                "while being moved, cancelling it",
            )
            await self._set_fields(
                appointment_id,
                state=AppointmentState.CANCELLED,
                **previous,
            )

        saga = Saga(f"update appointment {appointment_id}")
        saga.add_step(
            "persist references",
            lambda: self._set_fields(
                appointment_id,
                schedule_id=schedule_id,
                slot_id=slot_id,
                patient_dni=patient_dni,
            ),
            restore_references,
        )
        if slot_changed:
            saga.add_step(
                "release previous slot",
                lambda: self._schedules.release_slot(
                    previous["schedule_id"],
                    previous["slot_id"],
                    appointment_id,
                ),
                take_back_previous_slot,
            )
            saga.add_step(
                "occupy new slot",
                lambda: self._occupy(schedule_id, slot_id, appointment_id),
            )
        results = await saga.execute()

        logger.info(
            f"Updated appointment {appointment_id}: "
            f"slot {previous['slot_id']} -> {slot_id}",
        )
        return await self._render(results[0], snapshot)

    # Lifecycle
    async def cancel_appointment(self, appointment_id: int) -> AppointmentResponse:
        """
        Cancel a pending appointment and free its slot.

        Raises:
            NotFoundError: If the appointment does not exist.
            InvalidStateError: If the appointment is no longer pending.
        """
        appointment = await self._load(appointment_id)
        state = next_appointment_state(appointment.state, AppointmentEvent.CANCEL)

        saga = Saga(f"cancel appointment {appointment_id}")
        saga.add_step(
            "mark cancelled",
            lambda: self._set_fields(appointment_id, state=state),
            lambda: self._set_fields(appointment_id, state=AppointmentState.PENDING),
        )
        saga.add_step(
            "release slot",
            lambda: self._release_if_held(
                appointment.schedule_id,
                appointment.slot_id,
                appointment_id,
            ),
        )
        results = await saga.execute()

        logger.info(f"Cancelled appointment {appointment_id}")
        return await self._render(results[0])

    async def complete_appointment(self, appointment_id: int) -> AppointmentResponse:
        """
        Mark a pending appointment as attended.

        The slot stays occupied. Capturing the charge is attempted once and
        a failure only gets logged.

        Raises:
            NotFoundError: If the appointment does not exist.
            InvalidStateError: If the appointment is no longer pending.
        """
        appointment = await self._load(appointment_id)
        state = next_appointment_state(appointment.state, AppointmentEvent.COMPLETE)
        appointment = await self._set_fields(appointment_id, state=state)
        logger.info(f"Completed appointment {appointment_id}")

        try:
            await self._payments.capture_charge(appointment_id)
        except Exception as err:
            logger.warning(
                f"Could not capture charge of appointment {appointment_id}: {err}",
            )
        return await self._render(appointment)

    async def delete_appointment(self, appointment_id: int) -> None:
        """Delete an appointment, freeing the slot it still holds."""
        appointment = await self._load(appointment_id)

        saga = Saga(f"delete appointment {appointment_id}")
        if appointment.state is not AppointmentState.CANCELLED:
            saga.add_step(
                "release slot",
                lambda: self._release_if_held(
                    appointment.schedule_id,
                    appointment.slot_id,
                    appointment_id,
                ),
                lambda: self._schedules.occupy_slot(
                    appointment.schedule_id,
                    appointment.slot_id,
                    appointment_id,
                ),
            )
        saga.add_step("delete appointment", lambda: self._remove(appointment_id))
        await saga.execute()
        logger.info(f"Deleted appointment {appointment_id}")

    # Queries
    async def get_appointment(self, appointment_id: int) -> AppointmentResponse:
        """Return an appointment with its slot and patient details."""
        appointment = await self._load(appointment_id)
        snapshot: Optional[SlotSnapshot] = None
        try:
            snapshot = await self._schedules.get_slot_snapshot(
                appointment.schedule_id,
                appointment.slot_id,
            )
        except ClinicError as err:
            logger.warning(
                f"Slot details of appointment {appointment_id} unavailable: {err}",
            )
        return await self._render(appointment, snapshot)

    async def find_by_slot(self, schedule_id: int, slot_id: int) -> AppointmentResponse:
        """Return the appointment bound to a slot."""
        async with self._session() as session:
            appointment = await AppointmentsService(session).find_by_slot(
                schedule_id,
                slot_id,
            )
        if appointment is None:
            raise NotFoundError(
                f"No appointment on slot {slot_id} of schedule {schedule_id}",
            )
        return await self._render(appointment)

    async def list_pending_by_patient(
        self,
        patient_dni: str,
    ) -> List[AppointmentResponse]:
        """Return the PENDING appointments of a patient."""
        async with self._session() as session:
            appointments = await AppointmentsService(session).find_pending_by_patient(
                patient_dni,
            )
        patient = await self._lookup_patient(patient_dni)
        return [
            self._build(appointment, patient=patient) for appointment in appointments
        ]

    # Steps
    async def _ensure_unclaimed(
        self,
        schedule_id: int,
        slot_id: int,
        patient_dni: str,
        exclude_id: Optional[int] = None,
    ) -> None:
        async with self._session() as session:
            claims = await AppointmentsService(session).find_active_claims(
                schedule_id,
                slot_id,
            )
        if has_conflicting_claim(
            claims,
            schedule_id,
            slot_id,
            patient_dni=patient_dni,
            exclude_id=exclude_id,
        ):
            raise ConflictError(
                f"Patient {patient_dni} already holds slot {slot_id}",
            )

    async def _persist_appointment(self, context: BookingContext) -> Appointment:
        async with self._session() as session:
            context.appointment = await AppointmentsService(session).add_model(
                Appointment(
                    patient_dni=context.patient_dni,
                    schedule_id=context.snapshot.schedule_id,
                    slot_id=context.snapshot.slot_id,
                    cost=context.snapshot.specialty.fixed_cost,
                    state=AppointmentState.PENDING,
                ),
            )
        return context.appointment

    async def _occupy(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: int,
    ) -> None:
        try:
            await self._schedules.occupy_slot(schedule_id, slot_id, appointment_id)
        except InvalidStateError as err:
            raise ConflictError(f"Slot {slot_id} was taken meanwhile") from err

    async def _release_if_held(
        self,
        schedule_id: int,
        slot_id: int,
        appointment_id: int,
    ) -> None:
        """Free the slot only while ``appointment_id`` is the one holding it."""
        try:
            await self._schedules.release_slot(schedule_id, slot_id, appointment_id)
        except InvalidStateError:
            logger.info(f"Slot {slot_id} of schedule {schedule_id} already free")
        except ConflictError:
            logger.warning(
                f"Slot {slot_id} of schedule {schedule_id} is held by another "
                f"appointment than {appointment_id}, leaving it untouched",
            )

    async def _register_charge(
        self,
        appointment: Appointment,
        method: PaymentMethod,
    ) -> bool:
        try:
            await self._payments.register_charge(
                appointment_id=appointment.id,
                patient_dni=appointment.patient_dni,
                amount=appointment.cost,
                method=method,
            )
        except Exception as err:
            logger.error(
                f"Charge for appointment {appointment.id} not registered: {err}",
            )
            return False
        return True

    async def _load(self, appointment_id: int) -> Appointment:
        async with self._session() as session:
            appointment = await AppointmentsService(session).find_one_or_none(
                id=appointment_id,
            )
        if appointment is None:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    async def _set_fields(self, appointment_id: int, **values: Any) -> Appointment:
        async with self._session() as session:
            appointments = AppointmentsService(session)
            appointment = await appointments.find_one_or_none(id=appointment_id)
            if appointment is None:
                raise NotFoundError(f"Appointment {appointment_id} not found")
            return await appointments.update_by_model(appointment, **values)

    async def _remove(self, appointment_id: int) -> None:
        async with self._session() as session:
            await AppointmentsService(session).delete(appointment_id)

    # Rendering
    async def _lookup_patient(self, dni: str) -> PatientSummary:
        try:
            patient = await self._patients.get_patient_by_dni(dni)
        except Exception as err:
            logger.warning(f"Patient lookup for {dni} failed: {err}")
            patient = None
        return patient or PatientSummary(dni=dni)

    async def _render(
        self,
        appointment: Appointment,
        snapshot: Optional[SlotSnapshot] = None,
        payment_registered: Optional[bool] = None,
    ) -> AppointmentResponse:
        patient = await self._lookup_patient(appointment.patient_dni)
        return self._build(appointment, patient, snapshot, payment_registered)

    @staticmethod
    def _build(
        appointment: Appointment,
        patient: PatientSummary,
        snapshot: Optional[SlotSnapshot] = None,
        payment_registered: Optional[bool] = None,
    ) -> AppointmentResponse:
        response = AppointmentResponse.model_validate(appointment)
        response.patient = patient
        response.payment_registered = payment_registered
        if snapshot is not None:
            response.slot = AppointmentSlot(
                date=snapshot.date,
                start_time=snapshot.start_time,
                end_time=snapshot.end_time,
                practitioner_id=snapshot.practitioner_id,
                room=snapshot.room,
                specialty_name=snapshot.specialty.name,
            )
        return response
