"""Routes of the appointment store."""

from aiohttp import web

from clinic.api.models import BookAppointmentRequest, UpdateAppointmentRequest
from clinic.exceptions import ValidationError
from clinic.routers.keys import orchestrator_key
from clinic.utils.web import json_response, match_int, read_model

router = web.RouteTableDef()


@router.post("/appointments")
async def book_appointment(request: web.Request) -> web.Response:
    data = await read_model(request, BookAppointmentRequest)
    appointment = await request.app[orchestrator_key].book_appointment(
        patient_dni=data.patient_dni,
        schedule_id=data.schedule_id,
        slot_id=data.slot_id,
        payment_method=data.payment_method,
    )
    return json_response(appointment, status=201)


@router.get("/appointments")
async def list_pending(request: web.Request) -> web.Response:
    """Pending appointments of the patient given by ``patient_dni``."""
    patient_dni = request.query.get("patient_dni")
    if not patient_dni:
        raise ValidationError("patient_dni query parameter is required")
    appointments = await request.app[orchestrator_key].list_pending_by_patient(
        patient_dni,
    )
    return json_response(appointments)


@router.get(r"/appointments/{appointment_id:\d+}")
async def get_appointment(request: web.Request) -> web.Response:
    appointment = await request.app[orchestrator_key].get_appointment(
        match_int(request, "appointment_id"),
    )
    return json_response(appointment)


@router.put(r"/appointments/{appointment_id:\d+}")
async def update_appointment(request: web.Request) -> web.Response:
    data = await read_model(request, UpdateAppointmentRequest)
    appointment = await request.app[orchestrator_key].update_appointment(
        match_int(request, "appointment_id"),
        schedule_id=data.schedule_id,
        slot_id=data.slot_id,
        patient_dni=data.patient_dni,
    )
    return json_response(appointment)


@router.patch(r"/appointments/{appointment_id:\d+}/cancel")
async def cancel_appointment(request: web.Request) -> web.Response:
    appointment = await request.app[orchestrator_key].cancel_appointment(
        match_int(request, "appointment_id"),
    )
    return json_response(appointment)


@router.patch(r"/appointments/{appointment_id:\d+}/complete")
async def complete_appointment(request: web.Request) -> web.Response:
    appointment = await request.app[orchestrator_key].complete_appointment(
        match_int(request, "appointment_id"),
    )
    return json_response(appointment)


@router.delete(r"/appointments/{appointment_id:\d+}")
async def delete_appointment(request: web.Request) -> web.Response:
    await request.app[orchestrator_key].delete_appointment(
        match_int(request, "appointment_id"),
    )
    return web.Response(status=204)


@router.get(r"/appointments/schedule/{schedule_id:\d+}/slot/{slot_id:\d+}")
async def find_by_slot(request: web.Request) -> web.Response:
    appointment = await request.app[orchestrator_key].find_by_slot(
        match_int(request, "schedule_id"),
        match_int(request, "slot_id"),
    )
    return json_response(appointment)
