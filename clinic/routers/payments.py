"""Routes of the charge ledger."""

from aiohttp import web

from clinic.api.models import ChargeRequest
from clinic.exceptions import ValidationError
from clinic.routers.keys import charges_key
from clinic.utils.web import json_response, match_int, read_model

router = web.RouteTableDef()


@router.post("/charges")
async def register_charge(request: web.Request) -> web.Response:
    data = await read_model(request, ChargeRequest)
    charge = await request.app[charges_key].register_charge(
        appointment_id=data.appointment_id,
        patient_dni=data.patient_dni,
        amount=data.amount,
        method=data.method,
    )
    return json_response(charge, status=201)


@router.get("/charges")
async def list_charges(request: web.Request) -> web.Response:
    patient_dni = request.query.get("patient_dni")
    if not patient_dni:
        raise ValidationError("patient_dni query parameter is required")
    charges = await request.app[charges_key].list_charges(patient_dni)
    return json_response(charges)


@router.patch(r"/charges/appointment/{appointment_id:\d+}/capture")
async def capture_charge(request: web.Request) -> web.Response:
    charge = await request.app[charges_key].capture_charge(
        match_int(request, "appointment_id"),
    )
    return json_response(charge)
