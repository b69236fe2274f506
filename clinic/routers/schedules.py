"""Routes of the schedule store."""

from aiohttp import web
from loguru import logger

from clinic.api.models import (
    AvailableSlotQuery,
    CreateScheduleRequest,
    OccupySlotRequest,
    ReleaseSlotRequest,
    ScheduleResponse,
    SlotResponse,
)
from clinic.routers.keys import schedule_manager_key
from clinic.utils.web import json_response, match_int, parse_date, read_model

router = web.RouteTableDef()


@router.post("/schedules")
async def create_schedule(request: web.Request) -> web.Response:
    data = await read_model(request, CreateScheduleRequest)
    schedule = await request.app[schedule_manager_key].create_schedule(
        practitioner_id=data.practitioner_id,
        specialty_id=data.specialty_id,
        room=data.room,
        date=data.date,
        start_time=data.start_time,
        end_time=data.end_time,
        slot_duration_minutes=data.slot_duration_minutes,
    )
    return json_response(ScheduleResponse.from_schedule(schedule), status=201)


@router.get("/schedules")
async def list_schedules(request: web.Request) -> web.Response:
    schedules = await request.app[schedule_manager_key].list_schedules()
    return json_response([ScheduleResponse.from_schedule(item) for item in schedules])


@router.get(r"/schedules/{schedule_id:\d+}")
async def get_schedule(request: web.Request) -> web.Response:
    schedule = await request.app[schedule_manager_key].get_schedule(
        match_int(request, "schedule_id"),
    )
    return json_response(ScheduleResponse.from_schedule(schedule))


@router.delete(r"/schedules/{schedule_id:\d+}")
async def delete_schedule(request: web.Request) -> web.Response:
    await request.app[schedule_manager_key].delete_schedule(
        match_int(request, "schedule_id"),
    )
    return web.Response(status=204)


@router.get(r"/schedules/practitioner/{practitioner_id:\d+}/date/{date}")
async def find_by_practitioner_and_date(request: web.Request) -> web.Response:
    schedules = await request.app[schedule_manager_key].find_by_practitioner_and_date(
        match_int(request, "practitioner_id"),
        parse_date(request.match_info["date"]),
    )
    return json_response([ScheduleResponse.from_schedule(item) for item in schedules])


@router.get(r"/schedules/{schedule_id:\d+}/slots/{slot_id:\d+}")
async def get_slot(request: web.Request) -> web.Response:
    """Slot with its date and the specialty cost, as used for booking."""
    snapshot = await request.app[schedule_manager_key].get_slot_snapshot(
        match_int(request, "schedule_id"),
        match_int(request, "slot_id"),
    )
    return json_response(snapshot)


@router.put(r"/schedules/{schedule_id:\d+}/slots/{slot_id:\d+}/occupy")
async def occupy_slot(request: web.Request) -> web.Response:
    data = await read_model(request, OccupySlotRequest)
    slot = await request.app[schedule_manager_key].occupy_slot(
        match_int(request, "schedule_id"),
        match_int(request, "slot_id"),
        data.appointment_id,
    )
    return json_response(SlotResponse.model_validate(slot))


@router.put(r"/schedules/{schedule_id:\d+}/slots/{slot_id:\d+}/release")
async def release_slot(request: web.Request) -> web.Response:
    """Free a slot; an ``appointment_id`` in the body restricts it to that holder."""
    data = await read_model(request, ReleaseSlotRequest)
    slot = await request.app[schedule_manager_key].release_slot(
        match_int(request, "schedule_id"),
        match_int(request, "slot_id"),
        data.appointment_id,
    )
    return json_response(SlotResponse.model_validate(slot))


@router.put(
    r"/schedules/{schedule_id:\d+}/slots/{slot_id:\d+}/{action:block|unblock}",
)
async def change_slot(request: web.Request) -> web.Response:
    manager = request.app[schedule_manager_key]
    operations = {
        "block": manager.block_slot,
        "unblock": manager.unblock_slot,
    }
    action = request.match_info["action"]
    logger.debug(f"Slot action {action} requested")
    slot = await operations[action](
        match_int(request, "schedule_id"),
        match_int(request, "slot_id"),
    )
    return json_response(SlotResponse.model_validate(slot))


@router.get("/slots/available")
async def find_available_slot(request: web.Request) -> web.Response:
    query = AvailableSlotQuery.model_validate(dict(request.query))
    slot = await request.app[schedule_manager_key].find_available_slot(
        query.practitioner_id,
        query.date,
        query.preferred_time,
    )
    return json_response(SlotResponse.model_validate(slot))
