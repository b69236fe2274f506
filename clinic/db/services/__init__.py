from .appointments import AppointmentsService
from .payments import ChargesService
from .schedules import SchedulesService, SlotsService

__all__ = [
    "AppointmentsService",
    "ChargesService",
    "SchedulesService",
    "SlotsService",
]
