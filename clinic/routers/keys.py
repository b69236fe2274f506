from aiohttp import web

from clinic.booking import BookingOrchestrator
from clinic.booking.gateways import LocalPaymentGateway
from clinic.scheduling import ScheduleManager

schedule_manager_key = web.AppKey("schedule_manager", ScheduleManager)
orchestrator_key = web.AppKey("orchestrator", BookingOrchestrator)
charges_key = web.AppKey("charges", LocalPaymentGateway)
