from typing import List, Optional

from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic import routers
from clinic.api.client import (
    ClinicAPIClient,
    PatientAPIClient,
    PaymentAPIClient,
    ScheduleAPIClient,
    SpecialtyAPIClient,
)
from clinic.booking import BookingOrchestrator
from clinic.booking.gateways import (
    LocalPaymentGateway,
    LocalScheduleGateway,
    PatientLookup,
    PaymentGateway,
    ScheduleGateway,
)
from clinic.routers.keys import charges_key, orchestrator_key, schedule_manager_key
from clinic.scheduling import ScheduleManager
from clinic.scheduling.manager import SpecialtyLookup
from clinic.settings import settings
from clinic.utils.middlewares import error_middleware


async def health(request: web.Request) -> web.Response:
    """Liveness probe."""
    return web.json_response({"status": "ok"})


def create_app(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    schedule_gateway: Optional[ScheduleGateway] = None,
    payment_gateway: Optional[PaymentGateway] = None,
    patient_lookup: Optional[PatientLookup] = None,
    specialty_lookup: Optional[SpecialtyLookup] = None,
) -> web.Application:
    """Create the web application.

    Collaborators that are not injected are built from settings: the
    schedule and payment gateways run in-process unless a service URL is
    configured, patients and specialties are always remote.

    Args:
        session_factory: Session factory; the engine's default if None.
        schedule_gateway: Slot store used by the booking side.
        payment_gateway: Charge registration used by the booking side.
        patient_lookup: Patient directory.
        specialty_lookup: Specialty catalogue.

    Returns:
        Configured aiohttp application.
    """
    remote_clients: List[ClinicAPIClient] = []

    if specialty_lookup is None:
        specialty_client = SpecialtyAPIClient()
        remote_clients.append(specialty_client)
        specialty_lookup = specialty_client
    if patient_lookup is None:
        patient_client = PatientAPIClient()
        remote_clients.append(patient_client)
        patient_lookup = patient_client

    manager = ScheduleManager(session_factory, specialty_lookup)
    ledger = LocalPaymentGateway(session_factory)

    if schedule_gateway is None:
        if settings.SCHEDULE_SERVICE_URL:
            schedule_client = ScheduleAPIClient()
            remote_clients.append(schedule_client)
            schedule_gateway = schedule_client
        else:
            schedule_gateway = LocalScheduleGateway(manager)
    if payment_gateway is None:
        if settings.PAYMENT_SERVICE_URL:
            payment_client = PaymentAPIClient()
            remote_clients.append(payment_client)
            payment_gateway = payment_client
        else:
            payment_gateway = ledger

    app = web.Application(middlewares=[error_middleware])
    app[schedule_manager_key] = manager
    app[charges_key] = ledger
    app[orchestrator_key] = BookingOrchestrator(
        schedules=schedule_gateway,
        payments=payment_gateway,
        patients=patient_lookup,
        session_factory=session_factory,
    )

    app.router.add_get("/health", health)
    app.router.add_routes(routers.schedules_router)
    app.router.add_routes(routers.appointments_router)
    app.router.add_routes(routers.payments_router)

    async def close_clients(_: web.Application) -> None:
        for client in remote_clients:
            await client.close()

    app.on_cleanup.append(close_clients)
    return app
