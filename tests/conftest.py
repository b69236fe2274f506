import datetime as dt
from typing import AsyncGenerator

import pytest
from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from clinic.api.models import PatientSummary
from clinic.booking import BookingOrchestrator
from clinic.booking.gateways import LocalPaymentGateway, LocalScheduleGateway
from clinic.db.meta import meta
from clinic.db.models import load_all_models
from clinic.db.models.schedules import Schedule
from clinic.loader import create_app
from clinic.scheduling import ScheduleManager

from .fakes import FakePatients, FakeSpecialties


@pytest.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    load_all_models()
    async with engine.begin() as conn:
        await conn.run_sync(meta.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def future_date() -> dt.date:
    return dt.date.today() + dt.timedelta(days=7)


@pytest.fixture
def specialties() -> FakeSpecialties:
    return FakeSpecialties()


@pytest.fixture
def patients() -> FakePatients:
    return FakePatients(
        {
            "12345678": PatientSummary(
                dni="12345678",
                first_name="Ana",
                last_name="Quispe",
            ),
        },
    )


@pytest.fixture
def manager(
    session_factory: async_sessionmaker[AsyncSession],
    specialties: FakeSpecialties,
) -> ScheduleManager:
    return ScheduleManager(session_factory, specialties)


@pytest.fixture
def ledger(session_factory: async_sessionmaker[AsyncSession]) -> LocalPaymentGateway:
    return LocalPaymentGateway(session_factory)


@pytest.fixture
def orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    manager: ScheduleManager,
    ledger: LocalPaymentGateway,
    patients: FakePatients,
) -> BookingOrchestrator:
    return BookingOrchestrator(
        schedules=LocalScheduleGateway(manager),
        payments=ledger,
        patients=patients,
        session_factory=session_factory,
    )


@pytest.fixture
async def schedule(manager: ScheduleManager, future_date: dt.date) -> Schedule:
    """09:00-10:00 in 30 minute slots."""
    return await manager.create_schedule(
        practitioner_id=1,
        specialty_id=7,
        room="A-101",
        date=future_date,
        start_time=dt.time(9, 0),
        end_time=dt.time(10, 0),
        slot_duration_minutes=30,
    )


@pytest.fixture
def app(
    session_factory: async_sessionmaker[AsyncSession],
    specialties: FakeSpecialties,
    patients: FakePatients,
) -> web.Application:
    """Whole service with in-process schedule and payment stores."""
    return create_app(
        session_factory=session_factory,
        patient_lookup=patients,
        specialty_lookup=specialties,
    )
