"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import teleconsulta.models  # noqa: F401
from teleconsulta.api.deps import get_notification_sink
from teleconsulta.db.base import Base
from teleconsulta.db.session import get_db
from teleconsulta.fixtures.message_templates import DEFAULT_WHATSAPP_TEMPLATE
from teleconsulta.main import app
from teleconsulta.models.cascade import (
    CASCADE_SETTINGS_ID,
    CascadeSettings,
    NotificationChannel,
    PrioritizationStrategy,
)
from teleconsulta.models.consultation import ConsultationRequest, ConsultationStatus, Urgency
from teleconsulta.models.doctor import Doctor, DoctorStatus
from teleconsulta.services.notifications import CascadeOffer, NotificationSink


# Use SQLite for testing (simpler than spinning up postgres)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed "now" for the fake clock
BASE_TIME = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable clock injected into CascadeService."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingSink(NotificationSink):
    """Sink that records every (offer, channel) it is asked to deliver."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[tuple[CascadeOffer, NotificationChannel]] = []

    async def notify(self, offer: CascadeOffer, channel: NotificationChannel) -> None:
        self.sent.append((offer, channel))
        if self.fail:
            raise RuntimeError("provider unavailable")

    @property
    def doctor_ids(self) -> list[str]:
        return [offer.doctor_id for offer, _ in self.sent]


@pytest.fixture(scope="function")
async def async_engine():
    """Create async test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
async def async_session(async_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create async database session for tests."""
    async_session_maker = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        yield session


@pytest.fixture
def clock() -> FakeClock:
    """Fake clock starting at BASE_TIME."""
    return FakeClock()


@pytest.fixture
def sink() -> RecordingSink:
    """Notification sink that records deliveries."""
    return RecordingSink()


@pytest.fixture
async def client(
    async_session: AsyncSession,
    sink: RecordingSink,
) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create API test client with overridden dependencies."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: sink

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
async def cascade_settings(async_session: AsyncSession) -> CascadeSettings:
    """Seed the settings row: 2 doctors per round, 3 rounds, 5 minutes, manual start."""
    row = CascadeSettings(
        id=CASCADE_SETTINGS_ID,
        timeout_per_round_minutes=5,
        max_rounds=3,
        doctors_per_round=2,
        prioritize_by=PrioritizationStrategy.AVAILABILITY,
        enable_whatsapp=True,
        enable_email=False,
        enable_push=True,
        whatsapp_template=DEFAULT_WHATSAPP_TEMPLATE,
        renotify_cooldown_rounds=None,
        auto_start_on_create=False,
    )
    async_session.add(row)
    await async_session.commit()
    await async_session.refresh(row)
    return row


async def make_doctor(
    session: AsyncSession,
    name: str,
    specialty: str = "Cardiologia",
    registered_minutes_ago: int = 0,
    status: DoctorStatus = DoctorStatus.APPROVED,
    is_available: bool = True,
    rating: float | None = None,
) -> Doctor:
    """Create a roster doctor; earlier registration means larger minutes_ago."""
    slug = name.lower().replace(" ", ".")
    doctor = Doctor(
        id=str(uuid4()),
        full_name=name,
        email=f"{slug}@example.com",
        crm=f"CRM-SP {uuid4().hex[:6]}",
        specialty=specialty,
        phone="+55 11 99999-0000",
        status=status,
        is_available=is_available,
        rating=rating,
        created_at=BASE_TIME - timedelta(minutes=registered_minutes_ago),
    )
    session.add(doctor)
    await session.commit()
    await session.refresh(doctor)
    return doctor


async def make_consultation(
    session: AsyncSession,
    specialty: str = "Cardiologia",
    patient_name: str = "Maria Silva",
    status: ConsultationStatus = ConsultationStatus.PENDING,
    assigned_doctor_id: str | None = None,
) -> ConsultationRequest:
    """Create a consultation without starting its cascade."""
    consultation = ConsultationRequest(
        id=str(uuid4()),
        patient_name=patient_name,
        patient_phone="+55 11 98888-7777",
        specialty=specialty,
        urgency=Urgency.ALTA,
        description="Dor no peito ao esforço",
        status=status,
        cascade_round=0,
        event_sequence=0,
        assigned_doctor_id=assigned_doctor_id,
    )
    session.add(consultation)
    await session.commit()
    await session.refresh(consultation)
    return consultation


@pytest.fixture
async def cardiologists(async_session: AsyncSession) -> list[Doctor]:
    """Four approved, available cardiologists in registration order A, B, C, D."""
    return [
        await make_doctor(async_session, "Doctor A", registered_minutes_ago=40),
        await make_doctor(async_session, "Doctor B", registered_minutes_ago=30),
        await make_doctor(async_session, "Doctor C", registered_minutes_ago=20),
        await make_doctor(async_session, "Doctor D", registered_minutes_ago=10),
    ]
