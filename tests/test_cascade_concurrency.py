"""Concurrency tests for the cascade.

Each competitor gets its own session and connection against a shared
file-backed database, so the conditional updates really race.
"""

import asyncio
import random
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import NullPool, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import teleconsulta.models  # noqa: F401
from conftest import FakeClock, RecordingSink, make_consultation, make_doctor
from teleconsulta.db.base import Base
from teleconsulta.fixtures.message_templates import DEFAULT_WHATSAPP_TEMPLATE
from teleconsulta.models.cascade import (
    CASCADE_SETTINGS_ID,
    CascadeNotification,
    CascadeSettings,
    PrioritizationStrategy,
)
from teleconsulta.models.consultation import (
    ConsultationEvent,
    ConsultationRequest,
    ConsultationStatus,
)
from teleconsulta.services.cascade import RACE_LOST_MESSAGE, CascadeService


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory over a file database; every session has its own connection."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cascade.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    await engine.dispose()


@pytest.fixture
async def seeded(session_factory) -> dict:
    """Settings, five cardiologists and one consultation with round 1 started."""
    clock = FakeClock()
    async with session_factory() as session:
        session.add(
            CascadeSettings(
                id=CASCADE_SETTINGS_ID,
                timeout_per_round_minutes=5,
                max_rounds=3,
                doctors_per_round=5,
                prioritize_by=PrioritizationStrategy.AVAILABILITY,
                enable_whatsapp=True,
                enable_email=False,
                enable_push=False,
                whatsapp_template=DEFAULT_WHATSAPP_TEMPLATE,
                renotify_cooldown_rounds=0,
                auto_start_on_create=False,
            )
        )
        await session.commit()

        doctor_ids = []
        for index in range(5):
            doctor = await make_doctor(
                session, f"Doctor {index}", registered_minutes_ago=50 - index
            )
            doctor_ids.append(doctor.id)
        consultation = await make_consultation(session)

        service = CascadeService(session, sink=RecordingSink(), clock=clock)
        result = await service.start_cascade(consultation.id)
        assert result.doctors_notified == 5

    return {"clock": clock, "consultation_id": consultation.id, "doctor_ids": doctor_ids}


async def _accept(session_factory, clock, consultation_id: str, doctor_id: str):
    async with session_factory() as session:
        service = CascadeService(session, sink=RecordingSink(), clock=clock)
        return await service.accept_consultation(consultation_id, doctor_id)


async def _check(session_factory, clock, consultation_id: str):
    async with session_factory() as session:
        service = CascadeService(
            session, sink=RecordingSink(), clock=clock, rng=random.Random(0)
        )
        return await service.check_and_start_next_round(consultation_id)


async def test_concurrent_accepts_have_one_winner(session_factory, seeded: dict) -> None:
    """Five doctors accepting at once: exactly one is assigned."""
    clock = seeded["clock"]
    clock.advance(seconds=30)
    consultation_id = seeded["consultation_id"]

    results = await asyncio.gather(
        *(
            _accept(session_factory, clock, consultation_id, doctor_id)
            for doctor_id in seeded["doctor_ids"]
        )
    )

    winners = [
        doctor_id
        for doctor_id, result in zip(seeded["doctor_ids"], results)
        if result.success
    ]
    assert len(winners) == 1
    assert all(
        result.message == RACE_LOST_MESSAGE for result in results if not result.success
    )

    async with session_factory() as session:
        consultation = (
            await session.execute(
                select(ConsultationRequest).where(ConsultationRequest.id == consultation_id)
            )
        ).scalar_one()
        assert consultation.assigned_doctor_id == winners[0]
        assert consultation.status == ConsultationStatus.ASSIGNED.value

        accepted = (
            await session.execute(
                select(func.count(CascadeNotification.id)).where(
                    CascadeNotification.response == "accepted"
                )
            )
        ).scalar_one()
        assert accepted == 1


async def test_concurrent_checks_start_one_round(session_factory, seeded: dict) -> None:
    """Several sweepers noticing the same timeout start a single new round."""
    clock = seeded["clock"]
    clock.advance(minutes=5)
    consultation_id = seeded["consultation_id"]

    results = await asyncio.gather(
        *(_check(session_factory, clock, consultation_id) for _ in range(4))
    )

    started = [r for r in results if r is not None and r.success]
    assert len(started) == 1
    assert started[0].round_number == 2

    async with session_factory() as session:
        consultation = (
            await session.execute(
                select(ConsultationRequest).where(ConsultationRequest.id == consultation_id)
            )
        ).scalar_one()
        assert consultation.cascade_round == 2

        round_two = (
            await session.execute(
                select(func.count(CascadeNotification.id)).where(
                    CascadeNotification.round_number == 2
                )
            )
        ).scalar_one()
        assert round_two == 5

        expired = (
            await session.execute(
                select(func.count(CascadeNotification.id)).where(
                    CascadeNotification.response == "expired"
                )
            )
        ).scalar_one()
        assert expired == 5

        sequences = (
            await session.execute(
                select(ConsultationEvent.sequence)
                .where(ConsultationEvent.consultation_id == consultation_id)
                .order_by(ConsultationEvent.sequence)
            )
        ).scalars().all()
        assert sequences == list(range(1, len(sequences) + 1))
