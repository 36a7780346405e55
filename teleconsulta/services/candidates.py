"""Candidate selection for a cascade round.

A candidate is an approved, available, non-deleted doctor with a
matching (or related) specialty who is not busy with another
consultation and has not already been offered this one.
"""

import random
from datetime import datetime
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.models.cascade import CascadeNotification, CascadeSettings, PrioritizationStrategy
from teleconsulta.models.consultation import ACTIVE_STATUSES, ConsultationRequest
from teleconsulta.models.doctor import Doctor, DoctorStatus
from teleconsulta.utils.time import as_utc

# Specialties whose doctors can take a consultation when no exact match
# is available, or after exact matches under specialty_match.
SPECIALTY_COMPATIBILITY: dict[str, tuple[str, ...]] = {
    "Clínica Geral": ("Medicina de Família", "Medicina Interna"),
    "Medicina de Família": ("Clínica Geral",),
    "Medicina Interna": ("Clínica Geral",),
    "Cardiologia": ("Clínica Geral", "Medicina Interna"),
    "Endocrinologia": ("Medicina Interna", "Clínica Geral"),
    "Pediatria": ("Medicina de Família",),
    "Ginecologia": ("Obstetrícia",),
    "Obstetrícia": ("Ginecologia",),
    "Dermatologia": ("Clínica Geral",),
    "Neurologia": ("Clínica Geral",),
    "Psiquiatria": ("Clínica Geral",),
}


def related_specialties(specialty: str) -> tuple[str, ...]:
    """Specialties compatible with the requested one (exact match excluded)."""
    return SPECIALTY_COMPATIBILITY.get(specialty, ())


def _registration_key(doctor: Doctor) -> tuple[datetime, str]:
    return as_utc(doctor.created_at), doctor.id


def rank_candidates(
    exact: Sequence[Doctor],
    related: Sequence[Doctor],
    strategy: PrioritizationStrategy,
    limit: int,
    rng: random.Random,
    average_response_times: dict[str, float] | None = None,
) -> list[Doctor]:
    """Order eligible doctors by strategy and keep the first `limit`.

    Args:
        exact: Eligible doctors with the requested specialty
        related: Eligible doctors with a compatible specialty
        strategy: Prioritisation strategy from cascade settings
        limit: doctors_per_round
        rng: Randomness source for the random strategy
        average_response_times: doctor_id -> historical average seconds

    Returns:
        At most `limit` doctors, highest priority first
    """
    if limit <= 0:
        return []

    exact = sorted(exact, key=_registration_key)
    related = sorted(related, key=_registration_key)

    if strategy == PrioritizationStrategy.SPECIALTY_MATCH:
        return (exact + related)[:limit]

    # Related specialties only step in when nobody matches exactly
    pool = exact or related

    if strategy == PrioritizationStrategy.RANDOM:
        return rng.sample(pool, min(limit, len(pool)))

    if strategy == PrioritizationStrategy.RATING:
        # Stable sort keeps registration order between equal ratings
        ranked = sorted(
            pool,
            key=lambda d: (d.rating is None, -(d.rating or 0.0)),
        )
        return ranked[:limit]

    if strategy == PrioritizationStrategy.RESPONSE_TIME:
        averages = average_response_times or {}
        ranked = sorted(
            pool,
            key=lambda d: (d.id not in averages, averages.get(d.id, 0.0)),
        )
        return ranked[:limit]

    # availability
    return pool[:limit]


async def _excluded_doctor_ids(
    session: AsyncSession,
    consultation_id: str,
    next_round: int,
    cooldown_rounds: int | None,
) -> set[str]:
    """Doctors already offered this consultation who may not be offered it again yet."""
    result = await session.execute(
        select(
            CascadeNotification.doctor_id,
            func.max(CascadeNotification.round_number),
        )
        .where(CascadeNotification.consultation_id == consultation_id)
        .group_by(CascadeNotification.doctor_id)
    )
    excluded = set()
    for doctor_id, last_round in result.all():
        if cooldown_rounds is None or next_round - last_round <= cooldown_rounds:
            excluded.add(doctor_id)
    return excluded


async def _eligible_doctors(
    session: AsyncSession,
    specialties: Sequence[str],
    excluded_ids: set[str],
) -> Sequence[Doctor]:
    busy_doctors = select(ConsultationRequest.assigned_doctor_id).where(
        ConsultationRequest.status.in_([s.value for s in ACTIVE_STATUSES]),
        ConsultationRequest.assigned_doctor_id.is_not(None),
    )

    query = select(Doctor).where(
        Doctor.specialty.in_(list(specialties)),
        Doctor.status == DoctorStatus.APPROVED.value,
        Doctor.is_available == True,
        Doctor.is_deleted == False,
        Doctor.id.not_in(busy_doctors),
    )
    if excluded_ids:
        query = query.where(Doctor.id.not_in(list(excluded_ids)))

    result = await session.execute(query.order_by(Doctor.created_at, Doctor.id))
    return result.scalars().all()


async def _average_response_times(
    session: AsyncSession,
    doctor_ids: Sequence[str],
) -> dict[str, float]:
    if not doctor_ids:
        return {}
    result = await session.execute(
        select(
            CascadeNotification.doctor_id,
            func.avg(CascadeNotification.response_time_seconds),
        )
        .where(
            CascadeNotification.doctor_id.in_(list(doctor_ids)),
            CascadeNotification.response_time_seconds.is_not(None),
        )
        .group_by(CascadeNotification.doctor_id)
    )
    return {doctor_id: float(avg) for doctor_id, avg in result.all() if avg is not None}


async def select_candidates(
    session: AsyncSession,
    consultation: ConsultationRequest,
    cascade_settings: CascadeSettings,
    rng: random.Random,
) -> list[Doctor]:
    """Pick the doctors to notify in the consultation's next round."""
    next_round = consultation.cascade_round + 1
    excluded = await _excluded_doctor_ids(
        session,
        consultation.id,
        next_round,
        cascade_settings.renotify_cooldown_rounds,
    )

    related_names = related_specialties(consultation.specialty)
    doctors = await _eligible_doctors(
        session,
        (consultation.specialty, *related_names),
        excluded,
    )
    exact = [d for d in doctors if d.specialty == consultation.specialty]
    related = [d for d in doctors if d.specialty != consultation.specialty]

    strategy = PrioritizationStrategy(cascade_settings.prioritize_by)
    averages = None
    if strategy == PrioritizationStrategy.RESPONSE_TIME:
        averages = await _average_response_times(session, [d.id for d in exact or related])

    return rank_candidates(
        exact,
        related,
        strategy,
        cascade_settings.doctors_per_round,
        rng,
        average_response_times=averages,
    )
