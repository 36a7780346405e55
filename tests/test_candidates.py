"""Tests for cascade candidate selection and prioritisation."""

import random
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from conftest import BASE_TIME, make_consultation, make_doctor
from teleconsulta.models.cascade import CascadeSettings, PrioritizationStrategy
from teleconsulta.models.consultation import ConsultationStatus
from teleconsulta.models.doctor import Doctor, DoctorStatus
from teleconsulta.services.candidates import (
    rank_candidates,
    related_specialties,
    select_candidates,
)


def _doctor(
    doctor_id: str,
    minutes_ago: int,
    specialty: str = "Cardiologia",
    rating: float | None = None,
) -> Doctor:
    return Doctor(
        id=doctor_id,
        full_name=f"Doctor {doctor_id}",
        specialty=specialty,
        rating=rating,
        created_at=BASE_TIME - timedelta(minutes=minutes_ago),
    )


class TestRankCandidates:
    """Tests for the pure ranking function."""

    def test_availability_uses_registration_order(self) -> None:
        """Earliest registered doctors come first."""
        doctors = [_doctor("c", 10), _doctor("a", 30), _doctor("b", 20)]

        ranked = rank_candidates(doctors, [], PrioritizationStrategy.AVAILABILITY, 2, random.Random(0))

        assert [d.id for d in ranked] == ["a", "b"]

    def test_rating_highest_first_unrated_last(self) -> None:
        """Higher rating wins; unrated doctors go last; ties keep registration order."""
        doctors = [
            _doctor("unrated", 50),
            _doctor("good", 40, rating=4.5),
            _doctor("best-late", 10, rating=4.9),
            _doctor("best-early", 20, rating=4.9),
        ]

        ranked = rank_candidates(doctors, [], PrioritizationStrategy.RATING, 4, random.Random(0))

        assert [d.id for d in ranked] == ["best-early", "best-late", "good", "unrated"]

    def test_response_time_fastest_first(self) -> None:
        """Doctors with a faster history come first; no history goes last."""
        doctors = [_doctor("slow", 30), _doctor("new", 20), _doctor("fast", 10)]
        averages = {"slow": 240.0, "fast": 35.0}

        ranked = rank_candidates(
            doctors,
            [],
            PrioritizationStrategy.RESPONSE_TIME,
            3,
            random.Random(0),
            average_response_times=averages,
        )

        assert [d.id for d in ranked] == ["fast", "slow", "new"]

    def test_specialty_match_appends_related(self) -> None:
        """Exact matches first, then related specialties fill the round."""
        exact = [_doctor("cardio", 10)]
        related = [_doctor("gp", 30, specialty="Clínica Geral")]

        ranked = rank_candidates(
            exact, related, PrioritizationStrategy.SPECIALTY_MATCH, 3, random.Random(0)
        )

        assert [d.id for d in ranked] == ["cardio", "gp"]

    def test_related_only_without_exact_match(self) -> None:
        """Other strategies ignore related specialties while exact matches exist."""
        exact = [_doctor("cardio", 10)]
        related = [_doctor("gp", 30, specialty="Clínica Geral")]

        with_exact = rank_candidates(
            exact, related, PrioritizationStrategy.AVAILABILITY, 3, random.Random(0)
        )
        without_exact = rank_candidates(
            [], related, PrioritizationStrategy.AVAILABILITY, 3, random.Random(0)
        )

        assert [d.id for d in with_exact] == ["cardio"]
        assert [d.id for d in without_exact] == ["gp"]

    def test_random_is_reproducible_with_seed(self) -> None:
        """The random strategy draws from the injected generator."""
        doctors = [_doctor(str(i), i) for i in range(10)]

        first = rank_candidates(doctors, [], PrioritizationStrategy.RANDOM, 3, random.Random(42))
        second = rank_candidates(doctors, [], PrioritizationStrategy.RANDOM, 3, random.Random(42))

        assert [d.id for d in first] == [d.id for d in second]
        assert len({d.id for d in first}) == 3

    def test_limit_caps_result(self) -> None:
        """Never more than the limit, never fewer than available."""
        doctors = [_doctor("a", 20), _doctor("b", 10)]

        assert len(rank_candidates(doctors, [], PrioritizationStrategy.RANDOM, 5, random.Random(0))) == 2
        assert rank_candidates(doctors, [], PrioritizationStrategy.AVAILABILITY, 0, random.Random(0)) == []

    def test_related_specialties(self) -> None:
        """Compatibility table lookups."""
        assert related_specialties("Cardiologia") == ("Clínica Geral", "Medicina Interna")
        assert related_specialties("Ortopedia") == ()


class TestSelectCandidates:
    """Tests for eligibility filtering against the database."""

    async def test_only_eligible_doctors_are_selected(
        self,
        async_session: AsyncSession,
        cascade_settings: CascadeSettings,
    ) -> None:
        """Unapproved, unavailable, removed and busy doctors are skipped."""
        cascade_settings.doctors_per_round = 10
        await async_session.commit()

        eligible = await make_doctor(async_session, "Eligible", registered_minutes_ago=50)
        await make_doctor(
            async_session, "Unapproved", registered_minutes_ago=40, status=DoctorStatus.PENDING
        )
        await make_doctor(async_session, "Offline", registered_minutes_ago=30, is_available=False)
        removed = await make_doctor(async_session, "Removed", registered_minutes_ago=20)
        removed.soft_delete()
        await async_session.commit()
        busy = await make_doctor(async_session, "Busy", registered_minutes_ago=10)
        await make_consultation(
            async_session,
            patient_name="Em atendimento",
            status=ConsultationStatus.IN_PROGRESS,
            assigned_doctor_id=busy.id,
        )

        consultation = await make_consultation(async_session)
        candidates = await select_candidates(
            async_session, consultation, cascade_settings, random.Random(0)
        )

        assert [d.id for d in candidates] == [eligible.id]

    async def test_response_time_strategy_uses_history(
        self,
        async_session: AsyncSession,
        cascade_settings: CascadeSettings,
    ) -> None:
        """Without any history the response_time strategy keeps registration order."""
        cascade_settings.prioritize_by = PrioritizationStrategy.RESPONSE_TIME
        await async_session.commit()

        first = await make_doctor(async_session, "First", registered_minutes_ago=20)
        second = await make_doctor(async_session, "Second", registered_minutes_ago=10)
        consultation = await make_consultation(async_session)

        candidates = await select_candidates(
            async_session, consultation, cascade_settings, random.Random(0)
        )

        assert [d.id for d in candidates] == [first.id, second.id]
