"""Tests for consultation intake, lifecycle and change feed endpoints."""

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import RecordingSink
from teleconsulta.models.cascade import CascadeSettings
from teleconsulta.models.doctor import Doctor

INTAKE = {
    "patient_name": "Maria Silva",
    "patient_phone": "+55 11 98888-7777",
    "patient_email": "maria.silva@example.com",
    "specialty": "Cardiologia",
    "urgency": "alta",
    "description": "Dor no peito ao esforço",
}


async def _create(client: httpx.AsyncClient) -> dict:
    response = await client.post("/api/v1/consultations", json=INTAKE)
    assert response.status_code == 201
    return response.json()


async def _assign(client: httpx.AsyncClient, doctor: Doctor) -> str:
    """Create a consultation, start round 1 and have `doctor` accept it."""
    consultation_id = (await _create(client))["consultation"]["id"]
    await client.post(f"/api/v1/cascade/consultations/{consultation_id}/start")
    response = await client.post(
        f"/api/v1/cascade/consultations/{consultation_id}/accept",
        json={"doctor_id": doctor.id},
    )
    assert response.json()["success"] is True
    return consultation_id


class TestIntake:
    """Tests for opening consultation requests."""

    async def test_create_without_auto_start(
        self,
        client: httpx.AsyncClient,
        sink: RecordingSink,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """With auto-start off the consultation waits at round 0."""
        data = await _create(client)

        assert data["cascade"] is None
        consultation = data["consultation"]
        assert consultation["status"] == "pending"
        assert consultation["cascade_round"] == 0
        assert consultation["urgency"] == "alta"
        assert sink.sent == []

    async def test_create_with_auto_start(
        self,
        async_session: AsyncSession,
        client: httpx.AsyncClient,
        sink: RecordingSink,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """With auto-start on, round 1 goes out as part of intake."""
        cascade_settings.auto_start_on_create = True
        await async_session.commit()

        data = await _create(client)

        assert data["cascade"]["success"] is True
        assert data["cascade"]["round_number"] == 1
        assert data["cascade"]["doctors_notified"] == 2
        assert data["consultation"]["cascade_round"] == 1
        assert {offer.doctor_name for offer, _ in sink.sent} == {"Doctor A", "Doctor B"}

    async def test_create_validates_payload(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
    ) -> None:
        """Missing specialty and unknown urgency are rejected."""
        response = await client.post(
            "/api/v1/consultations",
            json={"patient_name": "Maria Silva", "urgency": "imediata"},
        )

        assert response.status_code == 422

    async def test_list_and_filter(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
    ) -> None:
        """Listing supports status and specialty filters."""
        await _create(client)
        await client.post(
            "/api/v1/consultations",
            json={**INTAKE, "specialty": "Dermatologia"},
        )

        response = await client.get("/api/v1/consultations", params={"specialty": "Dermatologia"})
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = await client.get("/api/v1/consultations", params={"status": "pending"})
        assert response.json()["total"] == 2

    async def test_unknown_consultation(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
    ) -> None:
        """Unknown IDs return 404."""
        response = await client.get(
            "/api/v1/consultations/7d9c1f36-0a6f-4d0e-9b7f-6c1d2e3f4a5b"
        )

        assert response.status_code == 404


class TestLifecycle:
    """Tests for the assignee's start/complete actions and cancellation."""

    async def test_start_and_complete(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """assigned -> in_progress -> completed for the assignee."""
        doctor_a = cardiologists[0]
        consultation_id = await _assign(client, doctor_a)

        response = await client.post(
            f"/api/v1/consultations/{consultation_id}/start",
            json={"doctor_id": doctor_a.id},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "in_progress"
        assert response.json()["started_at"] is not None

        response = await client.post(
            f"/api/v1/consultations/{consultation_id}/complete",
            json={"doctor_id": doctor_a.id},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert response.json()["completed_at"] is not None

    async def test_only_assignee_can_start(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """Another doctor gets 403."""
        doctor_a, doctor_b = cardiologists[:2]
        consultation_id = await _assign(client, doctor_a)

        response = await client.post(
            f"/api/v1/consultations/{consultation_id}/start",
            json={"doctor_id": doctor_b.id},
        )

        assert response.status_code == 403

    async def test_complete_before_start_conflicts(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """Completing an assigned (not started) consultation returns 409."""
        doctor_a = cardiologists[0]
        consultation_id = await _assign(client, doctor_a)

        response = await client.post(
            f"/api/v1/consultations/{consultation_id}/complete",
            json={"doctor_id": doctor_a.id},
        )

        assert response.status_code == 409

    async def test_cancel(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
    ) -> None:
        """Pending consultations can be cancelled once."""
        consultation_id = (await _create(client))["consultation"]["id"]

        response = await client.post(
            f"/api/v1/consultations/{consultation_id}/cancel",
            json={"reason": "Paciente desistiu"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancellation_reason"] == "Paciente desistiu"

        response = await client.post(
            f"/api/v1/consultations/{consultation_id}/cancel",
            json={"reason": "De novo"},
        )
        assert response.status_code == 409

    async def test_completed_consultation_cannot_be_cancelled(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """Only pending or assigned consultations can be cancelled."""
        doctor_a = cardiologists[0]
        consultation_id = await _assign(client, doctor_a)
        for action in ("start", "complete"):
            await client.post(
                f"/api/v1/consultations/{consultation_id}/{action}",
                json={"doctor_id": doctor_a.id},
            )

        response = await client.post(
            f"/api/v1/consultations/{consultation_id}/cancel",
            json={},
        )

        assert response.status_code == 409


class TestChangeFeed:
    """Tests for the per-consultation event feed."""

    async def test_events_are_sequenced(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """Every state change is an event with a strictly increasing sequence."""
        doctor_a = cardiologists[0]
        consultation_id = await _assign(client, doctor_a)

        response = await client.get(f"/api/v1/consultations/{consultation_id}/events")

        assert response.status_code == 200
        events = response.json()
        assert [e["sequence"] for e in events] == [1, 2, 3]
        assert [e["event_type"] for e in events] == [
            "consultation_created",
            "round_started",
            "consultation_assigned",
        ]
        assert events[2]["payload"]["doctor_id"] == doctor_a.id

    async def test_poll_after_sequence(
        self,
        client: httpx.AsyncClient,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """Observers only receive events newer than the last one they saw."""
        doctor_a = cardiologists[0]
        consultation_id = await _assign(client, doctor_a)

        response = await client.get(
            f"/api/v1/consultations/{consultation_id}/events",
            params={"after_sequence": 2},
        )

        assert [e["sequence"] for e in response.json()] == [3]
