"""Tests for the doctor roster."""

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import make_consultation, make_doctor
from teleconsulta.models.consultation import ConsultationStatus
from teleconsulta.models.doctor import DoctorStatus
from teleconsulta.schemas.doctor import DoctorCreate
from teleconsulta.services.doctor_registry import (
    AvailabilityChangeBlockedError,
    DoctorNotFoundError,
    DoctorRegistryService,
    DuplicateDoctorError,
)


def _registration(email: str = "joana.prado@example.com") -> DoctorCreate:
    return DoctorCreate(
        full_name="Dra. Joana Prado",
        email=email,
        crm="CRM-SP 112233",
        specialty="Cardiologia",
        phone="+55 11 97777-6666",
        rating=4.7,
    )


class TestRegistration:
    """Tests for registering and approving doctors."""

    async def test_new_doctor_is_pending_and_offline(self, async_session: AsyncSession) -> None:
        """Registration never puts a doctor straight into the cascade."""
        doctor = await DoctorRegistryService(async_session).create_doctor(_registration())

        assert doctor.status == DoctorStatus.PENDING.value
        assert doctor.is_available is False

    async def test_duplicate_email_rejected(self, async_session: AsyncSession) -> None:
        """Email is unique across the roster."""
        service = DoctorRegistryService(async_session)
        await service.create_doctor(_registration())

        with pytest.raises(DuplicateDoctorError):
            await service.create_doctor(_registration())

    async def test_approve_then_go_online(self, async_session: AsyncSession) -> None:
        """Approved doctors may become available."""
        service = DoctorRegistryService(async_session)
        doctor = await service.create_doctor(_registration())

        await service.approve_doctor(doctor.id)
        doctor = await service.set_availability(doctor.id, True)

        assert doctor.status == DoctorStatus.APPROVED.value
        assert doctor.is_available is True

    async def test_unapproved_cannot_go_online(self, async_session: AsyncSession) -> None:
        """Pending doctors stay offline."""
        service = DoctorRegistryService(async_session)
        doctor = await service.create_doctor(_registration())

        with pytest.raises(AvailabilityChangeBlockedError):
            await service.set_availability(doctor.id, True)

    async def test_rejecting_takes_doctor_offline(self, async_session: AsyncSession) -> None:
        """A rejected doctor is no longer available."""
        doctor = await make_doctor(async_session, "Doctor A")

        doctor = await DoctorRegistryService(async_session).reject_doctor(doctor.id)

        assert doctor.status == DoctorStatus.REJECTED.value
        assert doctor.is_available is False

    async def test_removed_doctor_not_found(self, async_session: AsyncSession) -> None:
        """Soft-deleted doctors disappear from lookups and listings."""
        service = DoctorRegistryService(async_session)
        doctor = await make_doctor(async_session, "Doctor A")

        await service.remove_doctor(doctor.id)

        with pytest.raises(DoctorNotFoundError):
            await service.get_doctor(doctor.id)
        doctors, total = await service.list_doctors()
        assert total == 0
        assert list(doctors) == []


class TestAvailability:
    """Tests for availability changes during appointments."""

    async def test_cannot_go_offline_mid_appointment(self, async_session: AsyncSession) -> None:
        """A doctor with an in-progress consultation stays online."""
        doctor = await make_doctor(async_session, "Doctor A")
        await make_consultation(
            async_session,
            status=ConsultationStatus.IN_PROGRESS,
            assigned_doctor_id=doctor.id,
        )

        with pytest.raises(AvailabilityChangeBlockedError):
            await DoctorRegistryService(async_session).set_availability(doctor.id, False)

    async def test_can_go_offline_when_only_assigned(self, async_session: AsyncSession) -> None:
        """An assigned but not started consultation does not block going offline."""
        doctor = await make_doctor(async_session, "Doctor A")
        await make_consultation(
            async_session,
            status=ConsultationStatus.ASSIGNED,
            assigned_doctor_id=doctor.id,
        )

        doctor = await DoctorRegistryService(async_session).set_availability(doctor.id, False)

        assert doctor.is_available is False


class TestListing:
    """Tests for roster filters."""

    async def test_filters_and_search(self, async_session: AsyncSession) -> None:
        """Status, specialty and free-text search narrow the listing."""
        await make_doctor(async_session, "Ana Cardio", registered_minutes_ago=30)
        await make_doctor(
            async_session, "Bruno Derm", specialty="Dermatologia", registered_minutes_ago=20
        )
        await make_doctor(
            async_session, "Carla Cardio", registered_minutes_ago=10, status=DoctorStatus.PENDING
        )
        service = DoctorRegistryService(async_session)

        cardiologists, total = await service.list_doctors(specialty="Cardiologia")
        assert total == 2
        assert [d.full_name for d in cardiologists] == ["Ana Cardio", "Carla Cardio"]

        approved, total = await service.list_doctors(status=DoctorStatus.APPROVED)
        assert total == 2

        found, total = await service.list_doctors(search="bruno")
        assert total == 1
        assert found[0].full_name == "Bruno Derm"


class TestDoctorApi:
    """Tests for the roster endpoints."""

    async def test_register_and_approve(self, client: httpx.AsyncClient) -> None:
        """POST registers, approve flips status, availability goes online."""
        response = await client.post(
            "/api/v1/doctors",
            json={
                "full_name": "Dra. Joana Prado",
                "email": "joana.prado@example.com",
                "crm": "CRM-SP 112233",
                "specialty": "Cardiologia",
            },
        )
        assert response.status_code == 201
        doctor_id = response.json()["id"]
        assert response.json()["status"] == "pending"

        response = await client.post(f"/api/v1/doctors/{doctor_id}/approve")
        assert response.status_code == 200
        assert response.json()["status"] == "approved"

        response = await client.patch(
            f"/api/v1/doctors/{doctor_id}/availability",
            json={"is_available": True},
        )
        assert response.status_code == 200
        assert response.json()["is_available"] is True

    async def test_duplicate_registration_conflict(self, client: httpx.AsyncClient) -> None:
        """Registering the same email twice returns 409."""
        payload = {
            "full_name": "Dra. Joana Prado",
            "email": "joana.prado@example.com",
            "crm": "CRM-SP 112233",
            "specialty": "Cardiologia",
        }
        assert (await client.post("/api/v1/doctors", json=payload)).status_code == 201

        response = await client.post("/api/v1/doctors", json=payload)

        assert response.status_code == 409

    async def test_invalid_email_rejected(self, client: httpx.AsyncClient) -> None:
        """Registration validates the email address."""
        response = await client.post(
            "/api/v1/doctors",
            json={
                "full_name": "Dra. Joana Prado",
                "email": "not-an-email",
                "crm": "CRM-SP 112233",
                "specialty": "Cardiologia",
            },
        )

        assert response.status_code == 422

    async def test_going_online_unapproved_conflict(self, client: httpx.AsyncClient) -> None:
        """Availability changes that are not allowed return 409."""
        response = await client.post(
            "/api/v1/doctors",
            json={
                "full_name": "Dra. Joana Prado",
                "email": "joana.prado@example.com",
                "crm": "CRM-SP 112233",
                "specialty": "Cardiologia",
            },
        )
        doctor_id = response.json()["id"]

        response = await client.patch(
            f"/api/v1/doctors/{doctor_id}/availability",
            json={"is_available": True},
        )

        assert response.status_code == 409

    async def test_unknown_doctor(self, client: httpx.AsyncClient) -> None:
        """Unknown IDs return 404."""
        response = await client.get("/api/v1/doctors/7d9c1f36-0a6f-4d0e-9b7f-6c1d2e3f4a5b")

        assert response.status_code == 404
