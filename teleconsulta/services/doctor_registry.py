"""Doctor roster: registration, approval and availability."""

import logging
from typing import Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.models.consultation import ConsultationRequest, ConsultationStatus
from teleconsulta.models.doctor import Doctor, DoctorStatus
from teleconsulta.schemas.doctor import DoctorCreate

logger = logging.getLogger(__name__)


class DoctorNotFoundError(Exception):
    """Raised when a doctor does not exist or was removed from the roster."""

    pass


class DuplicateDoctorError(Exception):
    """Raised when a doctor with the same email is already registered."""

    pass


class AvailabilityChangeBlockedError(Exception):
    """Raised when a doctor tries to go offline mid-appointment."""

    pass


class DoctorRegistryService:
    """Service for managing the doctor roster."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create_doctor(self, data: DoctorCreate) -> Doctor:
        """Register a doctor. New doctors wait for approval and start offline."""
        doctor = Doctor(
            full_name=data.full_name,
            email=str(data.email),
            crm=data.crm,
            specialty=data.specialty,
            phone=data.phone,
            whatsapp=data.whatsapp,
            rating=data.rating,
            status=DoctorStatus.PENDING,
            is_available=False,
        )
        self.session.add(doctor)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise DuplicateDoctorError(f"Doctor with email {data.email} already exists") from e
        await self.session.refresh(doctor)

        logger.info(f"Doctor registered: {doctor.id[:8]} ({doctor.specialty})")
        return doctor

    async def get_doctor(self, doctor_id: str) -> Doctor:
        """Get a doctor by ID."""
        result = await self.session.execute(
            select(Doctor)
            .where(
                Doctor.id == doctor_id,
                Doctor.is_deleted == False,
            )
            .execution_options(populate_existing=True)
        )
        doctor = result.scalar_one_or_none()
        if not doctor:
            raise DoctorNotFoundError(f"Doctor {doctor_id} not found")
        return doctor

    async def list_doctors(
        self,
        status: DoctorStatus | None = None,
        specialty: str | None = None,
        search: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[Doctor], int]:
        """List doctors with optional filters, returning (page, total)."""
        conditions = [Doctor.is_deleted == False]
        if status is not None:
            conditions.append(Doctor.status == DoctorStatus(status).value)
        if specialty:
            conditions.append(Doctor.specialty == specialty)
        if search:
            pattern = f"%{search}%"
            conditions.append(
                or_(
                    Doctor.full_name.ilike(pattern),
                    Doctor.email.ilike(pattern),
                    Doctor.crm.ilike(pattern),
                )
            )

        total = (
            await self.session.execute(select(func.count(Doctor.id)).where(*conditions))
        ).scalar_one()
        result = await self.session.execute(
            select(Doctor)
            .where(*conditions)
            .order_by(Doctor.created_at, Doctor.id)
            .offset(offset)
            .limit(limit)
        )
        return result.scalars().all(), total

    async def _set_status(self, doctor_id: str, status: DoctorStatus) -> Doctor:
        doctor = await self.get_doctor(doctor_id)
        doctor.status = status
        if status != DoctorStatus.APPROVED:
            # Only approved doctors may be online
            doctor.is_available = False
        await self.session.commit()
        await self.session.refresh(doctor)

        logger.info(f"Doctor {doctor_id[:8]} status set to {status.value}")
        return doctor

    async def approve_doctor(self, doctor_id: str) -> Doctor:
        """Approve a doctor for the roster."""
        return await self._set_status(doctor_id, DoctorStatus.APPROVED)

    async def reject_doctor(self, doctor_id: str) -> Doctor:
        """Reject a doctor's registration."""
        return await self._set_status(doctor_id, DoctorStatus.REJECTED)

    async def has_in_progress_consultation(self, doctor_id: str) -> bool:
        """Whether the doctor is in the middle of an appointment."""
        result = await self.session.execute(
            select(func.count(ConsultationRequest.id)).where(
                ConsultationRequest.assigned_doctor_id == doctor_id,
                ConsultationRequest.status == ConsultationStatus.IN_PROGRESS.value,
            )
        )
        return result.scalar_one() > 0

    async def set_availability(self, doctor_id: str, is_available: bool) -> Doctor:
        """Toggle a doctor's availability.

        Raises:
            DoctorNotFoundError: Unknown doctor
            AvailabilityChangeBlockedError: Going offline during an
                in-progress consultation, or going online unapproved
        """
        doctor = await self.get_doctor(doctor_id)

        if is_available and doctor.status != DoctorStatus.APPROVED.value:
            raise AvailabilityChangeBlockedError(
                "Only approved doctors can become available"
            )
        if not is_available and await self.has_in_progress_consultation(doctor_id):
            raise AvailabilityChangeBlockedError(
                "Cannot go offline while a consultation is in progress"
            )

        doctor.is_available = is_available
        await self.session.commit()
        await self.session.refresh(doctor)

        logger.info(
            f"Doctor {doctor_id[:8]} is now {'available' if is_available else 'unavailable'}",
            extra={"doctor_id": doctor_id},
        )
        return doctor

    async def remove_doctor(self, doctor_id: str) -> None:
        """Take a doctor off the roster, keeping their cascade history."""
        doctor = await self.get_doctor(doctor_id)
        doctor.soft_delete()
        doctor.is_available = False
        await self.session.commit()
        logger.info(f"Doctor {doctor_id[:8]} removed from roster")
