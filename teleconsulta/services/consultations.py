"""Consultation store: intake and lifecycle after assignment.

pending -> assigned is owned by the cascade. This module handles
creation, assigned -> in_progress -> completed for the assignee, and
cancellation.
"""

import logging
from typing import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.models.consultation import (
    ConsultationEvent,
    ConsultationEventType,
    ConsultationRequest,
    ConsultationStatus,
)
from teleconsulta.models.staff_notification import StaffNotificationType
from teleconsulta.schemas.consultation import ConsultationCreate
from teleconsulta.services.cascade import CascadeResult, CascadeService
from teleconsulta.services.cascade_settings import CascadeSettingsService
from teleconsulta.services.change_feed import append_event, list_events
from teleconsulta.services.staff_notifications import build_staff_notification

logger = logging.getLogger(__name__)


class ConsultationNotFoundError(Exception):
    """Raised when a consultation does not exist."""

    pass


class InvalidStatusTransitionError(Exception):
    """Raised when a lifecycle change is not allowed from the current status."""

    pass


class NotAssignedDoctorError(Exception):
    """Raised when someone other than the assignee acts on a consultation."""

    pass


# Statuses a consultation can be cancelled from
CANCELLABLE_STATUSES = (ConsultationStatus.PENDING, ConsultationStatus.ASSIGNED)


class ConsultationService:
    """Service for consultation requests."""

    def __init__(
        self,
        session: AsyncSession,
        cascade_service: CascadeService | None = None,
    ):
        self.session = session
        self.cascade_service = cascade_service or CascadeService(session)
        self.clock = self.cascade_service.clock

    async def create_consultation(
        self,
        data: ConsultationCreate,
    ) -> tuple[ConsultationRequest, CascadeResult | None]:
        """Open a consultation request and, if configured, start its cascade.

        Returns:
            (consultation, first round result or None when auto-start is off)
        """
        consultation = ConsultationRequest(
            patient_name=data.patient_name,
            patient_phone=data.patient_phone,
            patient_email=str(data.patient_email) if data.patient_email else None,
            patient_cpf=data.patient_cpf,
            specialty=data.specialty,
            urgency=data.urgency,
            consultation_type=data.consultation_type,
            description=data.description,
            status=ConsultationStatus.PENDING,
            cascade_round=0,
            event_sequence=0,
        )
        self.session.add(consultation)
        await self.session.flush()

        await append_event(
            self.session,
            consultation.id,
            ConsultationEventType.CREATED,
            {"specialty": data.specialty, "urgency": data.urgency.value},
        )
        await self.session.commit()

        logger.info(
            f"Consultation created: {consultation.id[:8]} ({data.specialty}, {data.urgency.value})",
            extra={"consultation_id": consultation.id},
        )

        cascade_result = None
        cascade_settings = await CascadeSettingsService(self.session).get_settings()
        if cascade_settings.auto_start_on_create:
            cascade_result = await self.cascade_service.start_cascade(consultation.id)

        return await self.get_consultation(consultation.id), cascade_result

    async def get_consultation(self, consultation_id: str) -> ConsultationRequest:
        """Get a consultation by ID."""
        result = await self.session.execute(
            select(ConsultationRequest)
            .where(ConsultationRequest.id == consultation_id)
            .execution_options(populate_existing=True)
        )
        consultation = result.scalar_one_or_none()
        if not consultation:
            raise ConsultationNotFoundError(f"Consultation {consultation_id} not found")
        return consultation

    async def list_consultations(
        self,
        status: ConsultationStatus | None = None,
        specialty: str | None = None,
        assigned_doctor_id: str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[ConsultationRequest], int]:
        """List consultations, newest first, returning (page, total)."""
        conditions = []
        if status is not None:
            conditions.append(ConsultationRequest.status == ConsultationStatus(status).value)
        if specialty:
            conditions.append(ConsultationRequest.specialty == specialty)
        if assigned_doctor_id:
            conditions.append(ConsultationRequest.assigned_doctor_id == assigned_doctor_id)

        total = (
            await self.session.execute(
                select(func.count(ConsultationRequest.id)).where(*conditions)
            )
        ).scalar_one()
        result = await self.session.execute(
            select(ConsultationRequest)
            .where(*conditions)
            .order_by(ConsultationRequest.created_at.desc())
            .offset(offset)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return result.scalars().all(), total

    async def _assignee_transition(
        self,
        consultation_id: str,
        doctor_id: str,
        from_status: ConsultationStatus,
        to_status: ConsultationStatus,
        timestamp_field: str,
        event_type: ConsultationEventType,
    ) -> ConsultationRequest:
        now = self.clock()
        changed = await self.session.execute(
            update(ConsultationRequest)
            .where(
                ConsultationRequest.id == consultation_id,
                ConsultationRequest.assigned_doctor_id == doctor_id,
                ConsultationRequest.status == from_status.value,
            )
            .values({"status": to_status.value, timestamp_field: now})
            .execution_options(synchronize_session=False)
        )
        if changed.rowcount != 1:
            await self.session.rollback()
            consultation = await self.get_consultation(consultation_id)
            if consultation.assigned_doctor_id != doctor_id:
                raise NotAssignedDoctorError(
                    f"Doctor {doctor_id} is not assigned to consultation {consultation_id}"
                )
            raise InvalidStatusTransitionError(
                f"Cannot move consultation from {consultation.status} to {to_status.value}"
            )

        await append_event(
            self.session,
            consultation_id,
            event_type,
            {"doctor_id": doctor_id},
        )
        await self.session.commit()

        logger.info(
            f"Consultation {consultation_id[:8]} is now {to_status.value}",
            extra={"consultation_id": consultation_id, "doctor_id": doctor_id},
        )
        return await self.get_consultation(consultation_id)

    async def start_consultation(self, consultation_id: str, doctor_id: str) -> ConsultationRequest:
        """The assignee starts the appointment (assigned -> in_progress)."""
        return await self._assignee_transition(
            consultation_id,
            doctor_id,
            ConsultationStatus.ASSIGNED,
            ConsultationStatus.IN_PROGRESS,
            "started_at",
            ConsultationEventType.STARTED,
        )

    async def complete_consultation(self, consultation_id: str, doctor_id: str) -> ConsultationRequest:
        """The assignee finishes the appointment (in_progress -> completed)."""
        return await self._assignee_transition(
            consultation_id,
            doctor_id,
            ConsultationStatus.IN_PROGRESS,
            ConsultationStatus.COMPLETED,
            "completed_at",
            ConsultationEventType.COMPLETED,
        )

    async def cancel_consultation(
        self,
        consultation_id: str,
        reason: str | None = None,
    ) -> ConsultationRequest:
        """Cancel a pending or assigned consultation.

        A cancelled consultation is terminal for the cascade: its open
        offers can no longer be accepted and no further rounds start.
        """
        now = self.clock()
        cancelled = await self.session.execute(
            update(ConsultationRequest)
            .where(
                ConsultationRequest.id == consultation_id,
                ConsultationRequest.status.in_([s.value for s in CANCELLABLE_STATUSES]),
            )
            .values(
                status=ConsultationStatus.CANCELLED.value,
                cancelled_at=now,
                cancellation_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if cancelled.rowcount != 1:
            await self.session.rollback()
            consultation = await self.get_consultation(consultation_id)
            raise InvalidStatusTransitionError(
                f"Cannot cancel a consultation that is {consultation.status}"
            )

        consultation = await self.get_consultation(consultation_id)
        await append_event(
            self.session,
            consultation_id,
            ConsultationEventType.CANCELLED,
            {"reason": reason},
        )
        self.session.add(
            build_staff_notification(
                StaffNotificationType.CONSULTATION_CANCELLED,
                title="Consultation cancelled",
                message=(
                    f"Consultation for {consultation.patient_name} ({consultation.specialty}) "
                    f"was cancelled: {reason or 'no reason given'}"
                ),
                consultation_id=consultation_id,
            )
        )
        await self.session.commit()

        logger.info(
            f"Consultation {consultation_id[:8]} cancelled",
            extra={"consultation_id": consultation_id},
        )
        return await self.get_consultation(consultation_id)

    async def list_events(
        self,
        consultation_id: str,
        after_sequence: int = 0,
        limit: int = 100,
    ) -> Sequence[ConsultationEvent]:
        """Change-feed entries after a sequence number."""
        await self.get_consultation(consultation_id)
        return await list_events(self.session, consultation_id, after_sequence, limit)
