"""Consultation API endpoints.

Attendant intake, the assignee's start/complete actions, cancellation
and the per-consultation change feed.
"""

from dataclasses import asdict

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel

from teleconsulta.api.deps import CascadeServiceDep
from teleconsulta.models.consultation import ConsultationStatus
from teleconsulta.schemas.cascade import CascadeResultRead
from teleconsulta.schemas.consultation import (
    ConsultationCancel,
    ConsultationCreate,
    ConsultationEventRead,
    ConsultationList,
    ConsultationRead,
    DoctorAction,
)
from teleconsulta.services.consultations import (
    ConsultationNotFoundError,
    ConsultationService,
    InvalidStatusTransitionError,
    NotAssignedDoctorError,
)

router = APIRouter()


class ConsultationCreatedResponse(BaseModel):
    """A new consultation and the outcome of its first round, if auto-started."""

    consultation: ConsultationRead
    cascade: CascadeResultRead | None = None


def _not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Consultation not found",
    )


@router.post(
    "",
    response_model=ConsultationCreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_consultation(
    data: ConsultationCreate,
    cascade: CascadeServiceDep,
) -> ConsultationCreatedResponse:
    """Open a consultation request."""
    service = ConsultationService(cascade.session, cascade_service=cascade)
    consultation, cascade_result = await service.create_consultation(data)

    return ConsultationCreatedResponse(
        consultation=ConsultationRead.model_validate(consultation),
        cascade=CascadeResultRead(**asdict(cascade_result)) if cascade_result else None,
    )


@router.get("", response_model=ConsultationList)
async def list_consultations(
    cascade: CascadeServiceDep,
    status_filter: ConsultationStatus | None = Query(None, alias="status"),
    specialty: str | None = None,
    assigned_doctor_id: str | None = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> ConsultationList:
    """List consultations, newest first."""
    service = ConsultationService(cascade.session, cascade_service=cascade)
    consultations, total = await service.list_consultations(
        status=status_filter,
        specialty=specialty,
        assigned_doctor_id=assigned_doctor_id,
        offset=offset,
        limit=limit,
    )
    return ConsultationList(
        items=[ConsultationRead.model_validate(c) for c in consultations],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/{consultation_id}", response_model=ConsultationRead)
async def get_consultation(
    consultation_id: str,
    cascade: CascadeServiceDep,
) -> ConsultationRead:
    """Get a consultation by ID."""
    service = ConsultationService(cascade.session, cascade_service=cascade)
    try:
        consultation = await service.get_consultation(consultation_id)
    except ConsultationNotFoundError:
        raise _not_found()
    return ConsultationRead.model_validate(consultation)


@router.post("/{consultation_id}/start", response_model=ConsultationRead)
async def start_consultation(
    consultation_id: str,
    data: DoctorAction,
    cascade: CascadeServiceDep,
) -> ConsultationRead:
    """The assigned doctor starts the appointment."""
    service = ConsultationService(cascade.session, cascade_service=cascade)
    try:
        consultation = await service.start_consultation(consultation_id, data.doctor_id)
    except ConsultationNotFoundError:
        raise _not_found()
    except NotAssignedDoctorError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return ConsultationRead.model_validate(consultation)


@router.post("/{consultation_id}/complete", response_model=ConsultationRead)
async def complete_consultation(
    consultation_id: str,
    data: DoctorAction,
    cascade: CascadeServiceDep,
) -> ConsultationRead:
    """The assigned doctor finishes the appointment."""
    service = ConsultationService(cascade.session, cascade_service=cascade)
    try:
        consultation = await service.complete_consultation(consultation_id, data.doctor_id)
    except ConsultationNotFoundError:
        raise _not_found()
    except NotAssignedDoctorError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return ConsultationRead.model_validate(consultation)


@router.post("/{consultation_id}/cancel", response_model=ConsultationRead)
async def cancel_consultation(
    consultation_id: str,
    data: ConsultationCancel,
    cascade: CascadeServiceDep,
) -> ConsultationRead:
    """Cancel a pending or assigned consultation."""
    service = ConsultationService(cascade.session, cascade_service=cascade)
    try:
        consultation = await service.cancel_consultation(consultation_id, data.reason)
    except ConsultationNotFoundError:
        raise _not_found()
    except InvalidStatusTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return ConsultationRead.model_validate(consultation)


@router.get("/{consultation_id}/events", response_model=list[ConsultationEventRead])
async def list_consultation_events(
    consultation_id: str,
    cascade: CascadeServiceDep,
    after_sequence: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> list[ConsultationEventRead]:
    """Change-feed entries after `after_sequence`, oldest first."""
    service = ConsultationService(cascade.session, cascade_service=cascade)
    try:
        events = await service.list_events(consultation_id, after_sequence, limit)
    except ConsultationNotFoundError:
        raise _not_found()
    return [ConsultationEventRead.model_validate(e) for e in events]
