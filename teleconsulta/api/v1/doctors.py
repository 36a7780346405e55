"""Doctor roster API endpoints.

Registration, approval, availability and the doctor's incoming-call view.
"""

from fastapi import APIRouter, HTTPException, Query, status

from teleconsulta.api.deps import CascadeServiceDep, DbSession
from teleconsulta.models.doctor import DoctorStatus
from teleconsulta.schemas.cascade import PendingCallRead
from teleconsulta.schemas.consultation import ConsultationRead
from teleconsulta.schemas.doctor import AvailabilityUpdate, DoctorCreate, DoctorList, DoctorRead
from teleconsulta.services.doctor_registry import (
    AvailabilityChangeBlockedError,
    DoctorNotFoundError,
    DoctorRegistryService,
    DuplicateDoctorError,
)

router = APIRouter()


@router.post(
    "",
    response_model=DoctorRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_doctor(
    data: DoctorCreate,
    session: DbSession,
) -> DoctorRead:
    """Register a doctor (pending approval, unavailable)."""
    service = DoctorRegistryService(session)
    try:
        doctor = await service.create_doctor(data)
    except DuplicateDoctorError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return DoctorRead.model_validate(doctor)


@router.get("", response_model=DoctorList)
async def list_doctors(
    session: DbSession,
    status_filter: DoctorStatus | None = Query(None, alias="status"),
    specialty: str | None = None,
    search: str | None = None,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> DoctorList:
    """List doctors with filters and pagination."""
    service = DoctorRegistryService(session)
    doctors, total = await service.list_doctors(
        status=status_filter,
        specialty=specialty,
        search=search,
        offset=offset,
        limit=limit,
    )
    return DoctorList(
        items=[DoctorRead.model_validate(d) for d in doctors],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.get("/{doctor_id}", response_model=DoctorRead)
async def get_doctor(
    doctor_id: str,
    session: DbSession,
) -> DoctorRead:
    """Get a doctor by ID."""
    service = DoctorRegistryService(session)
    try:
        doctor = await service.get_doctor(doctor_id)
    except DoctorNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found",
        )
    return DoctorRead.model_validate(doctor)


@router.delete("/{doctor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_doctor(
    doctor_id: str,
    session: DbSession,
) -> None:
    """Remove a doctor from the roster (soft delete)."""
    service = DoctorRegistryService(session)
    try:
        await service.remove_doctor(doctor_id)
    except DoctorNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found",
        )


@router.post("/{doctor_id}/approve", response_model=DoctorRead)
async def approve_doctor(
    doctor_id: str,
    session: DbSession,
) -> DoctorRead:
    """Approve a doctor's registration."""
    service = DoctorRegistryService(session)
    try:
        doctor = await service.approve_doctor(doctor_id)
    except DoctorNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found",
        )
    return DoctorRead.model_validate(doctor)


@router.post("/{doctor_id}/reject", response_model=DoctorRead)
async def reject_doctor(
    doctor_id: str,
    session: DbSession,
) -> DoctorRead:
    """Reject a doctor's registration."""
    service = DoctorRegistryService(session)
    try:
        doctor = await service.reject_doctor(doctor_id)
    except DoctorNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found",
        )
    return DoctorRead.model_validate(doctor)


@router.patch("/{doctor_id}/availability", response_model=DoctorRead)
async def set_availability(
    doctor_id: str,
    data: AvailabilityUpdate,
    session: DbSession,
) -> DoctorRead:
    """Toggle a doctor's availability."""
    service = DoctorRegistryService(session)
    try:
        doctor = await service.set_availability(doctor_id, data.is_available)
    except DoctorNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Doctor not found",
        )
    except AvailabilityChangeBlockedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return DoctorRead.model_validate(doctor)


@router.get("/{doctor_id}/pending-call", response_model=PendingCallRead | None)
async def get_pending_call(
    doctor_id: str,
    cascade: CascadeServiceDep,
) -> PendingCallRead | None:
    """The offer the doctor should answer now, or null."""
    call = await cascade.get_pending_call(doctor_id)
    if call is None:
        return None

    return PendingCallRead(
        notification_id=call.notification_id,
        consultation=ConsultationRead.model_validate(call.consultation),
        round_number=call.round_number,
        response_deadline=call.response_deadline,
        seconds_remaining=call.seconds_remaining,
        timeout_seconds=call.timeout_seconds,
    )
