"""Cascade API endpoints.

Round control, doctor responses, observer views, settings and stats.
Accept/reject/start return structured results (HTTP 200) even when the
action did not succeed; the body says why.
"""

from dataclasses import asdict
from datetime import datetime

from fastapi import APIRouter, HTTPException, Query, status

from teleconsulta.api.deps import CascadeServiceDep, DbSession
from teleconsulta.schemas.cascade import (
    AcceptRequest,
    ActionResultRead,
    CascadeNotificationRead,
    CascadeResultRead,
    CascadeSettingsRead,
    CascadeSettingsUpdate,
    CascadeStateRead,
    CascadeStatsRead,
    RejectRequest,
    SweepResultRead,
)
from teleconsulta.schemas.consultation import ConsultationRead
from teleconsulta.services.cascade_settings import CascadeSettingsService
from teleconsulta.services.cascade_stats import CascadeStatsService

router = APIRouter()


# ============================================================================
# Round control and responses
# ============================================================================


@router.post("/consultations/{consultation_id}/start", response_model=CascadeResultRead)
async def start_cascade(
    consultation_id: str,
    cascade: CascadeServiceDep,
) -> CascadeResultRead:
    """Start the next round for a pending consultation."""
    result = await cascade.start_cascade(consultation_id)
    return CascadeResultRead(**asdict(result))


@router.post("/consultations/{consultation_id}/accept", response_model=ActionResultRead)
async def accept_consultation(
    consultation_id: str,
    data: AcceptRequest,
    cascade: CascadeServiceDep,
) -> ActionResultRead:
    """A notified doctor accepts the consultation."""
    result = await cascade.accept_consultation(consultation_id, data.doctor_id)
    return ActionResultRead(**asdict(result))


@router.post("/consultations/{consultation_id}/reject", response_model=ActionResultRead)
async def reject_consultation(
    consultation_id: str,
    data: RejectRequest,
    cascade: CascadeServiceDep,
) -> ActionResultRead:
    """A notified doctor declines the consultation."""
    result = await cascade.reject_consultation(consultation_id, data.doctor_id, data.reason)
    return ActionResultRead(**asdict(result))


@router.post(
    "/consultations/{consultation_id}/check-next-round",
    response_model=CascadeResultRead | None,
)
async def check_next_round(
    consultation_id: str,
    cascade: CascadeServiceDep,
) -> CascadeResultRead | None:
    """Advance the cascade if the current round has timed out; null otherwise."""
    result = await cascade.check_and_start_next_round(consultation_id)
    if result is None:
        return None
    return CascadeResultRead(**asdict(result))


@router.post("/sweep", response_model=SweepResultRead)
async def run_sweep(cascade: CascadeServiceDep) -> SweepResultRead:
    """Run one sweeper pass now."""
    summary = await cascade.sweep()
    return SweepResultRead(**asdict(summary))


# ============================================================================
# Observers
# ============================================================================


@router.get(
    "/consultations/{consultation_id}/history",
    response_model=list[CascadeNotificationRead],
)
async def get_cascade_history(
    consultation_id: str,
    cascade: CascadeServiceDep,
) -> list[CascadeNotificationRead]:
    """All offers for a consultation, by round."""
    history = await cascade.get_cascade_history(consultation_id)
    return [CascadeNotificationRead.model_validate(entry) for entry in history]


@router.get("/consultations/{consultation_id}/state", response_model=CascadeStateRead)
async def get_cascade_state(
    consultation_id: str,
    cascade: CascadeServiceDep,
) -> CascadeStateRead:
    """Cascade status, current round and history."""
    state = await cascade.get_cascade_state(consultation_id)
    if state is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Consultation not found",
        )
    return CascadeStateRead(
        consultation_id=state.consultation_id,
        status=state.status,
        current_round=state.current_round,
        history=[CascadeNotificationRead.model_validate(e) for e in state.history],
    )


@router.get("/active", response_model=list[ConsultationRead])
async def list_active_cascades(cascade: CascadeServiceDep) -> list[ConsultationRead]:
    """Pending consultations with a running cascade."""
    consultations = await cascade.list_active_cascades()
    return [ConsultationRead.model_validate(c) for c in consultations]


# ============================================================================
# Settings and statistics
# ============================================================================


@router.get("/settings", response_model=CascadeSettingsRead)
async def get_cascade_settings(session: DbSession) -> CascadeSettingsRead:
    """Current cascade configuration."""
    current = await CascadeSettingsService(session).get_settings()
    return CascadeSettingsRead.model_validate(current)


@router.patch("/settings", response_model=CascadeSettingsRead)
async def update_cascade_settings(
    data: CascadeSettingsUpdate,
    session: DbSession,
) -> CascadeSettingsRead:
    """Partially update the cascade configuration (applies from the next round decision)."""
    updated = await CascadeSettingsService(session).update_settings(data)
    return CascadeSettingsRead.model_validate(updated)


@router.get("/stats", response_model=CascadeStatsRead)
async def get_cascade_stats(
    session: DbSession,
    start: datetime | None = Query(None, description="Only offers notified at or after"),
    end: datetime | None = Query(None, description="Only offers notified at or before"),
) -> CascadeStatsRead:
    """Acceptance, rejection and response-time statistics."""
    stats = await CascadeStatsService(session).get_cascade_stats(start=start, end=end)
    return CascadeStatsRead(**asdict(stats))
