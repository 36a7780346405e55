"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from teleconsulta.api.v1 import (
    cascade,
    consultations,
    doctors,
    health,
    staff_notifications,
)

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Doctor roster
api_router.include_router(
    doctors.router,
    prefix="/doctors",
    tags=["doctors"],
)

# Consultation intake and lifecycle
api_router.include_router(
    consultations.router,
    prefix="/consultations",
    tags=["consultations"],
)

# Assignment cascade
api_router.include_router(
    cascade.router,
    prefix="/cascade",
    tags=["cascade"],
)

# Operations dashboard notices
api_router.include_router(
    staff_notifications.router,
    prefix="/staff-notifications",
    tags=["staff-notifications"],
)
