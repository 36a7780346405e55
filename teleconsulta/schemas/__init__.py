"""Pydantic schemas for request/response validation."""

from teleconsulta.schemas.cascade import (
    AcceptRequest,
    ActionResultRead,
    CascadeNotificationRead,
    CascadeResultRead,
    CascadeSettingsRead,
    CascadeSettingsUpdate,
    CascadeStateRead,
    CascadeStatsRead,
    PendingCallRead,
    RejectRequest,
    RoundStatsRead,
    SweepResultRead,
)
from teleconsulta.schemas.consultation import (
    ConsultationCancel,
    ConsultationCreate,
    ConsultationEventRead,
    ConsultationList,
    ConsultationRead,
    DoctorAction,
)
from teleconsulta.schemas.doctor import AvailabilityUpdate, DoctorCreate, DoctorList, DoctorRead

__all__ = [
    "DoctorCreate",
    "DoctorRead",
    "DoctorList",
    "AvailabilityUpdate",
    "ConsultationCreate",
    "ConsultationRead",
    "ConsultationList",
    "ConsultationCancel",
    "ConsultationEventRead",
    "DoctorAction",
    "CascadeResultRead",
    "ActionResultRead",
    "AcceptRequest",
    "RejectRequest",
    "CascadeNotificationRead",
    "CascadeStateRead",
    "PendingCallRead",
    "CascadeSettingsRead",
    "CascadeSettingsUpdate",
    "CascadeStatsRead",
    "RoundStatsRead",
    "SweepResultRead",
]
