"""Business logic services."""

from teleconsulta.services.cascade import ActionResult, CascadeResult, CascadeService
from teleconsulta.services.cascade_settings import CascadeSettingsService
from teleconsulta.services.cascade_stats import CascadeStatsService
from teleconsulta.services.consultations import ConsultationService
from teleconsulta.services.doctor_registry import DoctorRegistryService
from teleconsulta.services.notifications import (
    CascadeOffer,
    ChannelNotificationSink,
    NotificationSink,
)
from teleconsulta.services.staff_notifications import StaffNotificationService

__all__ = [
    "CascadeService",
    "CascadeResult",
    "ActionResult",
    "CascadeSettingsService",
    "CascadeStatsService",
    "ConsultationService",
    "DoctorRegistryService",
    "NotificationSink",
    "ChannelNotificationSink",
    "CascadeOffer",
    "StaffNotificationService",
]
