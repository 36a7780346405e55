"""Database models for the teleconsultation service."""

from teleconsulta.models.cascade import (
    CASCADE_SETTINGS_ID,
    CascadeNotification,
    CascadeSettings,
    NotificationChannel,
    NotificationResponse,
    PrioritizationStrategy,
)
from teleconsulta.models.consultation import (
    ACTIVE_STATUSES,
    ConsultationEvent,
    ConsultationEventType,
    ConsultationRequest,
    ConsultationStatus,
    ConsultationType,
    Urgency,
)
from teleconsulta.models.doctor import Doctor, DoctorStatus
from teleconsulta.models.staff_notification import StaffNotification, StaffNotificationType

__all__ = [
    # Doctor roster
    "Doctor",
    "DoctorStatus",
    # Consultations
    "ConsultationRequest",
    "ConsultationStatus",
    "ConsultationType",
    "Urgency",
    "ACTIVE_STATUSES",
    # Change feed
    "ConsultationEvent",
    "ConsultationEventType",
    # Cascade
    "CascadeNotification",
    "CascadeSettings",
    "CASCADE_SETTINGS_ID",
    "NotificationChannel",
    "NotificationResponse",
    "PrioritizationStrategy",
    # Operations
    "StaffNotification",
    "StaffNotificationType",
]
