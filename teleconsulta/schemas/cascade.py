"""Cascade schemas: results, history, settings, statistics."""

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from teleconsulta.models.cascade import (
    NotificationChannel,
    NotificationResponse,
    PrioritizationStrategy,
)
from teleconsulta.schemas.consultation import ConsultationRead


class CascadeResultRead(BaseModel):
    """Outcome of starting a round."""

    success: bool
    consultation_id: str
    doctors_notified: int
    round_number: int
    message: str | None = None
    error: str | None = None

    model_config = {"from_attributes": True}


class ActionResultRead(BaseModel):
    """Outcome of a doctor's accept/reject."""

    success: bool
    message: str

    model_config = {"from_attributes": True}


class AcceptRequest(BaseModel):
    """Doctor accepting an offer."""

    doctor_id: str


class RejectRequest(BaseModel):
    """Doctor declining an offer."""

    doctor_id: str
    reason: str | None = Field(None, max_length=1000)


class CascadeNotificationRead(BaseModel):
    """History row, enriched with the doctor's contact data."""

    id: str
    consultation_id: str
    doctor_id: str
    round_number: int
    channel: NotificationChannel
    notified_at: datetime
    response_deadline: datetime
    response: NotificationResponse
    responded_at: datetime | None
    response_time_seconds: int | None
    rejection_reason: str | None
    doctor_name: str | None = None
    doctor_email: str | None = None
    doctor_crm: str | None = None
    doctor_whatsapp: str | None = None

    model_config = {"from_attributes": True}


class CascadeStateRead(BaseModel):
    """Observer view of a consultation's cascade."""

    consultation_id: str
    status: str
    current_round: int
    history: list[CascadeNotificationRead]


class PendingCallRead(BaseModel):
    """The single offer currently shown to a doctor."""

    notification_id: str
    consultation: ConsultationRead
    round_number: int
    response_deadline: datetime
    seconds_remaining: int
    timeout_seconds: int


class CascadeSettingsRead(BaseModel):
    """Current cascade configuration."""

    timeout_per_round_minutes: int
    max_rounds: int
    doctors_per_round: int
    prioritize_by: PrioritizationStrategy
    enable_whatsapp: bool
    enable_email: bool
    enable_push: bool
    whatsapp_template: str
    renotify_cooldown_rounds: int | None
    auto_start_on_create: bool
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class CascadeSettingsUpdate(BaseModel):
    """Partial update of the cascade configuration.

    Only fields that are explicitly set are applied.
    """

    timeout_per_round_minutes: int | None = Field(None, ge=1, le=24 * 60)
    max_rounds: int | None = Field(None, ge=1, le=50)
    doctors_per_round: int | None = Field(None, ge=1, le=100)
    prioritize_by: PrioritizationStrategy | None = None
    enable_whatsapp: bool | None = None
    enable_email: bool | None = None
    enable_push: bool | None = None
    whatsapp_template: str | None = Field(None, min_length=1, max_length=4000)
    renotify_cooldown_rounds: int | None = Field(None, ge=0)
    auto_start_on_create: bool | None = None

    @model_validator(mode="after")
    def reject_null_for_required_fields(self) -> "CascadeSettingsUpdate":
        # renotify_cooldown_rounds is the only column where null means something
        for name in self.model_fields_set:
            if name != "renotify_cooldown_rounds" and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class RoundStatsRead(BaseModel):
    """Per-round counters."""

    notified: int
    accepted: int
    rejected: int
    expired: int


class CascadeStatsRead(BaseModel):
    """Aggregate report over notification history."""

    total_notifications: int
    total_accepted: int
    total_rejected: int
    total_expired: int
    total_pending: int
    acceptance_rate: float
    rejection_rate: float
    average_response_time: float
    average_response_time_formatted: str
    by_round: dict[int, RoundStatsRead]


class SweepResultRead(BaseModel):
    """Summary of one sweeper pass."""

    consultations_checked: int
    notifications_expired: int
    rounds_started: int
    marked_unattended: int
    errors: int
