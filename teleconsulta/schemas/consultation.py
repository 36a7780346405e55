"""Consultation request schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from teleconsulta.models.consultation import (
    ConsultationEventType,
    ConsultationStatus,
    ConsultationType,
    Urgency,
)


class ConsultationCreate(BaseModel):
    """Schema for an attendant opening a consultation request."""

    patient_name: str = Field(..., min_length=1, max_length=200)
    patient_phone: str | None = Field(None, max_length=30)
    patient_email: EmailStr | None = None
    patient_cpf: str | None = Field(None, max_length=14)
    specialty: str = Field(..., min_length=1, max_length=100)
    urgency: Urgency = Urgency.NORMAL
    consultation_type: ConsultationType = ConsultationType.TELECONSULTA
    description: str | None = Field(None, max_length=5000)


class ConsultationCancel(BaseModel):
    """Schema for cancelling a consultation."""

    reason: str | None = Field(None, max_length=2000)


class DoctorAction(BaseModel):
    """Body for actions a doctor takes on their own consultation."""

    doctor_id: str


class ConsultationRead(BaseModel):
    """Schema for reading consultation data."""

    id: str
    patient_name: str
    patient_phone: str | None
    patient_email: str | None
    specialty: str
    urgency: Urgency
    consultation_type: ConsultationType
    description: str | None
    status: ConsultationStatus
    cascade_round: int
    cascade_started_at: datetime | None
    assigned_doctor_id: str | None
    assigned_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    created_at: datetime
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class ConsultationList(BaseModel):
    """Paginated consultation listing."""

    items: list[ConsultationRead]
    total: int
    offset: int
    limit: int


class ConsultationEventRead(BaseModel):
    """One change-feed entry."""

    id: str
    consultation_id: str
    sequence: int
    event_type: ConsultationEventType
    payload: dict | None
    created_at: datetime

    model_config = {"from_attributes": True}
