"""Doctor roster schemas."""

from datetime import datetime

from pydantic import BaseModel, EmailStr, Field

from teleconsulta.models.doctor import DoctorStatus


class DoctorCreate(BaseModel):
    """Schema for registering a doctor (starts as pending)."""

    full_name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    crm: str = Field(..., min_length=1, max_length=30)
    specialty: str = Field(..., min_length=1, max_length=100)
    phone: str | None = Field(None, max_length=30)
    whatsapp: str | None = Field(None, max_length=30)
    rating: float | None = Field(None, ge=0, le=5)


class AvailabilityUpdate(BaseModel):
    """Schema for a doctor toggling availability."""

    is_available: bool


class DoctorRead(BaseModel):
    """Schema for reading doctor data."""

    id: str
    full_name: str
    email: str
    crm: str
    specialty: str
    phone: str | None
    whatsapp: str | None
    status: DoctorStatus
    is_available: bool
    rating: float | None
    created_at: datetime
    updated_at: datetime | None

    model_config = {"from_attributes": True}


class DoctorList(BaseModel):
    """Paginated doctor listing."""

    items: list[DoctorRead]
    total: int
    offset: int
    limit: int
