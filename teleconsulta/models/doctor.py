"""Doctor roster model."""

from enum import Enum

from sqlalchemy import Boolean, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from teleconsulta.db.base import Base, SoftDeleteMixin, TimestampMixin


class DoctorStatus(str, Enum):
    """Roster approval status of a doctor."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Doctor(Base, TimestampMixin, SoftDeleteMixin):
    """A doctor who can be offered consultations.

    Only approved, available doctors take part in the cascade.
    Registration order (created_at) is the default tie-break between
    otherwise equal candidates.
    """

    __tablename__ = "doctors"

    full_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    phone: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )
    # WhatsApp number, when it differs from the main phone
    whatsapp: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )
    # Regional medical council registration (CRM)
    crm: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
    )
    specialty: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    status: Mapped[DoctorStatus] = mapped_column(
        String(20),
        default=DoctorStatus.PENDING,
        nullable=False,
        index=True,
    )
    is_available: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    rating: Mapped[float | None] = mapped_column(
        Float,
        nullable=True,
    )

    @property
    def whatsapp_number(self) -> str | None:
        """Number used for WhatsApp offers."""
        return self.whatsapp or self.phone

    def __repr__(self) -> str:
        return f"<Doctor {self.full_name} ({self.specialty})>"
