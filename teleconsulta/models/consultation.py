"""Consultation request and change-feed models."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from teleconsulta.db.base import Base, TimestampMixin


class ConsultationStatus(str, Enum):
    """Lifecycle status of a consultation request."""

    PENDING = "pending"  # Waiting for a doctor to accept
    ASSIGNED = "assigned"  # A doctor accepted, not started yet
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    UNATTENDED = "unattended"  # Rounds exhausted without acceptance
    CANCELLED = "cancelled"


# A doctor holding one of these is not offered anything else
ACTIVE_STATUSES = (ConsultationStatus.ASSIGNED, ConsultationStatus.IN_PROGRESS)


class Urgency(str, Enum):
    """Urgency as chosen by the attendant at intake."""

    BAIXA = "baixa"
    NORMAL = "normal"
    ALTA = "alta"
    URGENTE = "urgente"


class ConsultationType(str, Enum):
    """Kind of service the patient asked for."""

    TELECONSULTA = "teleconsulta"
    RENOVACAO_RECEITA = "renovacao_receita"


class ConsultationRequest(Base, TimestampMixin):
    """A patient's request for a consultation.

    assigned_doctor_id is written exactly once, by a conditional update
    that only matches while it is still NULL.
    """

    __tablename__ = "consultation_requests"

    # Patient identity as captured by the attendant
    patient_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    patient_phone: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )
    patient_email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    patient_cpf: Mapped[str | None] = mapped_column(
        String(14),
        nullable=True,
    )

    specialty: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )
    urgency: Mapped[Urgency] = mapped_column(
        String(20),
        default=Urgency.NORMAL,
        nullable=False,
    )
    consultation_type: Mapped[ConsultationType] = mapped_column(
        String(30),
        default=ConsultationType.TELECONSULTA,
        nullable=False,
    )
    description: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    status: Mapped[ConsultationStatus] = mapped_column(
        String(20),
        default=ConsultationStatus.PENDING,
        nullable=False,
        index=True,
    )

    # Cascade progress
    cascade_round: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    cascade_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Assignment (set once)
    assigned_doctor_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("doctors.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    assigned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    cancellation_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Last sequence number handed out to the change feed
    event_sequence: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ConsultationRequest {self.id} {self.status}>"


class ConsultationEventType(str, Enum):
    """Kinds of state change published on the change feed."""

    CREATED = "consultation_created"
    ROUND_STARTED = "round_started"
    ROUND_SKIPPED = "round_skipped"
    NOTIFICATION_REJECTED = "notification_rejected"
    NOTIFICATION_EXPIRED = "notification_expired"
    ASSIGNED = "consultation_assigned"
    UNATTENDED = "consultation_unattended"
    STARTED = "consultation_started"
    COMPLETED = "consultation_completed"
    CANCELLED = "consultation_cancelled"


class ConsultationEvent(Base, TimestampMixin):
    """Append-only change-feed entry for one consultation.

    sequence is strictly increasing per consultation; observers poll with
    the last sequence they saw.
    """

    __tablename__ = "consultation_events"
    __table_args__ = (
        UniqueConstraint("consultation_id", "sequence", name="uq_consultation_events_sequence"),
    )

    consultation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("consultation_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    event_type: Mapped[ConsultationEventType] = mapped_column(
        String(50),
        nullable=False,
    )
    payload: Mapped[dict | None] = mapped_column(
        JSON,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ConsultationEvent {self.consultation_id}#{self.sequence} {self.event_type}>"
