"""Cascade models: per-round doctor notifications and the settings row."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from teleconsulta.db.base import Base, TimestampMixin

if TYPE_CHECKING:
    from teleconsulta.models.doctor import Doctor


class NotificationResponse(str, Enum):
    """A doctor's answer to an offer. Only pending may change."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class NotificationChannel(str, Enum):
    """Outbound channel used to reach a doctor."""

    WHATSAPP = "whatsapp"
    EMAIL = "email"
    PUSH = "push"
    SMS = "sms"


class PrioritizationStrategy(str, Enum):
    """How candidates are ordered inside a round."""

    AVAILABILITY = "availability"
    RATING = "rating"
    RESPONSE_TIME = "response_time"
    SPECIALTY_MATCH = "specialty_match"
    RANDOM = "random"


class CascadeNotification(Base):
    """One offer of a consultation to one doctor in one round."""

    __tablename__ = "cascade_notifications"
    __table_args__ = (
        UniqueConstraint(
            "consultation_id",
            "doctor_id",
            "round_number",
            name="uq_cascade_notifications_offer",
        ),
    )

    consultation_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("consultation_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    doctor_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("doctors.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    round_number: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )
    # Primary channel at the time of the offer
    channel: Mapped[NotificationChannel] = mapped_column(
        String(20),
        default=NotificationChannel.PUSH,
        nullable=False,
    )
    notified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )
    response_deadline: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    response: Mapped[NotificationResponse] = mapped_column(
        String(20),
        default=NotificationResponse.PENDING,
        nullable=False,
        index=True,
    )
    responded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    response_time_seconds: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    rejection_reason: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Relationships
    doctor: Mapped["Doctor"] = relationship("Doctor", lazy="joined")

    def __repr__(self) -> str:
        return (
            f"<CascadeNotification {self.consultation_id} r{self.round_number} "
            f"doctor={self.doctor_id} {self.response}>"
        )


# The settings table holds exactly one row under this key
CASCADE_SETTINGS_ID = "ca5cade0-5e77-4000-8000-000000000001"


class CascadeSettings(Base, TimestampMixin):
    """Process-wide cascade configuration, editable by admins.

    Read fresh at every round decision; edits apply from the next
    decision onwards.
    """

    __tablename__ = "cascade_settings"

    timeout_per_round_minutes: Mapped[int] = mapped_column(
        Integer,
        default=5,
        nullable=False,
    )
    max_rounds: Mapped[int] = mapped_column(
        Integer,
        default=3,
        nullable=False,
    )
    doctors_per_round: Mapped[int] = mapped_column(
        Integer,
        default=3,
        nullable=False,
    )
    prioritize_by: Mapped[PrioritizationStrategy] = mapped_column(
        String(30),
        default=PrioritizationStrategy.AVAILABILITY,
        nullable=False,
    )
    enable_whatsapp: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    enable_email: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    enable_push: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    whatsapp_template: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    # Rounds a doctor sits out before the same consultation may be offered
    # to them again. NULL: never re-offered.
    renotify_cooldown_rounds: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    auto_start_on_create: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    @property
    def timeout_seconds(self) -> int:
        return self.timeout_per_round_minutes * 60

    def enabled_channels(self) -> list[NotificationChannel]:
        """Enabled channels in dispatch priority order."""
        channels = []
        if self.enable_whatsapp:
            channels.append(NotificationChannel.WHATSAPP)
        if self.enable_push:
            channels.append(NotificationChannel.PUSH)
        if self.enable_email:
            channels.append(NotificationChannel.EMAIL)
        return channels

    def __repr__(self) -> str:
        return (
            f"<CascadeSettings timeout={self.timeout_per_round_minutes}m "
            f"rounds={self.max_rounds} per_round={self.doctors_per_round}>"
        )
