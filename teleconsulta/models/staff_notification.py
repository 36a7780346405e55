"""Operational notices for attendants and admins."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from teleconsulta.db.base import Base, TimestampMixin


class StaffNotificationType(str, Enum):
    """What happened to the consultation."""

    CONSULTATION_ACCEPTED = "consultation_accepted"
    CONSULTATION_UNATTENDED = "consultation_unattended"
    CONSULTATION_CANCELLED = "consultation_cancelled"


class StaffNotification(Base, TimestampMixin):
    """A notice shown on the operations dashboard."""

    __tablename__ = "staff_notifications"

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )
    message: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    notification_type: Mapped[StaffNotificationType] = mapped_column(
        String(50),
        nullable=False,
    )
    consultation_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("consultation_requests.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<StaffNotification {self.notification_type}>"
