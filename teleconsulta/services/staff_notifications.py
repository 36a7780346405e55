"""Operational notices for the attendant/admin dashboard."""

from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.models.staff_notification import StaffNotification, StaffNotificationType
from teleconsulta.utils.time import utc_now


class StaffNotificationNotFoundError(Exception):
    """Raised when a staff notification does not exist."""

    pass


def build_staff_notification(
    notification_type: StaffNotificationType,
    title: str,
    message: str,
    consultation_id: str | None = None,
) -> StaffNotification:
    """Create a notice without adding it to a session.

    Callers add it inside the transaction of the change it reports.
    """
    return StaffNotification(
        title=title,
        message=message,
        notification_type=notification_type,
        consultation_id=consultation_id,
        is_read=False,
    )


class StaffNotificationService:
    """Service for listing and acknowledging staff notices."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_notifications(
        self,
        unread_only: bool = False,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[Sequence[StaffNotification], int]:
        """List notices, newest first, with the total count."""
        query = select(StaffNotification)
        count_query = select(func.count(StaffNotification.id))

        if unread_only:
            query = query.where(StaffNotification.is_read == False)
            count_query = count_query.where(StaffNotification.is_read == False)

        total = (await self.session.execute(count_query)).scalar_one()
        result = await self.session.execute(
            query.order_by(StaffNotification.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return result.scalars().all(), total

    async def mark_read(self, notification_id: str) -> StaffNotification:
        """Mark a notice as read. Marking twice keeps the first read_at."""
        result = await self.session.execute(
            select(StaffNotification).where(StaffNotification.id == notification_id)
        )
        notification = result.scalar_one_or_none()
        if not notification:
            raise StaffNotificationNotFoundError(
                f"Staff notification {notification_id} not found"
            )

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
            await self.session.commit()
            await self.session.refresh(notification)

        return notification
