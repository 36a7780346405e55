"""Staff notification endpoints for the operations dashboard."""

from fastapi import APIRouter, HTTPException, Query, status

from teleconsulta.api.deps import DbSession
from teleconsulta.schemas.staff_notification import StaffNotificationList, StaffNotificationRead
from teleconsulta.services.staff_notifications import (
    StaffNotificationNotFoundError,
    StaffNotificationService,
)

router = APIRouter()


@router.get("", response_model=StaffNotificationList)
async def list_staff_notifications(
    session: DbSession,
    unread_only: bool = False,
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
) -> StaffNotificationList:
    """List notices, newest first."""
    service = StaffNotificationService(session)
    notifications, total = await service.list_notifications(
        unread_only=unread_only,
        offset=offset,
        limit=limit,
    )
    return StaffNotificationList(
        items=[StaffNotificationRead.model_validate(n) for n in notifications],
        total=total,
        offset=offset,
        limit=limit,
    )


@router.post("/{notification_id}/read", response_model=StaffNotificationRead)
async def mark_staff_notification_read(
    notification_id: str,
    session: DbSession,
) -> StaffNotificationRead:
    """Mark a notice as read."""
    service = StaffNotificationService(session)
    try:
        notification = await service.mark_read(notification_id)
    except StaffNotificationNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Staff notification not found",
        )
    return StaffNotificationRead.model_validate(notification)
