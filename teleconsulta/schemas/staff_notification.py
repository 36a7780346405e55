"""Staff notification schemas."""

from datetime import datetime

from pydantic import BaseModel

from teleconsulta.models.staff_notification import StaffNotificationType


class StaffNotificationRead(BaseModel):
    """Schema for reading a staff notice."""

    id: str
    title: str
    message: str
    notification_type: StaffNotificationType
    consultation_id: str | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    model_config = {"from_attributes": True}


class StaffNotificationList(BaseModel):
    """Paginated staff notices."""

    items: list[StaffNotificationRead]
    total: int
    offset: int
    limit: int
