"""FastAPI dependency injection utilities."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.db.session import get_db
from teleconsulta.services.cascade import CascadeService
from teleconsulta.services.notifications import ChannelNotificationSink, NotificationSink

_default_sink = ChannelNotificationSink()


def get_notification_sink() -> NotificationSink:
    """Sink used for cascade offers. Overridden in tests."""
    return _default_sink


async def get_cascade_service(
    session: Annotated[AsyncSession, Depends(get_db)],
    sink: Annotated[NotificationSink, Depends(get_notification_sink)],
) -> CascadeService:
    """Build a cascade service bound to the request's session."""
    return CascadeService(session, sink=sink)


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db)]
CascadeServiceDep = Annotated[CascadeService, Depends(get_cascade_service)]
