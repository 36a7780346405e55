"""Database initialization utilities."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.db.base import Base
from teleconsulta.db.session import engine
from teleconsulta.models.cascade import CascadeSettings
from teleconsulta.services.cascade_settings import CascadeSettingsService

# Register every model on Base.metadata
import teleconsulta.models  # noqa: F401

logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def ensure_cascade_settings(session: AsyncSession) -> CascadeSettings:
    """Create the cascade settings row from configuration if missing."""
    return await CascadeSettingsService(session).get_settings()


async def init_db(session: AsyncSession) -> None:
    """Initialize database with required data.

    Args:
        session: Database session
    """
    await ensure_cascade_settings(session)
    logger.info("Database initialization complete")
