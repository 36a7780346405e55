"""Cascade settings: a single admin-editable row seeded from configuration."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.core.config import settings as app_settings
from teleconsulta.fixtures.message_templates import DEFAULT_WHATSAPP_TEMPLATE
from teleconsulta.models.cascade import (
    CASCADE_SETTINGS_ID,
    CascadeSettings,
    PrioritizationStrategy,
)
from teleconsulta.schemas.cascade import CascadeSettingsUpdate

logger = logging.getLogger(__name__)


def default_cascade_settings() -> CascadeSettings:
    """Build the settings row from application configuration."""
    return CascadeSettings(
        id=CASCADE_SETTINGS_ID,
        timeout_per_round_minutes=app_settings.cascade_timeout_per_round_minutes,
        max_rounds=app_settings.cascade_max_rounds,
        doctors_per_round=app_settings.cascade_doctors_per_round,
        prioritize_by=PrioritizationStrategy(app_settings.cascade_prioritize_by),
        enable_whatsapp=app_settings.cascade_enable_whatsapp,
        enable_email=app_settings.cascade_enable_email,
        enable_push=app_settings.cascade_enable_push,
        whatsapp_template=DEFAULT_WHATSAPP_TEMPLATE,
        renotify_cooldown_rounds=None,
        auto_start_on_create=app_settings.cascade_auto_start_on_create,
    )


class CascadeSettingsService:
    """Service for reading and updating the cascade configuration."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _select(self) -> CascadeSettings | None:
        result = await self.session.execute(
            select(CascadeSettings)
            .where(CascadeSettings.id == CASCADE_SETTINGS_ID)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_settings(self) -> CascadeSettings:
        """Return the current settings, creating the row on first use.

        Always re-reads the row so edits made by another process are
        seen by the next round decision.
        """
        current = await self._select()
        if current is not None:
            return current

        self.session.add(default_cascade_settings())
        try:
            await self.session.commit()
        except IntegrityError:
            # Another process created it first
            await self.session.rollback()
        else:
            logger.info("Cascade settings initialised from configuration defaults")

        current = await self._select()
        if current is None:
            raise RuntimeError("Cascade settings row could not be created")
        return current

    async def update_settings(self, data: CascadeSettingsUpdate) -> CascadeSettings:
        """Apply a validated partial update."""
        current = await self.get_settings()

        changes = data.model_dump(exclude_unset=True)
        for key, value in changes.items():
            setattr(current, key, value)

        await self.session.commit()
        await self.session.refresh(current)

        logger.info(f"Cascade settings updated: {sorted(changes)}")
        return current
