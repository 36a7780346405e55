"""Tests for cascade behaviour when storage or delivery misbehaves."""

import asyncio
import random
from datetime import timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import BASE_TIME, FakeClock, make_consultation
from teleconsulta.core.config import settings
from teleconsulta.models.cascade import CascadeSettings, NotificationChannel
from teleconsulta.models.doctor import Doctor
from teleconsulta.services.cascade import CascadeService
from teleconsulta.services.notifications import CascadeOffer, NotificationSink


class HangingSink(NotificationSink):
    """Sink whose provider never answers."""

    def __init__(self):
        self.calls = 0

    async def notify(self, offer: CascadeOffer, channel: NotificationChannel) -> None:
        self.calls += 1
        await asyncio.sleep(3600)


def _storage_error() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("connection lost"))


class TestStorageErrors:
    """Storage errors become failure results after a rollback."""

    async def test_accept_storage_error(self) -> None:
        """A failing database yields a failed accept, not an exception."""
        mock_session = AsyncMock()
        mock_session.execute = AsyncMock(side_effect=_storage_error())

        service = CascadeService(mock_session, clock=FakeClock())
        result = await service.accept_consultation("consultation-id", "doctor-id")

        assert result.success is False
        assert result.message.startswith("Error accepting consultation")
        mock_session.rollback.assert_awaited()

    async def test_reject_storage_error(self) -> None:
        """Same for declines."""
        mock_session = AsyncMock()
        mock_session.execute = AsyncMock(side_effect=_storage_error())

        service = CascadeService(mock_session, clock=FakeClock())
        result = await service.reject_consultation("consultation-id", "doctor-id", "motivo")

        assert result.success is False
        assert result.message.startswith("Error rejecting consultation")
        mock_session.rollback.assert_awaited()

    async def test_start_storage_error(self) -> None:
        """A failing round start reports the error."""
        mock_session = AsyncMock()
        mock_session.execute = AsyncMock(side_effect=_storage_error())

        service = CascadeService(mock_session, clock=FakeClock())
        result = await service.start_cascade("consultation-id")

        assert result.success is False
        assert "connection lost" in result.error
        mock_session.rollback.assert_awaited()


class TestDeliveryTimeout:
    """A hanging provider never blocks the cascade."""

    async def test_hanging_sink_is_cut_off(
        self,
        async_session: AsyncSession,
        cascade_settings: CascadeSettings,
        cardiologists: list[Doctor],
    ) -> None:
        """Dispatch gives up after the configured timeout and the round stands."""
        sink = HangingSink()
        service = CascadeService(
            async_session, sink=sink, clock=FakeClock(), rng=random.Random(0)
        )
        consultation = await make_consultation(async_session)

        with patch.object(settings, "notification_dispatch_timeout_seconds", 0.05):
            result = await asyncio.wait_for(service.start_cascade(consultation.id), timeout=10)

        assert result.success is True
        assert sink.calls == 4

        history = await service.get_cascade_history(consultation.id)
        assert len(history) == 2
        assert all(
            entry.response_deadline == BASE_TIME + timedelta(minutes=5) for entry in history
        )
