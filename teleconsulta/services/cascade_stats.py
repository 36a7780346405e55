"""Cascade statistics over notification history.

Read-only. Rates are percentages of all notifications in the window;
the average response time only counts rows with a recorded time.
"""

from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.models.cascade import CascadeNotification, NotificationResponse
from teleconsulta.utils.time import as_utc, format_seconds


@dataclass
class RoundStats:
    """Counters for one round number."""
    notified: int = 0
    accepted: int = 0
    rejected: int = 0
    expired: int = 0


@dataclass
class CascadeStats:
    """Aggregate cascade report."""
    total_notifications: int = 0
    total_accepted: int = 0
    total_rejected: int = 0
    total_expired: int = 0
    total_pending: int = 0
    acceptance_rate: float = 0.0
    rejection_rate: float = 0.0
    average_response_time: float = 0.0
    average_response_time_formatted: str = "0s"
    by_round: dict[int, RoundStats] = field(default_factory=dict)


class CascadeStatsService:
    """Service for cascade reporting."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _apply_window(self, query, start: datetime | None, end: datetime | None):
        if start is not None:
            query = query.where(CascadeNotification.notified_at >= as_utc(start))
        if end is not None:
            query = query.where(CascadeNotification.notified_at <= as_utc(end))
        return query

    async def get_cascade_stats(
        self,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> CascadeStats:
        """Compute cascade statistics, optionally within a notified_at window."""
        counts_query = self._apply_window(
            select(
                CascadeNotification.round_number,
                CascadeNotification.response,
                func.count(CascadeNotification.id),
            ).group_by(CascadeNotification.round_number, CascadeNotification.response),
            start,
            end,
        )
        result = await self.session.execute(counts_query)

        stats = CascadeStats()
        for round_number, response, count in result.all():
            round_stats = stats.by_round.setdefault(round_number, RoundStats())
            round_stats.notified += count
            stats.total_notifications += count

            if response == NotificationResponse.ACCEPTED.value:
                round_stats.accepted += count
                stats.total_accepted += count
            elif response == NotificationResponse.REJECTED.value:
                round_stats.rejected += count
                stats.total_rejected += count
            elif response == NotificationResponse.EXPIRED.value:
                round_stats.expired += count
                stats.total_expired += count
            else:
                stats.total_pending += count

        stats.by_round = dict(sorted(stats.by_round.items()))

        if stats.total_notifications > 0:
            stats.acceptance_rate = round(
                stats.total_accepted / stats.total_notifications * 100, 2
            )
            stats.rejection_rate = round(
                stats.total_rejected / stats.total_notifications * 100, 2
            )

        avg_query = self._apply_window(
            select(func.avg(CascadeNotification.response_time_seconds)).where(
                CascadeNotification.response_time_seconds.is_not(None)
            ),
            start,
            end,
        )
        average = (await self.session.execute(avg_query)).scalar_one_or_none()
        if average is not None:
            stats.average_response_time = round(float(average), 2)
        stats.average_response_time_formatted = format_seconds(stats.average_response_time)

        return stats
