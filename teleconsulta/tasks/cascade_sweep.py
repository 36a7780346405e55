"""Scheduled task that keeps cascades moving server-side.

Each pass expires overdue offers, advances consultations whose round
timed out and marks exhausted ones unattended. Expiry never depends on
a doctor's browser staying open.

Usage:
    # Single pass (e.g. from cron every minute)
    python -m teleconsulta.tasks.cascade_sweep --once

    # Long-running loop at CASCADE_SWEEP_INTERVAL_SECONDS
    python -m teleconsulta.tasks.cascade_sweep

    # Environment variables:
    DATABASE_URL - database connection string
    CASCADE_SWEEP_INTERVAL_SECONDS - loop interval (default 30)
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import asdict

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from teleconsulta.core.config import settings
from teleconsulta.core.logging import setup_logging
from teleconsulta.services.cascade import CascadeService, SweepSummary
from teleconsulta.services.notifications import NotificationSink

logger = logging.getLogger(__name__)


async def run_sweep_once(
    session_factory: async_sessionmaker[AsyncSession],
    sink: NotificationSink | None = None,
) -> SweepSummary:
    """Run one sweep pass in a fresh session."""
    async with session_factory() as session:
        service = CascadeService(session, sink=sink)
        return await service.sweep()


async def run_cascade_sweep_task(
    database_url: str | None = None,
    once: bool = False,
    interval_seconds: int | None = None,
) -> dict:
    """Run the sweeper.

    Args:
        database_url: Database connection string. Defaults to settings.database_url.
        once: Run a single pass and return
        interval_seconds: Pause between passes in loop mode

    Returns:
        Summary of the last pass
    """
    db_url = database_url or settings.database_url
    if db_url.startswith("postgresql://"):
        db_url = db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    interval = interval_seconds or settings.cascade_sweep_interval_seconds

    engine = create_async_engine(db_url, echo=False, pool_pre_ping=True)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    logger.info(f"Starting cascade sweeper ({'single pass' if once else f'every {interval}s'})")
    try:
        while True:
            summary = await run_sweep_once(session_factory)
            if once:
                return asdict(summary)
            await asyncio.sleep(interval)
    finally:
        await engine.dispose()


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Expire overdue offers and advance cascade rounds")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single pass and exit",
    )
    parser.add_argument(
        "--interval",
        type=int,
        default=None,
        help="Seconds between passes in loop mode",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL (overrides DATABASE_URL env var)",
    )
    args = parser.parse_args()

    setup_logging()
    try:
        results = asyncio.run(
            run_cascade_sweep_task(
                database_url=args.database_url,
                once=args.once,
                interval_seconds=args.interval,
            )
        )
        print(f"Sweep completed successfully: {results}")
        sys.exit(0)
    except KeyboardInterrupt:
        logger.info("Cascade sweeper stopped")
        sys.exit(0)
    except Exception as e:
        logger.exception(f"Sweep failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
