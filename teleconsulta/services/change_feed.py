"""Per-consultation change feed.

Events are written in the same transaction as the state change they
describe, so an observer never sees an event for a change that was
rolled back. Observers poll with the last sequence they saw.
"""

from typing import Any, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from teleconsulta.models.consultation import (
    ConsultationEvent,
    ConsultationEventType,
    ConsultationRequest,
)


async def append_event(
    session: AsyncSession,
    consultation_id: str,
    event_type: ConsultationEventType,
    payload: dict[str, Any] | None = None,
) -> ConsultationEvent:
    """Append an event to a consultation's feed without committing.

    The sequence number comes from an atomic increment of the
    consultation's event_sequence, which also serialises concurrent
    writers on the consultation row.

    Args:
        session: Session holding the open transaction
        consultation_id: Consultation the event belongs to
        event_type: What happened
        payload: JSON-serialisable details

    Returns:
        The pending ConsultationEvent
    """
    await session.execute(
        update(ConsultationRequest)
        .where(ConsultationRequest.id == consultation_id)
        .values(event_sequence=ConsultationRequest.event_sequence + 1)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(
        select(ConsultationRequest.event_sequence).where(
            ConsultationRequest.id == consultation_id
        )
    )
    sequence = result.scalar_one()

    event = ConsultationEvent(
        consultation_id=consultation_id,
        sequence=sequence,
        event_type=event_type,
        payload=payload,
    )
    session.add(event)
    return event


async def list_events(
    session: AsyncSession,
    consultation_id: str,
    after_sequence: int = 0,
    limit: int = 100,
) -> Sequence[ConsultationEvent]:
    """List events newer than after_sequence, oldest first."""
    result = await session.execute(
        select(ConsultationEvent)
        .where(
            ConsultationEvent.consultation_id == consultation_id,
            ConsultationEvent.sequence > after_sequence,
        )
        .order_by(ConsultationEvent.sequence)
        .limit(limit)
    )
    return result.scalars().all()
