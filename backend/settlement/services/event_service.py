"""
Event service: creation and lookup.

Events scope every ledger (tiers, charts, staff, credits). The organizer
recorded here is the owner checked by every organizer operation.
"""

from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.exceptions import NotAuthorized, NotFound
from settlement.core.logging import get_logger
from settlement.core.security import Caller
from settlement.models.event import Event
from settlement.schemas.event import EventCreate
from settlement.services.unit_of_work import unit_of_work

logger = get_logger(__name__)


async def create_event(db: AsyncSession, caller: Caller, event_data: EventCreate) -> Event:
    """Create an event owned by the caller."""
    if caller.user_id is None:
        raise NotAuthorized("create events")

    async with unit_of_work(db):
        event = Event(
            title=event_data.title,
            organizer_id=caller.user_id,
            starts_at=event_data.starts_at,
            event_type=event_data.event_type.value,
            payment_model=event_data.payment_model.value,
        )
        db.add(event)
        await db.flush()

    logger.info(
        "event_created",
        event_id=event.id,
        organizer_id=event.organizer_id,
        payment_model=event.payment_model,
    )
    return event


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Get a single event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise NotFound("Event", event_id)
    return event


async def list_events(
    db: AsyncSession,
    organizer_id: Optional[int] = None,
    page: int = 1,
    page_size: int = 20,
) -> tuple[list[Event], int]:
    """
    List events with pagination, optionally for one organizer.
    Uses the ix_events_organizer_id index when filtering by organizer.
    """
    query = select(Event)

    if organizer_id is not None:
        query = query.where(Event.organizer_id == organizer_id)

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar()

    events_query = (
        query
        .order_by(Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    result = await db.execute(events_query)
    events = list(result.scalars().all())

    return events, total
