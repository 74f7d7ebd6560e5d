"""
One atomic transaction per logical ledger operation.

CONCURRENCY STRATEGY: Entity Locks + Optimistic Locking
========================================================

Problem:
  Completing an order touches several ledgers at once (tier counters,
  seat reservations, bundle counter, staff totals). Two completions that
  overlap on any of them must not both succeed past capacity, and a
  failure halfway must not leave half the effects behind.

Solution:
  1. Work out which entities the operation writes ("tier:4", "chart:2")
  2. Acquire their locks in sorted order (see strategy_factory)
  3. Re-read the rows fresh, run the operation, COMMIT while still holding
     the locks
  4. Any exception rolls the whole transaction back

  Operations on disjoint tiers/seats take disjoint locks and run in
  parallel. The CAS `version` columns, CHECK constraints and the
  reserved-seat unique index stay on underneath as the final safety net;
  a constraint violation that reaches commit is reported as
  ConcurrentModification, never as a raw storage error.

Ledger helpers such as tier_service.increment_sold never commit on their
own: they run inside the unit of work opened by the public operation.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.exceptions import ConcurrentModification, NotFound
from settlement.core.logging import get_logger
from settlement.services.strategy_factory import get_lock_strategy

logger = get_logger(__name__)

ModelT = TypeVar("ModelT")


def tier_key(tier_id: int) -> str:
    return f"tier:{tier_id}"


def chart_key(chart_id: int) -> str:
    return f"chart:{chart_id}"


def bundle_key(bundle_id: int) -> str:
    return f"bundle:{bundle_id}"


def staff_key(staff_id: int) -> str:
    return f"staff:{staff_id}"


def credits_key(organizer_id: int) -> str:
    return f"credits:{organizer_id}"


def order_key(order_id: int) -> str:
    return f"order:{order_id}"


def ticket_key(ticket_id: int) -> str:
    return f"ticket:{ticket_id}"


@asynccontextmanager
async def unit_of_work(db: AsyncSession, keys: Iterable[str] = ()) -> AsyncIterator[AsyncSession]:
    """
    Hold the entity locks for `keys`, yield the session, commit on success.

    Usage:
        async with unit_of_work(db, [tier_key(tier.id)]):
            await increment_sold(db, tier.id, 2)
    """
    keys = list(keys)
    async with get_lock_strategy().hold(keys):
        try:
            yield db
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("integrity_violation", keys=keys, error=str(e.orig))
            raise ConcurrentModification(keys[0].split(":", 1)[0] if keys else "ledger") from e
        except BaseException:
            await db.rollback()
            raise


async def load_fresh(
    db: AsyncSession,
    model: Type[ModelT],
    entity_id: int,
    entity: Optional[str] = None,
) -> ModelT:
    """Load a row bypassing the identity map cache; NotFound if missing."""
    result = await db.execute(
        select(model).where(model.id == entity_id).execution_options(populate_existing=True)
    )
    row = result.scalar_one_or_none()
    if row is None:
        raise NotFound(entity or model.__name__, entity_id)
    return row
