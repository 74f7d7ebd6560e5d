"""
Tier ledger: capacity and sold counters of ticket tiers.

CONCURRENCY STRATEGY: Optimistic Locking with Retry
====================================================

Problem:
  Two completions both read sold=9 on a tier of 10 and both write sold=10
  plus one. Result: oversold tier.

Solution:
  A `version` column on ticket_tiers and a compare-and-swap update:

  1. Read the tier's current version
  2. UPDATE ticket_tiers SET sold = sold + N, version = version + 1
     WHERE id = :tier_id AND version = :current_version AND sold + N <= quantity
  3. If rows_affected == 0, re-read: either someone else moved the row
     (retry) or the tier is now full (TierSoldOutOfBounds)

  Completions on the same tier are already serialized by the unit of work's
  tier lock, so the CAS almost never retries; it is the guarantee that
  survives a writer that skipped the lock. The CHECK constraint
  (sold <= quantity) is the final safety net.

increment_sold/decrement_sold belong to the order lifecycle: they never
commit and are only called from completion, ticket cancellation and refund.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.config import get_settings
from settlement.core.exceptions import (
    ConcurrentModification,
    TierHasSales,
    TierInBundle,
    TierInUse,
    TierQuantityBelowSold,
    TierSoldOutOfBounds,
)
from settlement.core.logging import get_logger
from settlement.core.metrics import record_cas_retry
from settlement.core.security import Caller, require_owner
from settlement.db.base import as_utc, utcnow
from settlement.models.bundle import BundleTier, TicketBundle
from settlement.models.enums import OrderStatus
from settlement.models.order import Order, OrderItem
from settlement.models.ticket_tier import TicketTier
from settlement.schemas.tier import TierCreate
from settlement.services import credit_service
from settlement.services.event_service import get_event
from settlement.services.unit_of_work import credits_key, load_fresh, tier_key, unit_of_work

logger = get_logger(__name__)


def is_on_sale(tier: TicketTier, now: Optional[datetime] = None) -> bool:
    """Active and inside its sale window (open-ended on either side)."""
    now = now or utcnow()
    if not tier.is_active:
        return False
    if tier.sale_start is not None and now < as_utc(tier.sale_start):
        return False
    if tier.sale_end is not None and now > as_utc(tier.sale_end):
        return False
    return True


async def get_tier(db: AsyncSession, tier_id: int) -> TicketTier:
    return await load_fresh(db, TicketTier, tier_id, "Tier")


async def list_event_tiers(db: AsyncSession, event_id: int) -> list[TicketTier]:
    result = await db.execute(
        select(TicketTier)
        .where(TicketTier.event_id == event_id)
        .order_by(TicketTier.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def increment_sold(db: AsyncSession, tier_id: int, n: int) -> TicketTier:
    """
    Add `n` to the tier's sold counter.
    Retries up to MAX_RETRY_ATTEMPTS on version conflicts.

    Raises:
        TierSoldOutOfBounds if sold + n would exceed quantity
    """
    settings = get_settings()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        # Step 1: Read current tier state
        tier = await get_tier(db, tier_id)

        if tier.sold + n > tier.quantity:
            logger.warning(
                "tier_sold_out_of_bounds",
                tier_id=tier_id,
                requested=n,
                available=tier.available,
            )
            raise TierSoldOutOfBounds(tier_id, n, tier.available)

        # Step 2: Optimistic lock - update only if version matches
        current_version = tier.version
        result = await db.execute(
            update(TicketTier)
            .where(
                TicketTier.id == tier_id,
                TicketTier.version == current_version,
                TicketTier.sold + n <= TicketTier.quantity,
            )
            .values(sold=TicketTier.sold + n, version=TicketTier.version + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            # Version conflict or the tier filled up under us; re-read decides
            record_cas_retry("tier")
            logger.info("tier_cas_retry", tier_id=tier_id, attempt=attempt)
            continue

        logger.info("tier_sold_incremented", tier_id=tier_id, n=n, attempt=attempt)
        return await get_tier(db, tier_id)

    raise ConcurrentModification("Tier", tier_id)


async def decrement_sold(db: AsyncSession, tier_id: int, n: int) -> TicketTier:
    """Subtract `n` from the tier's sold counter, never below zero."""
    settings = get_settings()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        tier = await get_tier(db, tier_id)
        new_sold = max(0, tier.sold - n)

        result = await db.execute(
            update(TicketTier)
            .where(TicketTier.id == tier_id, TicketTier.version == tier.version)
            .values(sold=new_sold, version=TicketTier.version + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            record_cas_retry("tier")
            logger.info("tier_cas_retry", tier_id=tier_id, attempt=attempt)
            continue

        if tier.sold - n < 0:
            logger.warning("tier_sold_clamped", tier_id=tier_id, sold=tier.sold, n=n)
        logger.info("tier_sold_decremented", tier_id=tier_id, n=n, sold=new_sold)
        return await get_tier(db, tier_id)

    raise ConcurrentModification("Tier", tier_id)


async def create_tier(db: AsyncSession, caller: Caller, event_id: int, tier_data: TierCreate) -> TicketTier:
    """
    Create a tier. Under PRE_PURCHASE the tier's quantity is paid for in
    credits within the same transaction.
    """
    event = await get_event(db, event_id)
    require_owner(caller, event.organizer_id, "manage tiers for this event")

    keys = [credits_key(event.organizer_id)] if event.uses_credits else []
    async with unit_of_work(db, keys):
        if event.uses_credits:
            await credit_service.allocate(db, event.organizer_id, event.id, tier_data.quantity)

        tier = TicketTier(
            event_id=event.id,
            name=tier_data.name,
            description=tier_data.description,
            price_cents=tier_data.price_cents,
            quantity=tier_data.quantity,
            sold=0,
            sale_start=tier_data.sale_start,
            sale_end=tier_data.sale_end,
            is_active=tier_data.is_active,
            version=1,
        )
        db.add(tier)
        await db.flush()

    logger.info("tier_created", tier_id=tier.id, event_id=event.id, quantity=tier.quantity)
    return tier


async def resize_tier(db: AsyncSession, caller: Caller, tier_id: int, new_quantity: int) -> TicketTier:
    """
    Change a tier's quantity.

    Growing consumes the delta in credits and shrinking refunds it. The
    quantity can never drop below what has already sold.
    """
    tier = await get_tier(db, tier_id)
    event = await get_event(db, tier.event_id)
    require_owner(caller, event.organizer_id, "manage tiers for this event")

    settings = get_settings()
    async with unit_of_work(db, [tier_key(tier_id), credits_key(event.organizer_id)]):
        for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
            tier = await get_tier(db, tier_id)
            if new_quantity < tier.sold:
                raise TierQuantityBelowSold(tier_id, new_quantity, tier.sold)

            delta = new_quantity - tier.quantity
            result = await db.execute(
                update(TicketTier)
                .where(
                    TicketTier.id == tier_id,
                    TicketTier.version == tier.version,
                    TicketTier.sold <= new_quantity,
                )
                .values(quantity=new_quantity, version=TicketTier.version + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                record_cas_retry("tier")
                logger.info("tier_cas_retry", tier_id=tier_id, attempt=attempt)
                continue

            if event.uses_credits and delta > 0:
                await credit_service.allocate(db, event.organizer_id, event.id, delta)
            elif event.uses_credits and delta < 0:
                await credit_service.refund(db, event.organizer_id, -delta, event_id=event.id)
            break
        else:
            raise ConcurrentModification("Tier", tier_id)

        tier = await get_tier(db, tier_id)

    logger.info("tier_resized", tier_id=tier_id, quantity=new_quantity, delta=delta)
    return tier


async def delete_tier(db: AsyncSession, caller: Caller, tier_id: int) -> None:
    """
    Delete a tier that has never been sold.

    A tier included in an active bundle cannot be deleted: the bundle's price
    was set for its full contents. A tier still referenced by historical
    (cancelled, failed, refunded) orders or by an inactive bundle is retired
    instead: deactivated with quantity 0, so those records keep pointing at it.
    """
    tier = await get_tier(db, tier_id)
    event = await get_event(db, tier.event_id)
    require_owner(caller, event.organizer_id, "manage tiers for this event")

    async with unit_of_work(db, [tier_key(tier_id), credits_key(event.organizer_id)]):
        tier = await get_tier(db, tier_id)
        if tier.sold > 0:
            raise TierHasSales(tier_id, tier.sold)

        references = await db.execute(
            select(Order.status, func.count(func.distinct(Order.id)))
            .select_from(OrderItem)
            .join(Order, Order.id == OrderItem.order_id)
            .where(OrderItem.ticket_tier_id == tier_id)
            .group_by(Order.status)
        )
        by_status = dict(references.all())
        pending = by_status.get(OrderStatus.PENDING.value, 0)
        if pending:
            raise TierInUse(tier_id, pending)

        bundles = await db.execute(
            select(TicketBundle.id, TicketBundle.is_active)
            .select_from(BundleTier)
            .join(TicketBundle, TicketBundle.id == BundleTier.bundle_id)
            .where(BundleTier.tier_id == tier_id)
            .order_by(TicketBundle.id)
        )
        bundle_rows = bundles.all()
        active_bundles = [bundle_id for bundle_id, is_active in bundle_rows if is_active]
        if active_bundles:
            raise TierInBundle(tier_id, active_bundles)

        released = tier.quantity
        retired = bool(by_status or bundle_rows)
        if retired:
            tier.is_active = False
            tier.quantity = 0
            tier.version = tier.version + 1
        else:
            await db.delete(tier)
        await db.flush()

        if event.uses_credits:
            await credit_service.refund(db, event.organizer_id, released, event_id=event.id)

    logger.info("tier_deleted", tier_id=tier_id, retired=retired, credits_refunded=released)
