"""
Bundle availability calculator.

A bundle never owns inventory. One bundle unit is `quantity` units of each
included tier, so how many bundles can still be sold is bounded both by the
bundle's own counter and by every constituent tier:

    available = min(total_quantity - sold,
                    min over included tiers of floor(tier.available / included.quantity))

A tier that no longer exists contributes 0. At checkout the bundle expands
into ordinary tier order items (see order_service.create_bundle_order).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.config import get_settings
from settlement.core.exceptions import (
    BundleNotOnSale,
    ConcurrentModification,
    InsufficientBundleQuantity,
    InsufficientTierQuantity,
    InvalidBundle,
    NotFound,
)
from settlement.core.logging import get_logger
from settlement.core.metrics import record_cas_retry
from settlement.core.security import Caller, require_owner
from settlement.db.base import as_utc, utcnow
from settlement.models.bundle import BundleTier, TicketBundle
from settlement.models.enums import BundleType
from settlement.models.event import Event
from settlement.models.ticket_tier import TicketTier
from settlement.schemas.bundle import BundleCreate
from settlement.services.pricing import round_half_up
from settlement.services.unit_of_work import bundle_key, load_fresh, unit_of_work

logger = get_logger(__name__)


@dataclass
class BundleAvailability:
    available: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    detail: dict[str, Any] = field(default_factory=dict)

    def raise_for_reason(self, bundle_id: int) -> None:
        """Turn an unavailable result into the matching domain error."""
        if self.available:
            return
        if self.reason == "BundleNotFound":
            raise NotFound("Bundle", bundle_id)
        if self.reason == "InsufficientBundleQuantity":
            raise InsufficientBundleQuantity(bundle_id, self.detail["requested"], self.detail["remaining"])
        if self.reason == "InsufficientTierQuantity":
            raise InsufficientTierQuantity(
                self.detail["tier_name"], self.detail["needed"], self.detail["tier_available"]
            )
        raise BundleNotOnSale(bundle_id, self.reason, self.message)


def percentage_savings(price_cents: int, regular_price_cents: int) -> int:
    if regular_price_cents <= 0:
        return 0
    return round_half_up(100 * (regular_price_cents - price_cents) / regular_price_cents)


def available_quantity(bundle: TicketBundle, tiers: dict[int, TicketTier]) -> int:
    remaining = bundle.total_quantity - bundle.sold
    for included in bundle.included_tiers:
        tier = tiers.get(included.tier_id)
        tier_available = tier.available if tier is not None else 0
        remaining = min(remaining, tier_available // included.quantity)
    return max(0, remaining)


def expand_bundle(bundle: TicketBundle, quantity: int) -> list[tuple[int, int]]:
    """Per-tier unit counts for `quantity` bundles, in the bundle's tier order."""
    return [(included.tier_id, included.quantity * quantity) for included in bundle.included_tiers]


async def get_bundle(db: AsyncSession, bundle_id: int) -> TicketBundle:
    return await load_fresh(db, TicketBundle, bundle_id, "Bundle")


async def load_bundle_tiers(db: AsyncSession, bundle: TicketBundle) -> dict[int, TicketTier]:
    tier_ids = [included.tier_id for included in bundle.included_tiers]
    if not tier_ids:
        return {}
    result = await db.execute(
        select(TicketTier).where(TicketTier.id.in_(tier_ids)).execution_options(populate_existing=True)
    )
    return {tier.id: tier for tier in result.scalars().all()}


async def is_bundle_available(
    db: AsyncSession,
    bundle_id: int,
    quantity: int = 1,
    now: Optional[datetime] = None,
) -> BundleAvailability:
    """Check whether `quantity` bundles can be sold right now, and why not."""
    now = now or utcnow()
    result = await db.execute(
        select(TicketBundle).where(TicketBundle.id == bundle_id).execution_options(populate_existing=True)
    )
    bundle = result.scalar_one_or_none()

    if bundle is None:
        return BundleAvailability(False, "BundleNotFound", "Bundle not found", {"bundle_id": bundle_id})
    if not bundle.is_active:
        return BundleAvailability(False, "BundleInactive", "Bundle is no longer active")
    if bundle.sale_start is not None and now < as_utc(bundle.sale_start):
        return BundleAvailability(False, "SaleNotStarted", "Bundle sales have not started yet")
    if bundle.sale_end is not None and now > as_utc(bundle.sale_end):
        return BundleAvailability(False, "SaleEnded", "Bundle sales have ended")

    remaining = bundle.total_quantity - bundle.sold
    if remaining < quantity:
        plural = "" if remaining == 1 else "s"
        return BundleAvailability(
            False,
            "InsufficientBundleQuantity",
            f"Only {remaining} bundle{plural} remaining",
            {"requested": quantity, "remaining": remaining},
        )

    tiers = await load_bundle_tiers(db, bundle)
    for included in bundle.included_tiers:
        tier = tiers.get(included.tier_id)
        needed = included.quantity * quantity
        tier_available = tier.available if tier is not None else 0
        if tier_available < needed:
            return BundleAvailability(
                False,
                "InsufficientTierQuantity",
                f"Not enough {included.tier_name} tickets available",
                {"tier_name": included.tier_name, "needed": needed, "tier_available": tier_available},
            )

    return BundleAvailability(True)


async def increment_bundle_sold(db: AsyncSession, bundle_id: int, n: int) -> TicketBundle:
    """
    Add `n` to the bundle's sold counter, bounded by total_quantity.
    Runs inside the completing order's unit of work.
    """
    settings = get_settings()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        bundle = await get_bundle(db, bundle_id)
        if bundle.sold + n > bundle.total_quantity:
            raise InsufficientBundleQuantity(bundle_id, n, bundle.total_quantity - bundle.sold)

        result = await db.execute(
            update(TicketBundle)
            .where(
                TicketBundle.id == bundle_id,
                TicketBundle.version == bundle.version,
                TicketBundle.sold + n <= TicketBundle.total_quantity,
            )
            .values(sold=TicketBundle.sold + n, version=TicketBundle.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            record_cas_retry("bundle")
            logger.info("bundle_cas_retry", bundle_id=bundle_id, attempt=attempt)
            continue

        logger.info("bundle_sold_incremented", bundle_id=bundle_id, n=n)
        return await get_bundle(db, bundle_id)

    raise ConcurrentModification("Bundle", bundle_id)


async def decrement_bundle_sold(db: AsyncSession, bundle_id: int, n: int) -> TicketBundle:
    """Return `n` bundles to sale (whole-order refund), never below zero."""
    settings = get_settings()

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        bundle = await get_bundle(db, bundle_id)
        new_sold = max(0, bundle.sold - n)

        result = await db.execute(
            update(TicketBundle)
            .where(TicketBundle.id == bundle_id, TicketBundle.version == bundle.version)
            .values(sold=new_sold, version=TicketBundle.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            record_cas_retry("bundle")
            logger.info("bundle_cas_retry", bundle_id=bundle_id, attempt=attempt)
            continue

        logger.info("bundle_sold_decremented", bundle_id=bundle_id, n=n, sold=new_sold)
        return await get_bundle(db, bundle_id)

    raise ConcurrentModification("Bundle", bundle_id)


async def create_bundle(db: AsyncSession, caller: Caller, bundle_data: BundleCreate) -> TicketBundle:
    """
    Create a bundle over existing tiers. The caller must own every event
    the bundle draws from; the regular price is the sum of face values.
    """
    if bundle_data.bundle_type == BundleType.SINGLE_EVENT:
        event_ids = [bundle_data.event_id]
    else:
        event_ids = list(dict.fromkeys(bundle_data.event_ids))

    events = {}
    for event_id in event_ids:
        event = await db.get(Event, event_id)
        if event is None:
            raise NotFound("Event", event_id)
        require_owner(caller, event.organizer_id, "create bundles for this event")
        events[event_id] = event

    regular_price = 0
    included = []
    seen_tiers = set()
    for tier_in in bundle_data.included_tiers:
        tier = await load_fresh(db, TicketTier, tier_in.tier_id, "Tier")
        if tier.event_id not in events:
            raise InvalidBundle(
                f"Tier {tier.name} does not belong to the bundle's events",
                tier_id=tier.id,
                event_id=tier.event_id,
            )
        if tier.id in seen_tiers:
            raise InvalidBundle(f"Tier {tier.name} is listed twice", tier_id=tier.id)
        seen_tiers.add(tier.id)
        regular_price += tier.price_cents * tier_in.quantity
        included.append(BundleTier(tier_id=tier.id, tier_name=tier.name, quantity=tier_in.quantity))

    async with unit_of_work(db):
        bundle = TicketBundle(
            bundle_type=bundle_data.bundle_type.value,
            event_id=bundle_data.event_id if bundle_data.bundle_type == BundleType.SINGLE_EVENT else None,
            event_ids=event_ids if bundle_data.bundle_type == BundleType.MULTI_EVENT else None,
            name=bundle_data.name,
            description=bundle_data.description,
            price_cents=bundle_data.price_cents,
            regular_price_cents=regular_price,
            total_quantity=bundle_data.total_quantity,
            sold=0,
            sale_start=bundle_data.sale_start,
            sale_end=bundle_data.sale_end,
            is_active=True,
            version=1,
            included_tiers=included,
        )
        db.add(bundle)
        await db.flush()

    logger.info(
        "bundle_created",
        bundle_id=bundle.id,
        bundle_type=bundle.bundle_type,
        price_cents=bundle.price_cents,
        regular_price_cents=regular_price,
    )
    return bundle


async def deactivate_bundle(db: AsyncSession, caller: Caller, bundle_id: int) -> TicketBundle:
    """Withdraw a bundle from sale. Sold bundles and their orders are untouched."""
    bundle = await get_bundle(db, bundle_id)
    for event_id in bundle.event_ids or [bundle.event_id]:
        event = await db.get(Event, event_id)
        require_owner(caller, event.organizer_id if event else None, "manage this bundle")

    async with unit_of_work(db, [bundle_key(bundle_id)]):
        bundle = await get_bundle(db, bundle_id)
        bundle.is_active = False
        bundle.version = bundle.version + 1
        await db.flush()

    logger.info("bundle_deactivated", bundle_id=bundle_id)
    return bundle


async def get_bundle_details(db: AsyncSession, bundle_id: int) -> dict:
    """Bundle enriched with live availability and savings."""
    bundle = await get_bundle(db, bundle_id)
    return await _details(db, bundle)


async def _details(db: AsyncSession, bundle: TicketBundle) -> dict:
    tiers = await load_bundle_tiers(db, bundle)
    return {
        "id": bundle.id,
        "bundle_type": bundle.bundle_type,
        "event_id": bundle.event_id,
        "event_ids": bundle.event_ids,
        "name": bundle.name,
        "description": bundle.description,
        "price_cents": bundle.price_cents,
        "regular_price_cents": bundle.regular_price_cents,
        "savings_cents": bundle.savings_cents,
        "percentage_savings": percentage_savings(bundle.price_cents, bundle.regular_price_cents),
        "total_quantity": bundle.total_quantity,
        "sold": bundle.sold,
        "available": available_quantity(bundle, tiers),
        "sale_start": bundle.sale_start,
        "sale_end": bundle.sale_end,
        "is_active": bundle.is_active,
        "included_tiers": [
            {
                "tier_id": included.tier_id,
                "tier_name": included.tier_name,
                "quantity": included.quantity,
                "tier_available": tiers[included.tier_id].available if included.tier_id in tiers else 0,
            }
            for included in bundle.included_tiers
        ],
    }


async def list_event_bundles(db: AsyncSession, event_id: int) -> list[dict]:
    """Bundles that include the event, single- or multi-event."""
    result = await db.execute(
        select(TicketBundle)
        .where(or_(TicketBundle.event_id == event_id, TicketBundle.bundle_type == BundleType.MULTI_EVENT.value))
        .order_by(TicketBundle.id)
        .execution_options(populate_existing=True)
    )
    bundles = [
        bundle for bundle in result.scalars().all()
        if bundle.event_id == event_id or event_id in (bundle.event_ids or [])
    ]
    return [await _details(db, bundle) for bundle in bundles]
