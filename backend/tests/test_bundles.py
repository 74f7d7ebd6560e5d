"""
Tests for bundle availability, bundle checkout and multi-event bundles.
"""

import random
from datetime import timedelta

import pytest

from settlement.core.exceptions import BundleNotOnSale, InsufficientTierQuantity, InvalidBundle, NotAuthorized
from settlement.core.security import Caller
from settlement.db.base import utcnow
from settlement.models.bundle import BundleTier, TicketBundle
from settlement.models.enums import PaymentModel
from settlement.models.event import Event
from settlement.models.ticket_tier import TicketTier
from settlement.schemas.bundle import BundleCreate
from settlement.schemas.order import BundleOrderCreate
from settlement.services import bundle_service, order_service, tier_service


def test_percentage_savings():
    assert bundle_service.percentage_savings(8000, 10000) == 20
    assert bundle_service.percentage_savings(6667, 10000) == 33
    assert bundle_service.percentage_savings(500, 0) == 0


def test_available_quantity_bounded_by_tightest_tier():
    bundle = TicketBundle(
        total_quantity=5,
        sold=1,
        included_tiers=[
            BundleTier(tier_id=1, tier_name="Floor", quantity=2),
            BundleTier(tier_id=2, tier_name="Parking", quantity=1),
        ],
    )
    tiers = {
        1: TicketTier(id=1, quantity=10, sold=3),  # 7 left -> 3 bundles
        2: TicketTier(id=2, quantity=20, sold=0),
    }
    assert bundle_service.available_quantity(bundle, tiers) == 3

    # A tier that no longer exists contributes nothing
    del tiers[2]
    assert bundle_service.available_quantity(bundle, tiers) == 0


@pytest.mark.parametrize("seed", range(20))
def test_available_quantity_never_exceeds_any_tier(seed):
    rng = random.Random(seed)
    for _ in range(50):
        tiers = {}
        included = []
        for tier_id in range(1, rng.randint(1, 4) + 1):
            quantity = rng.randint(0, 40)
            if rng.random() > 0.1:
                tiers[tier_id] = TicketTier(id=tier_id, quantity=quantity, sold=rng.randint(0, quantity))
            included.append(BundleTier(tier_id=tier_id, tier_name=f"T{tier_id}", quantity=rng.randint(1, 5)))
        total = rng.randint(0, 30)
        bundle = TicketBundle(total_quantity=total, sold=rng.randint(0, total), included_tiers=included)

        available = bundle_service.available_quantity(bundle, tiers)

        assert 0 <= available <= bundle.total_quantity - bundle.sold
        for row in included:
            tier = tiers.get(row.tier_id)
            tier_available = tier.available if tier is not None else 0
            assert available * row.quantity <= tier_available
            assert available <= tier_available
        # One more bundle would overrun the bundle counter or some tier
        assert available == bundle.total_quantity - bundle.sold or any(
            (available + 1) * row.quantity
            > (tiers[row.tier_id].available if row.tier_id in tiers else 0)
            for row in included
        )


@pytest.fixture
def parking_tier(db_session, event):
    async def _create(quantity: int = 4) -> TicketTier:
        tier = TicketTier(event_id=event.id, name="Parking", price_cents=1000, quantity=quantity, sold=0, version=1)
        db_session.add(tier)
        await db_session.commit()
        return tier

    return _create


@pytest.fixture
def make_bundle(db_session, organizer_caller, event, tier):
    """Two General tickets plus one Parking pass for $100.00 (face value $110.00)."""

    async def _create(parking: TicketTier, **overrides) -> TicketBundle:
        data = {
            "event_id": event.id,
            "name": "Date Night",
            "price_cents": 10000,
            "total_quantity": 5,
            "included_tiers": [
                {"tier_id": tier.id, "quantity": 2},
                {"tier_id": parking.id, "quantity": 1},
            ],
        }
        data.update(overrides)
        return await bundle_service.create_bundle(db_session, organizer_caller, BundleCreate.model_validate(data))

    return _create


@pytest.mark.asyncio
async def test_create_bundle_prices(db_session, make_bundle, parking_tier):
    bundle = await make_bundle(await parking_tier())
    assert bundle.regular_price_cents == 11000
    assert bundle.savings_cents == 1000

    details = await bundle_service.get_bundle_details(db_session, bundle.id)
    assert details["percentage_savings"] == 9
    assert details["available"] == 4  # parking allows 4, bundle counter 5
    assert [t["tier_name"] for t in details["included_tiers"]] == ["General", "Parking"]


@pytest.mark.asyncio
async def test_bundle_with_foreign_tier_rejected(db_session, organizer, make_bundle):
    other_event = Event(title="Elsewhere", organizer_id=organizer.id, payment_model=PaymentModel.PAY_AS_SELL.value)
    db_session.add(other_event)
    await db_session.flush()
    foreign = TicketTier(event_id=other_event.id, name="Foreign", price_cents=100, quantity=5, sold=0, version=1)
    db_session.add(foreign)
    await db_session.commit()

    with pytest.raises(InvalidBundle):
        await make_bundle(foreign)


@pytest.mark.asyncio
async def test_bundle_availability_reasons(db_session, make_bundle, parking_tier):
    parking = await parking_tier(quantity=1)

    later = await make_bundle(parking, sale_start=(utcnow() + timedelta(days=1)).isoformat())
    availability = await bundle_service.is_bundle_available(db_session, later.id)
    assert (availability.available, availability.reason) == (False, "SaleNotStarted")

    bundle = await make_bundle(parking, total_quantity=1)
    availability = await bundle_service.is_bundle_available(db_session, bundle.id, quantity=2)
    assert availability.reason == "InsufficientBundleQuantity"
    assert availability.message == "Only 1 bundle remaining"

    roomy = await make_bundle(parking, total_quantity=3)
    availability = await bundle_service.is_bundle_available(db_session, roomy.id, quantity=2)
    assert availability.reason == "InsufficientTierQuantity"
    assert availability.detail["tier_name"] == "Parking"

    missing = await bundle_service.is_bundle_available(db_session, 9999)
    assert missing.reason == "BundleNotFound"

    assert (await bundle_service.is_bundle_available(db_session, roomy.id, quantity=1)).available is True


@pytest.mark.asyncio
async def test_bundle_order_expands_into_tier_items(db_session, buyer_caller, make_bundle, parking_tier):
    bundle = await make_bundle(await parking_tier())
    order = await order_service.create_bundle_order(
        db_session, buyer_caller, BundleOrderCreate(bundle_id=bundle.id, quantity=2)
    )

    assert order.bundle_id == bundle.id
    assert order.bundle_quantity == 2
    assert order.subtotal_cents == 20000
    assert len(order.items) == 6
    assert sum(item.price_cents for item in order.items) == 20000


@pytest.mark.asyncio
async def test_complete_bundle_order(db_session, buyer_caller, system_caller, make_bundle, parking_tier, tier):
    parking = await parking_tier()
    bundle = await make_bundle(parking)
    order = await order_service.create_bundle_order(
        db_session, buyer_caller, BundleOrderCreate(bundle_id=bundle.id, quantity=2)
    )

    result = await order_service.complete_order(db_session, system_caller, order.id, "pi_bundle", "card")
    assert len(result.tickets) == 6

    assert (await tier_service.get_tier(db_session, tier.id)).sold == 4
    assert (await tier_service.get_tier(db_session, parking.id)).sold == 2
    assert (await bundle_service.get_bundle(db_session, bundle.id)).sold == 2

    details = await bundle_service.get_bundle_details(db_session, bundle.id)
    assert details["available"] == 2  # parking: 2 left


@pytest.mark.asyncio
async def test_bundle_order_blocked_by_tier_capacity(db_session, buyer_caller, make_bundle, parking_tier):
    bundle = await make_bundle(await parking_tier(quantity=1))
    with pytest.raises(InsufficientTierQuantity):
        await order_service.create_bundle_order(
            db_session, buyer_caller, BundleOrderCreate(bundle_id=bundle.id, quantity=2)
        )


@pytest.mark.asyncio
async def test_bundle_order_outside_sale_window(db_session, buyer_caller, make_bundle, parking_tier):
    bundle = await make_bundle(
        await parking_tier(), sale_end=(utcnow() - timedelta(hours=1)).isoformat()
    )
    with pytest.raises(BundleNotOnSale) as exc_info:
        await order_service.create_bundle_order(
            db_session, buyer_caller, BundleOrderCreate(bundle_id=bundle.id, quantity=1)
        )
    assert exc_info.value.detail["reason"] == "SaleEnded"


@pytest.mark.asyncio
async def test_multi_event_bundle(db_session, organizer, organizer_caller, buyer_caller, system_caller, event, tier):
    day_two = Event(title="Festival Day 2", organizer_id=organizer.id, payment_model=PaymentModel.PAY_AS_SELL.value)
    db_session.add(day_two)
    await db_session.flush()
    day_two_tier = TicketTier(event_id=day_two.id, name="Day Pass", price_cents=4000, quantity=10, sold=0, version=1)
    db_session.add(day_two_tier)
    await db_session.commit()

    bundle = await bundle_service.create_bundle(
        db_session,
        organizer_caller,
        BundleCreate.model_validate({
            "bundle_type": "MULTI_EVENT",
            "event_ids": [event.id, day_two.id],
            "name": "Weekend Pass",
            "price_cents": 8000,
            "total_quantity": 10,
            "included_tiers": [{"tier_id": tier.id}, {"tier_id": day_two_tier.id}],
        }),
    )
    assert bundle.primary_event_id == event.id
    assert [b["id"] for b in await bundle_service.list_event_bundles(db_session, day_two.id)] == [bundle.id]

    order = await order_service.create_bundle_order(
        db_session, buyer_caller, BundleOrderCreate(bundle_id=bundle.id, quantity=1)
    )
    result = await order_service.complete_order(db_session, system_caller, order.id, "pi_weekend", "card")

    assert sorted(ticket.event_id for ticket in result.tickets) == sorted([event.id, day_two.id])


@pytest.mark.asyncio
async def test_refund_bundle_order_returns_bundle(
    db_session, buyer_caller, system_caller, make_bundle, parking_tier, tier
):
    parking = await parking_tier()
    bundle = await make_bundle(parking)
    bundle_id, parking_id = bundle.id, parking.id
    order = await order_service.create_bundle_order(
        db_session, buyer_caller, BundleOrderCreate(bundle_id=bundle_id, quantity=1)
    )
    await order_service.complete_order(db_session, system_caller, order.id, "pi_bundle_refund", "card")

    refunded = await order_service.refund_order(db_session, buyer_caller, order.id)
    assert refunded.status == "REFUNDED"

    assert (await bundle_service.get_bundle(db_session, bundle_id)).sold == 0
    assert (await tier_service.get_tier(db_session, tier.id)).sold == 0
    assert (await tier_service.get_tier(db_session, parking_id)).sold == 0


@pytest.mark.asyncio
async def test_deactivate_bundle(db_session, organizer_caller, other_organizer, make_bundle, parking_tier):
    intruder = Caller(user_id=other_organizer.id, role="organizer")
    bundle = await make_bundle(await parking_tier())
    bundle_id = bundle.id

    with pytest.raises(NotAuthorized):
        await bundle_service.deactivate_bundle(db_session, intruder, bundle_id)

    await bundle_service.deactivate_bundle(db_session, organizer_caller, bundle_id)
    availability = await bundle_service.is_bundle_available(db_session, bundle_id)
    assert availability.available is False
    assert availability.reason == "BundleInactive"
