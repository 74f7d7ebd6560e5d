"""
Tests for the organizer credit ledger under the pre-purchase model.
"""

import asyncio

import pytest

from settlement.core.exceptions import InsufficientCredits, NotAuthorized
from settlement.core.security import Caller
from settlement.schemas.event import EventCreate
from settlement.schemas.tier import TierCreate
from settlement.services import credit_service, event_service, tier_service


def _tier(quantity: int, name: str = "General") -> TierCreate:
    return TierCreate(name=name, price_cents=2500, quantity=quantity)


@pytest.fixture
def first_event(db_session, organizer_caller):
    async def _create(title: str = "Opening Night"):
        return await event_service.create_event(db_session, organizer_caller, EventCreate(title=title))

    return _create


@pytest.mark.asyncio
async def test_new_organizer_reads_as_zero(db_session, organizer):
    balance = await credit_service.get_balance(db_session, organizer.id)
    assert (balance.credits_total, balance.credits_used, balance.credits_remaining) == (0, 0, 0)
    assert balance.first_event_free_used is False


@pytest.mark.asyncio
async def test_first_event_gets_free_credits(db_session, organizer, organizer_caller, first_event):
    event = await first_event()
    await tier_service.create_tier(db_session, organizer_caller, event.id, _tier(250))

    balance = await credit_service.get_balance(db_session, organizer.id)
    assert balance.credits_total == 300
    assert balance.credits_used == 250
    assert balance.credits_remaining == 50
    assert balance.first_event_free_used is True


@pytest.mark.asyncio
async def test_insufficient_credits_applies_nothing(db_session, organizer, organizer_caller, first_event):
    organizer_id = organizer.id
    event = await first_event()
    event_id = event.id
    await tier_service.create_tier(db_session, organizer_caller, event_id, _tier(250))

    with pytest.raises(InsufficientCredits) as exc_info:
        await tier_service.create_tier(db_session, organizer_caller, event_id, _tier(100, "VIP"))
    assert exc_info.value.detail == {"organizer_id": organizer_id, "available": 50, "needed": 100}

    balance = await credit_service.get_balance(db_session, organizer_id)
    assert balance.credits_remaining == 50
    assert [tier.name for tier in await tier_service.list_event_tiers(db_session, event_id)] == ["General"]


@pytest.mark.asyncio
async def test_purchase_then_allocate(db_session, organizer, organizer_caller, first_event):
    event = await first_event()
    event_id = event.id
    await tier_service.create_tier(db_session, organizer_caller, event_id, _tier(250))

    purchase = await credit_service.purchase_credits(db_session, organizer_caller, 100, "pi_credits_1")
    assert purchase.status == "PENDING"
    assert purchase.amount_paid_cents == 3000

    # Pending purchases add nothing yet
    assert (await credit_service.get_balance(db_session, organizer.id)).credits_remaining == 50

    confirmed, already = await credit_service.confirm_credit_purchase(db_session, organizer_caller, "pi_credits_1")
    assert confirmed.status == "COMPLETED"
    assert already is False
    assert (await credit_service.get_balance(db_session, organizer.id)).credits_remaining == 150

    await tier_service.create_tier(db_session, organizer_caller, event_id, _tier(100, "VIP"))
    balance = await credit_service.get_balance(db_session, organizer.id)
    assert balance.credits_remaining == 50
    assert balance.credits_used == 350
    assert balance.credits_total == 400


@pytest.mark.asyncio
async def test_purchase_and_confirm_are_idempotent(db_session, organizer, organizer_caller):
    first = await credit_service.purchase_credits(db_session, organizer_caller, 40, "pi_twice")
    again = await credit_service.purchase_credits(db_session, organizer_caller, 40, "pi_twice")
    assert first.id == again.id

    await credit_service.confirm_credit_purchase(db_session, organizer_caller, "pi_twice")
    _, already = await credit_service.confirm_credit_purchase(db_session, organizer_caller, "pi_twice")
    assert already is True

    balance = await credit_service.get_balance(db_session, organizer.id)
    assert balance.credits_remaining == 40
    assert len(await credit_service.list_transactions(db_session, organizer.id)) == 1


@pytest.mark.asyncio
async def test_confirm_someone_elses_purchase_rejected(db_session, organizer_caller, other_organizer):
    await credit_service.purchase_credits(db_session, organizer_caller, 10, "pi_private")
    intruder = Caller(user_id=other_organizer.id, role="organizer")
    with pytest.raises(NotAuthorized):
        await credit_service.confirm_credit_purchase(db_session, intruder, "pi_private")


@pytest.mark.asyncio
async def test_free_credits_only_for_first_event(db_session, organizer, organizer_caller, first_event):
    organizer_id = organizer.id
    await first_event()
    second = await first_event("Encore")
    second_id = second.id

    with pytest.raises(InsufficientCredits):
        await tier_service.create_tier(db_session, organizer_caller, second_id, _tier(10))

    balance = await credit_service.get_balance(db_session, organizer_id)
    assert balance.first_event_free_used is False


@pytest.mark.asyncio
async def test_resize_and_delete_refund_credits(db_session, organizer, organizer_caller, first_event):
    organizer_id = organizer.id
    event = await first_event()
    tier = await tier_service.create_tier(db_session, organizer_caller, event.id, _tier(200))
    tier_id = tier.id

    await tier_service.resize_tier(db_session, organizer_caller, tier_id, 150)
    assert (await credit_service.get_balance(db_session, organizer_id)).credits_remaining == 150

    await tier_service.resize_tier(db_session, organizer_caller, tier_id, 280)
    assert (await credit_service.get_balance(db_session, organizer_id)).credits_remaining == 20

    await tier_service.delete_tier(db_session, organizer_caller, tier_id)
    balance = await credit_service.get_balance(db_session, organizer_id)
    assert balance.credits_remaining == 300
    assert balance.credits_used == 0


@pytest.mark.asyncio
async def test_resize_beyond_credits_rolls_back(db_session, organizer, organizer_caller, first_event):
    organizer_id = organizer.id
    event = await first_event()
    tier = await tier_service.create_tier(db_session, organizer_caller, event.id, _tier(200))
    tier_id = tier.id

    with pytest.raises(InsufficientCredits):
        await tier_service.resize_tier(db_session, organizer_caller, tier_id, 301)

    assert (await tier_service.get_tier(db_session, tier_id)).quantity == 200
    assert (await credit_service.get_balance(db_session, organizer_id)).credits_remaining == 100


@pytest.mark.asyncio
async def test_leftover_free_credits_stay_with_first_event(db_session, organizer, organizer_caller, first_event):
    organizer_id = organizer.id
    opening = await first_event()
    encore = await first_event("Encore")
    opening_id, encore_id = opening.id, encore.id
    await tier_service.create_tier(db_session, organizer_caller, opening_id, _tier(250))

    with pytest.raises(InsufficientCredits) as exc_info:
        await tier_service.create_tier(db_session, organizer_caller, encore_id, _tier(10))
    assert exc_info.value.detail["available"] == 0

    await credit_service.purchase_credits(db_session, organizer_caller, 20, "pi_encore")
    await credit_service.confirm_credit_purchase(db_session, organizer_caller, "pi_encore")
    await tier_service.create_tier(db_session, organizer_caller, encore_id, _tier(20))

    balance = await credit_service.get_balance(db_session, organizer_id)
    assert balance.credits_remaining == 50
    assert balance.free_credits_remaining == 50
    assert balance.purchased_credits_remaining == 0

    with pytest.raises(InsufficientCredits):
        await tier_service.create_tier(db_session, organizer_caller, encore_id, _tier(1, "VIP"))

    # The first event can still spend what is left of its grant
    await tier_service.create_tier(db_session, organizer_caller, opening_id, _tier(50, "VIP"))
    balance = await credit_service.get_balance(db_session, organizer_id)
    assert (balance.credits_remaining, balance.free_credits_remaining) == (0, 0)


@pytest.mark.asyncio
async def test_second_event_waits_for_purchase(db_session, organizer, organizer_caller, first_event):
    organizer_id = organizer.id
    opening = await first_event()
    encore = await first_event("Encore")
    opening_id, encore_id = opening.id, encore.id

    await tier_service.create_tier(db_session, organizer_caller, opening_id, _tier(300))
    with pytest.raises(InsufficientCredits):
        await tier_service.create_tier(db_session, organizer_caller, encore_id, _tier(50))

    await credit_service.purchase_credits(db_session, organizer_caller, 50, "pi_top_up")
    await credit_service.confirm_credit_purchase(db_session, organizer_caller, "pi_top_up")
    tier = await tier_service.create_tier(db_session, organizer_caller, encore_id, _tier(50))
    assert tier.quantity == 50

    balance = await credit_service.get_balance(db_session, organizer_id)
    assert balance.credits_remaining == 0
    assert balance.credits_used == 350
    assert balance.credits_total == 350


@pytest.mark.asyncio
async def test_concurrent_tier_creation_for_last_credits(
    db_session, session_factory, organizer, organizer_caller, first_event
):
    """Two tiers race for the last 50 credits: exactly one is created."""
    organizer_id = organizer.id
    opening = await first_event()
    encore = await first_event("Encore")
    opening_id, encore_id = opening.id, encore.id
    await tier_service.create_tier(db_session, organizer_caller, opening_id, _tier(300))
    await credit_service.purchase_credits(db_session, organizer_caller, 50, "pi_last")
    await credit_service.confirm_credit_purchase(db_session, organizer_caller, "pi_last")

    async def create(name: str) -> str:
        async with session_factory() as session:
            try:
                await tier_service.create_tier(session, organizer_caller, encore_id, _tier(50, name))
                return "created"
            except InsufficientCredits:
                return "rejected"

    results = await asyncio.gather(create("Early Bird"), create("Standard"))
    assert sorted(results) == ["created", "rejected"]

    async with session_factory() as session:
        balance = await credit_service.get_balance(session, organizer_id)
        assert balance.credits_remaining == 0
        assert balance.credits_used == 350
        assert len(await tier_service.list_event_tiers(session, encore_id)) == 1


@pytest.mark.asyncio
async def test_concurrent_resizes_for_last_credits(
    db_session, session_factory, organizer, organizer_caller, first_event
):
    organizer_id = organizer.id
    opening = await first_event()
    opening_id = opening.id
    first = await tier_service.create_tier(db_session, organizer_caller, opening_id, _tier(100))
    second = await tier_service.create_tier(db_session, organizer_caller, opening_id, _tier(100, "VIP"))
    first_id, second_id = first.id, second.id

    async def grow(tier_id: int) -> str:
        async with session_factory() as session:
            try:
                await tier_service.resize_tier(session, organizer_caller, tier_id, 200)
                return "resized"
            except InsufficientCredits:
                return "rejected"

    results = await asyncio.gather(grow(first_id), grow(second_id))
    assert sorted(results) == ["rejected", "resized"]

    async with session_factory() as session:
        balance = await credit_service.get_balance(session, organizer_id)
        assert balance.credits_remaining == 0
        quantities = sorted(tier.quantity for tier in await tier_service.list_event_tiers(session, opening_id))
        assert quantities == [100, 200]
