"""
Tests for staff referral codes and commission tracking.
"""

import pytest
from sqlalchemy import update

from settlement.core.exceptions import (
    InsufficientTierQuantity,
    InvalidReferralCode,
    InvalidStaffUpdate,
    NotAuthorized,
    OrderAttributedElsewhere,
    OrderNotPending,
    ReferralEventMismatch,
    StaffInactive,
)
from settlement.core.security import Caller
from settlement.models.enums import PaymentModel
from settlement.models.event import Event
from settlement.models.staff import EventStaff
from settlement.models.ticket_tier import TicketTier
from settlement.schemas.order import OrderCreate
from settlement.schemas.staff import CashSaleCreate, StaffCreate, StaffUpdate
from settlement.services import order_service, staff_service, tier_service


def test_percentage_commission():
    staff = EventStaff(commission_type="PERCENTAGE", commission_value=10)
    assert staff_service.compute_commission(staff, 5000, 2) == 500


def test_percentage_commission_rounds_half_up():
    staff = EventStaff(commission_type="PERCENTAGE", commission_value=5)
    assert staff_service.compute_commission(staff, 1250, 1) == 63  # 62.5


def test_fixed_commission_is_per_ticket():
    staff = EventStaff(commission_type="FIXED", commission_value=250)
    assert staff_service.compute_commission(staff, 5000, 2) == 500


def test_no_commission_on_free_events():
    staff = EventStaff(commission_type="FIXED", commission_value=250)
    assert staff_service.compute_commission(staff, 5000, 2, free_event=True) == 0
    assert staff_service.compute_commission(EventStaff(), 5000, 2) == 0


def test_referral_code_shape():
    code = staff_service.generate_referral_code("Jane Doe-Smith")
    assert code.startswith("JANEDO")
    assert len(code) == 12
    assert code == code.upper()


@pytest.fixture
def seller_data(event):
    return StaffCreate(
        name="Sam Seller",
        email="sam@example.com",
        event_id=event.id,
        commission_type="PERCENTAGE",
        commission_value=10,
    )


@pytest.mark.asyncio
async def test_add_staff_member(db_session, organizer_caller, organizer, seller_data):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    assert staff.organizer_id == organizer.id
    assert staff.referral_code.startswith("SAMSEL")
    assert staff.tickets_sold == 0
    assert staff.commission_earned == 0


@pytest.mark.asyncio
async def test_add_staff_to_foreign_event_rejected(db_session, other_organizer, seller_data):
    intruder = Caller(user_id=other_organizer.id, role="organizer")
    with pytest.raises(NotAuthorized):
        await staff_service.add_staff_member(db_session, intruder, seller_data)


@pytest.mark.asyncio
async def test_completed_referral_order_credits_staff(db_session, organizer_caller, seller_data, event, tier, checkout):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id

    result = await checkout(event, tier, quantity=2, referral_code=staff.referral_code.lower())
    assert result.order.sold_by_staff_id == staff_id
    assert all(ticket.sold_by_staff_id == staff_id for ticket in result.tickets)

    staff = await staff_service.get_staff(db_session, staff_id)
    assert staff.tickets_sold == 2
    assert staff.commission_earned == 1000  # 10% of $100.00, fees excluded

    sales = await staff_service.list_staff_sales(db_session, organizer_caller, staff_id)
    assert len(sales) == 1
    assert sales[0].order_id == result.order.id
    assert sales[0].sale_amount_cents == 10000
    assert await staff_service.derive_staff_totals(db_session, staff_id) == (2, 1000)


@pytest.mark.asyncio
async def test_bad_referral_code_dropped_at_checkout(db_session, buyer_caller, event, tier):
    order = await order_service.create_order(
        db_session,
        buyer_caller,
        OrderCreate(event_id=event.id, ticket_tier_id=tier.id, quantity=1, referral_code="NOSUCHCODE"),
    )
    assert order.sold_by_staff_id is None
    assert order.referral_code is None


@pytest.mark.asyncio
async def test_referral_for_other_event_dropped_at_checkout(
    db_session, organizer, organizer_caller, buyer_caller, seller_data, event
):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)

    other_event = Event(title="Autumn Gala", organizer_id=organizer.id, payment_model=PaymentModel.PAY_AS_SELL.value)
    db_session.add(other_event)
    await db_session.flush()
    other_tier = TicketTier(event_id=other_event.id, name="General", price_cents=2000, quantity=5, sold=0, version=1)
    db_session.add(other_tier)
    await db_session.commit()

    order = await order_service.create_order(
        db_session,
        buyer_caller,
        OrderCreate(event_id=other_event.id, ticket_tier_id=other_tier.id, quantity=1, referral_code=staff.referral_code),
    )
    assert order.sold_by_staff_id is None


@pytest.mark.asyncio
async def test_record_sale_hard_errors(db_session, organizer_caller, buyer_caller, seller_data, event, tier):
    order = await order_service.create_order(
        db_session, buyer_caller, OrderCreate(event_id=event.id, ticket_tier_id=tier.id, quantity=1)
    )
    order_id = order.id

    with pytest.raises(InvalidReferralCode):
        await staff_service.record_sale(db_session, organizer_caller, "NOSUCHCODE", order_id, 1, 5000)

    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    code = staff.referral_code
    await staff_service.deactivate_staff_member(db_session, organizer_caller, staff.id)

    with pytest.raises(StaffInactive):
        await staff_service.record_sale(db_session, organizer_caller, code, order_id, 1, 5000)


@pytest.mark.asyncio
async def test_organizer_wide_staff_limited_to_own_events(db_session, organizer_caller, other_organizer):
    staff = await staff_service.add_staff_member(
        db_session,
        organizer_caller,
        StaffCreate(name="Wendy Wide", email="wendy@example.com", commission_type="FIXED", commission_value=100),
    )
    foreign_event = Event(title="Rival Show", organizer_id=other_organizer.id, payment_model="PAY_AS_SELL")
    db_session.add(foreign_event)
    await db_session.commit()

    with pytest.raises(ReferralEventMismatch):
        await staff_service.resolve_referral(db_session, staff.referral_code, foreign_event)


@pytest.mark.asyncio
async def test_record_sale_is_idempotent_per_order(db_session, organizer_caller, seller_data, event, tier, checkout):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id
    result = await checkout(event, tier, quantity=1)
    order_id = result.order.id

    first = await staff_service.record_sale(db_session, organizer_caller, staff.referral_code, order_id, 1, 5000)
    second = await staff_service.record_sale(db_session, organizer_caller, staff.referral_code, order_id, 1, 5000)
    assert first.id == second.id
    assert first.commission_cents == 500

    staff = await staff_service.get_staff(db_session, staff_id)
    assert (staff.tickets_sold, staff.commission_earned) == (1, 500)


@pytest.mark.asyncio
async def test_reconcile_repairs_drifted_totals(db_session, organizer_caller, seller_data, event, tier, checkout):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id
    await checkout(event, tier, quantity=1, referral_code=staff.referral_code)

    await db_session.execute(
        update(EventStaff).where(EventStaff.id == staff_id).values(tickets_sold=99, commission_earned=12345)
    )
    await db_session.commit()

    repaired = await staff_service.reconcile_staff_totals(db_session, organizer_caller, staff_id)
    assert (repaired.tickets_sold, repaired.commission_earned) == (1, 500)


@pytest.mark.asyncio
async def test_deactivated_staff_skipped_at_completion(
    db_session, organizer_caller, buyer_caller, system_caller, seller_data, event, tier
):
    """A referral that goes bad between checkout and payment costs the commission, not the sale."""
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id
    order = await order_service.create_order(
        db_session,
        buyer_caller,
        OrderCreate(event_id=event.id, ticket_tier_id=tier.id, quantity=1, referral_code=staff.referral_code),
    )
    await staff_service.deactivate_staff_member(db_session, organizer_caller, staff_id)

    result = await order_service.complete_order(db_session, system_caller, order.id, "pi_1", "card")
    assert result.order.status == "COMPLETED"

    staff = await staff_service.get_staff(db_session, staff_id)
    assert staff.tickets_sold == 0
    assert await staff_service.derive_staff_totals(db_session, staff_id) == (0, 0)


@pytest.fixture
def fixed_seller_data(event):
    return StaffCreate(
        name="Fran Fixed",
        email="fran@example.com",
        event_id=event.id,
        commission_type="FIXED",
        commission_value=250,
    )


@pytest.mark.asyncio
async def test_record_sale_rejects_cancelled_order(
    db_session, organizer_caller, buyer_caller, fixed_seller_data, event, tier
):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, fixed_seller_data)
    staff_id, code = staff.id, staff.referral_code
    order = await order_service.create_order(
        db_session, buyer_caller, OrderCreate(event_id=event.id, ticket_tier_id=tier.id, quantity=2)
    )
    order_id = order.id
    await order_service.cancel_order(db_session, buyer_caller, order_id)

    with pytest.raises(OrderNotPending):
        await staff_service.record_sale(db_session, organizer_caller, code, order_id, 2, 10000)

    staff = await staff_service.get_staff(db_session, staff_id)
    assert (staff.tickets_sold, staff.commission_earned) == (0, 0)
    assert await staff_service.list_staff_sales(db_session, organizer_caller, staff_id) == []


@pytest.mark.asyncio
async def test_record_sale_rejects_pending_order(db_session, organizer_caller, buyer_caller, seller_data, event, tier):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    code = staff.referral_code
    order = await order_service.create_order(
        db_session, buyer_caller, OrderCreate(event_id=event.id, ticket_tier_id=tier.id, quantity=1)
    )
    order_id = order.id

    with pytest.raises(OrderNotPending):
        await staff_service.record_sale(db_session, organizer_caller, code, order_id, 1, 5000)


@pytest.mark.asyncio
async def test_record_sale_keeps_original_attribution(
    db_session, organizer_caller, seller_data, fixed_seller_data, event, tier, checkout
):
    seller = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    seller_id = seller.id
    rival = await staff_service.add_staff_member(db_session, organizer_caller, fixed_seller_data)
    rival_id, rival_code = rival.id, rival.referral_code

    result = await checkout(event, tier, quantity=2, referral_code=seller.referral_code)
    order_id = result.order.id

    with pytest.raises(OrderAttributedElsewhere) as excinfo:
        await staff_service.record_sale(db_session, organizer_caller, rival_code, order_id, 2, 10000)
    assert excinfo.value.detail["sold_by_staff_id"] == seller_id

    rival = await staff_service.get_staff(db_session, rival_id)
    assert (rival.tickets_sold, rival.commission_earned) == (0, 0)
    assert await staff_service.derive_staff_totals(db_session, seller_id) == (2, 1000)


@pytest.mark.asyncio
async def test_record_sale_attributes_unreferred_order(
    db_session, organizer_caller, fixed_seller_data, event, tier, checkout
):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, fixed_seller_data)
    staff_id, code = staff.id, staff.referral_code
    result = await checkout(event, tier, quantity=2)
    order_id = result.order.id

    sale = await staff_service.record_sale(db_session, organizer_caller, code, order_id, 2, 10000)
    assert sale.commission_cents == 500

    order = await order_service.get_order(db_session, organizer_caller, order_id)
    assert order.sold_by_staff_id == staff_id
    assert order.referral_code == code


@pytest.mark.asyncio
async def test_update_staff_member(db_session, organizer_caller, seller_data, event, tier, checkout):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id, code = staff.id, staff.referral_code
    await checkout(event, tier, quantity=1, referral_code=code)

    updated = await staff_service.update_staff_member(
        db_session,
        organizer_caller,
        staff_id,
        StaffUpdate(name="Samantha Seller", commission_type="FIXED", commission_value=300),
    )
    assert updated.name == "Samantha Seller"
    assert updated.commission_type == "FIXED"
    assert updated.commission_value == 300
    assert updated.referral_code == code
    assert updated.email == "sam@example.com"

    await checkout(event, tier, quantity=2, referral_code=code)

    sales = await staff_service.list_staff_sales(db_session, organizer_caller, staff_id)
    assert [sale.commission_cents for sale in sales] == [500, 600]
    staff = await staff_service.get_staff(db_session, staff_id)
    assert (staff.tickets_sold, staff.commission_earned) == (3, 1100)


@pytest.mark.asyncio
async def test_update_staff_member_rejects_bad_commission(db_session, organizer_caller, other_organizer, seller_data):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id
    intruder = Caller(user_id=other_organizer.id, role="organizer")

    with pytest.raises(InvalidStaffUpdate):
        await staff_service.update_staff_member(
            db_session, organizer_caller, staff_id, StaffUpdate(commission_value=150)
        )
    with pytest.raises(InvalidStaffUpdate):
        await staff_service.update_staff_member(
            db_session, organizer_caller, staff_id, StaffUpdate(commission_type=None)
        )

    with pytest.raises(NotAuthorized):
        await staff_service.update_staff_member(db_session, intruder, staff_id, StaffUpdate(name="Hijacked"))

    staff = await staff_service.get_staff(db_session, staff_id)
    assert (staff.name, staff.commission_type, staff.commission_value) == ("Sam Seller", "PERCENTAGE", 10)


@pytest.mark.asyncio
async def test_cash_sale_settles_through_completion(db_session, organizer_caller, seller_data, event, tier):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id
    tier_id = tier.id

    result = await order_service.create_cash_sale(
        db_session,
        organizer_caller,
        staff_id,
        CashSaleCreate(event_id=event.id, ticket_tier_id=tier_id, quantity=2, buyer_name="Walk Up"),
    )
    order = result.order
    assert order.status == "COMPLETED"
    assert order.payment_method == "CASH"
    assert (order.platform_fee_cents, order.processing_fee_cents) == (0, 0)
    assert order.total_cents == order.subtotal_cents == 10000
    assert order.sold_by_staff_id == staff_id
    assert order.buyer_email == "sam@example.com"
    assert len(result.tickets) == 2
    assert all(ticket.sold_by_staff_id == staff_id for ticket in result.tickets)

    assert (await tier_service.get_tier(db_session, tier_id)).sold == 2
    staff = await staff_service.get_staff(db_session, staff_id)
    assert (staff.tickets_sold, staff.commission_earned, staff.cash_collected_cents) == (2, 1000, 10000)

    sales = await staff_service.list_staff_sales(db_session, organizer_caller, staff_id)
    assert [(s.payment_method, s.cash_collected_cents) for s in sales] == [("CASH", 10000)]


@pytest.mark.asyncio
async def test_cash_app_sale_collects_no_cash(db_session, organizer_caller, seller_data, event, tier):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id

    result = await order_service.create_cash_sale(
        db_session,
        organizer_caller,
        staff_id,
        CashSaleCreate(
            event_id=event.id,
            ticket_tier_id=tier.id,
            quantity=1,
            buyer_name="Walk Up",
            buyer_email="walkup@example.com",
            payment_method="CASH_APP",
        ),
    )
    assert result.order.payment_method == "CASH_APP"
    assert result.order.buyer_email == "walkup@example.com"

    staff = await staff_service.get_staff(db_session, staff_id)
    assert (staff.tickets_sold, staff.commission_earned, staff.cash_collected_cents) == (1, 500, 0)


@pytest.mark.asyncio
async def test_cash_sale_guards(db_session, organizer_caller, buyer_caller, seller_data, event, tier):
    staff = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    staff_id = staff.id
    event_id, tier_id = event.id, tier.id

    with pytest.raises(NotAuthorized):
        await order_service.create_cash_sale(
            db_session,
            buyer_caller,
            staff_id,
            CashSaleCreate(event_id=event_id, ticket_tier_id=tier_id, quantity=1, buyer_name="Walk Up"),
        )
    with pytest.raises(InsufficientTierQuantity):
        await order_service.create_cash_sale(
            db_session,
            organizer_caller,
            staff_id,
            CashSaleCreate(event_id=event_id, ticket_tier_id=tier_id, quantity=11, buyer_name="Walk Up"),
        )

    await staff_service.deactivate_staff_member(db_session, organizer_caller, staff_id)
    with pytest.raises(StaffInactive):
        await order_service.create_cash_sale(
            db_session,
            organizer_caller,
            staff_id,
            CashSaleCreate(event_id=event_id, ticket_tier_id=tier_id, quantity=1, buyer_name="Walk Up"),
        )
    assert (await tier_service.get_tier(db_session, tier_id)).sold == 0


@pytest.mark.asyncio
async def test_leaderboard_and_analytics(
    db_session, organizer, organizer_caller, seller_data, fixed_seller_data, event, tier, checkout
):
    seller = await staff_service.add_staff_member(db_session, organizer_caller, seller_data)
    fixed = await staff_service.add_staff_member(db_session, organizer_caller, fixed_seller_data)
    idle = await staff_service.add_staff_member(
        db_session, organizer_caller, StaffCreate(name="Ida Idle", email="ida@example.com")
    )
    seller_id, fixed_id, idle_id = seller.id, fixed.id, idle.id
    organizer_id, event_id = organizer.id, event.id

    await checkout(event, tier, quantity=1, referral_code=seller.referral_code)
    await checkout(event, tier, quantity=3, referral_code=fixed.referral_code)
    await order_service.create_cash_sale(
        db_session,
        organizer_caller,
        seller_id,
        CashSaleCreate(event_id=event_id, ticket_tier_id=tier.id, quantity=1, buyer_name="Walk Up"),
    )
    await staff_service.deactivate_staff_member(db_session, organizer_caller, idle_id)

    board = await staff_service.staff_leaderboard(db_session, event_id)
    assert [entry["staff_id"] for entry in board] == [fixed_id, seller_id, idle_id]
    assert board[0]["tickets_sold"] == 3
    assert board[0]["commission_cents"] == 750
    assert board[1]["sales_count"] == 2
    assert board[1]["sale_amount_cents"] == 10000
    assert board[2]["tickets_sold"] == 0
    assert board[2]["is_active"] is False

    stats = await staff_service.staff_analytics(db_session, organizer_caller, organizer_id)
    assert stats["total_staff"] == 3
    assert (stats["active_staff"], stats["inactive_staff"]) == (2, 1)
    assert stats["staff_with_sales"] == 2
    assert stats["tickets_sold"] == 5
    assert stats["commission_cents"] == 1750
    assert stats["cash_collected_cents"] == 5000
