"""
Order lifecycle: the only writer of tier sold counters, seat reservations,
bundle sold counters and staff sale records.

    PENDING --complete--> COMPLETED --refund--> REFUNDED
       |
       +--cancel--> CANCELLED
       +--fail----> FAILED

Creating an order records intent only: prices are captured and fees
computed, but nothing is reserved. All inventory is consumed by
complete_order, in one transaction:

  1. mark the order COMPLETED with the payment metadata
  2. mint one Ticket per OrderItem with a unique ticket code
  3. reserve the selected seats, seat i going to item i
  4. increment each tier's sold counter once by its ticket count
     (and the bundle's sold counter for bundle orders)
  5. credit the referring staff member

Any failure rolls every step back and leaves the order PENDING, so the
payment collaborator can retry or fail it. Completing a COMPLETED order
again returns the original tickets without minting.
"""

import secrets
import string
import time
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.config import get_settings
from settlement.core.exceptions import (
    ConcurrentModification,
    InsufficientTierQuantity,
    InvalidSeatSelection,
    NotAuthorized,
    NotFound,
    OrderNotPending,
    ReferralError,
    SeatAlreadyReserved,
    SeatConflict,
    SettlementError,
    TicketAlreadyScanned,
    TicketNotActive,
    TierNotOnSale,
)
from settlement.core.logging import get_logger
from settlement.core.metrics import (
    order_completion_latency,
    record_completion,
    record_referral_dropped,
    record_seat_conflict,
    record_transition,
    tickets_minted,
)
from settlement.core.security import Caller, require_owner, require_system
from settlement.db.base import utcnow
from settlement.models.enums import CashPaymentMethod, OrderStatus, StaffRole, TicketStatus
from settlement.models.event import Event
from settlement.models.order import Order, OrderItem
from settlement.models.staff import EventStaff
from settlement.models.ticket import Ticket
from settlement.models.user import User
from settlement.schemas.order import BundleOrderCreate, OrderCreate
from settlement.schemas.staff import CashSaleCreate
from settlement.services import bundle_service, seat_service, staff_service, tier_service
from settlement.services.event_service import get_event
from settlement.services.pricing import allocate_bundle_price, calculate_fees
from settlement.services.unit_of_work import (
    bundle_key,
    chart_key,
    load_fresh,
    order_key,
    staff_key,
    ticket_key,
    tier_key,
    unit_of_work,
)

logger = get_logger(__name__)

TICKET_CODE_ATTEMPTS = 10
_CODE_ALPHABET = string.ascii_uppercase + string.digits

# Error category -> order_completions_total result label
_COMPLETION_RESULTS = {"CapacityExceeded": "capacity", "Conflict": "conflict"}


@dataclass
class CompletionResult:
    order: Order
    tickets: list[Ticket] = field(default_factory=list)
    already_completed: bool = False


def generate_ticket_code() -> str:
    """TKT-<epoch millis>-<8 random base36 characters>."""
    prefix = get_settings().TICKET_CODE_PREFIX
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(8))
    return f"{prefix}-{millis}-{suffix}"


async def _unique_ticket_code(db: AsyncSession, issued: set[str]) -> str:
    for _ in range(TICKET_CODE_ATTEMPTS):
        code = generate_ticket_code()
        if code in issued:
            continue
        existing = await db.execute(select(Ticket.id).where(Ticket.ticket_code == code))
        if existing.scalar_one_or_none() is None:
            issued.add(code)
            return code
    raise ConcurrentModification("TicketCode")


async def _get_buyer(db: AsyncSession, caller: Caller) -> User:
    if caller.user_id is None:
        raise NotAuthorized("place orders")
    buyer = await db.get(User, caller.user_id)
    if buyer is None:
        raise NotFound("User", caller.user_id)
    return buyer


async def _require_party(db: AsyncSession, caller: Caller, owner_id: int, event_id: int, action: str) -> None:
    """The buyer/attendee, the event's organizer, or an admin/system caller."""
    if caller.can_act_for(owner_id):
        return
    event = await get_event(db, event_id)
    require_owner(caller, event.organizer_id, action)


async def _order_items(db: AsyncSession, order_id: int) -> list[OrderItem]:
    result = await db.execute(
        select(OrderItem)
        .where(OrderItem.order_id == order_id)
        .order_by(OrderItem.position)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _order_tickets(db: AsyncSession, order_id: int) -> list[Ticket]:
    result = await db.execute(
        select(Ticket)
        .where(Ticket.order_id == order_id)
        .order_by(Ticket.id)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def create_order(db: AsyncSession, caller: Caller, order_data: OrderCreate) -> Order:
    """
    Record a PENDING order for `quantity` tickets of one tier.

    The capacity and seat checks here are a courtesy to the buyer: they are
    not binding, and complete_order re-checks everything under lock.
    """
    buyer = await _get_buyer(db, caller)
    event = await get_event(db, order_data.event_id)
    tier = await tier_service.get_tier(db, order_data.ticket_tier_id)
    if tier.event_id != event.id:
        raise NotFound("Tier", order_data.ticket_tier_id)
    if not tier_service.is_on_sale(tier):
        raise TierNotOnSale(tier.name)
    if tier.available < order_data.quantity:
        logger.info(
            "order_rejected_capacity",
            tier_id=tier.id,
            requested=order_data.quantity,
            available=tier.available,
        )
        raise InsufficientTierQuantity(tier.name, order_data.quantity, tier.available)

    selected_seats = None
    if order_data.selected_seats:
        selected_seats = await _check_seats(db, event, order_data)

    staff = await staff_service.try_resolve_referral(db, order_data.referral_code, event)

    subtotal = tier.price_cents * order_data.quantity
    fees = calculate_fees(subtotal)

    async with unit_of_work(db):
        order = Order(
            event_id=event.id,
            buyer_id=buyer.id,
            buyer_email=buyer.email,
            buyer_name=buyer.name or buyer.email,
            status=OrderStatus.PENDING.value,
            subtotal_cents=fees.subtotal_cents,
            platform_fee_cents=fees.platform_fee_cents,
            processing_fee_cents=fees.processing_fee_cents,
            total_cents=fees.total_cents,
            selected_seats=selected_seats,
            sold_by_staff_id=staff.id if staff else None,
            referral_code=staff.referral_code if staff else None,
            items=[
                OrderItem(ticket_tier_id=tier.id, position=position, price_cents=tier.price_cents)
                for position in range(order_data.quantity)
            ],
        )
        db.add(order)
        await db.flush()

    record_transition(OrderStatus.PENDING.value)
    logger.info(
        "order_created",
        order_id=order.id,
        event_id=event.id,
        tier_id=tier.id,
        quantity=order_data.quantity,
        total_cents=order.total_cents,
        staff_id=order.sold_by_staff_id,
    )
    return order


async def _check_seats(db: AsyncSession, event: Event, order_data: OrderCreate) -> list[dict]:
    """Validate the seat selection against the chart and current reservations."""
    seats = order_data.selected_seats
    if len(seats) != order_data.quantity:
        raise InvalidSeatSelection(
            f"Selected {len(seats)} seats for {order_data.quantity} tickets",
            selected=len(seats),
            quantity=order_data.quantity,
        )
    if len({seat.slot_key for seat in seats}) != len(seats):
        raise InvalidSeatSelection("The same seat was selected twice")

    if order_data.seating_chart_id is not None:
        chart = await seat_service.get_chart(db, order_data.seating_chart_id)
        if chart.event_id != event.id:
            raise NotFound("SeatingChart", order_data.seating_chart_id)
    else:
        chart = await seat_service.get_event_chart(db, event.id)

    stored = []
    for seat in seats:
        found = seat_service.find_seat(chart, seat)
        stored.append({
            **seat.model_dump(),
            "seat_number": found["seat_number"],
            "chart_id": chart.id,
        })

    taken = await seat_service.find_reserved_slots(db, chart.id, seats)
    for seat in seats:
        if seat.slot_key in taken:
            record_seat_conflict("preflight")
            logger.info("seat_preflight_conflict", chart_id=chart.id, seat_id=seat.seat_id)
            raise SeatAlreadyReserved(seat.seat_number, seat.section_id, seat.seat_id)
    return stored


async def create_bundle_order(db: AsyncSession, caller: Caller, order_data: BundleOrderCreate) -> Order:
    """
    Record a PENDING order for `quantity` bundles.

    The bundle expands into ordinary tier items; the bundle price is spread
    over them in proportion to face value so the items sum to the subtotal.
    """
    buyer = await _get_buyer(db, caller)
    availability = await bundle_service.is_bundle_available(db, order_data.bundle_id, order_data.quantity)
    availability.raise_for_reason(order_data.bundle_id)

    bundle = await bundle_service.get_bundle(db, order_data.bundle_id)
    tiers = await bundle_service.load_bundle_tiers(db, bundle)
    event = await get_event(db, bundle.primary_event_id)

    units = []
    for tier_id, count in bundle_service.expand_bundle(bundle, order_data.quantity):
        units.extend([tiers[tier_id]] * count)

    subtotal = bundle.price_cents * order_data.quantity
    prices = allocate_bundle_price(subtotal, [tier.price_cents for tier in units])
    fees = calculate_fees(subtotal)

    staff = await staff_service.try_resolve_referral(db, order_data.referral_code, event)

    async with unit_of_work(db):
        order = Order(
            event_id=event.id,
            buyer_id=buyer.id,
            buyer_email=buyer.email,
            buyer_name=buyer.name or buyer.email,
            status=OrderStatus.PENDING.value,
            subtotal_cents=fees.subtotal_cents,
            platform_fee_cents=fees.platform_fee_cents,
            processing_fee_cents=fees.processing_fee_cents,
            total_cents=fees.total_cents,
            sold_by_staff_id=staff.id if staff else None,
            referral_code=staff.referral_code if staff else None,
            bundle_id=bundle.id,
            bundle_quantity=order_data.quantity,
            items=[
                OrderItem(ticket_tier_id=tier.id, bundle_id=bundle.id, position=position, price_cents=price)
                for position, (tier, price) in enumerate(zip(units, prices))
            ],
        )
        db.add(order)
        await db.flush()

    record_transition(OrderStatus.PENDING.value)
    logger.info(
        "bundle_order_created",
        order_id=order.id,
        bundle_id=bundle.id,
        quantity=order_data.quantity,
        items=len(units),
        total_cents=order.total_cents,
    )
    return order


def _completion_keys(order: Order, items: list[OrderItem]) -> list[str]:
    keys = [order_key(order.id)]
    keys.extend(tier_key(tier_id) for tier_id in {item.ticket_tier_id for item in items})
    keys.extend(chart_key(chart_id) for chart_id in {seat["chart_id"] for seat in order.selected_seats or []})
    if order.bundle_id is not None:
        keys.append(bundle_key(order.bundle_id))
    if order.sold_by_staff_id is not None:
        keys.append(staff_key(order.sold_by_staff_id))
    return keys


async def complete_order(
    db: AsyncSession,
    caller: Caller,
    order_id: int,
    payment_id: str,
    payment_method: str,
) -> CompletionResult:
    """Settle a paid order. Idempotent for an order that is already COMPLETED."""
    require_system(caller, "complete orders")
    started = time.perf_counter()

    order = await load_fresh(db, Order, order_id, "Order")
    if order.status == OrderStatus.COMPLETED.value:
        record_completion("duplicate")
        return CompletionResult(order, await _order_tickets(db, order_id), already_completed=True)
    if order.status != OrderStatus.PENDING.value:
        raise OrderNotPending(order_id, order.status, "complete")

    items = await _order_items(db, order_id)
    event = await get_event(db, order.event_id)

    try:
        async with unit_of_work(db, _completion_keys(order, items)):
            order = await load_fresh(db, Order, order_id, "Order")
            if order.status == OrderStatus.COMPLETED.value:
                # A concurrent retry won the race
                record_completion("duplicate")
                return CompletionResult(order, await _order_tickets(db, order_id), already_completed=True)
            if order.status != OrderStatus.PENDING.value:
                raise OrderNotPending(order_id, order.status, "complete")

            order.status = OrderStatus.COMPLETED.value
            order.payment_id = payment_id
            order.payment_method = payment_method
            order.paid_at = utcnow()

            tickets = await _mint_tickets(db, order, items)
            await _reserve_order_seats(db, order, tickets)

            for tier_id, count in Counter(ticket.ticket_tier_id for ticket in tickets).items():
                await tier_service.increment_sold(db, tier_id, count)

            if order.bundle_id is not None:
                await bundle_service.increment_bundle_sold(db, order.bundle_id, order.bundle_quantity or 1)

            if order.sold_by_staff_id is not None:
                await _credit_staff(db, order, event, len(tickets))

            await db.flush()
    except SettlementError as e:
        record_completion(_COMPLETION_RESULTS.get(e.category, "error"))
        logger.warning("order_completion_failed", order_id=order_id, code=e.code, detail=e.detail)
        raise

    record_completion("completed")
    record_transition(OrderStatus.COMPLETED.value)
    tickets_minted.inc(len(tickets))
    order_completion_latency.observe(time.perf_counter() - started)
    logger.info(
        "order_completed",
        order_id=order_id,
        payment_id=payment_id,
        tickets=len(tickets),
        subtotal_cents=order.subtotal_cents,
    )
    return CompletionResult(order, tickets)


async def _mint_tickets(db: AsyncSession, order: Order, items: list[OrderItem]) -> list[Ticket]:
    tiers = {}
    for tier_id in {item.ticket_tier_id for item in items}:
        tiers[tier_id] = await tier_service.get_tier(db, tier_id)

    issued: set[str] = set()
    tickets = []
    for item in items:
        ticket = Ticket(
            order_id=order.id,
            order_item_id=item.id,
            # Multi-event bundles mint tickets for each tier's own event
            event_id=tiers[item.ticket_tier_id].event_id,
            ticket_tier_id=item.ticket_tier_id,
            attendee_id=order.buyer_id,
            attendee_email=order.buyer_email,
            attendee_name=order.buyer_name,
            ticket_code=await _unique_ticket_code(db, issued),
            status=TicketStatus.VALID.value,
            sold_by_staff_id=order.sold_by_staff_id,
        )
        db.add(ticket)
        tickets.append(ticket)
    await db.flush()
    return tickets


async def _reserve_order_seats(db: AsyncSession, order: Order, tickets: list[Ticket]) -> None:
    for ticket, seat in zip(tickets, order.selected_seats or []):
        try:
            await seat_service.reserve(db, seat["chart_id"], ticket.id, order.id, [seat])
        except SeatAlreadyReserved as e:
            record_seat_conflict("completion")
            logger.warning("seat_conflict_at_completion", order_id=order.id, seat_id=e.detail["seat_id"])
            raise SeatConflict(
                order.id,
                e.detail["seat_number"],
                e.detail["section_id"],
                e.detail["seat_id"],
            ) from e


async def _credit_staff(db: AsyncSession, order: Order, event: Event, ticket_count: int) -> None:
    staff = await staff_service.get_staff(db, order.sold_by_staff_id)
    try:
        staff_service.check_staff_eligible(staff, event)
    except ReferralError as e:
        # The referral was valid at checkout; losing it must not block payment
        record_referral_dropped(e.code)
        logger.warning("commission_skipped", order_id=order.id, staff_id=staff.id, reason=e.code)
        return
    cash = order.total_cents if order.payment_method == CashPaymentMethod.CASH.value else 0
    await staff_service.apply_sale(
        db,
        staff.id,
        event,
        order.id,
        ticket_count,
        order.subtotal_cents,
        payment_method=order.payment_method,
        cash_collected_cents=cash,
    )


async def cancel_order(db: AsyncSession, caller: Caller, order_id: int) -> Order:
    """Cancel a PENDING order. Nothing was reserved, so no ledger changes."""
    order = await load_fresh(db, Order, order_id, "Order")
    require_owner(caller, order.buyer_id, "cancel this order")

    async with unit_of_work(db, [order_key(order_id)]):
        order = await load_fresh(db, Order, order_id, "Order")
        if order.status != OrderStatus.PENDING.value:
            raise OrderNotPending(order_id, order.status, "cancel")
        order.status = OrderStatus.CANCELLED.value
        await db.flush()

    record_transition(OrderStatus.CANCELLED.value)
    logger.info("order_cancelled", order_id=order_id)
    return order


async def fail_order(db: AsyncSession, caller: Caller, order_id: int, reason: str) -> Order:
    """Payment collaborator reports a failed payment on a PENDING order."""
    require_system(caller, "fail orders")

    async with unit_of_work(db, [order_key(order_id)]):
        order = await load_fresh(db, Order, order_id, "Order")
        if order.status != OrderStatus.PENDING.value:
            raise OrderNotPending(order_id, order.status, "fail")
        order.status = OrderStatus.FAILED.value
        order.failure_reason = reason
        await db.flush()

    record_transition(OrderStatus.FAILED.value)
    logger.info("order_failed", order_id=order_id, reason=reason)
    return order


async def cancel_ticket(db: AsyncSession, caller: Caller, ticket_id: int) -> Ticket:
    """
    Cancel one ticket of a completed order: its seats go back on sale and
    its tier's sold counter drops by one.
    """
    ticket = await load_fresh(db, Ticket, ticket_id, "Ticket")
    await _require_party(db, caller, ticket.attendee_id, ticket.event_id, "cancel this ticket")

    chart_ids = await seat_service.charts_for_ticket(db, ticket_id)
    keys = [ticket_key(ticket_id), order_key(ticket.order_id), tier_key(ticket.ticket_tier_id)]
    keys.extend(chart_key(chart_id) for chart_id in chart_ids)

    async with unit_of_work(db, keys):
        ticket = await load_fresh(db, Ticket, ticket_id, "Ticket")
        if ticket.status == TicketStatus.SCANNED.value:
            raise TicketAlreadyScanned(ticket_id)
        if ticket.status != TicketStatus.VALID.value:
            raise TicketNotActive(ticket_id, ticket.status)

        ticket.status = TicketStatus.CANCELLED.value
        ticket.cancelled_at = utcnow()
        await db.flush()

        released = await seat_service.release(db, ticket_id)
        await tier_service.decrement_sold(db, ticket.ticket_tier_id, 1)

    logger.info("ticket_cancelled", ticket_id=ticket_id, order_id=ticket.order_id, seats_released=released)
    return ticket


async def refund_order(db: AsyncSession, caller: Caller, order_id: int) -> Order:
    """
    Refund a COMPLETED order. Refused outright if any ticket was scanned;
    otherwise every still-valid ticket is refunded and its inventory returned.
    """
    order = await load_fresh(db, Order, order_id, "Order")
    await _require_party(db, caller, order.buyer_id, order.event_id, "refund this order")
    if order.status != OrderStatus.COMPLETED.value:
        raise OrderNotPending(order_id, order.status, "refund")

    tickets = await _order_tickets(db, order_id)
    keys = [order_key(order_id)]
    if order.bundle_id is not None:
        keys.append(bundle_key(order.bundle_id))
    for ticket in tickets:
        keys.append(ticket_key(ticket.id))
        keys.append(tier_key(ticket.ticket_tier_id))
        keys.extend(chart_key(chart_id) for chart_id in await seat_service.charts_for_ticket(db, ticket.id))

    async with unit_of_work(db, keys):
        order = await load_fresh(db, Order, order_id, "Order")
        if order.status != OrderStatus.COMPLETED.value:
            raise OrderNotPending(order_id, order.status, "refund")

        tickets = await _order_tickets(db, order_id)
        for ticket in tickets:
            if ticket.status == TicketStatus.SCANNED.value:
                raise TicketAlreadyScanned(ticket.id)

        now = utcnow()
        refunded = Counter()
        for ticket in tickets:
            if ticket.status != TicketStatus.VALID.value:
                continue
            ticket.status = TicketStatus.REFUNDED.value
            ticket.cancelled_at = now
            refunded[ticket.ticket_tier_id] += 1
        await db.flush()

        for ticket in tickets:
            if ticket.status == TicketStatus.REFUNDED.value:
                await seat_service.release(db, ticket.id)
        for tier_id, count in refunded.items():
            await tier_service.decrement_sold(db, tier_id, count)
        if order.bundle_id is not None:
            await bundle_service.decrement_bundle_sold(db, order.bundle_id, order.bundle_quantity or 1)

        order.status = OrderStatus.REFUNDED.value
        await db.flush()

    record_transition(OrderStatus.REFUNDED.value)
    logger.info("order_refunded", order_id=order_id, tickets_refunded=sum(refunded.values()))
    return order


async def _can_scan(db: AsyncSession, caller: Caller, event: Event) -> bool:
    if caller.can_act_for(event.organizer_id):
        return True
    if caller.user_id is None:
        return False
    result = await db.execute(
        select(EventStaff.id).where(
            EventStaff.staff_user_id == caller.user_id,
            EventStaff.organizer_id == event.organizer_id,
            EventStaff.is_active.is_(True),
            EventStaff.role == StaffRole.SCANNER.value,
            (EventStaff.event_id.is_(None)) | (EventStaff.event_id == event.id),
        )
    )
    return result.first() is not None


async def scan_ticket(db: AsyncSession, caller: Caller, ticket_code: str) -> Ticket:
    """Check a ticket in at the door: VALID -> SCANNED, once."""
    result = await db.execute(select(Ticket.id, Ticket.event_id).where(Ticket.ticket_code == ticket_code))
    row = result.first()
    if row is None:
        raise NotFound("Ticket", ticket_code)
    ticket_id, event_id = row

    event = await get_event(db, event_id)
    if not await _can_scan(db, caller, event):
        raise NotAuthorized("scan tickets for this event")

    async with unit_of_work(db, [ticket_key(ticket_id)]):
        ticket = await load_fresh(db, Ticket, ticket_id, "Ticket")
        if ticket.status != TicketStatus.VALID.value:
            raise TicketNotActive(ticket_id, ticket.status)
        ticket.status = TicketStatus.SCANNED.value
        ticket.scanned_at = utcnow()
        await db.flush()

    logger.info("ticket_scanned", ticket_id=ticket_id, event_id=event_id)
    return ticket


async def get_order(db: AsyncSession, caller: Caller, order_id: int) -> Order:
    order = await load_fresh(db, Order, order_id, "Order")
    await _require_party(db, caller, order.buyer_id, order.event_id, "view this order")
    return order


async def get_order_tickets(db: AsyncSession, caller: Caller, order_id: int) -> list[Ticket]:
    order = await get_order(db, caller, order_id)
    return await _order_tickets(db, order.id)


async def list_buyer_orders(db: AsyncSession, caller: Caller) -> list[Order]:
    if caller.user_id is None:
        return []
    result = await db.execute(
        select(Order)
        .where(Order.buyer_id == caller.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    return list(result.scalars().all())


async def create_cash_sale(
    db: AsyncSession,
    caller: Caller,
    staff_id: int,
    sale_data: CashSaleCreate,
) -> CompletionResult:
    """
    Ring up an in-person sale for a staff member.

    The sale is an ordinary order with no checkout fees, attributed to the
    member and settled at once through complete_order, so it consumes tier
    inventory and earns commission exactly like an online sale. Cash (not
    Cash App) is added to the member's cash_collected_cents. A sale that
    cannot be settled is marked FAILED and the error re-raised.
    """
    staff = await staff_service.get_staff(db, staff_id)
    if caller.user_id is None or caller.user_id != staff.staff_user_id:
        require_owner(caller, staff.organizer_id, "record cash sales for this staff member")

    event = await get_event(db, sale_data.event_id)
    staff_service.check_staff_eligible(staff, event)
    tier = await tier_service.get_tier(db, sale_data.ticket_tier_id)
    if tier.event_id != event.id:
        raise NotFound("Tier", sale_data.ticket_tier_id)
    if not tier_service.is_on_sale(tier):
        raise TierNotOnSale(tier.name)
    if tier.available < sale_data.quantity:
        raise InsufficientTierQuantity(tier.name, sale_data.quantity, tier.available)

    subtotal = tier.price_cents * sale_data.quantity
    async with unit_of_work(db):
        order = Order(
            event_id=event.id,
            buyer_id=caller.user_id or staff.organizer_id,
            buyer_email=sale_data.buyer_email or staff.email,
            buyer_name=sale_data.buyer_name,
            status=OrderStatus.PENDING.value,
            subtotal_cents=subtotal,
            platform_fee_cents=0,
            processing_fee_cents=0,
            total_cents=subtotal,
            sold_by_staff_id=staff.id,
            referral_code=staff.referral_code,
            items=[
                OrderItem(ticket_tier_id=tier.id, position=position, price_cents=tier.price_cents)
                for position in range(sale_data.quantity)
            ],
        )
        db.add(order)
        await db.flush()
    order_id = order.id
    record_transition(OrderStatus.PENDING.value)

    payment_method = sale_data.payment_method.value
    try:
        result = await complete_order(
            db, Caller.system(), order_id, f"{payment_method.lower()}-{order_id}", payment_method
        )
    except SettlementError as e:
        await fail_order(db, Caller.system(), order_id, e.code)
        raise

    logger.info(
        "cash_sale_recorded",
        order_id=order_id,
        staff_id=staff_id,
        tier_id=sale_data.ticket_tier_id,
        quantity=sale_data.quantity,
        payment_method=payment_method,
        subtotal_cents=subtotal,
    )
    return result
