"""
Staff commission engine.

Staff members sell through a referral code. Every attributed sale appends
one StaffSale row (never updated afterwards) and bumps the member's running
totals in the same transaction, so

    tickets_sold         == sum(StaffSale.ticket_count)
    commission_earned    == sum(StaffSale.commission_cents)
    cash_collected_cents == sum(StaffSale.cash_collected_cents)

holds after every commit. derive_staff_totals recomputes the totals from
the audit rows; reconcile_staff_totals repairs a drifted member.
An order carries at most one StaffSale (unique on order_id), so an order
earns exactly one commission however often it is recorded.

Referral codes are checked twice, on purpose with different strictness:
  - at order creation a bad code is dropped quietly (try_resolve_referral)
  - when a sale is recorded explicitly the same problems are hard errors
    (resolve_referral)
"""

import re
import secrets
import string
from enum import Enum
from typing import Optional

from sqlalchemy import or_, select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.config import get_settings
from settlement.core.exceptions import (
    ConcurrentModification,
    InvalidReferralCode,
    InvalidStaffUpdate,
    NotAuthorized,
    OrderAttributedElsewhere,
    OrderNotPending,
    ReferralError,
    ReferralEventMismatch,
    StaffInactive,
)
from settlement.core.logging import get_logger
from settlement.core.metrics import record_cas_retry, record_commission, record_referral_dropped
from settlement.core.security import Caller, require_owner
from settlement.models.enums import CommissionType, OrderStatus
from settlement.models.event import Event
from settlement.models.order import Order
from settlement.models.staff import EventStaff, StaffSale
from settlement.schemas.staff import StaffCreate, StaffUpdate
from settlement.services.event_service import get_event
from settlement.services.pricing import percent_of
from settlement.services.unit_of_work import load_fresh, order_key, staff_key, unit_of_work

logger = get_logger(__name__)

REFERRAL_CODE_ATTEMPTS = 10
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_referral_code(name: str) -> str:
    """Up to 6 alphanumerics of the name plus 6 random characters, uppercased."""
    prefix = re.sub(r"[^A-Za-z0-9]", "", name)[:6].upper()
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
    return prefix + suffix


def compute_commission(staff: EventStaff, sale_amount_cents: int, ticket_count: int, free_event: bool = False) -> int:
    """
    PERCENTAGE: round(sale_amount * value / 100) on the pre-fee subtotal
    FIXED: value per ticket
    Free-event sales earn nothing.
    """
    if free_event or sale_amount_cents <= 0 or not staff.commission_type:
        return 0
    value = staff.commission_value or 0
    if staff.commission_type == CommissionType.PERCENTAGE.value:
        return percent_of(sale_amount_cents, value)
    if staff.commission_type == CommissionType.FIXED.value:
        return value * ticket_count
    return 0


async def get_staff(db: AsyncSession, staff_id: int) -> EventStaff:
    return await load_fresh(db, EventStaff, staff_id, "Staff")


async def add_staff_member(db: AsyncSession, caller: Caller, staff_data: StaffCreate) -> EventStaff:
    """Add a staff member to the caller's team, optionally scoped to one event."""
    if caller.user_id is None:
        raise NotAuthorized("add staff members")

    organizer_id = caller.user_id
    if staff_data.event_id is not None:
        event = await get_event(db, staff_data.event_id)
        require_owner(caller, event.organizer_id, "add staff to this event")
        organizer_id = event.organizer_id

    async with unit_of_work(db):
        for _ in range(REFERRAL_CODE_ATTEMPTS):
            code = generate_referral_code(staff_data.name)
            taken = await db.execute(select(EventStaff.id).where(EventStaff.referral_code == code))
            if taken.scalar_one_or_none() is None:
                break
        else:
            raise ConcurrentModification("ReferralCode")

        staff = EventStaff(
            organizer_id=organizer_id,
            event_id=staff_data.event_id,
            staff_user_id=staff_data.staff_user_id,
            name=staff_data.name,
            email=staff_data.email,
            role=staff_data.role.value,
            commission_type=staff_data.commission_type.value if staff_data.commission_type else None,
            commission_value=staff_data.commission_value,
            referral_code=code,
            tickets_sold=0,
            commission_earned=0,
            cash_collected_cents=0,
            is_active=True,
            version=1,
        )
        db.add(staff)
        await db.flush()

    logger.info("staff_added", staff_id=staff.id, organizer_id=organizer_id, event_id=staff.event_id)
    return staff


async def deactivate_staff_member(db: AsyncSession, caller: Caller, staff_id: int) -> EventStaff:
    """Deactivate rather than delete, so the sales history survives."""
    staff = await get_staff(db, staff_id)
    require_owner(caller, staff.organizer_id, "manage this staff member")

    async with unit_of_work(db, [staff_key(staff_id)]):
        staff = await get_staff(db, staff_id)
        staff.is_active = False
        staff.version = staff.version + 1
        await db.flush()

    logger.info("staff_deactivated", staff_id=staff_id)
    return staff


async def update_staff_member(
    db: AsyncSession,
    caller: Caller,
    staff_id: int,
    staff_data: StaffUpdate,
) -> EventStaff:
    """
    Change a member's details or commission terms.

    New commission terms apply to sales recorded from now on; StaffSale
    rows keep the commission they were recorded with.
    """
    staff = await get_staff(db, staff_id)
    require_owner(caller, staff.organizer_id, "manage this staff member")
    changes = staff_data.model_dump(exclude_unset=True)

    async with unit_of_work(db, [staff_key(staff_id)]):
        staff = await get_staff(db, staff_id)
        commission_type = changes.get("commission_type", staff.commission_type)
        commission_value = changes.get("commission_value", staff.commission_value)
        if (commission_type is None) != (commission_value is None):
            raise InvalidStaffUpdate("commission_type and commission_value go together")
        if commission_type == CommissionType.PERCENTAGE.value and commission_value > 100:
            raise InvalidStaffUpdate("A percentage commission cannot exceed 100", commission_value=commission_value)

        for name, value in changes.items():
            setattr(staff, name, value.value if isinstance(value, Enum) else value)
        staff.version = staff.version + 1
        await db.flush()

    logger.info("staff_updated", staff_id=staff_id, fields=sorted(changes))
    return staff


async def list_staff(db: AsyncSession, organizer_id: int) -> list[EventStaff]:
    result = await db.execute(
        select(EventStaff).where(EventStaff.organizer_id == organizer_id).order_by(EventStaff.id)
    )
    return list(result.scalars().all())


async def resolve_referral(db: AsyncSession, referral_code: str, event: Event) -> EventStaff:
    """
    Hard resolution of a referral code for a sale on `event`.

    Raises:
        InvalidReferralCode, StaffInactive, ReferralEventMismatch
    """
    result = await db.execute(
        select(EventStaff)
        .where(EventStaff.referral_code == referral_code.strip().upper())
        .execution_options(populate_existing=True)
    )
    staff = result.scalar_one_or_none()
    if staff is None:
        raise InvalidReferralCode(referral_code)
    check_staff_eligible(staff, event)
    return staff


def check_staff_eligible(staff: EventStaff, event: Event) -> None:
    """Raise the ReferralError that stops `staff` selling for `event`, if any."""
    if not staff.is_active:
        raise StaffInactive(staff.id)
    if staff.event_id is not None and staff.event_id != event.id:
        raise ReferralEventMismatch(staff.id, staff.event_id, event.id)
    if staff.event_id is None and staff.organizer_id != event.organizer_id:
        # Organizer-wide staff only sell their own organizer's events
        raise ReferralEventMismatch(staff.id, None, event.id)


async def try_resolve_referral(db: AsyncSession, referral_code: Optional[str], event: Event) -> Optional[EventStaff]:
    """Soft resolution used at order creation: a bad code is dropped, not an error."""
    if not referral_code:
        return None
    try:
        return await resolve_referral(db, referral_code, event)
    except ReferralError as e:
        record_referral_dropped(e.code)
        logger.info("referral_dropped", referral_code=referral_code, event_id=event.id, reason=e.code)
        return None


async def apply_sale(
    db: AsyncSession,
    staff_id: int,
    event: Event,
    order_id: int,
    ticket_count: int,
    sale_amount_cents: int,
    payment_method: Optional[str] = None,
    cash_collected_cents: int = 0,
) -> StaffSale:
    """
    Append the StaffSale and bump the member's totals. Caller holds the
    staff lock and owns the transaction. An order earns at most one
    commission: a sale already recorded for it is returned unchanged.
    """
    existing = await db.execute(select(StaffSale).where(StaffSale.order_id == order_id))
    sale = existing.scalar_one_or_none()
    if sale is not None:
        if sale.staff_id != staff_id:
            raise OrderAttributedElsewhere(order_id, sale.staff_id, staff_id)
        logger.info("staff_sale_already_recorded", staff_id=staff_id, order_id=order_id)
        return sale

    settings = get_settings()
    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        staff = await get_staff(db, staff_id)
        commission = compute_commission(staff, sale_amount_cents, ticket_count, free_event=event.is_free)

        result = await db.execute(
            update(EventStaff)
            .where(EventStaff.id == staff_id, EventStaff.version == staff.version)
            .values(
                tickets_sold=EventStaff.tickets_sold + ticket_count,
                commission_earned=EventStaff.commission_earned + commission,
                cash_collected_cents=EventStaff.cash_collected_cents + cash_collected_cents,
                version=EventStaff.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            record_cas_retry("staff")
            logger.info("staff_cas_retry", staff_id=staff_id, attempt=attempt)
            continue

        sale = StaffSale(
            staff_id=staff_id,
            event_id=event.id,
            order_id=order_id,
            ticket_count=ticket_count,
            sale_amount_cents=sale_amount_cents,
            commission_cents=commission,
            payment_method=payment_method,
            cash_collected_cents=cash_collected_cents,
        )
        db.add(sale)
        await db.flush()

        record_commission(staff.commission_type or "NONE")
        logger.info(
            "staff_sale_recorded",
            staff_id=staff_id,
            order_id=order_id,
            ticket_count=ticket_count,
            sale_amount_cents=sale_amount_cents,
            commission_cents=commission,
            cash_collected_cents=cash_collected_cents,
        )
        return sale

    raise ConcurrentModification("Staff", staff_id)


def _check_order_attribution(order: Order, staff: EventStaff) -> None:
    if order.status != OrderStatus.COMPLETED.value:
        raise OrderNotPending(order.id, order.status, "record a staff sale for")
    if order.sold_by_staff_id is not None and order.sold_by_staff_id != staff.id:
        raise OrderAttributedElsewhere(order.id, order.sold_by_staff_id, staff.id)


async def record_sale(
    db: AsyncSession,
    caller: Caller,
    referral_code: str,
    order_id: int,
    ticket_count: int,
    sale_amount_cents: int,
) -> StaffSale:
    """
    Attribute a completed order to the staff member owning `referral_code`.

    Unlike order creation, every referral problem is a hard error here. The
    order must be COMPLETED, and an order already attributed to someone
    else stays theirs. An unattributed order becomes attributed to `staff`.
    """
    order = await load_fresh(db, Order, order_id, "Order")
    event = await get_event(db, order.event_id)
    if not caller.is_privileged:
        require_owner(caller, event.organizer_id, "record staff sales for this event")

    staff = await resolve_referral(db, referral_code, event)
    _check_order_attribution(order, staff)

    async with unit_of_work(db, [order_key(order_id), staff_key(staff.id)]):
        order = await load_fresh(db, Order, order_id, "Order")
        staff = await resolve_referral(db, referral_code, event)
        _check_order_attribution(order, staff)
        if order.sold_by_staff_id is None:
            order.sold_by_staff_id = staff.id
            order.referral_code = staff.referral_code
        return await apply_sale(db, staff.id, event, order.id, ticket_count, sale_amount_cents)


async def derive_staff_totals(db: AsyncSession, staff_id: int) -> tuple[int, int]:
    """(tickets_sold, commission_earned) recomputed from the StaffSale audit rows."""
    result = await db.execute(
        select(
            func.coalesce(func.sum(StaffSale.ticket_count), 0),
            func.coalesce(func.sum(StaffSale.commission_cents), 0),
        ).where(StaffSale.staff_id == staff_id)
    )
    tickets, commission = result.one()
    return int(tickets), int(commission)


async def reconcile_staff_totals(db: AsyncSession, caller: Caller, staff_id: int) -> EventStaff:
    """Overwrite the running totals with the values derived from StaffSale rows."""
    staff = await get_staff(db, staff_id)
    require_owner(caller, staff.organizer_id, "manage this staff member")

    async with unit_of_work(db, [staff_key(staff_id)]):
        staff = await get_staff(db, staff_id)
        tickets, commission = await derive_staff_totals(db, staff_id)
        if (staff.tickets_sold, staff.commission_earned) != (tickets, commission):
            logger.warning(
                "staff_totals_drifted",
                staff_id=staff_id,
                tickets_sold=staff.tickets_sold,
                derived_tickets=tickets,
                commission_earned=staff.commission_earned,
                derived_commission=commission,
            )
        staff.tickets_sold = tickets
        staff.commission_earned = commission
        cash = await db.execute(
            select(func.coalesce(func.sum(StaffSale.cash_collected_cents), 0)).where(StaffSale.staff_id == staff_id)
        )
        staff.cash_collected_cents = int(cash.scalar_one())
        staff.version = staff.version + 1
        await db.flush()

    return staff


async def list_staff_sales(db: AsyncSession, caller: Caller, staff_id: int) -> list[StaffSale]:
    staff = await get_staff(db, staff_id)
    require_owner(caller, staff.organizer_id, "view this staff member's sales")
    result = await db.execute(
        select(StaffSale).where(StaffSale.staff_id == staff_id).order_by(StaffSale.id)
    )
    return list(result.scalars().all())


async def staff_leaderboard(db: AsyncSession, event_id: int) -> list[dict]:
    """
    Sales per staff member on one event: event-scoped members plus the
    organizer's organizer-wide members, best sellers first.
    """
    event = await get_event(db, event_id)
    members = await db.execute(
        select(EventStaff)
        .where(
            EventStaff.organizer_id == event.organizer_id,
            or_(EventStaff.event_id == event_id, EventStaff.event_id.is_(None)),
        )
        .order_by(EventStaff.id)
    )
    totals = await db.execute(
        select(
            StaffSale.staff_id,
            func.count(StaffSale.id),
            func.sum(StaffSale.ticket_count),
            func.sum(StaffSale.sale_amount_cents),
            func.sum(StaffSale.commission_cents),
        )
        .where(StaffSale.event_id == event_id)
        .group_by(StaffSale.staff_id)
    )
    by_staff = {row[0]: row[1:] for row in totals.all()}

    board = []
    for staff in members.scalars().all():
        sales_count, tickets, sales, commission = by_staff.get(staff.id, (0, 0, 0, 0))
        board.append({
            "staff_id": staff.id,
            "name": staff.name,
            "referral_code": staff.referral_code,
            "is_active": staff.is_active,
            "sales_count": int(sales_count),
            "tickets_sold": int(tickets or 0),
            "sale_amount_cents": int(sales or 0),
            "commission_cents": int(commission or 0),
        })
    board.sort(key=lambda entry: (-entry["tickets_sold"], entry["staff_id"]))
    return board


async def staff_analytics(db: AsyncSession, caller: Caller, organizer_id: int, event_id: Optional[int] = None) -> dict:
    """Team-wide totals for an organizer, optionally limited to one event."""
    require_owner(caller, organizer_id, "view staff analytics")
    staff = await list_staff(db, organizer_id)
    staff_ids = [member.id for member in staff]

    query = select(
        func.count(func.distinct(StaffSale.staff_id)),
        func.coalesce(func.sum(StaffSale.ticket_count), 0),
        func.coalesce(func.sum(StaffSale.sale_amount_cents), 0),
        func.coalesce(func.sum(StaffSale.commission_cents), 0),
        func.coalesce(func.sum(StaffSale.cash_collected_cents), 0),
    ).where(StaffSale.staff_id.in_(staff_ids))
    if event_id is not None:
        query = query.where(StaffSale.event_id == event_id)
    with_sales, tickets, sales, commission, cash = (await db.execute(query)).one()

    active = sum(1 for member in staff if member.is_active)
    return {
        "organizer_id": organizer_id,
        "event_id": event_id,
        "total_staff": len(staff),
        "active_staff": active,
        "inactive_staff": len(staff) - active,
        "staff_with_sales": int(with_sales),
        "tickets_sold": int(tickets),
        "sale_amount_cents": int(sales),
        "commission_cents": int(commission),
        "cash_collected_cents": int(cash),
    }
