"""
Credit ledger for the pre-purchase payment model.

Under PRE_PURCHASE every unit of tier capacity costs the organizer one
credit. The organizer's first event comes with FIRST_EVENT_FREE_CREDITS
on the house; everything beyond is bought at PRICE_PER_CREDIT_CENTS.

The balance keeps the two pools apart. `credits_remaining` is everything
left, `free_credits_remaining` the unspent part of the grant:

    first event:      may draw on credits_remaining (free pool first)
    any other event:  may draw only on credits_remaining - free_credits_remaining

so a second event needs a completed purchase before it gets any capacity.

Check-and-deduct is one compare-and-swap on the balance row:

    UPDATE organizer_credits
       SET credits_remaining = :new_remaining, free_credits_remaining = :new_free, ...
     WHERE id = :id AND version = :v

so two tier edits racing for the last credits cannot both pass the balance
check. allocate/refund never commit: they run inside the caller's unit of
work, holding the "credits:<organizer>" lock.
"""

from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.config import get_settings
from settlement.core.exceptions import ConcurrentModification, InsufficientCredits, NotAuthorized, NotFound
from settlement.core.logging import get_logger
from settlement.core.metrics import record_cas_retry, record_credit_allocation
from settlement.core.security import Caller, require_owner
from settlement.db.base import utcnow
from settlement.models.credits import CreditTransaction, OrganizerCredits
from settlement.models.enums import CreditTransactionStatus
from settlement.models.event import Event
from settlement.services.unit_of_work import credits_key, unit_of_work

logger = get_logger(__name__)


async def _load_balance(db: AsyncSession, organizer_id: int) -> Optional[OrganizerCredits]:
    result = await db.execute(
        select(OrganizerCredits)
        .where(OrganizerCredits.organizer_id == organizer_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _get_or_create_balance(db: AsyncSession, organizer_id: int) -> OrganizerCredits:
    balance = await _load_balance(db, organizer_id)
    if balance is None:
        balance = OrganizerCredits(
            organizer_id=organizer_id,
            credits_total=0,
            credits_used=0,
            credits_remaining=0,
            free_credits_remaining=0,
            first_event_free_used=False,
            version=1,
        )
        db.add(balance)
        await db.flush()
    return balance


async def first_event_id(db: AsyncSession, organizer_id: int) -> Optional[int]:
    """The organizer's earliest event, which carries the free allocation."""
    result = await db.execute(select(func.min(Event.id)).where(Event.organizer_id == organizer_id))
    return result.scalar()


async def get_balance(db: AsyncSession, organizer_id: int) -> OrganizerCredits:
    """Current balance; an organizer with no history reads as all zeros."""
    balance = await _load_balance(db, organizer_id)
    if balance is None:
        return OrganizerCredits(
            organizer_id=organizer_id,
            credits_total=0,
            credits_used=0,
            credits_remaining=0,
            free_credits_remaining=0,
            first_event_free_used=False,
        )
    return balance


async def allocate(
    db: AsyncSession,
    organizer_id: int,
    event_id: int,
    quantity: int,
) -> OrganizerCredits:
    """
    Consume `quantity` credits for tier capacity on `event_id`.

    Grants the first-event free allocation first when it applies.
    Raises InsufficientCredits with nothing applied when the balance
    cannot cover the request.
    """
    settings = get_settings()
    is_first_event = event_id == await first_event_id(db, organizer_id)

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        balance = await _get_or_create_balance(db, organizer_id)
        if quantity <= 0:
            return balance

        grant = 0
        if is_first_event and not balance.first_event_free_used:
            grant = settings.FIRST_EVENT_FREE_CREDITS

        free_pool = balance.free_credits_remaining + grant
        available = balance.purchased_credits_remaining
        if is_first_event:
            available += free_pool

        if available < quantity:
            record_credit_allocation(granted=False)
            logger.warning(
                "credit_allocation_rejected",
                organizer_id=organizer_id,
                event_id=event_id,
                first_event=is_first_event,
                available=available,
                needed=quantity,
            )
            raise InsufficientCredits(organizer_id, available, quantity)

        from_free = min(free_pool, quantity) if is_first_event else 0
        values = {
            "credits_total": balance.credits_total + grant,
            "credits_used": balance.credits_used + quantity,
            "credits_remaining": balance.credits_remaining + grant - quantity,
            "free_credits_remaining": free_pool - from_free,
            "version": OrganizerCredits.version + 1,
        }
        if grant:
            values["first_event_free_used"] = True

        current_version = balance.version
        result = await db.execute(
            update(OrganizerCredits)
            .where(
                OrganizerCredits.id == balance.id,
                OrganizerCredits.version == current_version,
                OrganizerCredits.credits_remaining + grant >= quantity,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            record_cas_retry("credits")
            logger.info("credits_cas_retry", organizer_id=organizer_id, attempt=attempt)
            continue

        record_credit_allocation(granted=True)
        logger.info(
            "credits_allocated",
            organizer_id=organizer_id,
            event_id=event_id,
            quantity=quantity,
            free_granted=grant,
            free_used=from_free,
            remaining=values["credits_remaining"],
        )
        return await _load_balance(db, organizer_id)

    raise ConcurrentModification("OrganizerCredits", organizer_id)


async def refund(
    db: AsyncSession,
    organizer_id: int,
    quantity: int,
    event_id: Optional[int] = None,
) -> OrganizerCredits:
    """
    Return credits for capacity that was removed before it sold.

    Capacity given back by the first event refills the spent part of the
    free grant before anything else; all other refunds are purchased credits.
    """
    settings = get_settings()
    is_first_event = event_id is not None and event_id == await first_event_id(db, organizer_id)

    for attempt in range(1, settings.MAX_RETRY_ATTEMPTS + 1):
        balance = await _get_or_create_balance(db, organizer_id)
        if quantity <= 0:
            return balance

        to_free = 0
        if is_first_event and balance.first_event_free_used:
            free_spent = settings.FIRST_EVENT_FREE_CREDITS - balance.free_credits_remaining
            to_free = max(0, min(quantity, free_spent))

        current_version = balance.version
        result = await db.execute(
            update(OrganizerCredits)
            .where(
                OrganizerCredits.id == balance.id,
                OrganizerCredits.version == current_version,
            )
            .values(
                credits_used=max(0, balance.credits_used - quantity),
                credits_remaining=balance.credits_remaining + quantity,
                free_credits_remaining=balance.free_credits_remaining + to_free,
                version=OrganizerCredits.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            record_cas_retry("credits")
            logger.info("credits_cas_retry", organizer_id=organizer_id, attempt=attempt)
            continue

        logger.info("credits_refunded", organizer_id=organizer_id, quantity=quantity, to_free_pool=to_free)
        return await _load_balance(db, organizer_id)

    raise ConcurrentModification("OrganizerCredits", organizer_id)


async def purchase_credits(
    db: AsyncSession,
    caller: Caller,
    quantity: int,
    payment_intent_id: str,
    event_id: Optional[int] = None,
) -> CreditTransaction:
    """
    Record a credit purchase awaiting payment.
    Re-submitting the same payment intent returns the existing record.
    """
    if caller.user_id is None:
        raise NotAuthorized("purchase credits")

    settings = get_settings()
    async with unit_of_work(db):
        result = await db.execute(
            select(CreditTransaction).where(CreditTransaction.payment_intent_id == payment_intent_id)
        )
        existing = result.scalar_one_or_none()
        if existing is not None:
            require_owner(caller, existing.organizer_id, "view this credit purchase")
            return existing

        if event_id is not None:
            event = await db.get(Event, event_id)
            if event is None:
                raise NotFound("Event", event_id)
            require_owner(caller, event.organizer_id, "buy credits for this event")

        transaction = CreditTransaction(
            organizer_id=caller.user_id,
            event_id=event_id,
            tickets_purchased=quantity,
            price_per_ticket_cents=settings.PRICE_PER_CREDIT_CENTS,
            amount_paid_cents=quantity * settings.PRICE_PER_CREDIT_CENTS,
            payment_intent_id=payment_intent_id,
            status=CreditTransactionStatus.PENDING.value,
        )
        db.add(transaction)
        await db.flush()

    logger.info(
        "credit_purchase_created",
        organizer_id=transaction.organizer_id,
        quantity=quantity,
        amount_cents=transaction.amount_paid_cents,
        payment_intent_id=payment_intent_id,
    )
    return transaction


async def confirm_credit_purchase(
    db: AsyncSession,
    caller: Caller,
    payment_intent_id: str,
) -> tuple[CreditTransaction, bool]:
    """
    Mark a paid purchase COMPLETED and add its credits to the balance.

    Idempotent: confirming twice adds the credits once. Returns the
    transaction and whether it had already been completed.
    """
    result = await db.execute(
        select(CreditTransaction).where(CreditTransaction.payment_intent_id == payment_intent_id)
    )
    transaction = result.scalar_one_or_none()
    if transaction is None:
        raise NotFound("CreditTransaction", payment_intent_id)
    require_owner(caller, transaction.organizer_id, "confirm this credit purchase")

    organizer_id = transaction.organizer_id
    async with unit_of_work(db, [credits_key(organizer_id)]):
        transaction = await _reload_transaction(db, transaction.id)
        if transaction.status == CreditTransactionStatus.COMPLETED.value:
            logger.info("credit_purchase_already_completed", payment_intent_id=payment_intent_id)
            return transaction, True

        balance = await _get_or_create_balance(db, organizer_id)
        result = await db.execute(
            update(OrganizerCredits)
            .where(
                OrganizerCredits.id == balance.id,
                OrganizerCredits.version == balance.version,
            )
            .values(
                credits_total=balance.credits_total + transaction.tickets_purchased,
                credits_remaining=balance.credits_remaining + transaction.tickets_purchased,
                version=OrganizerCredits.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            record_cas_retry("credits")
            raise ConcurrentModification("OrganizerCredits", organizer_id)

        transaction.status = CreditTransactionStatus.COMPLETED.value
        transaction.completed_at = utcnow()
        await db.flush()

    logger.info(
        "credit_purchase_completed",
        organizer_id=organizer_id,
        quantity=transaction.tickets_purchased,
        payment_intent_id=payment_intent_id,
    )
    return transaction, False


async def _reload_transaction(db: AsyncSession, transaction_id: int) -> CreditTransaction:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.id == transaction_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def list_transactions(db: AsyncSession, organizer_id: int) -> list[CreditTransaction]:
    result = await db.execute(
        select(CreditTransaction)
        .where(CreditTransaction.organizer_id == organizer_id)
        .order_by(CreditTransaction.purchased_at.desc(), CreditTransaction.id.desc())
    )
    return list(result.scalars().all())
