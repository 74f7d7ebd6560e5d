"""
Organizer credit endpoints (pre-purchase payment model).
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.exceptions import NotAuthorized
from settlement.core.security import Caller, get_current_caller
from settlement.db.session import get_db
from settlement.schemas.credits import (
    CreditBalanceResponse,
    CreditPurchaseConfirm,
    CreditPurchaseCreate,
    CreditTransactionResponse,
)
from settlement.services import credit_service

router = APIRouter(prefix="/credits", tags=["Credits"])


@router.get("", response_model=CreditBalanceResponse)
async def balance_endpoint(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    if caller.user_id is None:
        raise NotAuthorized("view a credit balance")
    return await credit_service.get_balance(db, caller.user_id)


@router.get("/transactions", response_model=list[CreditTransactionResponse])
async def transactions_endpoint(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    if caller.user_id is None:
        raise NotAuthorized("view credit purchases")
    return await credit_service.list_transactions(db, caller.user_id)


@router.post("/purchases", response_model=CreditTransactionResponse, status_code=status.HTTP_201_CREATED)
async def purchase_endpoint(
    purchase: CreditPurchaseCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Record a purchase awaiting payment."""
    return await credit_service.purchase_credits(
        db, caller, purchase.quantity, purchase.payment_intent_id, purchase.event_id
    )


@router.post("/purchases/confirm", response_model=CreditTransactionResponse)
async def confirm_endpoint(
    confirm: CreditPurchaseConfirm,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Add the purchased credits once payment succeeded. Safe to retry."""
    transaction, _ = await credit_service.confirm_credit_purchase(db, caller, confirm.payment_intent_id)
    return transaction
