"""
Pydantic schemas for organizer credits.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from settlement.models.enums import CreditTransactionStatus


class CreditPurchaseCreate(BaseModel):
    quantity: int = Field(..., gt=0, le=1_000_000)
    payment_intent_id: str = Field(..., min_length=1, max_length=255)
    event_id: Optional[int] = None


class CreditPurchaseConfirm(BaseModel):
    payment_intent_id: str = Field(..., min_length=1, max_length=255)


class CreditBalanceResponse(BaseModel):
    organizer_id: int
    credits_total: int
    credits_used: int
    credits_remaining: int
    free_credits_remaining: int
    purchased_credits_remaining: int
    first_event_free_used: bool

    model_config = {"from_attributes": True}


class CreditTransactionResponse(BaseModel):
    id: int
    organizer_id: int
    event_id: Optional[int]
    tickets_purchased: int
    price_per_ticket_cents: int
    amount_paid_cents: int
    payment_intent_id: str
    status: CreditTransactionStatus
    purchased_at: datetime
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}
