"""
Pydantic schemas for orders and tickets.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from settlement.models.enums import OrderStatus, TicketStatus
from settlement.schemas.seating import SeatSelection


class OrderCreate(BaseModel):
    event_id: int
    ticket_tier_id: int
    quantity: int = Field(1, gt=0, le=50)
    seating_chart_id: Optional[int] = None
    selected_seats: Optional[list[SeatSelection]] = None
    referral_code: Optional[str] = Field(None, max_length=50)


class BundleOrderCreate(BaseModel):
    bundle_id: int
    quantity: int = Field(1, gt=0, le=20)
    referral_code: Optional[str] = Field(None, max_length=50)


class OrderComplete(BaseModel):
    payment_id: str = Field(..., min_length=1, max_length=255)
    payment_method: str = Field("card", max_length=50)


class OrderFail(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class OrderItemResponse(BaseModel):
    id: int
    ticket_tier_id: int
    bundle_id: Optional[int]
    position: int
    price_cents: int

    model_config = {"from_attributes": True}


class OrderResponse(BaseModel):
    id: int
    event_id: int
    buyer_id: int
    status: OrderStatus
    subtotal_cents: int
    platform_fee_cents: int
    processing_fee_cents: int
    total_cents: int
    selected_seats: Optional[list[dict]]
    sold_by_staff_id: Optional[int]
    referral_code: Optional[str]
    bundle_id: Optional[int]
    bundle_quantity: Optional[int]
    payment_id: Optional[str]
    payment_method: Optional[str]
    paid_at: Optional[datetime]
    failure_reason: Optional[str]
    items: list[OrderItemResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class TicketResponse(BaseModel):
    id: int
    order_id: int
    event_id: int
    ticket_tier_id: int
    attendee_email: str
    attendee_name: str
    ticket_code: str
    status: TicketStatus
    sold_by_staff_id: Optional[int]
    scanned_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    model_config = {"from_attributes": True}


class CompletionResponse(BaseModel):
    order: OrderResponse
    tickets: list[TicketResponse]
    already_completed: bool = False


class TicketScan(BaseModel):
    ticket_code: str = Field(..., min_length=1, max_length=64)
