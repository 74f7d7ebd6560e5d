"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from settlement.models.enums import EventType, PaymentModel


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    starts_at: Optional[datetime] = None
    event_type: EventType = EventType.TICKETED_EVENT
    payment_model: PaymentModel = PaymentModel.PRE_PURCHASE


class EventResponse(BaseModel):
    id: int
    title: str
    organizer_id: int
    starts_at: Optional[datetime]
    event_type: EventType
    payment_model: PaymentModel
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
