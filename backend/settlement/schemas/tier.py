"""
Pydantic schemas for ticket tiers.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, model_validator


class TierCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    price_cents: int = Field(..., ge=0)
    quantity: int = Field(..., ge=0, le=1_000_000)
    sale_start: Optional[datetime] = None
    sale_end: Optional[datetime] = None
    is_active: bool = True

    @model_validator(mode="after")
    def check_sale_window(self):
        if self.sale_start and self.sale_end and self.sale_end <= self.sale_start:
            raise ValueError("sale_end must be after sale_start")
        return self


class TierResize(BaseModel):
    quantity: int = Field(..., ge=0, le=1_000_000)


class TierResponse(BaseModel):
    id: int
    event_id: int
    name: str
    description: Optional[str]
    price_cents: int
    quantity: int
    sold: int
    available: int
    sale_start: Optional[datetime]
    sale_end: Optional[datetime]
    is_active: bool
    on_sale: bool = False

    model_config = {"from_attributes": True}
