"""
Pydantic schemas for ticket bundles.
"""

from datetime import datetime
from typing import Any, Optional
from pydantic import BaseModel, Field, model_validator

from settlement.models.enums import BundleType


class BundleTierIn(BaseModel):
    tier_id: int
    quantity: int = Field(1, ge=1, le=100)


class BundleCreate(BaseModel):
    bundle_type: BundleType = BundleType.SINGLE_EVENT
    event_id: Optional[int] = None
    event_ids: Optional[list[int]] = None
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=1000)
    price_cents: int = Field(..., ge=0)
    total_quantity: int = Field(..., gt=0, le=1_000_000)
    sale_start: Optional[datetime] = None
    sale_end: Optional[datetime] = None
    included_tiers: list[BundleTierIn] = Field(..., min_length=1)

    @model_validator(mode="after")
    def check_events(self):
        if self.bundle_type == BundleType.SINGLE_EVENT and self.event_id is None:
            raise ValueError("A single-event bundle needs event_id")
        if self.bundle_type == BundleType.MULTI_EVENT and not self.event_ids:
            raise ValueError("A multi-event bundle needs event_ids")
        return self


class BundleTierView(BaseModel):
    tier_id: int
    tier_name: str
    quantity: int
    tier_available: int


class BundleDetails(BaseModel):
    id: int
    bundle_type: BundleType
    event_id: Optional[int]
    event_ids: Optional[list[int]]
    name: str
    description: Optional[str]
    price_cents: int
    regular_price_cents: int
    savings_cents: int
    percentage_savings: int
    total_quantity: int
    sold: int
    available: int
    sale_start: Optional[datetime]
    sale_end: Optional[datetime]
    is_active: bool
    included_tiers: list[BundleTierView]


class BundleAvailabilityResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    detail: dict[str, Any] = {}
