"""
Pydantic schemas for event staff and commission tracking.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, model_validator

from settlement.models.enums import CashPaymentMethod, CommissionType, StaffRole


class StaffCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    event_id: Optional[int] = None
    staff_user_id: Optional[int] = None
    role: StaffRole = StaffRole.SELLER
    commission_type: Optional[CommissionType] = None
    commission_value: Optional[int] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_commission(self):
        if (self.commission_type is None) != (self.commission_value is None):
            raise ValueError("commission_type and commission_value go together")
        if self.commission_type == CommissionType.PERCENTAGE and self.commission_value > 100:
            raise ValueError("A percentage commission cannot exceed 100")
        return self


class StaffUpdate(BaseModel):
    """Only the fields sent are changed."""

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    role: Optional[StaffRole] = None
    commission_type: Optional[CommissionType] = None
    commission_value: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None


class StaffResponse(BaseModel):
    id: int
    organizer_id: int
    event_id: Optional[int]
    name: str
    email: str
    role: StaffRole
    commission_type: Optional[CommissionType]
    commission_value: Optional[int]
    referral_code: str
    tickets_sold: int
    commission_earned: int
    cash_collected_cents: int
    is_active: bool

    model_config = {"from_attributes": True}


class RecordSaleRequest(BaseModel):
    referral_code: str = Field(..., min_length=1, max_length=50)
    order_id: int
    ticket_count: int = Field(..., gt=0)
    sale_amount_cents: int = Field(..., ge=0)


class StaffSaleResponse(BaseModel):
    id: int
    staff_id: int
    event_id: int
    order_id: int
    ticket_count: int
    sale_amount_cents: int
    commission_cents: int
    payment_method: Optional[str]
    cash_collected_cents: int
    created_at: datetime

    model_config = {"from_attributes": True}


class StaffTotals(BaseModel):
    staff_id: int
    tickets_sold: int
    commission_earned: int


class CashSaleCreate(BaseModel):
    """An in-person sale rung up by a staff member."""

    event_id: int
    ticket_tier_id: int
    quantity: int = Field(..., gt=0, le=100)
    buyer_name: str = Field(..., min_length=1, max_length=255)
    buyer_email: Optional[EmailStr] = None
    payment_method: CashPaymentMethod = CashPaymentMethod.CASH


class LeaderboardEntry(BaseModel):
    staff_id: int
    name: str
    referral_code: str
    is_active: bool
    sales_count: int
    tickets_sold: int
    sale_amount_cents: int
    commission_cents: int


class StaffAnalytics(BaseModel):
    organizer_id: int
    event_id: Optional[int]
    total_staff: int
    active_staff: int
    inactive_staff: int
    staff_with_sales: int
    tickets_sold: int
    sale_amount_cents: int
    commission_cents: int
    cash_collected_cents: int
