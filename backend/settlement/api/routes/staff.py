"""
Staff and commission endpoints.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.exceptions import NotAuthorized
from settlement.core.security import Caller, get_current_caller
from settlement.db.session import get_db
from settlement.schemas.order import CompletionResponse, OrderResponse, TicketResponse
from settlement.schemas.staff import (
    CashSaleCreate,
    LeaderboardEntry,
    RecordSaleRequest,
    StaffAnalytics,
    StaffCreate,
    StaffResponse,
    StaffSaleResponse,
    StaffTotals,
    StaffUpdate,
)
from settlement.services import order_service, staff_service

router = APIRouter(prefix="/staff", tags=["Staff"])


@router.post("", response_model=StaffResponse, status_code=status.HTTP_201_CREATED)
async def add_staff_endpoint(
    staff_data: StaffCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.add_staff_member(db, caller, staff_data)


@router.get("", response_model=list[StaffResponse])
async def list_staff_endpoint(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    if caller.user_id is None:
        raise NotAuthorized("list staff")
    return await staff_service.list_staff(db, caller.user_id)


@router.get("/leaderboard", response_model=list[LeaderboardEntry])
async def leaderboard_endpoint(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.staff_leaderboard(db, event_id)


@router.get("/analytics", response_model=StaffAnalytics)
async def analytics_endpoint(
    event_id: Optional[int] = None,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    if caller.user_id is None:
        raise NotAuthorized("view staff analytics")
    return await staff_service.staff_analytics(db, caller, caller.user_id, event_id)


@router.patch("/{staff_id}", response_model=StaffResponse)
async def update_staff_endpoint(
    staff_id: int,
    staff_data: StaffUpdate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.update_staff_member(db, caller, staff_id, staff_data)


@router.post("/{staff_id}/deactivate", response_model=StaffResponse)
async def deactivate_staff_endpoint(
    staff_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.deactivate_staff_member(db, caller, staff_id)


@router.post("/sales", response_model=StaffSaleResponse, status_code=status.HTTP_201_CREATED)
async def record_sale_endpoint(
    sale: RecordSaleRequest,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Attribute a sale to a referral code. Invalid codes are rejected."""
    return await staff_service.record_sale(
        db, caller, sale.referral_code, sale.order_id, sale.ticket_count, sale.sale_amount_cents
    )


@router.get("/{staff_id}/sales", response_model=list[StaffSaleResponse])
async def list_sales_endpoint(
    staff_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await staff_service.list_staff_sales(db, caller, staff_id)


@router.post("/{staff_id}/reconcile", response_model=StaffTotals)
async def reconcile_endpoint(
    staff_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Recompute the running totals from the sales audit trail."""
    staff = await staff_service.reconcile_staff_totals(db, caller, staff_id)
    return StaffTotals(
        staff_id=staff.id,
        tickets_sold=staff.tickets_sold,
        commission_earned=staff.commission_earned,
    )


@router.post("/{staff_id}/cash-sales", response_model=CompletionResponse, status_code=status.HTTP_201_CREATED)
async def cash_sale_endpoint(
    staff_id: int,
    sale_data: CashSaleCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Sell tickets in person; the order is settled immediately."""
    result = await order_service.create_cash_sale(db, caller, staff_id, sale_data)
    return CompletionResponse(
        order=OrderResponse.model_validate(result.order),
        tickets=[TicketResponse.model_validate(t) for t in result.tickets],
        already_completed=result.already_completed,
    )
