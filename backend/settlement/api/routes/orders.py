"""
Order and ticket endpoints.

Checkout creates PENDING orders; the payment collaborator (system token)
completes or fails them. Completion is safe to retry.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.security import Caller, get_current_caller
from settlement.db.session import get_db
from settlement.schemas.order import (
    BundleOrderCreate,
    CompletionResponse,
    OrderComplete,
    OrderCreate,
    OrderFail,
    OrderResponse,
    TicketResponse,
    TicketScan,
)
from settlement.services import order_service

router = APIRouter(tags=["Orders"])


@router.post("/orders", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order_endpoint(
    order_data: OrderCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.create_order(db, caller, order_data)


@router.post("/orders/bundle", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_bundle_order_endpoint(
    order_data: BundleOrderCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.create_bundle_order(db, caller, order_data)


@router.get("/orders", response_model=list[OrderResponse])
async def list_orders_endpoint(
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Orders placed by the caller, newest first."""
    return await order_service.list_buyer_orders(db, caller)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order_endpoint(
    order_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.get_order(db, caller, order_id)


@router.get("/orders/{order_id}/tickets", response_model=list[TicketResponse])
async def get_order_tickets_endpoint(
    order_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.get_order_tickets(db, caller, order_id)


@router.post("/orders/{order_id}/complete", response_model=CompletionResponse)
async def complete_order_endpoint(
    order_id: int,
    payment: OrderComplete,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Settle a paid order. Retrying returns the original tickets."""
    result = await order_service.complete_order(db, caller, order_id, payment.payment_id, payment.payment_method)
    return CompletionResponse(
        order=OrderResponse.model_validate(result.order),
        tickets=[TicketResponse.model_validate(t) for t in result.tickets],
        already_completed=result.already_completed,
    )


@router.post("/orders/{order_id}/fail", response_model=OrderResponse)
async def fail_order_endpoint(
    order_id: int,
    failure: OrderFail,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.fail_order(db, caller, order_id, failure.reason)


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order_endpoint(
    order_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.cancel_order(db, caller, order_id)


@router.post("/orders/{order_id}/refund", response_model=OrderResponse)
async def refund_order_endpoint(
    order_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.refund_order(db, caller, order_id)


@router.post("/tickets/{ticket_id}/cancel", response_model=TicketResponse)
async def cancel_ticket_endpoint(
    ticket_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.cancel_ticket(db, caller, ticket_id)


@router.post("/tickets/scan", response_model=TicketResponse)
async def scan_ticket_endpoint(
    scan: TicketScan,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await order_service.scan_ticket(db, caller, scan.ticket_code)
