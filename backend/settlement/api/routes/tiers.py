"""
Ticket tier endpoints. Availability is always read live from the ledger.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.security import Caller, get_current_caller
from settlement.db.session import get_db
from settlement.models.ticket_tier import TicketTier
from settlement.schemas.tier import TierCreate, TierResize, TierResponse
from settlement.services import tier_service

router = APIRouter(tags=["Tiers"])


def _tier_view(tier: TicketTier) -> TierResponse:
    view = TierResponse.model_validate(tier)
    view.on_sale = tier_service.is_on_sale(tier)
    return view


@router.post("/events/{event_id}/tiers", response_model=TierResponse, status_code=status.HTTP_201_CREATED)
async def create_tier_endpoint(
    event_id: int,
    tier_data: TierCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    """Create a tier. Pre-purchase events pay for its quantity in credits."""
    tier = await tier_service.create_tier(db, caller, event_id, tier_data)
    return _tier_view(tier)


@router.get("/events/{event_id}/tiers", response_model=list[TierResponse])
async def list_tiers_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    tiers = await tier_service.list_event_tiers(db, event_id)
    return [_tier_view(tier) for tier in tiers]


@router.get("/tiers/{tier_id}", response_model=TierResponse)
async def get_tier_endpoint(tier_id: int, db: AsyncSession = Depends(get_db)):
    return _tier_view(await tier_service.get_tier(db, tier_id))


@router.patch("/tiers/{tier_id}", response_model=TierResponse)
async def resize_tier_endpoint(
    tier_id: int,
    resize: TierResize,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    tier = await tier_service.resize_tier(db, caller, tier_id, resize.quantity)
    return _tier_view(tier)


@router.delete("/tiers/{tier_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tier_endpoint(
    tier_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    await tier_service.delete_tier(db, caller, tier_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
