"""
Seating chart endpoints.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.security import Caller, get_current_caller
from settlement.db.session import get_db
from settlement.schemas.seating import ChartAvailabilityResponse, SeatingChartCreate, SeatingChartResponse
from settlement.services import seat_service

router = APIRouter(tags=["Seating"])


@router.post(
    "/events/{event_id}/seating-charts",
    response_model=SeatingChartResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_chart_endpoint(
    event_id: int,
    chart_data: SeatingChartCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    return await seat_service.create_seating_chart(db, caller, event_id, chart_data)


@router.get("/seating-charts/{chart_id}", response_model=SeatingChartResponse)
async def get_chart_endpoint(chart_id: int, db: AsyncSession = Depends(get_db)):
    return await seat_service.get_chart(db, chart_id)


@router.get("/seating-charts/{chart_id}/availability", response_model=ChartAvailabilityResponse)
async def chart_availability_endpoint(chart_id: int, db: AsyncSession = Depends(get_db)):
    """Per-seat availability derived from reservations."""
    return await seat_service.get_chart_availability(db, chart_id)


@router.delete("/seating-charts/{chart_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chart_endpoint(
    chart_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    await seat_service.delete_seating_chart(db, caller, chart_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
