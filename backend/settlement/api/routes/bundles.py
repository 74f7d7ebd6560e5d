"""
Bundle endpoints.
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.security import Caller, get_current_caller
from settlement.db.session import get_db
from settlement.schemas.bundle import BundleAvailabilityResponse, BundleCreate, BundleDetails
from settlement.services import bundle_service

router = APIRouter(tags=["Bundles"])


@router.post("/bundles", response_model=BundleDetails, status_code=status.HTTP_201_CREATED)
async def create_bundle_endpoint(
    bundle_data: BundleCreate,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    bundle = await bundle_service.create_bundle(db, caller, bundle_data)
    return await bundle_service.get_bundle_details(db, bundle.id)


@router.get("/bundles/{bundle_id}", response_model=BundleDetails)
async def get_bundle_endpoint(bundle_id: int, db: AsyncSession = Depends(get_db)):
    return await bundle_service.get_bundle_details(db, bundle_id)


@router.get("/bundles/{bundle_id}/availability", response_model=BundleAvailabilityResponse)
async def bundle_availability_endpoint(
    bundle_id: int,
    quantity: int = Query(1, ge=1, le=20),
    db: AsyncSession = Depends(get_db),
):
    availability = await bundle_service.is_bundle_available(db, bundle_id, quantity)
    return BundleAvailabilityResponse(
        available=availability.available,
        reason=availability.reason,
        message=availability.message,
        detail=availability.detail,
    )


@router.get("/events/{event_id}/bundles", response_model=list[BundleDetails])
async def list_bundles_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    return await bundle_service.list_event_bundles(db, event_id)


@router.post("/bundles/{bundle_id}/deactivate", response_model=BundleDetails)
async def deactivate_bundle_endpoint(
    bundle_id: int,
    caller: Caller = Depends(get_current_caller),
    db: AsyncSession = Depends(get_db),
):
    await bundle_service.deactivate_bundle(db, caller, bundle_id)
    return await bundle_service.get_bundle_details(db, bundle_id)
