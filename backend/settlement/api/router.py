"""
Central API router that aggregates all route modules.
"""

from fastapi import APIRouter
from settlement.api.routes import bundles, credits, events, orders, seating, staff, tiers

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(events.router)
api_router.include_router(tiers.router)
api_router.include_router(seating.router)
api_router.include_router(bundles.router)
api_router.include_router(orders.router)
api_router.include_router(staff.router)
api_router.include_router(credits.router)
