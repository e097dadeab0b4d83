"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from cabbooking.app.api.v1.endpoints import bookings, drivers, lifecycle, offers, ratings

router = APIRouter()

router.include_router(bookings.router)
router.include_router(offers.router)
router.include_router(lifecycle.router)
router.include_router(drivers.router)
router.include_router(ratings.router)
