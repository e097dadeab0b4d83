"""
Driver API Endpoints.

What a driver sees: bookings they are working on and requests still open to them.
"""

from fastapi import APIRouter, Depends

from cabbooking.app.core.dependencies import get_booking_registry
from cabbooking.app.core.guards import require_driver
from cabbooking.app.schemas.booking import BookingListResponse, BookingResponse
from cabbooking.app.services.booking_registry import BookingRegistry

router = APIRouter(prefix="/drivers/me", tags=["Drivers"])


@router.get("/bookings", response_model=BookingListResponse)
async def list_driver_bookings(
    current_user: dict = Depends(require_driver),
    registry: BookingRegistry = Depends(get_booking_registry),
):
    """Bookings the driver won or offered on, newest first."""
    bookings = await registry.list_for_driver(current_user["user_id"])
    return BookingListResponse(bookings=[BookingResponse.model_validate(b) for b in bookings])


@router.get("/pending", response_model=BookingListResponse)
async def list_pending_bookings(
    current_user: dict = Depends(require_driver),
    registry: BookingRegistry = Depends(get_booking_registry),
):
    """Open bookings the driver has not offered on yet."""
    bookings = await registry.list_open_for_driver(current_user["user_id"])
    return BookingListResponse(bookings=[BookingResponse.model_validate(b) for b in bookings])
