"""
Booking Lifecycle API Endpoints.

Driver progress events (arrival, journey start, completion) and cancellation.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path

from cabbooking.app.core.dependencies import get_current_user, get_lifecycle
from cabbooking.app.core.guards import require_driver
from cabbooking.app.schemas.booking import BookingResponse, CancelRequest
from cabbooking.app.services.lifecycle import LifecycleStateMachine

router = APIRouter(prefix="/bookings", tags=["Booking Lifecycle"])


@router.post("/{booking_id}/arrival", response_model=BookingResponse)
async def driver_arrival(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_driver),
    lifecycle: LifecycleStateMachine = Depends(get_lifecycle),
):
    """Assigned driver reached the pickup point."""
    booking = await lifecycle.driver_arrival(booking_id, current_user)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/start", response_model=BookingResponse)
async def journey_start(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_driver),
    lifecycle: LifecycleStateMachine = Depends(get_lifecycle),
):
    booking = await lifecycle.journey_start(booking_id, current_user)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def journey_complete(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_driver),
    lifecycle: LifecycleStateMachine = Depends(get_lifecycle),
):
    """Finish the journey; both parties are asked to rate each other."""
    booking = await lifecycle.journey_complete(booking_id, current_user)
    return BookingResponse.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int = Path(..., description="Booking ID"),
    payload: Optional[CancelRequest] = None,
    current_user: dict = Depends(get_current_user),
    lifecycle: LifecycleStateMachine = Depends(get_lifecycle),
):
    """
    Cancel a booking (Rider, assigned Driver, or Admin).

    Canceling an already canceled booking returns it unchanged.
    """
    booking = await lifecycle.cancel(booking_id, current_user, payload.reason if payload else None)
    return BookingResponse.model_validate(booking)
