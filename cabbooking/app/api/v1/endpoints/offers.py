"""
Offer API Endpoints.

Drivers bid on open bookings; the rider lists the bids and accepts one.
"""

from fastapi import APIRouter, Depends, Path, status

from cabbooking.app.core.dependencies import (
    get_booking_registry,
    get_current_user,
    get_lifecycle,
    get_offer_book,
)
from cabbooking.app.core.guards import require_driver, require_role
from cabbooking.app.models.enums import UserRole
from cabbooking.app.schemas.offer import (
    AcceptRequest,
    AcceptResponse,
    OfferCreate,
    OfferListResponse,
    OfferResponse,
)
from cabbooking.app.api.v1.endpoints.bookings import ensure_can_view
from cabbooking.app.services.booking_registry import BookingRegistry
from cabbooking.app.services.lifecycle import LifecycleStateMachine
from cabbooking.app.services.offer_book import OfferBook

router = APIRouter(prefix="/bookings", tags=["Offers"])


@router.post("/{booking_id}/offers", response_model=OfferResponse, status_code=status.HTTP_201_CREATED)
async def submit_offer(
    payload: OfferCreate,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_driver),
    offer_book: OfferBook = Depends(get_offer_book),
):
    """
    Offer a fare on an open booking (Driver only).

    Offering again replaces the driver's previous fare.
    """
    offer = await offer_book.submit_offer(
        booking_id=booking_id,
        driver_id=current_user["user_id"],
        fare=payload.fare,
        vehicle_type=payload.vehicle_type,
        vehicle_number=payload.vehicle_number,
    )
    return OfferResponse.model_validate(offer)


@router.get("/{booking_id}/offers", response_model=OfferListResponse)
async def list_offers(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    registry: BookingRegistry = Depends(get_booking_registry),
    offer_book: OfferBook = Depends(get_offer_book),
):
    """Offers for the booking, cheapest first."""
    booking = await registry.get(booking_id)
    ensure_can_view(booking, current_user)
    offers = await offer_book.list_offers(booking_id)
    return OfferListResponse(
        booking_id=booking_id,
        offers=[OfferResponse.model_validate(o) for o in offers],
    )


@router.post("/{booking_id}/accept", response_model=AcceptResponse)
async def accept_offer(
    payload: AcceptRequest,
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(require_role([UserRole.RIDER, UserRole.ADMIN])),
    lifecycle: LifecycleStateMachine = Depends(get_lifecycle),
):
    """
    Accept one driver's offer (Rider who owns the booking, or Admin).

    Returns 409 with ``already_accepted_by`` when another acceptance won.
    """
    requester_id = None if current_user["role"] == UserRole.ADMIN.value else current_user["user_id"]
    result = await lifecycle.accept(booking_id, payload.driver_id, payload.fare, requester_id)
    return AcceptResponse(
        booking_id=result.booking.id,
        status=result.booking.status,
        driver_id=result.booking.driver_id,
        committed_fare=result.booking.committed_fare,
        rejected_driver_ids=result.rejected_driver_ids,
    )
