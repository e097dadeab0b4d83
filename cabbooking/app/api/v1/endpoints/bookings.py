"""
Booking API Endpoints.

Riders create bookings and read their history; any party can look a booking
up by id or external reference.
"""

from fastapi import APIRouter, Depends, Path, Query, status

from cabbooking.app.core.config import settings
from cabbooking.app.core.dependencies import (
    get_booking_registry,
    get_current_user,
    get_notification_service,
)
from cabbooking.app.core.exceptions import InsufficientPermissionsError
from cabbooking.app.core.guards import require_rider
from cabbooking.app.models.booking import Booking
from cabbooking.app.models.enums import UserRole
from cabbooking.app.schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingListResponse,
    BookingResponse,
)
from cabbooking.app.services.booking_registry import BookingRegistry, Place
from cabbooking.app.services.notification_service import NotificationService, new_booking

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def ensure_can_view(booking: Booking, current_user: dict) -> None:
    """Riders see only their own bookings; drivers and admins see any."""
    if current_user.get("role") == UserRole.RIDER.value and booking.requester_id != current_user["user_id"]:
        raise InsufficientPermissionsError(
            "You do not have access to this booking",
            details={"booking_id": booking.id},
        )


@router.post("", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    current_user: dict = Depends(require_rider),
    registry: BookingRegistry = Depends(get_booking_registry),
    notifications: NotificationService = Depends(get_notification_service),
):
    """
    Create a booking (Rider only).

    Online drivers are notified after the booking is stored.
    """
    created = await registry.create(
        requester_id=current_user["user_id"],
        pickup=Place(payload.pickup.lat, payload.pickup.lng, payload.pickup.address),
        destination=Place(payload.destination.lat, payload.destination.lng, payload.destination.address),
        passenger_count=payload.passenger_count,
    )
    driver_ids = [driver.id for driver in created.eligible_drivers]
    notifications.publish(new_booking(created.booking, driver_ids))

    return BookingCreateResponse(
        booking_id=created.booking.id,
        external_reference=created.booking.external_reference,
        status=created.booking.status,
        notified_drivers=len(driver_ids),
    )


@router.get("/mine", response_model=BookingListResponse)
async def list_my_bookings(
    limit: int = Query(settings.history_default_limit, ge=1, le=settings.history_max_limit),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(require_rider),
    registry: BookingRegistry = Depends(get_booking_registry),
):
    """Rider's booking history, newest first."""
    bookings = await registry.list_for_requester(current_user["user_id"], limit, offset)
    return BookingListResponse(
        bookings=[BookingResponse.model_validate(b) for b in bookings],
        limit=limit,
        offset=offset,
    )


@router.get("/reference/{external_reference}", response_model=BookingResponse)
async def get_booking_by_reference(
    external_reference: str = Path(..., max_length=50),
    current_user: dict = Depends(get_current_user),
    registry: BookingRegistry = Depends(get_booking_registry),
):
    booking = await registry.get_by_reference(external_reference)
    ensure_can_view(booking, current_user)
    return BookingResponse.model_validate(booking)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int = Path(..., description="Booking ID"),
    current_user: dict = Depends(get_current_user),
    registry: BookingRegistry = Depends(get_booking_registry),
):
    booking = await registry.get(booking_id)
    ensure_can_view(booking, current_user)
    return BookingResponse.model_validate(booking)
