"""
Booking Registry.

Creates and reads booking records. The registry never changes a booking's
status; acceptance belongs to the offer book and every later transition to
the lifecycle state machine.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.core.config import settings
from cabbooking.app.core.exceptions import ResourceNotFoundError, ValidationError
from cabbooking.app.db.session import atomic
from cabbooking.app.domain.booking.references import generate_booking_reference
from cabbooking.app.models.booking import Booking
from cabbooking.app.models.enums import BookingStatus
from cabbooking.app.models.user import User
from cabbooking.app.repositories.booking_repository import BookingRepository
from cabbooking.app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

DEFAULT_PICKUP_ADDRESS = "Unknown Pickup"
DEFAULT_DESTINATION_ADDRESS = "Unknown Destination"
REFERENCE_ATTEMPTS = 5


@dataclass(frozen=True)
class Place:
    """A geographic point with an optional human-readable address."""
    lat: Any
    lng: Any
    address: Optional[str] = None


@dataclass
class BookingCreated:
    booking: Booking
    eligible_drivers: List[User]


def _coordinate(field_name: str, value: Any, limit: int) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} is required", details={"field": field_name})
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number", details={"field": field_name})
    if not number.is_finite() or not -limit <= number <= limit:
        raise ValidationError(
            f"{field_name} must be between -{limit} and {limit}",
            details={"field": field_name, "value": str(value)},
        )
    return number


def _validate_place(name: str, place: Optional[Place]) -> Place:
    if place is None:
        raise ValidationError(f"{name} is required", details={"field": name})
    address = (place.address or "").strip() or None
    return Place(
        lat=_coordinate(f"{name}.lat", place.lat, 90),
        lng=_coordinate(f"{name}.lng", place.lng, 180),
        address=address,
    )


def _validate_passenger_count(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValidationError(
            "passenger_count must be an integer of at least 1",
            details={"field": "passenger_count", "value": value},
        )
    return value


def _page(limit: Optional[int], offset: Optional[int]):
    limit = settings.history_default_limit if limit is None else limit
    offset = 0 if offset is None else offset
    if limit < 1 or limit > settings.history_max_limit or offset < 0:
        raise ValidationError(
            f"limit must be 1-{settings.history_max_limit} and offset non-negative",
            details={"limit": limit, "offset": offset},
        )
    return limit, offset


class BookingRegistry:

    def __init__(
        self,
        db: AsyncSession,
        bookings: Optional[BookingRepository] = None,
        users: Optional[UserRepository] = None,
    ):
        self.db = db
        self.bookings = bookings or BookingRepository(db)
        self.users = users or UserRepository(db)

    async def create(
        self,
        requester_id: int,
        pickup: Place,
        destination: Place,
        passenger_count: int,
    ) -> BookingCreated:
        """
        Create a booking in status REQUESTED.

        Input is fully validated before anything is written. The caller gets
        back the drivers that are online and reachable so it can fan out the
        new-booking notification; the registry itself sends nothing.

        Raises:
            ValidationError: missing or out-of-range coordinates, passenger_count < 1
            ResourceNotFoundError: unknown requester
        """
        pickup = _validate_place("pickup", pickup)
        destination = _validate_place("destination", destination)
        passenger_count = _validate_passenger_count(passenger_count)

        async with atomic(self.db):
            requester = await self.users.get(requester_id)
            if requester is None:
                raise ResourceNotFoundError("User", requester_id)

            reference = await self._unused_reference()
            booking = await self.bookings.add(Booking(
                external_reference=reference,
                requester_id=requester_id,
                pickup_lat=pickup.lat,
                pickup_lng=pickup.lng,
                pickup_address=pickup.address or DEFAULT_PICKUP_ADDRESS,
                destination_lat=destination.lat,
                destination_lng=destination.lng,
                destination_address=destination.address or DEFAULT_DESTINATION_ADDRESS,
                passenger_count=passenger_count,
                status=BookingStatus.REQUESTED,
            ))
            drivers = await self.users.list_online_drivers()
            booking = await self.bookings.get(booking.id)

        logger.info(
            "Booking %s created (%s), %d driver(s) online",
            booking.id, booking.external_reference, len(drivers),
        )
        return BookingCreated(booking=booking, eligible_drivers=drivers)

    async def get(self, booking_id: int) -> Booking:
        async with atomic(self.db):
            booking = await self.bookings.get(booking_id)
        if booking is None:
            raise ResourceNotFoundError("Booking", booking_id)
        return booking

    async def get_by_reference(self, external_reference: str) -> Booking:
        async with atomic(self.db):
            booking = await self.bookings.get_by_reference(external_reference)
        if booking is None:
            raise ResourceNotFoundError("Booking", external_reference)
        return booking

    async def list_for_requester(
        self, requester_id: int, limit: Optional[int] = None, offset: Optional[int] = None
    ) -> List[Booking]:
        """Requester's booking history, newest first."""
        limit, offset = _page(limit, offset)
        async with atomic(self.db):
            return await self.bookings.list_for_requester(requester_id, limit, offset)

    async def list_for_driver(self, driver_id: int) -> List[Booking]:
        """Bookings the driver won or offered on, newest first."""
        async with atomic(self.db):
            return await self.bookings.list_for_driver(driver_id)

    async def list_open_for_driver(self, driver_id: int) -> List[Booking]:
        """Open bookings the driver has not offered on yet, newest first."""
        async with atomic(self.db):
            return await self.bookings.list_open_without_offer_from(driver_id)

    async def _unused_reference(self) -> str:
        for _ in range(REFERENCE_ATTEMPTS):
            reference = generate_booking_reference()
            if not await self.bookings.reference_exists(reference):
                return reference
        # Unique constraint on the column still guards the insert
        return generate_booking_reference()
