"""
Offer Book.

Holds driver fare offers per booking and resolves acceptance. Acceptance is a
compare-and-swap on the booking row: the status guard, the matching-offer
check and the commitment of driver and fare are one UPDATE statement, so two
riders' devices (or a retried request) racing on the same booking produce
exactly one winner.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.core.clock import utcnow
from cabbooking.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    InternalError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
    ValidationError,
)
from cabbooking.app.db.session import atomic
from cabbooking.app.domain.booking.transitions import rejection_for, sources_for, target_for
from cabbooking.app.models.booking import Booking
from cabbooking.app.models.enums import BookingEvent, OfferStatus, UserRole
from cabbooking.app.models.offer import Offer
from cabbooking.app.repositories.booking_repository import BookingRepository
from cabbooking.app.repositories.offer_repository import OfferRepository
from cabbooking.app.repositories.user_repository import UserRepository
from cabbooking.app.services.notification_service import (
    NotificationService,
    booking_taken,
    fare_offer_received,
    offer_accepted,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass
class AcceptedOffer:
    booking: Booking
    rejected_driver_ids: List[int]


def parse_fare(value: Any) -> Decimal:
    """Fares are positive amounts with at most two decimal places."""
    if value is None or isinstance(value, bool):
        raise ValidationError("fare is required", details={"field": "fare"})
    try:
        fare = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("fare must be a number", details={"field": "fare"})
    if not fare.is_finite() or fare <= 0:
        raise ValidationError("fare must be greater than zero", details={"field": "fare", "value": str(value)})
    if fare != fare.quantize(CENT):
        raise ValidationError("fare has more than two decimal places", details={"field": "fare", "value": str(value)})
    return fare.quantize(CENT)


class OfferBook:

    def __init__(
        self,
        db: AsyncSession,
        notifications: NotificationService,
        bookings: Optional[BookingRepository] = None,
        offers: Optional[OfferRepository] = None,
        users: Optional[UserRepository] = None,
    ):
        self.db = db
        self.notifications = notifications
        self.bookings = bookings or BookingRepository(db)
        self.offers = offers or OfferRepository(db)
        self.users = users or UserRepository(db)

    async def submit_offer(
        self,
        booking_id: int,
        driver_id: int,
        fare: Any,
        vehicle_type: Optional[str] = None,
        vehicle_number: Optional[str] = None,
    ) -> Offer:
        """
        Record or replace the driver's offer on an open booking.

        The booking row is moved to PROPOSED by a guarded write before the
        offer is upserted, which serializes the offer against a concurrent
        acceptance. A repeated submission by the same driver replaces the
        fare and keeps a single row.

        Raises:
            ValidationError: fare missing, not positive, or finer than cents
            ResourceNotFoundError: unknown booking or driver
            ConflictError: booking already accepted by a driver
            InvalidStateTransitionError: booking completed or canceled
        """
        fare = parse_fare(fare)
        now = utcnow()

        async with atomic(self.db):
            opened = await self.bookings.compare_and_set(
                booking_id,
                sources_for(BookingEvent.OFFER),
                {"status": target_for(BookingEvent.OFFER), "updated_at": now},
            )
            if not opened:
                booking = await self.bookings.get(booking_id)
                raise rejection_for(
                    BookingEvent.OFFER,
                    booking_id,
                    booking.status if booking else None,
                    booking.driver_id if booking else None,
                )

            driver = await self.users.get(driver_id)
            if driver is None or driver.role != UserRole.DRIVER:
                raise ResourceNotFoundError("Driver", driver_id)

            offer = await self.offers.get(booking_id, driver_id)
            if offer is None:
                offer = await self.offers.add(Offer(
                    booking_id=booking_id,
                    driver_id=driver_id,
                    proposed_fare=fare,
                    vehicle_type=vehicle_type or driver.vehicle_type,
                    vehicle_number=vehicle_number or driver.vehicle_number,
                    status=OfferStatus.PENDING,
                    offered_at=now,
                ))
            else:
                offer.proposed_fare = fare
                offer.vehicle_type = vehicle_type or offer.vehicle_type
                offer.vehicle_number = vehicle_number or offer.vehicle_number
                offer.offered_at = now
                await self.db.flush()

            booking = await self.bookings.get(booking_id)

        logger.info("Driver %s offered %s on booking %s", driver_id, fare, booking_id)
        self.notifications.publish(fare_offer_received(booking, driver_id, fare))
        return offer

    async def list_offers(self, booking_id: int) -> List[Offer]:
        """All offers for the booking, cheapest first."""
        async with atomic(self.db):
            booking = await self.bookings.get(booking_id)
            if booking is None:
                raise ResourceNotFoundError("Booking", booking_id)
            return await self.offers.list_for_booking(booking_id)

    async def accept_offer(
        self,
        booking_id: int,
        driver_id: int,
        fare: Any,
        requester_id: Optional[int] = None,
    ) -> AcceptedOffer:
        """
        Commit the booking to ``driver_id`` at ``fare``.

        Exactly one of any number of concurrent calls for the same booking
        succeeds. On success the winning offer becomes ACCEPTED and every
        other pending offer REJECTED in the same transaction; notifications
        go out after commit.

        With ``requester_id`` set, only that rider's booking can be accepted.

        Raises:
            ValidationError: fare missing or not positive
            ResourceNotFoundError: unknown booking, or no offer from this driver
            InsufficientPermissionsError: booking belongs to another rider
            ConflictError: another acceptance won (details carry
                already_accepted_by) or the driver has since changed the fare
            InvalidStateTransitionError: booking completed or canceled
        """
        fare = parse_fare(fare)
        now = utcnow()

        async with atomic(self.db):
            if not await self.bookings.claim_for_offer(booking_id, driver_id, fare, now, requester_id):
                raise await self._explain_failed_claim(booking_id, driver_id, fare, requester_id)

            accepted_rows = await self.offers.mark_accepted(booking_id, driver_id, now)
            if accepted_rows != 1:
                raise InternalError(
                    "Winning offer could not be marked accepted",
                    details={"booking_id": booking_id, "driver_id": driver_id},
                )
            await self.offers.reject_others(booking_id, driver_id, now)

            booking = await self.bookings.get(booking_id)
            rejected_ids = await self.offers.driver_ids(booking_id, OfferStatus.REJECTED)

        logger.info(
            "Booking %s accepted for driver %s at %s, %d other offer(s) rejected",
            booking_id, driver_id, fare, len(rejected_ids),
        )
        self.notifications.publish(
            offer_accepted(booking),
            booking_taken(booking, rejected_ids),
        )
        return AcceptedOffer(booking=booking, rejected_driver_ids=rejected_ids)

    async def _explain_failed_claim(
        self, booking_id: int, driver_id: int, fare: Decimal, requester_id: Optional[int]
    ) -> Exception:
        booking = await self.bookings.get(booking_id)
        if booking is not None and requester_id is not None and booking.requester_id != requester_id:
            return InsufficientPermissionsError(
                "Only the rider who requested this booking can accept offers",
                details={"booking_id": booking_id},
            )
        if booking is None or not booking.status.is_open:
            return rejection_for(
                BookingEvent.ACCEPT,
                booking_id,
                booking.status if booking else None,
                booking.driver_id if booking else None,
            )

        offer = await self.offers.get(booking_id, driver_id)
        if offer is None:
            return ResourceNotFoundError("Offer", f"{booking_id}/{driver_id}")
        if offer.status == OfferStatus.PENDING and offer.proposed_fare != fare:
            return ConflictError(
                "Driver has changed the fare for this booking",
                details={
                    "booking_id": booking_id,
                    "driver_id": driver_id,
                    "reason": "fare_changed",
                    "current_fare": str(offer.proposed_fare),
                },
            )
        return InvalidStateTransitionError(BookingEvent.ACCEPT.value, booking.status.value)
