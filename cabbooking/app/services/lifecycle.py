"""
Booking Lifecycle State Machine.

Advances an accepted booking through arrival, journey start and completion,
and handles cancellation from any non-terminal status. Every status write is
a guarded UPDATE whose WHERE clause carries the status the caller observed.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.core.clock import utcnow
from cabbooking.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    ResourceNotFoundError,
)
from cabbooking.app.db.session import atomic
from cabbooking.app.domain.booking.transitions import (
    TIMESTAMP_COLUMNS,
    is_allowed,
    is_repeated_terminal,
    rejection_for,
    target_for,
)
from cabbooking.app.models.booking import Booking
from cabbooking.app.models.enums import BookingEvent, BookingStatus, OfferStatus, UserRole
from cabbooking.app.repositories.booking_repository import BookingRepository
from cabbooking.app.repositories.offer_repository import OfferRepository
from cabbooking.app.services.notification_service import (
    NotificationIntent,
    NotificationService,
    booking_canceled,
    driver_arrived,
    journey_started,
    rating_requests,
)
from cabbooking.app.services.offer_book import AcceptedOffer, OfferBook

logger = logging.getLogger(__name__)

CANCEL_ATTEMPTS = 3


class ResourceReleaser(Protocol):
    """Frees whatever a committed driver was holding for a booking."""

    async def release(self, booking: Booking, driver_id: int) -> None:
        ...


class LoggingResourceReleaser:

    async def release(self, booking: Booking, driver_id: int) -> None:
        logger.info("Released driver %s from booking %s", driver_id, booking.id)


def _actor_id(actor: Dict[str, Any]) -> int:
    return actor["user_id"]


def _is_admin(actor: Dict[str, Any]) -> bool:
    return actor.get("role") == UserRole.ADMIN.value


class LifecycleStateMachine:

    def __init__(
        self,
        db: AsyncSession,
        notifications: NotificationService,
        offer_book: Optional[OfferBook] = None,
        releaser: Optional[ResourceReleaser] = None,
        bookings: Optional[BookingRepository] = None,
        offers: Optional[OfferRepository] = None,
    ):
        self.db = db
        self.notifications = notifications
        self.bookings = bookings or BookingRepository(db)
        self.offers = offers or OfferRepository(db)
        self.offer_book = offer_book or OfferBook(db, notifications, self.bookings, self.offers)
        self.releaser = releaser or LoggingResourceReleaser()

    async def accept(
        self, booking_id: int, driver_id: int, fare: Any, requester_id: Optional[int] = None
    ) -> AcceptedOffer:
        """Requested/proposed -> accepted; resolved by the offer book."""
        return await self.offer_book.accept_offer(booking_id, driver_id, fare, requester_id)

    async def driver_arrival(self, booking_id: int, actor: Dict[str, Any]) -> Booking:
        booking = await self._advance(booking_id, BookingEvent.DRIVER_ARRIVAL, actor)
        self.notifications.publish(driver_arrived(booking))
        return booking

    async def journey_start(self, booking_id: int, actor: Dict[str, Any]) -> Booking:
        booking = await self._advance(booking_id, BookingEvent.JOURNEY_START, actor)
        self.notifications.publish(journey_started(booking))
        return booking

    async def journey_complete(self, booking_id: int, actor: Dict[str, Any]) -> Booking:
        booking = await self._advance(booking_id, BookingEvent.JOURNEY_COMPLETE, actor)
        self.notifications.publish(*rating_requests(booking))
        return booking

    async def cancel(self, booking_id: int, actor: Dict[str, Any], reason: Optional[str] = None) -> Booking:
        """
        Cancel a booking from any non-terminal status.

        Canceling an already canceled booking returns it unchanged. If the
        booking was canceled after acceptance, the committed driver is
        notified and released; drivers still holding pending offers are told
        the request was withdrawn.

        Raises:
            ResourceNotFoundError: unknown booking
            InvalidStateTransitionError: booking already completed
            InsufficientPermissionsError: actor is neither party nor an admin
            ConflictError: the booking kept changing under the cancel
        """
        for _ in range(CANCEL_ATTEMPTS):
            async with atomic(self.db):
                booking = await self._load(booking_id)
                if is_repeated_terminal(BookingEvent.CANCEL, booking.status):
                    self._require_cancel_rights(booking, actor)
                    return booking
                if not is_allowed(BookingEvent.CANCEL, booking.status):
                    raise rejection_for(BookingEvent.CANCEL, booking_id, booking.status, booking.driver_id)
                self._require_cancel_rights(booking, actor)

                observed = booking.status
                committed_driver_id = booking.driver_id
                now = utcnow()
                moved = await self.bookings.compare_and_set(
                    booking_id,
                    {observed},
                    {
                        "status": BookingStatus.CANCELED,
                        "canceled_at": now,
                        "updated_at": now,
                        "canceled_by": _actor_id(actor),
                        "cancel_reason": reason,
                        "driver_id": None,
                        "committed_fare": None,
                    },
                )
                if moved:
                    pending_driver_ids = await self.offers.driver_ids(booking_id, OfferStatus.PENDING)
                    booking = await self.bookings.get(booking_id)
                    break
            logger.debug("Booking %s moved away from %s during cancel, retrying", booking_id, observed.value)
        else:
            raise ConflictError(
                "Booking changed while canceling, retry",
                details={"booking_id": booking_id},
            )

        logger.info(
            "Booking %s canceled from %s by user %s", booking_id, observed.value, _actor_id(actor)
        )
        self.notifications.publish(
            *self._cancel_intents(booking, actor, committed_driver_id, pending_driver_ids)
        )
        if committed_driver_id is not None:
            try:
                await self.releaser.release(booking, committed_driver_id)
            except Exception:
                logger.exception(
                    "Failed to release driver %s from booking %s", committed_driver_id, booking_id
                )
        return booking

    async def _advance(
        self, booking_id: int, event: BookingEvent, actor: Dict[str, Any]
    ) -> Booking:
        target = target_for(event)
        async with atomic(self.db):
            booking = await self._load(booking_id)
            if not is_allowed(event, booking.status):
                raise rejection_for(event, booking_id, booking.status, booking.driver_id)
            self._require_assigned_driver(booking, actor)

            now = utcnow()
            moved = await self.bookings.compare_and_set(
                booking_id,
                {booking.status},
                {"status": target, TIMESTAMP_COLUMNS[target]: now, "updated_at": now},
                Booking.driver_id == _actor_id(actor),
            )
            if not moved:
                current = await self.bookings.get(booking_id)
                raise rejection_for(event, booking_id, current.status, current.driver_id)
            booking = await self.bookings.get(booking_id)

        logger.info("Booking %s moved to %s by driver %s", booking_id, target.value, _actor_id(actor))
        return booking

    async def _load(self, booking_id: int) -> Booking:
        booking = await self.bookings.get(booking_id)
        if booking is None:
            raise ResourceNotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    def _require_assigned_driver(booking: Booking, actor: Dict[str, Any]) -> None:
        if booking.driver_id != _actor_id(actor):
            raise InsufficientPermissionsError(
                "Only the assigned driver can update this booking",
                details={"booking_id": booking.id},
            )

    @staticmethod
    def _require_cancel_rights(booking: Booking, actor: Dict[str, Any]) -> None:
        user_id = _actor_id(actor)
        if _is_admin(actor) or user_id == booking.requester_id:
            return
        if booking.driver_id is not None and user_id == booking.driver_id:
            return
        # A canceled booking no longer carries driver_id; its canceler may repeat the call
        if booking.status == BookingStatus.CANCELED and user_id == booking.canceled_by:
            return
        raise InsufficientPermissionsError(
            "Only the rider, the assigned driver or an admin can cancel this booking",
            details={"booking_id": booking.id},
        )

    @staticmethod
    def _cancel_intents(
        booking: Booking,
        actor: Dict[str, Any],
        committed_driver_id: Optional[int],
        pending_driver_ids: List[int],
    ) -> List[NotificationIntent]:
        user_id = _actor_id(actor)
        intents = []
        if committed_driver_id is not None:
            counterparties = [
                uid for uid in (booking.requester_id, committed_driver_id) if uid != user_id
            ]
            intents.append(booking_canceled(
                booking, counterparties, "Your booking has been canceled"
            ))
        elif pending_driver_ids:
            intents.append(booking_canceled(
                booking, pending_driver_ids, "The rider withdrew this ride request"
            ))
        return intents
