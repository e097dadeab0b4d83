"""
Notification Service.

Decides *what* to tell riders and drivers about a booking and hands the
messages to a NotificationDispatcher as a detached asyncio task. Delivery is
best effort: failures are logged, never retried, and never reach the caller
whose booking mutation triggered them.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from cabbooking.app.core.reliability import CircuitBreaker, CircuitOpenError
from cabbooking.app.models.booking import Booking

logger = logging.getLogger(__name__)


class NotificationKind(str, enum.Enum):
    NEW_BOOKING = "new_booking"
    FARE_OFFER = "new_fare_offer"
    OFFER_ACCEPTED = "booking_accepted"
    BOOKING_TAKEN = "booking_rejected"
    DRIVER_ARRIVED = "driver_arrived"
    JOURNEY_STARTED = "journey_started"
    RATE_DRIVER = "rate_driver"
    RATE_PASSENGER = "rate_passenger"
    BOOKING_CANCELED = "booking_canceled"


@dataclass(frozen=True)
class NotificationIntent:
    """One message addressed to one or more users."""
    kind: NotificationKind
    recipients: Tuple[int, ...]
    title: str
    body: str
    data: Dict[str, str] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    """Push transport. Returns per-recipient delivery success."""

    async def send(
        self,
        recipients: Sequence[int],
        title: str,
        body: str,
        data: Dict[str, str],
    ) -> Dict[int, bool]:
        ...


class LoggingDispatcher:
    """Default dispatcher: records what would have been pushed."""

    async def send(self, recipients, title, body, data):
        logger.info(
            "Push %s to %d recipient(s): %s",
            data.get("type", "notification"),
            len(recipients),
            title,
            extra={"recipients": list(recipients), "data": data},
        )
        return {recipient: True for recipient in recipients}


class NotificationService:

    def __init__(self, dispatcher: NotificationDispatcher, breaker: Optional[CircuitBreaker] = None):
        self.dispatcher = dispatcher
        self.breaker = breaker or CircuitBreaker(name="notifications")
        self._pending: Set[asyncio.Task] = set()

    def publish(self, *intents: NotificationIntent) -> Optional[asyncio.Task]:
        """
        Schedule delivery of ``intents`` and return immediately.

        Must be called after the booking change is committed.

        Returns:
            The delivery task, or None when there is nobody to notify
        """
        addressed = [intent for intent in intents if intent.recipients]
        if not addressed:
            return None
        task = asyncio.create_task(self._deliver(addressed))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every scheduled delivery to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _deliver(self, intents: List[NotificationIntent]) -> None:
        for intent in intents:
            try:
                results = await self.breaker.call(
                    self.dispatcher.send,
                    list(intent.recipients),
                    intent.title,
                    intent.body,
                    {"type": intent.kind.value, **intent.data},
                )
            except CircuitOpenError:
                logger.warning(
                    "Notification transport unavailable, dropped %s for %d recipient(s)",
                    intent.kind.value, len(intent.recipients),
                )
                continue
            except Exception:
                logger.exception("Failed to deliver %s notification", intent.kind.value)
                continue

            failed = [recipient for recipient, ok in (results or {}).items() if not ok]
            if failed:
                logger.warning(
                    "%s notification not delivered to %s", intent.kind.value, failed
                )


# Intent builders

def _booking_data(booking: Booking, **extra) -> Dict[str, str]:
    data = {
        "booking_id": str(booking.id),
        "booking_ref": booking.external_reference,
    }
    data.update({key: str(value) for key, value in extra.items() if value is not None})
    return data


def new_booking(booking: Booking, driver_ids: Iterable[int]) -> NotificationIntent:
    return NotificationIntent(
        kind=NotificationKind.NEW_BOOKING,
        recipients=tuple(driver_ids),
        title="New ride request",
        body=f"Pickup: {booking.pickup_address}",
        data=_booking_data(
            booking,
            pickup_address=booking.pickup_address,
            destination_address=booking.destination_address,
            passenger_count=booking.passenger_count,
        ),
    )


def fare_offer_received(booking: Booking, driver_id: int, fare) -> NotificationIntent:
    return NotificationIntent(
        kind=NotificationKind.FARE_OFFER,
        recipients=(booking.requester_id,),
        title="Fare offer received",
        body=f"A driver offered {fare} for your ride",
        data=_booking_data(booking, driver_id=driver_id, proposed_fare=fare),
    )


def offer_accepted(booking: Booking) -> NotificationIntent:
    return NotificationIntent(
        kind=NotificationKind.OFFER_ACCEPTED,
        recipients=(booking.driver_id,),
        title="Your offer was accepted",
        body=f"The rider accepted your fare of {booking.committed_fare}. Please proceed to pickup.",
        data=_booking_data(booking, driver_id=booking.driver_id, accepted_fare=booking.committed_fare),
    )


def booking_taken(booking: Booking, driver_ids: Iterable[int]) -> NotificationIntent:
    return NotificationIntent(
        kind=NotificationKind.BOOKING_TAKEN,
        recipients=tuple(driver_ids),
        title="Booking taken",
        body="The rider selected another driver. Stay ready for the next request.",
        data=_booking_data(booking),
    )


def driver_arrived(booking: Booking) -> NotificationIntent:
    return NotificationIntent(
        kind=NotificationKind.DRIVER_ARRIVED,
        recipients=(booking.requester_id,),
        title="Driver arrived",
        body="Your driver has arrived at the pickup location",
        data=_booking_data(booking, driver_id=booking.driver_id),
    )


def journey_started(booking: Booking) -> NotificationIntent:
    return NotificationIntent(
        kind=NotificationKind.JOURNEY_STARTED,
        recipients=(booking.requester_id,),
        title="Journey started",
        body="Your ride is on its way to the destination",
        data=_booking_data(booking, driver_id=booking.driver_id),
    )


def rating_requests(booking: Booking) -> Tuple[NotificationIntent, NotificationIntent]:
    return (
        NotificationIntent(
            kind=NotificationKind.RATE_DRIVER,
            recipients=(booking.requester_id,),
            title="Rate your ride",
            body="Please rate your ride experience",
            data=_booking_data(booking, driver_id=booking.driver_id),
        ),
        NotificationIntent(
            kind=NotificationKind.RATE_PASSENGER,
            recipients=(booking.driver_id,),
            title="Rate your passenger",
            body="Please rate your passenger",
            data=_booking_data(booking, user_id=booking.requester_id),
        ),
    )


def booking_canceled(booking: Booking, recipient_ids: Iterable[int], message: str) -> NotificationIntent:
    return NotificationIntent(
        kind=NotificationKind.BOOKING_CANCELED,
        recipients=tuple(recipient_ids),
        title="Booking canceled",
        body=message,
        data=_booking_data(booking, reason=booking.cancel_reason),
    )
