"""
Booking Transition Table (Domain Logic).

Single source of truth for which events may move a booking between statuses.
Services ask this module for the target status and for the set of statuses a
guarded UPDATE must match; nothing else compares status strings.
"""

from typing import Dict, FrozenSet, NamedTuple, Optional

from cabbooking.app.core.exceptions import (
    ConflictError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from cabbooking.app.models.enums import (
    BookingEvent,
    BookingStatus,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
)


class Transition(NamedTuple):
    sources: FrozenSet[BookingStatus]
    target: BookingStatus


TRANSITIONS: Dict[BookingEvent, Transition] = {
    BookingEvent.OFFER: Transition(OPEN_STATUSES, BookingStatus.PROPOSED),
    BookingEvent.ACCEPT: Transition(OPEN_STATUSES, BookingStatus.ACCEPTED),
    BookingEvent.DRIVER_ARRIVAL: Transition(
        frozenset({BookingStatus.ACCEPTED}), BookingStatus.ARRIVED
    ),
    BookingEvent.JOURNEY_START: Transition(
        frozenset({BookingStatus.ARRIVED}), BookingStatus.IN_PROGRESS
    ),
    BookingEvent.JOURNEY_COMPLETE: Transition(
        frozenset({BookingStatus.IN_PROGRESS}), BookingStatus.COMPLETED
    ),
    BookingEvent.CANCEL: Transition(
        frozenset(BookingStatus) - TERMINAL_STATUSES, BookingStatus.CANCELED
    ),
}

# Per-transition timestamp column stamped when the target status is entered
TIMESTAMP_COLUMNS: Dict[BookingStatus, str] = {
    BookingStatus.ACCEPTED: "accepted_at",
    BookingStatus.ARRIVED: "arrived_at",
    BookingStatus.IN_PROGRESS: "started_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELED: "canceled_at",
}


def sources_for(event: BookingEvent) -> FrozenSet[BookingStatus]:
    return TRANSITIONS[event].sources


def target_for(event: BookingEvent) -> BookingStatus:
    return TRANSITIONS[event].target


def is_allowed(event: BookingEvent, current: BookingStatus) -> bool:
    return current in TRANSITIONS[event].sources


def is_repeated_terminal(event: BookingEvent, current: BookingStatus) -> bool:
    """True when the event would re-enter the terminal status the booking already has."""
    return current.is_terminal and TRANSITIONS[event].target == current


def rejection_for(
    event: BookingEvent,
    booking_id: int,
    current: Optional[BookingStatus],
    driver_id: Optional[int] = None,
) -> Exception:
    """
    Classify why a guarded write for ``event`` matched no row.

    Args:
        event: Event that was attempted
        booking_id: Booking the write targeted
        current: Status observed after the write, None if the booking is absent
        driver_id: Driver currently committed to the booking, if any

    Returns:
        The exception the caller should raise
    """
    if current is None:
        return ResourceNotFoundError("Booking", booking_id)

    # Negotiation events against a booking another driver already won
    if (
        event in (BookingEvent.OFFER, BookingEvent.ACCEPT)
        and current.has_driver
        and current not in TERMINAL_STATUSES
    ):
        return ConflictError(
            "Booking already accepted by another driver",
            details={
                "booking_id": booking_id,
                "status": current.value,
                "already_accepted_by": driver_id,
            },
        )

    return InvalidStateTransitionError(event.value, current.value)
