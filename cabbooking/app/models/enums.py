"""
Enumerations for users, bookings and offers.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Operator access, may cancel any booking
        RIDER: Creates bookings and accepts offers
        DRIVER: Submits fare offers and drives accepted bookings
    """
    ADMIN = "ADMIN"
    RIDER = "RIDER"
    DRIVER = "DRIVER"


class BookingStatus(str, enum.Enum):
    """Booking status enumeration."""
    REQUESTED = "requested"  # Created, waiting for offers
    PROPOSED = "proposed"  # At least one driver has offered
    ACCEPTED = "accepted"  # Rider committed to one driver
    ARRIVED = "arrived"  # Driver at pickup
    IN_PROGRESS = "in_progress"  # Journey started
    COMPLETED = "completed"  # Journey finished
    CANCELED = "canceled"  # Withdrawn by either party

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_open(self) -> bool:
        """Still accepting offers."""
        return self in OPEN_STATUSES

    @property
    def has_driver(self) -> bool:
        """driver_id and committed_fare are set exactly in these states."""
        return self in COMMITTED_STATUSES


class OfferStatus(str, enum.Enum):
    """Offer status enumeration."""
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BookingEvent(str, enum.Enum):
    """Events accepted by the booking lifecycle."""
    OFFER = "offer"
    ACCEPT = "accept"
    DRIVER_ARRIVAL = "driver_arrival"
    JOURNEY_START = "journey_start"
    JOURNEY_COMPLETE = "journey_complete"
    CANCEL = "cancel"


OPEN_STATUSES = frozenset({BookingStatus.REQUESTED, BookingStatus.PROPOSED})

COMMITTED_STATUSES = frozenset({
    BookingStatus.ACCEPTED,
    BookingStatus.ARRIVED,
    BookingStatus.IN_PROGRESS,
    BookingStatus.COMPLETED,
})

TERMINAL_STATUSES = frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELED})
