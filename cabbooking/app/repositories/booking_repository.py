"""
Booking repository.

All reads and writes against the bookings table. Status changes are only
ever issued as guarded UPDATEs whose WHERE clause carries the expected status;
the affected-row count tells the caller whether it won.
"""

from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select, update, exists, or_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.models.booking import Booking
from cabbooking.app.models.offer import Offer
from cabbooking.app.models.enums import BookingStatus, OfferStatus, OPEN_STATUSES


class BookingRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, booking: Booking) -> Booking:
        """Insert a booking and flush so its id is assigned."""
        self.db.add(booking)
        await self.db.flush()
        return booking

    async def get(self, booking_id: int) -> Optional[Booking]:
        """Load a booking, always refreshing any copy held by the session."""
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_reference(self, external_reference: str) -> Optional[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.external_reference == external_reference)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def reference_exists(self, external_reference: str) -> bool:
        result = await self.db.execute(
            select(exists().where(Booking.external_reference == external_reference))
        )
        return bool(result.scalar())

    async def list_for_requester(self, requester_id: int, limit: int, offset: int) -> List[Booking]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.requester_id == requester_id)
            .order_by(desc(Booking.created_at), desc(Booking.id))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())

    async def list_for_driver(self, driver_id: int) -> List[Booking]:
        """Bookings the driver is committed to or has offered on."""
        offered = select(Offer.booking_id).where(Offer.driver_id == driver_id)
        result = await self.db.execute(
            select(Booking)
            .where(or_(Booking.driver_id == driver_id, Booking.id.in_(offered)))
            .order_by(desc(Booking.created_at), desc(Booking.id))
        )
        return list(result.scalars().all())

    async def list_open_without_offer_from(self, driver_id: int) -> List[Booking]:
        """Open bookings the driver has not offered on yet."""
        has_offer = exists().where(
            Offer.booking_id == Booking.id,
            Offer.driver_id == driver_id,
        )
        result = await self.db.execute(
            select(Booking)
            .where(Booking.status.in_(OPEN_STATUSES), ~has_offer)
            .order_by(desc(Booking.created_at), desc(Booking.id))
        )
        return list(result.scalars().all())

    async def compare_and_set(
        self,
        booking_id: int,
        expected: Iterable[BookingStatus],
        values: Dict[str, Any],
        *conditions,
    ) -> bool:
        """
        Apply ``values`` only if the booking is currently in one of ``expected``.

        This is a single UPDATE statement; the status guard lives in its WHERE
        clause, never in a preceding read.

        Args:
            booking_id: Booking to update
            expected: Statuses the row must be in for the write to apply
            values: Column values to set
            *conditions: Extra WHERE conditions

        Returns:
            True if exactly one row was updated
        """
        stmt = (
            update(Booking)
            .where(
                Booking.id == booking_id,
                Booking.status.in_(list(expected)),
                *conditions,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def claim_for_offer(
        self,
        booking_id: int,
        driver_id: int,
        fare: Decimal,
        accepted_at: datetime,
        requester_id: Optional[int] = None,
    ) -> bool:
        """
        Commit an open booking to the driver whose pending offer matches ``fare``.

        The whole check (booking still open, matching pending offer exists) and
        the write are one statement. Two concurrent claims for the same booking
        serialize on the row; the second sees status=accepted and updates nothing.
        When ``requester_id`` is given the booking must also belong to that rider.
        """
        matching_offer = exists().where(
            Offer.booking_id == booking_id,
            Offer.driver_id == driver_id,
            Offer.status == OfferStatus.PENDING,
            Offer.proposed_fare == fare,
        )
        conditions = [matching_offer]
        if requester_id is not None:
            conditions.append(Booking.requester_id == requester_id)
        return await self.compare_and_set(
            booking_id,
            OPEN_STATUSES,
            {
                "status": BookingStatus.ACCEPTED,
                "driver_id": driver_id,
                "committed_fare": fare,
                "accepted_at": accepted_at,
                "updated_at": accepted_at,
            },
            *conditions,
        )
