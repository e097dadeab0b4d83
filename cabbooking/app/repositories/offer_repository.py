"""
Offer repository.

Offers are keyed by (booking_id, driver_id). Rows are never deleted.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, asc
from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.models.offer import Offer
from cabbooking.app.models.enums import OfferStatus


class OfferRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, booking_id: int, driver_id: int) -> Optional[Offer]:
        result = await self.db.execute(
            select(Offer)
            .where(Offer.booking_id == booking_id, Offer.driver_id == driver_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def add(self, offer: Offer) -> Offer:
        self.db.add(offer)
        await self.db.flush()
        return offer

    async def list_for_booking(self, booking_id: int) -> List[Offer]:
        """Cheapest first; equal fares keep the earliest offer first."""
        result = await self.db.execute(
            select(Offer)
            .where(Offer.booking_id == booking_id)
            .order_by(asc(Offer.proposed_fare), asc(Offer.offered_at), asc(Offer.id))
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def driver_ids(self, booking_id: int, status: Optional[OfferStatus] = None) -> List[int]:
        query = select(Offer.driver_id).where(Offer.booking_id == booking_id)
        if status:
            query = query.where(Offer.status == status)
        result = await self.db.execute(query.order_by(asc(Offer.id)))
        return list(result.scalars().all())

    async def mark_accepted(self, booking_id: int, driver_id: int, responded_at: datetime) -> int:
        stmt = (
            update(Offer)
            .where(
                Offer.booking_id == booking_id,
                Offer.driver_id == driver_id,
                Offer.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.ACCEPTED, responded_at=responded_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    async def reject_others(self, booking_id: int, winner_driver_id: int, responded_at: datetime) -> int:
        """Reject every other pending offer for the booking in one batched UPDATE."""
        stmt = (
            update(Offer)
            .where(
                Offer.booking_id == booking_id,
                Offer.driver_id != winner_driver_id,
                Offer.status == OfferStatus.PENDING,
            )
            .values(status=OfferStatus.REJECTED, responded_at=responded_at)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount
