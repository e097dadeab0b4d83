"""
Rating repository. Ratings are append-only.
"""

from typing import List

from sqlalchemy import select, exists, desc
from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.models.rating import Rating


class RatingRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, rating: Rating) -> Rating:
        """Insert a rating. Raises IntegrityError when the rater already rated the booking."""
        self.db.add(rating)
        await self.db.flush()
        await self.db.refresh(rating)
        return rating

    async def exists_for(self, booking_id: int, rater_id: int) -> bool:
        result = await self.db.execute(
            select(exists().where(Rating.booking_id == booking_id, Rating.rater_id == rater_id))
        )
        return bool(result.scalar())

    async def list_received(self, rated_id: int, limit: int, offset: int) -> List[Rating]:
        result = await self.db.execute(
            select(Rating)
            .where(Rating.rated_id == rated_id)
            .order_by(desc(Rating.created_at), desc(Rating.id))
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all())
