"""
User repository.

Driver availability lookups and the denormalized rating aggregate.
"""

from typing import List, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.models.user import User
from cabbooking.app.models.rating import Rating
from cabbooking.app.models.enums import UserRole


class UserRepository:

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> Optional[User]:
        result = await self.db.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_online_drivers(self) -> List[User]:
        """Active drivers that are online and reachable by push."""
        result = await self.db.execute(
            select(User)
            .where(
                User.role == UserRole.DRIVER,
                User.is_active == True,
                User.is_online == True,
                User.push_token.is_not(None),
                User.push_token != "",
            )
            .order_by(User.id)
        )
        return list(result.scalars().all())

    async def refresh_rating_aggregate(self, user_id: int) -> bool:
        """
        Recompute average and count from the ratings table in one UPDATE.

        The aggregate is computed by correlated subqueries inside the statement,
        so two ratings landing at once cannot overwrite each other with stale values.
        """
        average = (
            select(func.coalesce(func.round(func.avg(Rating.score), 2), 0))
            .where(Rating.rated_id == user_id)
            .scalar_subquery()
        )
        count = (
            select(func.count(Rating.id))
            .where(Rating.rated_id == user_id)
            .scalar_subquery()
        )
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(average_rating=average, ratings_count=count)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount == 1
