"""
Rating Ledger.

Records post-journey ratings between the two parties of a completed booking
and keeps each user's average and count in step with the ratings table.
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from cabbooking.app.core.config import settings
from cabbooking.app.core.exceptions import (
    ConflictError,
    PreconditionFailedError,
    ResourceNotFoundError,
    ValidationError,
)
from cabbooking.app.db.session import atomic
from cabbooking.app.models.enums import BookingStatus
from cabbooking.app.models.rating import Rating
from cabbooking.app.repositories.booking_repository import BookingRepository
from cabbooking.app.repositories.rating_repository import RatingRepository
from cabbooking.app.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 5


@dataclass(frozen=True)
class RatingSummary:
    average: float
    count: int


def _validate_score(score: Any) -> int:
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        raise ValidationError(
            f"score must be an integer between {MIN_SCORE} and {MAX_SCORE}",
            details={"field": "score", "value": score},
        )
    return score


class RatingLedger:

    def __init__(
        self,
        db: AsyncSession,
        bookings: Optional[BookingRepository] = None,
        ratings: Optional[RatingRepository] = None,
        users: Optional[UserRepository] = None,
    ):
        self.db = db
        self.bookings = bookings or BookingRepository(db)
        self.ratings = ratings or RatingRepository(db)
        self.users = users or UserRepository(db)

    async def submit(
        self,
        booking_id: int,
        rater_id: int,
        rated_id: int,
        score: Any,
        comment: Optional[str] = None,
        is_driver_rating: Optional[bool] = None,
    ) -> Rating:
        """
        Record one party's rating of the other for a completed booking.

        Each party may rate a booking once. The rated user's average and
        count are recomputed in the same transaction as the insert.
        ``is_driver_rating`` follows from who is rated; when given it must agree.

        Raises:
            ValidationError: score outside 1-5, or rater/rated are not the
                booking's rider and driver
            ResourceNotFoundError: unknown booking
            PreconditionFailedError: booking not completed
            ConflictError: rater already rated this booking
        """
        score = _validate_score(score)
        if rater_id == rated_id:
            raise ValidationError("Users cannot rate themselves", details={"rated_id": rated_id})

        async with atomic(self.db):
            booking = await self.bookings.get(booking_id)
            if booking is None:
                raise ResourceNotFoundError("Booking", booking_id)
            if booking.status != BookingStatus.COMPLETED:
                raise PreconditionFailedError(
                    "Ratings are accepted only for completed bookings",
                    details={"booking_id": booking_id, "status": booking.status.value},
                )
            if {rater_id, rated_id} != {booking.requester_id, booking.driver_id}:
                raise ValidationError(
                    "Rater and rated user must be the rider and driver of this booking",
                    details={"booking_id": booking_id},
                )
            rates_driver = rated_id == booking.driver_id
            if is_driver_rating is not None and is_driver_rating != rates_driver:
                raise ValidationError(
                    "is_driver_rating does not match the rated user",
                    details={"booking_id": booking_id, "rated_id": rated_id},
                )
            if await self.ratings.exists_for(booking_id, rater_id):
                raise ConflictError(
                    "You have already rated this booking",
                    details={"booking_id": booking_id, "rater_id": rater_id},
                )

            try:
                rating = await self.ratings.add(Rating(
                    booking_id=booking_id,
                    rater_id=rater_id,
                    rated_id=rated_id,
                    score=score,
                    comment=comment,
                    is_driver_rating=rates_driver,
                ))
            except IntegrityError:
                raise ConflictError(
                    "You have already rated this booking",
                    details={"booking_id": booking_id, "rater_id": rater_id},
                )
            await self.users.refresh_rating_aggregate(rated_id)

        logger.info("User %s rated user %s %d/5 for booking %s", rater_id, rated_id, score, booking_id)
        return rating

    async def get_average(self, user_id: int) -> RatingSummary:
        """Average and count of ratings received; zero for users never rated."""
        async with atomic(self.db):
            user = await self.users.get(user_id)
        if user is None or not user.ratings_count:
            return RatingSummary(average=0.0, count=0)
        return RatingSummary(average=round(float(user.average_rating), 2), count=user.ratings_count)

    async def history(self, user_id: int, limit: Optional[int] = None, offset: Optional[int] = None) -> List[Rating]:
        """Ratings received by the user, newest first."""
        limit = settings.history_default_limit if limit is None else limit
        offset = offset or 0
        if limit < 1 or limit > settings.history_max_limit or offset < 0:
            raise ValidationError(
                f"limit must be 1-{settings.history_max_limit} and offset non-negative",
                details={"limit": limit, "offset": offset},
            )
        async with atomic(self.db):
            return await self.ratings.list_received(user_id, limit, offset)
