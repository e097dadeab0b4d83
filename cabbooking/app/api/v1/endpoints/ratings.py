"""
Rating API Endpoints.

Ratings open once a journey is completed; each party rates the other once.
"""

from fastapi import APIRouter, Depends, Path, Query, status

from cabbooking.app.core.config import settings
from cabbooking.app.core.dependencies import get_current_user, get_rating_ledger
from cabbooking.app.schemas.rating import (
    RatingCreate,
    RatingHistoryResponse,
    RatingResponse,
    RatingSummaryResponse,
)
from cabbooking.app.services.rating_ledger import RatingLedger

router = APIRouter(prefix="/ratings", tags=["Ratings"])


@router.post("", response_model=RatingResponse, status_code=status.HTTP_201_CREATED)
async def submit_rating(
    payload: RatingCreate,
    current_user: dict = Depends(get_current_user),
    ledger: RatingLedger = Depends(get_rating_ledger),
):
    rating = await ledger.submit(
        booking_id=payload.booking_id,
        rater_id=current_user["user_id"],
        rated_id=payload.rated_id,
        score=payload.score,
        comment=payload.comment,
        is_driver_rating=payload.is_driver_rating,
    )
    return RatingResponse.model_validate(rating)


@router.get("/users/{user_id}/average", response_model=RatingSummaryResponse)
async def get_average_rating(
    user_id: int = Path(..., description="User ID"),
    current_user: dict = Depends(get_current_user),
    ledger: RatingLedger = Depends(get_rating_ledger),
):
    summary = await ledger.get_average(user_id)
    return RatingSummaryResponse(user_id=user_id, average=summary.average, count=summary.count)


@router.get("/users/{user_id}/history", response_model=RatingHistoryResponse)
async def get_rating_history(
    user_id: int = Path(..., description="User ID"),
    limit: int = Query(settings.history_default_limit, ge=1, le=settings.history_max_limit),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
    ledger: RatingLedger = Depends(get_rating_ledger),
):
    """Ratings the user received, newest first."""
    ratings = await ledger.history(user_id, limit, offset)
    return RatingHistoryResponse(
        user_id=user_id,
        ratings=[RatingResponse.model_validate(r) for r in ratings],
        limit=limit,
        offset=offset,
    )
