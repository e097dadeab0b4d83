"""
Rating Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional


class RatingCreate(BaseModel):
    """Schema for rating the other party of a completed booking."""
    booking_id: int
    rated_id: int
    score: int = Field(..., ge=1, le=5, description="Score from 1 to 5")
    comment: Optional[str] = Field(None, max_length=1000)
    is_driver_rating: Optional[bool] = None


class RatingResponse(BaseModel):
    """Schema for rating response."""
    id: int
    booking_id: int
    rater_id: int
    rated_id: int
    score: int
    comment: Optional[str]
    is_driver_rating: bool
    created_at: datetime

    class Config:
        from_attributes = True


class RatingSummaryResponse(BaseModel):
    user_id: int
    average: float
    count: int


class RatingHistoryResponse(BaseModel):
    user_id: int
    ratings: List[RatingResponse]
    limit: int
    offset: int
