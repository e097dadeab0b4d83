"""
Booking Pydantic schemas.

Request and response models for booking creation, lookup and lifecycle events.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from cabbooking.app.models.enums import BookingStatus


class PlaceIn(BaseModel):
    """A pickup or destination point."""
    lat: float = Field(..., ge=-90, le=90, description="Latitude")
    lng: float = Field(..., ge=-180, le=180, description="Longitude")
    address: Optional[str] = Field(None, max_length=500, description="Human-readable address")


class BookingCreate(BaseModel):
    """Schema for creating a booking."""
    pickup: PlaceIn
    destination: PlaceIn
    passenger_count: int = Field(default=1, ge=1, description="Number of passengers")


class BookingCreateResponse(BaseModel):
    """Response after booking creation."""
    booking_id: int
    external_reference: str
    status: BookingStatus
    notified_drivers: int


class BookingResponse(BaseModel):
    """Schema for booking response."""
    id: int
    external_reference: str
    requester_id: int
    pickup_lat: float
    pickup_lng: float
    pickup_address: str
    destination_lat: float
    destination_lng: float
    destination_address: str
    passenger_count: int
    status: BookingStatus
    driver_id: Optional[int]
    committed_fare: Optional[float]
    canceled_by: Optional[int]
    cancel_reason: Optional[str]
    created_at: datetime
    updated_at: datetime
    accepted_at: Optional[datetime]
    arrived_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    canceled_at: Optional[datetime]

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    """Schema for a page of bookings."""
    bookings: List[BookingResponse]
    limit: Optional[int] = None
    offset: Optional[int] = None


class CancelRequest(BaseModel):
    """Optional cancellation reason."""
    reason: Optional[str] = Field(None, max_length=255)
