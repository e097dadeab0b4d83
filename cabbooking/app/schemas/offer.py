"""
Offer Pydantic schemas.

Driver fare offers and the rider's acceptance.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from cabbooking.app.models.enums import BookingStatus, OfferStatus


class OfferCreate(BaseModel):
    """Schema for a driver's fare offer."""
    fare: Decimal = Field(..., gt=0, decimal_places=2, description="Proposed fare")
    vehicle_type: Optional[str] = Field(None, max_length=50)
    vehicle_number: Optional[str] = Field(None, max_length=20)


class OfferResponse(BaseModel):
    """Schema for offer response."""
    id: int
    booking_id: int
    driver_id: int
    proposed_fare: float
    vehicle_type: Optional[str]
    vehicle_number: Optional[str]
    status: OfferStatus
    offered_at: datetime
    responded_at: Optional[datetime]

    class Config:
        from_attributes = True


class OfferListResponse(BaseModel):
    """Offers for one booking, cheapest first."""
    booking_id: int
    offers: List[OfferResponse]


class AcceptRequest(BaseModel):
    """The offer the rider chose."""
    driver_id: int = Field(..., ge=1)
    fare: Decimal = Field(..., gt=0, decimal_places=2)


class AcceptResponse(BaseModel):
    """Response after a successful acceptance."""
    booking_id: int
    status: BookingStatus
    driver_id: int
    committed_fare: float
    rejected_driver_ids: List[int]
