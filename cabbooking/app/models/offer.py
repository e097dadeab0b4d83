"""
Offer database model.

A driver's proposed fare against a booking. Rows are updated once at
acceptance time and never deleted, so they double as the negotiation audit trail.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum, Numeric, UniqueConstraint
from sqlalchemy.sql import func
from cabbooking.app.db.session import Base
from cabbooking.app.models.enums import OfferStatus


class Offer(Base):
    """
    Offer model.

    A driver holds at most one offer per booking (unique on booking_id, driver_id);
    re-offering updates the existing row.
    """
    __tablename__ = "offers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    proposed_fare = Column(Numeric(10, 2), nullable=False)

    # Vehicle descriptor
    vehicle_type = Column(String(50), nullable=True)
    vehicle_number = Column(String(20), nullable=True)

    status = Column(
        Enum(OfferStatus, name="offer_status", values_callable=lambda e: [m.value for m in e]),
        default=OfferStatus.PENDING,
        nullable=False,
        index=True,
    )

    offered_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint('booking_id', 'driver_id', name='uq_offers_booking_driver'),
    )

    def __repr__(self):
        return f"<Offer(id={self.id}, booking_id={self.booking_id}, driver_id={self.driver_id}, fare={self.proposed_fare})>"
