"""
Booking database model.

One passenger ride request. Bookings are never deleted; they advance through
BookingStatus or are diverted to CANCELED.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum, Numeric, Index
from sqlalchemy.sql import func
from cabbooking.app.db.session import Base
from cabbooking.app.models.enums import BookingStatus


class Booking(Base):
    """
    Booking model.

    driver_id and committed_fare are set exactly while status is one of
    accepted, arrived, in_progress or completed.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    external_reference = Column(String(50), unique=True, nullable=False, index=True)

    requester_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    # Pickup
    pickup_lat = Column(Numeric(10, 7), nullable=False)
    pickup_lng = Column(Numeric(10, 7), nullable=False)
    pickup_address = Column(Text, nullable=False)

    # Destination
    destination_lat = Column(Numeric(10, 7), nullable=False)
    destination_lng = Column(Numeric(10, 7), nullable=False)
    destination_address = Column(Text, nullable=False)

    passenger_count = Column(Integer, default=1, nullable=False)

    status = Column(
        Enum(BookingStatus, name="booking_status", values_callable=lambda e: [m.value for m in e]),
        default=BookingStatus.REQUESTED,
        nullable=False,
        index=True,
    )

    # Commitment (set by the winning acceptance)
    driver_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    committed_fare = Column(Numeric(10, 2), nullable=True)

    # Cancellation
    canceled_by = Column(Integer, ForeignKey('users.id'), nullable=True)
    cancel_reason = Column(String(255), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('ix_bookings_requester_created', 'requester_id', 'created_at'),
    )

    def __repr__(self):
        return f"<Booking(id={self.id}, ref='{self.external_reference}', status='{self.status.value}')>"
