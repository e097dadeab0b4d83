"""
Rating database model. Append-only.
"""

from sqlalchemy import Column, Integer, Text, Boolean, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from cabbooking.app.db.session import Base


class Rating(Base):
    """Post-completion rating from one party of a booking about the other."""
    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)
    rater_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    rated_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    score = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    is_driver_rating = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('booking_id', 'rater_id', name='uq_ratings_booking_rater'),
    )

    def __repr__(self):
        return f"<Rating(booking_id={self.booking_id}, rated_id={self.rated_id}, score={self.score})>"
