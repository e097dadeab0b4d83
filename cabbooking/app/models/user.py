"""
User database model.

Riders and drivers share one table. Drivers carry their online flag and
vehicle descriptor; every user carries the denormalized rating aggregate.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Numeric
from sqlalchemy.sql import func
from cabbooking.app.db.session import Base
from cabbooking.app.models.enums import UserRole


class User(Base):
    """
    User model for riders, drivers and admins.

    Identity and credentials are managed by the auth service; this table only
    holds what the booking flow needs.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), nullable=True)
    role = Column(Enum(UserRole), default=UserRole.RIDER, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Driver availability and push target
    is_online = Column(Boolean, default=False, nullable=False, index=True)
    push_token = Column(String(512), nullable=True)
    vehicle_type = Column(String(50), nullable=True)
    vehicle_number = Column(String(20), nullable=True)

    # Denormalized rating aggregate, maintained by the rating ledger
    average_rating = Column(Numeric(3, 2), default=0, nullable=False)
    ratings_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(id={self.id}, name='{self.name}', role='{self.role.value}')>"
