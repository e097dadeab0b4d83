"""
FastAPI dependencies.

Authentication of the caller and construction of the booking services for
one request. All services built for a request share that request's session.
"""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from cabbooking.app.core.jwt import decode_access_token
from cabbooking.app.core.reliability import notification_circuit_breaker
from cabbooking.app.db.session import get_db
from cabbooking.app.repositories.user_repository import UserRepository
from cabbooking.app.services.booking_registry import BookingRegistry
from cabbooking.app.services.lifecycle import LifecycleStateMachine, LoggingResourceReleaser, ResourceReleaser
from cabbooking.app.services.notification_service import LoggingDispatcher, NotificationService
from cabbooking.app.services.offer_book import OfferBook
from cabbooking.app.services.rating_ledger import RatingLedger

# HTTP Bearer security scheme
security = HTTPBearer()

# Process-wide so scheduled deliveries can be drained on shutdown
notification_service = NotificationService(LoggingDispatcher(), notification_circuit_breaker)
resource_releaser = LoggingResourceReleaser()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    1. Validates JWT token signature and expiry
    2. Verifies the user still exists and is active (real-time check)

    Returns:
        Decoded token payload; ``role`` is refreshed from the database

    Raises:
        HTTPException: 401 if authentication fails, 403 if the account is inactive
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await UserRepository(db).get(user_id)
    # End the read transaction before any service opens its own
    await db.commit()

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )

    return {**payload, "role": user.role.value}


def get_notification_service() -> NotificationService:
    return notification_service


def get_resource_releaser() -> ResourceReleaser:
    return resource_releaser


def get_booking_registry(db: AsyncSession = Depends(get_db)) -> BookingRegistry:
    return BookingRegistry(db)


def get_offer_book(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
) -> OfferBook:
    return OfferBook(db, notifications)


def get_lifecycle(
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notification_service),
    offer_book: OfferBook = Depends(get_offer_book),
    releaser: ResourceReleaser = Depends(get_resource_releaser),
) -> LifecycleStateMachine:
    return LifecycleStateMachine(db, notifications, offer_book=offer_book, releaser=releaser)


def get_rating_ledger(db: AsyncSession = Depends(get_db)) -> RatingLedger:
    return RatingLedger(db)
