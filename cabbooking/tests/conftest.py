"""
Centralized Test Configuration.

Every test gets its own SQLite file database. Sessions draw separate
connections from the pool, so concurrent transactions contend on the
database lock the way separate requests would.
"""

import itertools

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from cabbooking.app.main import app
from cabbooking.app.db.session import get_db, Base
from cabbooking.app.core.dependencies import get_notification_service
from cabbooking.app.core.jwt import create_access_token
from cabbooking.app.core.reliability import CircuitBreaker
from cabbooking.app.models.enums import UserRole
from cabbooking.app.models.user import User
from cabbooking.app.services.booking_registry import BookingRegistry, Place
from cabbooking.app.services.lifecycle import LifecycleStateMachine
from cabbooking.app.services.notification_service import NotificationService
from cabbooking.app.services.offer_book import OfferBook
from cabbooking.app.services.rating_ledger import RatingLedger

PICKUP = Place(lat=12.9716, lng=77.5946, address="MG Road, Bengaluru")
DESTINATION = Place(lat=12.9352, lng=77.6245, address="Koramangala, Bengaluru")


class RecordingDispatcher:
    """Push transport double that remembers every message."""

    def __init__(self):
        self.sent = []
        self.error = None

    async def send(self, recipients, title, body, data):
        if self.error:
            raise self.error
        self.sent.append({"recipients": list(recipients), "title": title, "body": body, "data": dict(data)})
        return {recipient: True for recipient in recipients}

    def kinds(self):
        return [message["data"]["type"] for message in self.sent]

    def to(self, kind):
        """Recipients of every message of ``kind``, flattened."""
        return [r for m in self.sent if m["data"]["type"] == kind for r in m["recipients"]]


@pytest.fixture
async def engine(tmp_path):
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'cabbooking.db'}",
        connect_args={"timeout": 30},
    )

    @event.listens_for(test_engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        """Enable foreign key constraints for SQLite."""
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
async def notifications(dispatcher):
    service = NotificationService(dispatcher, CircuitBreaker(failure_threshold=3, reset_timeout=60, name="test"))
    yield service
    await service.drain()


@pytest.fixture
async def client(session_factory, notifications):
    """Async client for testing, wired to the per-test database."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_service] = lambda: notifications

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}


# Domain fixtures

@pytest.fixture
def make_user(session_factory):
    counter = itertools.count(1)

    async def _make(role: UserRole = UserRole.RIDER, **fields) -> User:
        n = next(counter)
        values = {"name": f"{role.value.lower()}-{n}", "phone": f"+9198000{n:05d}", "role": role}
        if role == UserRole.DRIVER:
            values.update(
                is_online=True,
                push_token=f"device-token-{n}",
                vehicle_type="sedan",
                vehicle_number=f"KA01AB{n:04d}",
            )
        values.update(fields)
        async with session_factory() as session:
            user = User(**values)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make


@pytest.fixture
async def rider(make_user):
    return await make_user(UserRole.RIDER)


@pytest.fixture
async def drivers(make_user):
    return [await make_user(UserRole.DRIVER) for _ in range(3)]


@pytest.fixture
def registry(db_session):
    return BookingRegistry(db_session)


@pytest.fixture
def offer_book(db_session, notifications):
    return OfferBook(db_session, notifications)


@pytest.fixture
def lifecycle(db_session, notifications):
    return LifecycleStateMachine(db_session, notifications)


@pytest.fixture
def ledger(db_session):
    return RatingLedger(db_session)


@pytest.fixture
def make_booking(registry, rider):
    async def _make(requester=None, passenger_count=1):
        created = await registry.create((requester or rider).id, PICKUP, DESTINATION, passenger_count)
        return created.booking

    return _make


def actor(user: User) -> dict:
    """Authenticated-user payload as the API hands it to the services."""
    return {"sub": user.name, "user_id": user.id, "role": user.role.value}


def auth_headers(user: User) -> dict:
    token = create_access_token(data=actor(user))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def completed_booking(make_booking, offer_book, lifecycle):
    """Drive a fresh booking through acceptance to COMPLETED with ``driver``."""
    async def _complete(driver, requester=None, fare="250.00"):
        booking = await make_booking(requester)
        await offer_book.submit_offer(booking.id, driver.id, fare)
        await offer_book.accept_offer(booking.id, driver.id, fare)
        for step in (lifecycle.driver_arrival, lifecycle.journey_start, lifecycle.journey_complete):
            booking = await step(booking.id, actor(driver))
        return booking

    return _complete
