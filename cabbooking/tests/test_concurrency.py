"""
Concurrency Tests.

Validates that racing acceptances resolve to exactly one winner and that an
acceptance is all-or-nothing.
"""

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from cabbooking.app.core.exceptions import ConflictError, InternalError
from cabbooking.app.models.booking import Booking
from cabbooking.app.models.enums import BookingStatus, OfferStatus, UserRole
from cabbooking.app.models.offer import Offer
from cabbooking.app.repositories.offer_repository import OfferRepository
from cabbooking.app.services.offer_book import OfferBook

RACERS = 8


async def snapshot(session_factory, booking_id):
    """Committed booking row and offer statuses, read through a fresh session."""
    async with session_factory() as session:
        booking = (await session.execute(select(Booking).where(Booking.id == booking_id))).scalar_one()
        offers = (await session.execute(select(Offer).where(Offer.booking_id == booking_id))).scalars().all()
        return booking, {offer.driver_id: offer.status for offer in offers}


@pytest.fixture
async def contested_booking(make_user, make_booking, offer_book):
    """A booking with one pending offer from each of RACERS drivers."""
    racers = [await make_user(UserRole.DRIVER) for _ in range(RACERS)]
    booking = await make_booking()
    for i, driver in enumerate(racers):
        await offer_book.submit_offer(booking.id, driver.id, f"{100 + i}.00")
    return booking, racers


@pytest.mark.asyncio
async def test_concurrent_accepts_have_single_winner(contested_booking, session_factory, notifications):
    booking, racers = contested_booking

    async def attempt(index, driver):
        async with session_factory() as session:
            try:
                await OfferBook(session, notifications).accept_offer(booking.id, driver.id, f"{100 + index}.00")
                return ("won", driver.id)
            except ConflictError as exc:
                return ("lost", exc.details["already_accepted_by"])

    outcomes = await asyncio.gather(*(attempt(i, d) for i, d in enumerate(racers)))

    winners = [driver_id for outcome, driver_id in outcomes if outcome == "won"]
    losers = [driver_id for outcome, driver_id in outcomes if outcome == "lost"]
    assert len(winners) == 1
    assert len(losers) == RACERS - 1
    assert set(losers) == {winners[0]}

    stored, offer_statuses = await snapshot(session_factory, booking.id)
    assert stored.status == BookingStatus.ACCEPTED
    assert stored.driver_id == winners[0]
    winner_index = [d.id for d in racers].index(winners[0])
    assert stored.committed_fare == Decimal(f"{100 + winner_index}.00")
    assert offer_statuses[winners[0]] == OfferStatus.ACCEPTED
    assert list(offer_statuses.values()).count(OfferStatus.REJECTED) == RACERS - 1


@pytest.mark.asyncio
async def test_retried_accept_of_same_offer(contested_booking, session_factory, notifications):
    booking, racers = contested_booking
    driver = racers[0]

    async def attempt():
        async with session_factory() as session:
            try:
                await OfferBook(session, notifications).accept_offer(booking.id, driver.id, "100.00")
                return "won"
            except ConflictError as exc:
                assert exc.details["already_accepted_by"] == driver.id
                return "lost"

    outcomes = await asyncio.gather(attempt(), attempt(), attempt())

    assert sorted(outcomes) == ["lost", "lost", "won"]


@pytest.mark.asyncio
async def test_offer_racing_accept_never_left_pending(contested_booking, make_user, session_factory, notifications):
    booking, racers = contested_booking
    late_driver = await make_user(UserRole.DRIVER)

    async def accept():
        async with session_factory() as session:
            return await OfferBook(session, notifications).accept_offer(booking.id, racers[0].id, "100.00")

    async def offer():
        async with session_factory() as session:
            try:
                return await OfferBook(session, notifications).submit_offer(booking.id, late_driver.id, "90.00")
            except ConflictError:
                return None

    await asyncio.gather(accept(), offer())

    stored, offer_statuses = await snapshot(session_factory, booking.id)
    assert stored.driver_id == racers[0].id
    assert OfferStatus.PENDING not in offer_statuses.values()


@pytest.mark.asyncio
async def test_failed_acceptance_leaves_no_partial_state(contested_booking, offer_book, session_factory, mocker):
    booking, racers = contested_booking
    booking_id = booking.id
    mocker.patch.object(
        OfferRepository,
        "reject_others",
        side_effect=OperationalError("UPDATE offers", {}, Exception("disk I/O error")),
    )

    with pytest.raises(InternalError):
        await offer_book.accept_offer(booking_id, racers[0].id, "100.00")

    stored, offer_statuses = await snapshot(session_factory, booking_id)
    assert stored.status == BookingStatus.PROPOSED
    assert stored.driver_id is None
    assert stored.committed_fare is None
    assert set(offer_statuses.values()) == {OfferStatus.PENDING}
