"""
Lifecycle Tests.

Status ordering, actor checks and cancellation.
"""

import logging

import pytest
from sqlalchemy import select

from cabbooking.app.core.exceptions import (
    InsufficientPermissionsError,
    InvalidStateTransitionError,
    PreconditionFailedError,
    ResourceNotFoundError,
)
from cabbooking.app.models.enums import BookingStatus, OfferStatus, UserRole
from cabbooking.app.models.offer import Offer
from cabbooking.app.services.lifecycle import LifecycleStateMachine

from conftest import actor


@pytest.fixture
async def accepted_booking(make_booking, offer_book, drivers):
    booking = await make_booking()
    await offer_book.submit_offer(booking.id, drivers[0].id, "140.00")
    await offer_book.submit_offer(booking.id, drivers[1].id, "150.00")
    result = await offer_book.accept_offer(booking.id, drivers[0].id, "140.00")
    return result.booking


@pytest.mark.asyncio
async def test_full_journey(lifecycle, accepted_booking, drivers, rider, notifications, dispatcher):
    driver = drivers[0]

    booking = await lifecycle.driver_arrival(accepted_booking.id, actor(driver))
    assert booking.status == BookingStatus.ARRIVED
    assert booking.arrived_at is not None

    booking = await lifecycle.journey_start(booking.id, actor(driver))
    assert booking.status == BookingStatus.IN_PROGRESS
    assert booking.started_at is not None

    booking = await lifecycle.journey_complete(booking.id, actor(driver))
    assert booking.status == BookingStatus.COMPLETED
    assert booking.completed_at is not None
    assert booking.driver_id == driver.id

    await notifications.drain()
    assert dispatcher.to("driver_arrived") == [rider.id]
    assert dispatcher.to("journey_started") == [rider.id]
    assert dispatcher.to("rate_driver") == [rider.id]
    assert dispatcher.to("rate_passenger") == [driver.id]


@pytest.mark.asyncio
async def test_accept_delegates_to_offer_book(lifecycle, make_booking, offer_book, drivers):
    booking = await make_booking()
    await offer_book.submit_offer(booking.id, drivers[2].id, "99.00")

    result = await lifecycle.accept(booking.id, drivers[2].id, "99.00")

    assert result.booking.status == BookingStatus.ACCEPTED
    assert result.booking.driver_id == drivers[2].id


@pytest.mark.asyncio
async def test_arrival_before_acceptance_is_invalid(lifecycle, make_booking, drivers):
    booking = await make_booking()

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await lifecycle.driver_arrival(booking.id, actor(drivers[0]))

    assert exc_info.value.details == {"event": "driver_arrival", "status": "requested"}


@pytest.mark.asyncio
async def test_events_cannot_skip_states(lifecycle, accepted_booking, drivers):
    # A rolled-back attempt expires the ORM instance; keep the plain id
    booking_id = accepted_booking.id

    with pytest.raises(InvalidStateTransitionError):
        await lifecycle.journey_start(booking_id, actor(drivers[0]))
    with pytest.raises(InvalidStateTransitionError):
        await lifecycle.journey_complete(booking_id, actor(drivers[0]))


@pytest.mark.asyncio
async def test_only_assigned_driver_moves_the_booking(lifecycle, registry, accepted_booking, drivers, rider):
    booking_id = accepted_booking.id

    with pytest.raises(InsufficientPermissionsError):
        await lifecycle.driver_arrival(booking_id, actor(drivers[1]))
    with pytest.raises(InsufficientPermissionsError):
        await lifecycle.driver_arrival(booking_id, actor(rider))

    assert (await registry.get(booking_id)).status == BookingStatus.ACCEPTED


@pytest.mark.asyncio
async def test_unknown_booking(lifecycle, drivers):
    with pytest.raises(ResourceNotFoundError):
        await lifecycle.driver_arrival(777, actor(drivers[0]))
    with pytest.raises(ResourceNotFoundError):
        await lifecycle.cancel(777, actor(drivers[0]))


@pytest.mark.asyncio
async def test_terminal_booking_rejects_further_events(completed_booking, lifecycle, offer_book, registry, drivers, rider):
    booking_id = (await completed_booking(drivers[0])).id

    with pytest.raises(InvalidStateTransitionError):
        await lifecycle.journey_complete(booking_id, actor(drivers[0]))
    with pytest.raises(InvalidStateTransitionError):
        await lifecycle.cancel(booking_id, actor(rider))
    with pytest.raises(PreconditionFailedError):
        await offer_book.submit_offer(booking_id, drivers[1].id, "80.00")

    booking = await registry.get(booking_id)
    assert booking.status == BookingStatus.COMPLETED
    assert booking.driver_id == drivers[0].id


@pytest.mark.asyncio
async def test_cancel_is_idempotent(lifecycle, make_booking, rider, notifications, dispatcher):
    booking = await make_booking()

    first = await lifecycle.cancel(booking.id, actor(rider), "found another ride")
    second = await lifecycle.cancel(booking.id, actor(rider), "again")

    assert first.status == BookingStatus.CANCELED
    assert second.status == BookingStatus.CANCELED
    assert second.canceled_at == first.canceled_at
    assert second.cancel_reason == "found another ride"
    assert second.canceled_by == rider.id


@pytest.mark.asyncio
async def test_cancel_after_acceptance_releases_driver(db_session, notifications, dispatcher, accepted_booking, drivers, rider, mocker):
    releaser = mocker.AsyncMock()
    lifecycle = LifecycleStateMachine(db_session, notifications, releaser=releaser)

    booking = await lifecycle.cancel(accepted_booking.id, actor(rider), "running late")

    assert booking.status == BookingStatus.CANCELED
    assert booking.driver_id is None
    assert booking.committed_fare is None
    assert booking.canceled_by == rider.id
    releaser.release.assert_awaited_once()
    assert releaser.release.await_args.args[1] == drivers[0].id

    # The accepted offer stays on record
    result = await db_session.execute(
        select(Offer)
        .where(Offer.booking_id == booking.id, Offer.driver_id == drivers[0].id)
        .execution_options(populate_existing=True)
    )
    assert result.scalar_one().status == OfferStatus.ACCEPTED
    await db_session.commit()

    await notifications.drain()
    assert dispatcher.to("booking_canceled") == [drivers[0].id]


@pytest.mark.asyncio
async def test_driver_cancel_notifies_rider(lifecycle, accepted_booking, drivers, rider, notifications, dispatcher):
    await lifecycle.cancel(accepted_booking.id, actor(drivers[0]), "vehicle trouble")

    await notifications.drain()
    assert dispatcher.to("booking_canceled") == [rider.id]


@pytest.mark.asyncio
async def test_cancel_before_acceptance_tells_offering_drivers(lifecycle, make_booking, offer_book, drivers, rider, notifications, dispatcher):
    booking = await make_booking()
    await offer_book.submit_offer(booking.id, drivers[0].id, "70.00")
    await offer_book.submit_offer(booking.id, drivers[1].id, "65.00")

    await lifecycle.cancel(booking.id, actor(rider))

    await notifications.drain()
    assert sorted(dispatcher.to("booking_canceled")) == sorted([drivers[0].id, drivers[1].id])


@pytest.mark.asyncio
async def test_cancel_rights(lifecycle, make_booking, make_user, drivers):
    booking_id = (await make_booking()).id
    stranger = await make_user(UserRole.RIDER)
    admin = await make_user(UserRole.ADMIN)

    with pytest.raises(InsufficientPermissionsError):
        await lifecycle.cancel(booking_id, actor(stranger))
    with pytest.raises(InsufficientPermissionsError):
        await lifecycle.cancel(booking_id, actor(drivers[0]))

    canceled = await lifecycle.cancel(booking_id, actor(admin), "fraud check")
    assert canceled.status == BookingStatus.CANCELED
    assert canceled.canceled_by == admin.id


@pytest.mark.asyncio
async def test_failing_release_keeps_cancellation(db_session, notifications, dispatcher, accepted_booking, registry, drivers, rider, mocker, caplog):
    booking_id = accepted_booking.id
    releaser = mocker.AsyncMock()
    releaser.release.side_effect = RuntimeError("dispatch board offline")
    lifecycle = LifecycleStateMachine(db_session, notifications, releaser=releaser)

    with caplog.at_level(logging.ERROR, logger="cabbooking.app.services.lifecycle"):
        booking = await lifecycle.cancel(booking_id, actor(rider), "running late")

    assert booking.status == BookingStatus.CANCELED
    releaser.release.assert_awaited_once()
    assert f"Failed to release driver {drivers[0].id} from booking {booking_id}" in caplog.text

    stored = await registry.get(booking_id)
    assert stored.status == BookingStatus.CANCELED
    assert stored.driver_id is None

    await notifications.drain()
    assert dispatcher.to("booking_canceled") == [drivers[0].id]
