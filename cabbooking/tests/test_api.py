"""
Integration tests for the HTTP surface.

Booking negotiation end to end through the v1 API, plus error mapping.
"""

import pytest

from cabbooking.app.models.enums import UserRole

from conftest import auth_headers

BOOKING_PAYLOAD = {
    "pickup": {"lat": 12.9716, "lng": 77.5946, "address": "MG Road"},
    "destination": {"lat": 12.9352, "lng": 77.6245, "address": "Koramangala"},
    "passenger_count": 2,
}


@pytest.fixture
async def booking_id(client, rider, drivers):
    response = await client.post("/v1/bookings", json=BOOKING_PAYLOAD, headers=auth_headers(rider))
    assert response.status_code == 201
    return response.json()["booking_id"]


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


@pytest.mark.asyncio
async def test_requests_require_valid_token(client):
    response = await client.get("/v1/bookings/1")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/bookings/1", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_UNAUTHORIZED"


@pytest.mark.asyncio
async def test_create_booking(client, rider, drivers, notifications, dispatcher):
    response = await client.post("/v1/bookings", json=BOOKING_PAYLOAD, headers=auth_headers(rider))

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "requested"
    assert data["notified_drivers"] == 3
    assert data["external_reference"].startswith("CAB")

    await notifications.drain()
    assert sorted(dispatcher.to("new_booking")) == sorted(d.id for d in drivers)

    response = await client.get(f"/v1/bookings/reference/{data['external_reference']}", headers=auth_headers(rider))
    assert response.status_code == 200
    assert response.json()["id"] == data["booking_id"]


@pytest.mark.asyncio
async def test_create_booking_validation(client, rider, drivers):
    payload = {**BOOKING_PAYLOAD, "pickup": {"lat": 123.0, "lng": 77.59}}

    response = await client.post("/v1/bookings", json=payload, headers=auth_headers(rider))
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    response = await client.post("/v1/bookings", json=BOOKING_PAYLOAD, headers=auth_headers(drivers[0]))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_negotiation_and_journey(client, booking_id, rider, drivers):
    d1, d2 = drivers[0], drivers[1]

    response = await client.post(f"/v1/bookings/{booking_id}/offers", json={"fare": "25.00"}, headers=auth_headers(d1))
    assert response.status_code == 201
    assert response.json()["status"] == "pending"
    response = await client.post(f"/v1/bookings/{booking_id}/offers", json={"fare": 20}, headers=auth_headers(d2))
    assert response.status_code == 201

    response = await client.get(f"/v1/bookings/{booking_id}/offers", headers=auth_headers(rider))
    assert response.status_code == 200
    assert [o["driver_id"] for o in response.json()["offers"]] == [d2.id, d1.id]

    response = await client.post(
        f"/v1/bookings/{booking_id}/accept",
        json={"driver_id": d2.id, "fare": "20.00"},
        headers=auth_headers(rider),
    )
    assert response.status_code == 200
    assert response.json()["status"] == "accepted"
    assert response.json()["rejected_driver_ids"] == [d1.id]

    response = await client.post(
        f"/v1/bookings/{booking_id}/accept",
        json={"driver_id": d1.id, "fare": "25.00"},
        headers=auth_headers(rider),
    )
    assert response.status_code == 409
    assert response.json()["details"]["already_accepted_by"] == d2.id

    for step in ("arrival", "start", "complete"):
        response = await client.post(f"/v1/bookings/{booking_id}/{step}", headers=auth_headers(d2))
        assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = await client.post(
        "/v1/ratings",
        json={"booking_id": booking_id, "rated_id": d2.id, "score": 4, "comment": "on time"},
        headers=auth_headers(rider),
    )
    assert response.status_code == 201
    assert response.json()["is_driver_rating"] is True

    response = await client.get(f"/v1/ratings/users/{d2.id}/average", headers=auth_headers(rider))
    assert response.json() == {"user_id": d2.id, "average": 4.0, "count": 1}

    response = await client.get(f"/v1/ratings/users/{d2.id}/history", headers=auth_headers(d2))
    assert [r["score"] for r in response.json()["ratings"]] == [4]

    response = await client.get("/v1/drivers/me/bookings", headers=auth_headers(d1))
    assert [b["id"] for b in response.json()["bookings"]] == [booking_id]


@pytest.mark.asyncio
async def test_out_of_order_event_is_precondition_failure(client, booking_id, drivers):
    response = await client.post(f"/v1/bookings/{booking_id}/arrival", headers=auth_headers(drivers[0]))

    assert response.status_code == 412
    assert response.json()["error_code"] == "ERR_INVALID_TRANSITION"


@pytest.mark.asyncio
async def test_rating_before_completion(client, booking_id, rider, drivers):
    response = await client.post(
        "/v1/ratings",
        json={"booking_id": booking_id, "rated_id": drivers[0].id, "score": 5},
        headers=auth_headers(rider),
    )

    assert response.status_code == 412
    assert response.json()["error_code"] == "ERR_PRECONDITION"


@pytest.mark.asyncio
async def test_cancel_twice(client, booking_id, rider):
    first = await client.post(f"/v1/bookings/{booking_id}/cancel", json={"reason": "changed plans"}, headers=auth_headers(rider))
    second = await client.post(f"/v1/bookings/{booking_id}/cancel", headers=auth_headers(rider))

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["status"] == "canceled"
    assert second.json()["cancel_reason"] == "changed plans"


@pytest.mark.asyncio
async def test_rider_history_and_privacy(client, booking_id, rider, make_user, drivers):
    response = await client.get("/v1/bookings/mine?limit=5", headers=auth_headers(rider))
    assert response.status_code == 200
    assert [b["id"] for b in response.json()["bookings"]] == [booking_id]

    other_rider = await make_user(UserRole.RIDER)
    response = await client.get(f"/v1/bookings/{booking_id}", headers=auth_headers(other_rider))
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"

    response = await client.get("/v1/drivers/me/pending", headers=auth_headers(drivers[2]))
    assert [b["id"] for b in response.json()["bookings"]] == [booking_id]

    response = await client.get("/v1/bookings/999999", headers=auth_headers(rider))
    assert response.status_code == 404
