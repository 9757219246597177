"""
Tests for booking endpoints, end to end over HTTP.
"""

import asyncio
import uuid
from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from app.db.session import AsyncSessionLocal
from app.models.booking import Booking
from app.services import booking_service


def _passenger(trip_id: int, seat: int, **overrides) -> dict:
    body = {
        "trip_id": trip_id,
        "seat_number": seat,
        "passenger_name": "Fatima Al-Sabah",
        "passenger_phone": "55512345",
    }
    body.update(overrides)
    return body


async def _create(client: AsyncClient, trip_id: int, seat: int, headers=None, **overrides) -> dict:
    response = await client.post("/api/v1/bookings/", json=_passenger(trip_id, seat, **overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_create_booking(client: AsyncClient, auth_headers, test_user, test_trip):
    response = await client.post("/api/v1/bookings/", json=_passenger(test_trip.id, 12), headers=auth_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["trip_id"] == test_trip.id
    assert data["seat_number"] == 12
    assert data["status"] == "PendingPayment"
    assert data["price"] == "2.00"
    assert data["user_id"] == str(test_user.id)
    # Signed-in passenger without an explicit email gets receipts at the account address
    assert data["passenger_email"] == "test@example.com"

    seats = await client.get(f"/api/v1/trips/{test_trip.id}/seats")
    assert seats.json()["taken_seats"] == [12]
    assert seats.json()["available"] == 49


@pytest.mark.asyncio
async def test_create_booking_anonymous(client: AsyncClient, test_trip):
    data = await _create(client, test_trip.id, 1)
    assert data["user_id"] == "Anonymous"
    assert data["passenger_email"] is None


@pytest.mark.asyncio
async def test_seat_taken(client: AsyncClient, test_trip):
    await _create(client, test_trip.id, 1)

    response = await client.post("/api/v1/bookings/", json=_passenger(test_trip.id, 1))
    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "seat_taken"


@pytest.mark.asyncio
async def test_concurrent_http_bookings_one_winner(client: AsyncClient, test_trip):
    responses = await asyncio.gather(
        *(client.post("/api/v1/bookings/", json=_passenger(test_trip.id, 30)) for _ in range(10))
    )
    codes = sorted(r.status_code for r in responses)
    assert codes == [201] + [409] * 9


@pytest.mark.asyncio
async def test_invalid_booking_input(client: AsyncClient, test_trip):
    cases = [
        (_passenger(test_trip.id, 0), 422),
        (_passenger(test_trip.id, 1, passenger_phone="call me"), 422),
        (_passenger(test_trip.id, 1, passenger_email="not-an-email"), 422),
        (_passenger(test_trip.id, 51), 400),
        (_passenger(999999, 1), 404),
    ]
    for body, expected in cases:
        response = await client.post("/api/v1/bookings/", json=body)
        assert response.status_code == expected, body


@pytest.mark.asyncio
async def test_pay_with_knet(client: AsyncClient, auth_headers, test_trip, sender):
    booking = await _create(client, test_trip.id, 3, auth_headers)

    response = await client.post(
        f"/api/v1/bookings/{booking['id']}/payment",
        json={"payment_method": "KNET", "bank": "NBK", "card_number": "4111111111111111",
              "expiry_date": "12/29", "pin": "1234"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == "Confirmed"
    assert response.json()["payment_method"] == "KNET"
    assert [addr for addr, _, _ in sender.emails] == ["test@example.com"]
    assert [phone for phone, _ in sender.sms] == ["+96555512345"]


@pytest.mark.asyncio
async def test_pay_knet_without_pin(client: AsyncClient, auth_headers, test_trip, sender):
    booking = await _create(client, test_trip.id, 3, auth_headers)

    response = await client.post(
        f"/api/v1/bookings/{booking['id']}/payment",
        json={"payment_method": "KNET", "card_number": "4111111111111111"},
        headers=auth_headers,
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_payment_input"
    assert sender.sms == []
    current = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)
    assert current.json()["status"] == "PendingPayment"


@pytest.mark.asyncio
async def test_pay_twice(client: AsyncClient, auth_headers, test_trip):
    booking = await _create(client, test_trip.id, 3, auth_headers)
    url = f"/api/v1/bookings/{booking['id']}/payment"

    first = await client.post(url, json={"payment_method": "APPLE_PAY"}, headers=auth_headers)
    second = await client.post(url, json={"payment_method": "APPLE_PAY"}, headers=auth_headers)

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "invalid_state"


@pytest.mark.asyncio
async def test_pay_requires_owner(client: AsyncClient, auth_headers, other_headers, test_trip):
    booking = await _create(client, test_trip.id, 3, auth_headers)
    url = f"/api/v1/bookings/{booking['id']}/payment"

    assert (await client.post(url, json={"payment_method": "APPLE_PAY"})).status_code == 401
    response = await client.post(url, json={"payment_method": "APPLE_PAY"}, headers=other_headers)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "forbidden"


@pytest.mark.asyncio
async def test_refund_quote_and_cancel(client: AsyncClient, auth_headers, test_trip, sender):
    booking = await _create(client, test_trip.id, 3, auth_headers)

    quote = await client.get(f"/api/v1/bookings/{booking['id']}/refund-quote", headers=auth_headers)
    assert quote.status_code == 200
    assert quote.json()["deduction_percent"] == 10
    assert quote.json()["refund_amount"] == "1.80"
    assert quote.json()["hours_to_departure"] == 48.0

    response = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "Cancelled"
    assert data["refund"]["price"] == "2.00"
    assert data["refund"]["refund_amount"] == "1.80"
    assert "1.80 KWD" in sender.sms[-1][1]

    seats = await client.get(f"/api/v1/trips/{test_trip.id}/seats")
    assert seats.json()["taken_seats"] == []


@pytest.mark.asyncio
async def test_late_cancellation_deduction(client: AsyncClient, auth_headers, soon_trip):
    booking = await _create(client, soon_trip.id, 3, auth_headers)

    response = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers)
    assert response.json()["refund"]["deduction_percent"] == 25
    assert response.json()["refund"]["refund_amount"] == "1.50"


@pytest.mark.asyncio
async def test_cancel_twice(client: AsyncClient, auth_headers, test_trip):
    booking = await _create(client, test_trip.id, 3, auth_headers)
    url = f"/api/v1/bookings/{booking['id']}/cancel"

    assert (await client.post(url, headers=auth_headers)).status_code == 200
    second = await client.post(url, headers=auth_headers)
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "invalid_state"


@pytest.mark.asyncio
async def test_cancel_after_departure(client: AsyncClient, auth_headers, soon_trip, clock):
    booking = await _create(client, soon_trip.id, 3, auth_headers)
    clock.advance(timedelta(hours=3))

    response = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "trip_already_departed"

    quote = await client.get(f"/api/v1/bookings/{booking['id']}/refund-quote", headers=auth_headers)
    assert quote.status_code == 400


@pytest.mark.asyncio
async def test_delete_pending_booking(client: AsyncClient, auth_headers, test_trip):
    booking = await _create(client, test_trip.id, 3, auth_headers)

    response = await client.delete(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)
    assert response.status_code == 204

    assert (await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)).status_code == 404
    await _create(client, test_trip.id, 3, auth_headers)


@pytest.mark.asyncio
async def test_delete_confirmed_booking_rejected(client: AsyncClient, auth_headers, test_trip):
    booking = await _create(client, test_trip.id, 3, auth_headers)
    await client.post(f"/api/v1/bookings/{booking['id']}/payment",
                      json={"payment_method": "APPLE_PAY"}, headers=auth_headers)

    response = await client.delete(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_list_my_bookings(client: AsyncClient, auth_headers, other_headers, test_trip):
    await _create(client, test_trip.id, 1, auth_headers)
    await _create(client, test_trip.id, 2, auth_headers)
    await _create(client, test_trip.id, 3, other_headers)
    await _create(client, test_trip.id, 4)

    response = await client.get("/api/v1/bookings/", headers=auth_headers)
    assert response.status_code == 200
    assert sorted(b["seat_number"] for b in response.json()) == [1, 2]


@pytest.mark.asyncio
async def test_unknown_and_malformed_booking_ids(client: AsyncClient, auth_headers):
    missing = await client.get(f"/api/v1/bookings/{uuid.uuid4()}", headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "not_found"

    malformed = await client.get("/api/v1/bookings/42", headers=auth_headers)
    assert malformed.status_code == 422


@pytest.mark.asyncio
async def test_busy_booking_returns_503(client: AsyncClient, auth_headers, test_trip, monkeypatch):
    booking = await _create(client, test_trip.id, 3, auth_headers)
    monkeypatch.setattr(booking_service.booking_locks, "timeout", 0.05)

    async with booking_service.booking_locks.hold(uuid.UUID(booking["id"])):
        response = await client.post(f"/api/v1/bookings/{booking['id']}/cancel", headers=auth_headers)

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["detail"]["code"] == "busy"


@pytest.mark.parametrize("method,suffix", [("POST", "/cancel"), ("DELETE", "")])
@pytest.mark.asyncio
async def test_change_committed_elsewhere_returns_503(
    client: AsyncClient, auth_headers, test_trip, monkeypatch, method, suffix
):
    booking = await _create(client, test_trip.id, 3, auth_headers)
    load = booking_service._load_booking

    async def load_then_bump(db, booking_id, user_id):
        loaded = await load(db, booking_id, user_id)
        async with AsyncSessionLocal() as other:
            await other.execute(
                update(Booking).where(Booking.id == booking_id).values(version=Booking.version + 1)
            )
            await other.commit()
        return loaded

    monkeypatch.setattr(booking_service, "_load_booking", load_then_bump)
    response = await client.request(method, f"/api/v1/bookings/{booking['id']}{suffix}", headers=auth_headers)
    monkeypatch.undo()

    assert response.status_code == 503
    assert response.json()["detail"]["code"] == "busy"
    current = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)
    assert current.json()["status"] == "PendingPayment"
    seats = await client.get(f"/api/v1/trips/{test_trip.id}/seats")
    assert seats.json()["taken_seats"] == [3]
