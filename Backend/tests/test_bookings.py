from datetime import date, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from buspass.db import crud
from buspass.db.models import get_ist_now

BOOKINGS_URL = "/api/client/bookings"


@pytest.fixture()
def book(client, network, tomorrow):
    def _book(bus="city_ordinary", source="Central", destination="Airport", seats=1, user_id="user-1", journey_date=None):
        payload = {
            "user_id": user_id,
            "bus_id": network.buses[bus] if isinstance(bus, str) else bus,
            "source_stop_id": network.stops[source],
            "destination_stop_id": network.stops[destination],
            "number_of_seats": seats,
            "journey_date": journey_date or tomorrow,
        }
        return client.post(BOOKINGS_URL, json=payload)
    return _book


def test_booking_amount_is_fare_times_segments_times_seats(book, network, tomorrow):
    response = book(seats=2)
    assert response.status_code == 201

    booking = response.json()
    assert booking["total_amount"] == 60.0
    assert booking["status"] == "confirmed"
    assert booking["number_of_seats"] == 2
    assert booking["journey_date"] == tomorrow
    assert booking["booking_code"].startswith("BK-")
    assert booking["qr_code_data"] == str(booking["id"])
    assert booking["route"]["name"] == "City Line"
    assert booking["source_stop"]["name"] == "Central"
    assert booking["destination_stop"]["name"] == "Airport"


def test_partial_journey_pays_for_its_segments(book):
    booking = book(source="Market", destination="College", seats=3).json()
    assert booking["total_amount"] == 30.0


def test_booking_codes_are_unique(book):
    codes = {book().json()["booking_code"] for _ in range(3)}
    assert len(codes) == 3


def test_booking_code_collision_draws_a_new_code(book, monkeypatch):
    taken = book().json()["booking_code"]

    codes = iter([taken, "BK-20261101-0042"])
    monkeypatch.setattr(crud, "_generate_booking_code", lambda: next(codes))

    response = book(user_id="user-2")
    assert response.status_code == 201
    assert response.json()["booking_code"] == "BK-20261101-0042"
    assert response.json()["qr_code_data"] == str(response.json()["id"])


def test_booking_code_collisions_give_up_after_configured_attempts(db, book, network, tomorrow, monkeypatch):
    taken = book().json()["booking_code"]
    calls = []

    def always_taken():
        calls.append(taken)
        return taken

    monkeypatch.setattr(crud, "_generate_booking_code", always_taken)

    with pytest.raises(IntegrityError):
        crud.create_booking(
            db,
            user_id="user-2",
            bus_id=network.buses["city_ordinary"],
            route_id=network.routes["city"],
            source_stop_id=network.stops["Central"],
            destination_stop_id=network.stops["Airport"],
            number_of_seats=1,
            total_amount=30.0,
            journey_date=date.fromisoformat(tomorrow),
            status="confirmed",
        )
    assert len(calls) == 5
    assert crud.count_bookings(db) == 1


def test_unknown_booking_status_is_rejected_by_the_store(db, book):
    booking_id = book().json()["id"]
    with pytest.raises(ValueError):
        crud.update_booking_status(db, booking_id, "lost")
    assert crud.get_booking(db, booking_id).status == "confirmed"


@pytest.mark.parametrize("kwargs, status_code, detail", [
    ({"seats": 0}, 400, "Number of seats must be a positive integer."),
    ({"seats": 41}, 400, "This bus has only 40 seats"),
    ({"source": "Airport", "destination": "Central"}, 400, "Source stop must be before destination stop on the route"),
    ({"source": "Central", "destination": "Central"}, 400, "Source stop must be before destination stop on the route"),
    ({"source": "Hospital"}, 404, "Source stop not found on this bus route"),
    ({"destination": "Hospital"}, 404, "Destination stop not found on this bus route"),
    ({"bus": "city_retired"}, 400, "This bus is currently not active."),
    ({"bus": 9999}, 404, "Bus not found"),
])
def test_rejected_bookings(book, kwargs, status_code, detail):
    response = book(**kwargs)
    assert response.status_code == status_code
    assert response.json()["detail"] == detail


def test_booking_in_the_past_is_rejected(book):
    yesterday = (get_ist_now().date() - timedelta(days=1)).isoformat()
    response = book(journey_date=yesterday)
    assert response.status_code == 400
    assert response.json()["detail"] == "Journey date cannot be in the past"


def test_missing_fields_fail_validation(client, network):
    response = client.post(BOOKINGS_URL, json={"user_id": "user-1"})
    assert response.status_code == 422
    assert response.json()["detail"] == "Invalid request data"


def test_user_sees_only_own_bookings(client, book):
    first = book(user_id="alice").json()
    second = book(user_id="alice", bus="express").json()
    book(user_id="bob")

    mine = client.get(BOOKINGS_URL, params={"user_id": "alice"}).json()
    assert [booking["id"] for booking in mine] == [second["id"], first["id"]]

    assert client.get(f"{BOOKINGS_URL}/{first['id']}", params={"user_id": "alice"}).status_code == 200

    response = client.get(f"{BOOKINGS_URL}/{first['id']}", params={"user_id": "bob"})
    assert response.status_code == 403

    assert client.get(f"{BOOKINGS_URL}/9999", params={"user_id": "alice"}).status_code == 404


def test_cancel_booking(client, book):
    booking = book(user_id="alice").json()
    url = f"{BOOKINGS_URL}/{booking['id']}/cancel"

    assert client.put(url, params={"user_id": "bob"}).status_code == 403

    response = client.put(url, params={"user_id": "alice"})
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"

    again = client.put(url, params={"user_id": "alice"})
    assert again.status_code == 400
    assert again.json()["detail"] == "Booking is already cancelled"
