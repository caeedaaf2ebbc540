from buspass.core.config import settings

ADMIN = "/api/admin"


def login(client, username, password):
    response = client.post(f"{ADMIN}/login", json={"username": username, "password": password})
    # Tests authenticate with explicit Bearer headers only
    client.cookies.clear()
    return response


# ============ Authentication ============

def test_super_admin_login(client, db):
    response = login(client, settings.ADMIN_USERNAME, settings.ADMIN_PASSWORD)
    assert response.status_code == 200

    body = response.json()
    assert body["role"] == "super_admin"
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert "access_token=" in response.headers["set-cookie"]
    assert "httponly" in response.headers["set-cookie"].lower()


def test_login_failures(client, db):
    assert login(client, settings.ADMIN_USERNAME, "wrong-password").status_code == 401
    assert login(client, "nobody", "whatever-password").status_code == 401
    assert login(client, "", "").status_code == 400


def test_admin_endpoints_require_a_token(client, db):
    response = client.get(f"{ADMIN}/stops")
    assert response.status_code == 401

    response = client.get(f"{ADMIN}/stops", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials. Please login again."


def test_super_admin_manages_admins(client, db, admin_headers):
    response = client.post(
        f"{ADMIN}/admins",
        json={"username": "operator", "password": "operator-pass"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    admin_id = response.json()["id"]

    duplicate = client.post(
        f"{ADMIN}/admins",
        json={"username": "operator", "password": "operator-pass"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 400

    session = login(client, "operator", "operator-pass").json()
    assert session["role"] == "admin"
    operator_headers = {"Authorization": f"Bearer {session['access_token']}"}

    # Normal admins can manage the network but not other admins
    assert client.get(f"{ADMIN}/stops", headers=operator_headers).status_code == 200
    assert client.get(f"{ADMIN}/admins", headers=operator_headers).status_code == 403

    response = client.patch(
        f"{ADMIN}/admins/{admin_id}/status",
        params={"is_active": "false"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert login(client, "operator", "operator-pass").status_code == 401

    assert client.delete(f"{ADMIN}/admins/{admin_id}", headers=admin_headers).status_code == 200
    assert client.get(f"{ADMIN}/admins", headers=admin_headers).json() == []


# ============ Stops ============

def test_stop_crud(client, db, admin_headers):
    response = client.post(
        f"{ADMIN}/stops",
        json={"name": "Harbour", "latitude": 12.97, "longitude": 77.59},
        headers=admin_headers,
    )
    assert response.status_code == 201
    stop_id = response.json()["id"]

    duplicate = client.post(f"{ADMIN}/stops", json={"name": "HARBOUR"}, headers=admin_headers)
    assert duplicate.status_code == 400

    out_of_range = client.post(f"{ADMIN}/stops", json={"name": "Nowhere", "latitude": 120}, headers=admin_headers)
    assert out_of_range.status_code == 422

    updated = client.put(f"{ADMIN}/stops/{stop_id}", json={"address": "Pier 3"}, headers=admin_headers).json()
    assert updated["address"] == "Pier 3"
    assert updated["name"] == "Harbour"

    assert client.delete(f"{ADMIN}/stops/{stop_id}", headers=admin_headers).status_code == 200
    assert client.get(f"{ADMIN}/stops/{stop_id}", headers=admin_headers).status_code == 404


def test_stop_used_by_route_cannot_be_deleted(client, network, admin_headers):
    response = client.delete(f"{ADMIN}/stops/{network.stops['Market']}", headers=admin_headers)
    assert response.status_code == 400


# ============ Routes ============

def route_payload(network, *names, name="Ring Road"):
    return {
        "name": name,
        "operational_start_time": "06:00 AM",
        "operational_end_time": "11:00 PM",
        "average_stop_time": 12,
        "stop_ids": [network.stops[stop_name] for stop_name in names],
    }


def stop_names(route):
    return [stop["name"] for stop in route["stops"]]


def test_create_route(client, network, admin_headers):
    response = client.post(
        f"{ADMIN}/routes",
        json=route_payload(network, "Hospital", "Market", "Central"),
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert stop_names(response.json()) == ["Hospital", "Market", "Central"]

    duplicate = client.post(
        f"{ADMIN}/routes",
        json=route_payload(network, "Hospital", "Central"),
        headers=admin_headers,
    )
    assert duplicate.status_code == 400


def test_route_needs_two_known_stops(client, network, admin_headers):
    too_short = client.post(f"{ADMIN}/routes", json=route_payload(network, "Central"), headers=admin_headers)
    assert too_short.status_code == 422

    payload = route_payload(network, "Central", "Airport")
    payload["stop_ids"].append(9999)
    unknown = client.post(f"{ADMIN}/routes", json=payload, headers=admin_headers)
    assert unknown.status_code == 404
    assert unknown.json()["detail"] == "Stop with ID 9999 not found"

    bad_time = route_payload(network, "Central", "Airport")
    bad_time["operational_start_time"] = "6 o'clock"
    assert client.post(f"{ADMIN}/routes", json=bad_time, headers=admin_headers).status_code == 422


def test_add_and_remove_route_stops(client, network, admin_headers):
    route_id = network.routes["express"]
    url = f"{ADMIN}/routes/{route_id}/stops"

    route = client.post(url, json={"stop_id": network.stops["Market"], "position": 1}, headers=admin_headers).json()
    assert stop_names(route) == ["Central", "Market", "Airport"]

    route = client.post(url, json={"stop_id": network.stops["Hospital"]}, headers=admin_headers).json()
    assert stop_names(route) == ["Central", "Market", "Airport", "Hospital"]

    again = client.post(url, json={"stop_id": network.stops["Market"]}, headers=admin_headers)
    assert again.status_code == 400

    route = client.delete(f"{url}/{network.stops['Market']}", headers=admin_headers).json()
    assert stop_names(route) == ["Central", "Airport", "Hospital"]

    route = client.delete(f"{url}/{network.stops['Hospital']}", headers=admin_headers).json()
    assert stop_names(route) == ["Central", "Airport"]

    last_two = client.delete(f"{url}/{network.stops['Airport']}", headers=admin_headers)
    assert last_two.status_code == 400
    assert last_two.json()["detail"] == "Route must have at least two stops"

    assert client.delete(f"{url}/{network.stops['College']}", headers=admin_headers).status_code == 404


def test_new_route_stop_is_searchable(client, network, admin_headers):
    client.post(
        f"{ADMIN}/routes/{network.routes['express']}/stops",
        json={"stop_id": network.stops["Hospital"], "position": 1},
        headers=admin_headers,
    )
    body = client.get(
        "/api/client/buses/search",
        params={"source": "Hospital", "destination": "Airport", "date": "2026-11-01"},
    ).json()
    assert [item["bus"]["bus_number"] for item in body["items"]] == ["KA-01-3001"]


def test_update_route_replaces_stop_sequence(client, network, admin_headers):
    response = client.put(
        f"{ADMIN}/routes/{network.routes['hospital']}",
        json={"operational_start_time": "05:30 AM", "stop_ids": [network.stops["Hospital"], network.stops["College"]]},
        headers=admin_headers,
    )
    assert response.status_code == 200

    route = response.json()
    assert route["operational_start_time"] == "05:30 AM"
    assert route["name"] == "Hospital Loop"
    assert stop_names(route) == ["Hospital", "College"]


def test_route_with_buses_cannot_be_deleted(client, network, admin_headers):
    assert client.delete(f"{ADMIN}/routes/{network.routes['city']}", headers=admin_headers).status_code == 400


# ============ Buses ============

def test_bus_crud(client, network, admin_headers):
    payload = {
        "bus_number": "KA-01-4001",
        "bus_type": "sleeper",
        "fare": 40,
        "features": ["wifi"],
        "route_id": network.routes["express"],
    }
    response = client.post(f"{ADMIN}/buses", json=payload, headers=admin_headers)
    assert response.status_code == 201

    bus = response.json()
    assert bus["route"]["name"] == "Express Line"
    assert bus["capacity"] == 40
    assert bus["features"] == ["wifi"]

    assert client.post(f"{ADMIN}/buses", json=payload, headers=admin_headers).status_code == 400

    unknown_route = dict(payload, bus_number="KA-01-4002", route_id=9999)
    assert client.post(f"{ADMIN}/buses", json=unknown_route, headers=admin_headers).status_code == 404

    bad_type = dict(payload, bus_number="KA-01-4003", bus_type="double-decker")
    assert client.post(f"{ADMIN}/buses", json=bad_type, headers=admin_headers).status_code == 422

    updated = client.put(f"{ADMIN}/buses/{bus['id']}", json={"fare": 45}, headers=admin_headers).json()
    assert updated["fare"] == 45.0

    listed = client.get(f"{ADMIN}/buses", params={"route_id": network.routes["express"]}, headers=admin_headers).json()
    assert [item["bus_number"] for item in listed] == ["KA-01-3001", "KA-01-4001"]

    assert client.delete(f"{ADMIN}/buses/{bus['id']}", headers=admin_headers).status_code == 200
    assert client.get(f"{ADMIN}/buses/{bus['id']}", headers=admin_headers).status_code == 404


def test_booked_bus_cannot_be_deleted(client, network, admin_headers, tomorrow):
    client.post("/api/client/bookings", json={
        "user_id": "user-1",
        "bus_id": network.buses["express"],
        "source_stop_id": network.stops["Central"],
        "destination_stop_id": network.stops["Airport"],
        "number_of_seats": 1,
        "journey_date": tomorrow,
    })
    response = client.delete(f"{ADMIN}/buses/{network.buses['express']}", headers=admin_headers)
    assert response.status_code == 400


# ============ Bookings and dashboard ============

def make_bookings(client, network, tomorrow, count):
    ids = []
    for seats in range(1, count + 1):
        response = client.post("/api/client/bookings", json={
            "user_id": f"user-{seats}",
            "bus_id": network.buses["city_ordinary"],
            "source_stop_id": network.stops["Central"],
            "destination_stop_id": network.stops["Airport"],
            "number_of_seats": seats,
            "journey_date": tomorrow,
        })
        ids.append(response.json()["id"])
    return ids


def test_bookings_listing_is_paginated(client, network, admin_headers, tomorrow):
    ids = make_bookings(client, network, tomorrow, 3)

    body = client.get(f"{ADMIN}/bookings", params={"page": 1, "limit": 2}, headers=admin_headers).json()
    assert [item["id"] for item in body["items"]] == [ids[2], ids[1]]
    assert body["pagination"]["total_items"] == 3
    assert body["pagination"]["total_pages"] == 2
    assert body["pagination"]["has_next_page"] is True

    body = client.get(f"{ADMIN}/bookings", params={"page": 2, "limit": 2}, headers=admin_headers).json()
    assert [item["id"] for item in body["items"]] == [ids[0]]


def test_dashboard(client, network, admin_headers, tomorrow):
    ids = make_bookings(client, network, tomorrow, 2)
    client.put(f"/api/client/bookings/{ids[0]}/cancel", params={"user_id": "user-1"})

    stats = client.get(f"{ADMIN}/dashboard", headers=admin_headers).json()
    assert stats["counts"] == {
        "stops": 5,
        "routes": 3,
        "buses": 5,
        "active_buses": 4,
        "bookings": 2,
        "today_bookings": 2,
    }
    # Only the two-seat booking counts: 10 x 3 segments x 2 seats
    assert stats["revenue"]["total"] == 60.0
    assert stats["bookings_by_status"] == {"cancelled": 1, "confirmed": 1}
    assert stats["top_routes"] == [{"route_id": network.routes["city"], "route_name": "City Line", "bookings": 1, "revenue": 60.0}]
