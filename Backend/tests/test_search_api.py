SEARCH_URL = "/api/client/buses/search"


def search(client, **params):
    params.setdefault("date", "2026-11-01")
    return client.get(SEARCH_URL, params=params)


def bus_numbers(body):
    return [item["bus"]["bus_number"] for item in body["items"]]


def test_source_and_destination_are_required(client, network):
    response = client.get(SEARCH_URL, params={"source": "Central", "date": "2026-11-01"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Source and destination are required"


def test_date_is_required(client, network):
    response = client.get(SEARCH_URL, params={"source": "Central", "destination": "Airport"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Date is required"


def test_search_returns_active_buses_in_storage_order(client, network):
    response = search(client, source="Central", destination="Airport")
    assert response.status_code == 200

    body = response.json()
    assert body["message"] == "Buses found successfully"
    # The retired bus on City Line is never offered
    assert bus_numbers(body) == ["KA-01-1001", "KA-01-1002", "KA-01-3001"]
    assert body["pagination"] == {
        "current_page": 1,
        "total_pages": 1,
        "total_items": 3,
        "limit": 5,
        "has_next_page": False,
        "has_prev_page": False,
    }


def test_journey_details_in_results(client, network):
    body = search(client, source="Central", destination="Airport", sort_by="fare").json()

    cheapest = body["items"][0]
    assert cheapest["bus"]["route"]["name"] == "City Line"
    assert cheapest["journey_info"] == {
        "source_stop": {"id": network.stops["Central"], "name": "Central"},
        "destination_stop": {"id": network.stops["Airport"], "name": "Airport"},
        "departure_time": "09:00 AM",
        "arrival_time": "N/A",
        "duration": 30,
        "fare": 30.0,
        "date": "2026-11-01",
        "route_operational_start_time": "09:00 AM",
        "route_operational_end_time": "09:00 PM",
    }


def test_stop_names_match_case_insensitively(client, network):
    body = search(client, source="central", destination="AIRPORT").json()
    assert body["pagination"]["total_items"] == 3


def test_reverse_direction_finds_no_routes(client, network):
    response = search(client, source="Airport", destination="Central")
    assert response.status_code == 200

    body = response.json()
    assert body["message"] == "No routes found for the given source and destination"
    assert body["items"] == []
    assert body["pagination"]["total_items"] == 0
    assert body["pagination"]["total_pages"] == 0


def test_unknown_stop_finds_no_routes(client, network):
    body = search(client, source="Central", destination="Harbour").json()
    assert body["items"] == []


def test_mid_route_boarding_has_unknown_departure(client, network):
    body = search(client, source="Market", destination="College", sort_by="departure").json()

    departures = [(item["bus"]["bus_number"], item["journey_info"]["departure_time"]) for item in body["items"]]
    assert departures == [("KA-01-2001", "07:00 AM"), ("KA-01-1001", "N/A"), ("KA-01-1002", "N/A")]

    hospital_bus = body["items"][0]["journey_info"]
    assert hospital_bus["duration"] == 15
    assert hospital_bus["fare"] == 12.0


def test_sort_by_fare_descending(client, network):
    body = search(client, source="Central", destination="Airport", sort_by="fare", sort_order="desc").json()
    assert [item["journey_info"]["fare"] for item in body["items"]] == [75.0, 50.0, 30.0]


def test_bus_type_filter_accepts_a_list(client, network):
    body = search(client, source="Central", destination="Airport", bus_type="ac,express").json()
    assert bus_numbers(body) == ["KA-01-1002", "KA-01-3001"]


def test_bus_type_filter_with_no_match(client, network):
    body = search(client, source="Central", destination="Airport", bus_type="sleeper").json()
    assert body["items"] == []
    assert body["message"] == "No buses found matching your criteria."


def test_max_price_filters_on_segment_fare(client, network):
    body = search(client, source="Central", destination="Airport", max_price="60").json()
    assert bus_numbers(body) == ["KA-01-1001", "KA-01-3001"]


def test_invalid_max_price_is_ignored(client, network):
    body = search(client, source="Central", destination="Airport", max_price="cheap").json()
    assert body["pagination"]["total_items"] == 3


def test_pagination_pages(client, network):
    body = search(client, source="Central", destination="Airport", limit="2", page="2").json()
    assert bus_numbers(body) == ["KA-01-3001"]
    assert body["pagination"]["total_pages"] == 2
    assert body["pagination"]["has_prev_page"] is True
    assert body["pagination"]["has_next_page"] is False


def test_page_beyond_results(client, network):
    body = search(client, source="Central", destination="Airport", page="9").json()
    assert body["items"] == []
    assert body["message"] == "No buses found on this page."
    assert body["pagination"]["current_page"] == 9


def test_invalid_page_and_limit_fall_back_to_defaults(client, network):
    body = search(client, source="Central", destination="Airport", page="abc", limit="-3").json()
    assert body["pagination"]["current_page"] == 1
    assert body["pagination"]["limit"] == 5


def test_deactivated_bus_disappears_from_search(client, network, admin_headers):
    response = client.patch(
        f"/api/admin/buses/{network.buses['express']}/active",
        params={"active": "false"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    body = search(client, source="Central", destination="Airport").json()
    assert "KA-01-3001" not in bus_numbers(body)


def test_public_network_listings(client, network):
    stops = client.get("/api/client/stops").json()
    assert [stop["name"] for stop in stops] == ["Airport", "Central", "College", "Hospital", "Market"]

    routes = client.get("/api/client/routes").json()
    assert [route["name"] for route in routes] == ["City Line", "Hospital Loop", "Express Line"]

    info = client.get(f"/api/client/routes/{network.routes['city']}/stops").json()
    assert info["from_location"] == "Central"
    assert info["to_location"] == "Airport"
    assert [stop["name"] for stop in info["stops"]] == ["Central", "Market", "College", "Airport"]


def test_bus_details_and_schedules(client, network):
    bus = client.get(f"/api/client/buses/{network.buses['hospital']}").json()
    assert bus["route"]["name"] == "Hospital Loop"

    assert client.get("/api/client/buses/9999").status_code == 404

    schedules = client.get(
        "/api/client/buses/schedules",
        params={"route_id": network.routes["city"], "date": "2026-11-01"},
    ).json()
    # Inactive buses are left out of the timetable
    assert [entry["bus_number"] for entry in schedules] == ["KA-01-1001", "KA-01-1002"]
    assert schedules[0]["departure_time"] == "09:00 AM"
    assert schedules[0]["date"] == "2026-11-01"


def test_service_endpoints(client, db):
    assert client.get("/health").json() == {"status": "healthy", "database": "ok"}
    assert client.get("/").json()["endpoints"]["search"] == SEARCH_URL


def test_max_price_uses_numeric_prefix(client, network):
    body = search(client, source="Central", destination="Airport", max_price="40abc").json()
    assert bus_numbers(body) == ["KA-01-1001"]


def test_fractional_page_uses_integer_part(client, network):
    body = search(client, source="Central", destination="Airport", page="2.5", limit="2abc").json()
    assert body["pagination"]["current_page"] == 2
    assert body["pagination"]["limit"] == 2
    assert bus_numbers(body) == ["KA-01-3001"]


def test_any_sort_order_other_than_asc_descends(client, network):
    body = search(client, source="Central", destination="Airport", sort_by="fare", sort_order="descending").json()
    assert [item["journey_info"]["fare"] for item in body["items"]] == [75.0, 50.0, 30.0]

    body = search(client, source="Central", destination="Airport", sort_by="fare", sort_order="ASC").json()
    assert [item["journey_info"]["fare"] for item in body["items"]] == [30.0, 50.0, 75.0]


def test_no_routes_response_is_always_page_one(client, network):
    body = search(client, source="Airport", destination="Central", page="3").json()
    assert body["pagination"]["current_page"] == 1
    assert body["pagination"]["has_prev_page"] is False
    assert body["pagination"]["has_next_page"] is False
