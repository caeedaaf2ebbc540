import os
import tempfile
from datetime import timedelta
from types import SimpleNamespace

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("ADMIN_USERNAME", "superadmin")
os.environ.setdefault("ADMIN_PASSWORD", "super-secret-password")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "buspass-test-logs"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from buspass.core.config import settings
from buspass.core.security import create_access_token, ROLE_SUPER_ADMIN
from buspass.db import crud
from buspass.db.models import get_ist_now
from buspass.db.session import Base, get_db, init_db
from buspass.main import app
from buspass.schemas.bus import BusCreate
from buspass.schemas.route import RouteCreate
from buspass.schemas.stop import StopCreate

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def db():
    init_db(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def admin_headers():
    token = create_access_token({"sub": settings.ADMIN_USERNAME, "role": ROLE_SUPER_ADMIN})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def tomorrow():
    return (get_ist_now().date() + timedelta(days=1)).isoformat()


@pytest.fixture()
def network(db):
    """
    Small city network:

    City Line      Central -> Market -> College -> Airport   09:00 AM, 10 min/segment
    Hospital Loop  Market -> College -> Hospital             07:00 AM, 15 min/segment
    Express Line   Central -> Airport                        10:00 AM
    """
    stops = {
        name: crud.create_stop(db, StopCreate(name=name))
        for name in ("Central", "Market", "College", "Hospital", "Airport")
    }

    def route(name, stop_names, start, end, average_stop_time=None):
        data = RouteCreate(
            name=name,
            operational_start_time=start,
            operational_end_time=end,
            average_stop_time=average_stop_time,
            stop_ids=[stops[stop_name].id for stop_name in stop_names],
        )
        return crud.create_route(db, data, [stops[stop_name] for stop_name in stop_names])

    routes = {
        "city": route("City Line", ["Central", "Market", "College", "Airport"], "09:00 AM", "09:00 PM"),
        "hospital": route("Hospital Loop", ["Market", "College", "Hospital"], "07:00 AM", "08:00 PM", 15),
        "express": route("Express Line", ["Central", "Airport"], "10:00 AM", "06:00 PM"),
    }

    def bus(number, route_key, fare, bus_type="ordinary", is_active=True):
        data = BusCreate(
            bus_number=number,
            bus_type=bus_type,
            fare=fare,
            route_id=routes[route_key].id,
            is_active=is_active,
        )
        return crud.create_bus(db, data)

    buses = {
        "city_ordinary": bus("KA-01-1001", "city", 10),
        "city_ac": bus("KA-01-1002", "city", 25, bus_type="ac"),
        "hospital": bus("KA-01-2001", "hospital", 12),
        "express": bus("KA-01-3001", "express", 50, bus_type="express"),
        "city_retired": bus("KA-01-1003", "city", 8, is_active=False),
    }

    return SimpleNamespace(
        stops={name: stop.id for name, stop in stops.items()},
        routes={key: value.id for key, value in routes.items()},
        buses={key: value.id for key, value in buses.items()},
    )
