"""Pytest fixtures for the TransitDesk test suite.

The API runs against a throwaway SQLite database. Redis locks and the
OpenObserve log shipper are replaced with mocks so no service is needed.
"""

import os
import tempfile
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

# Settings are read at import time, override them before the app is loaded
DATABASE_DIR = tempfile.mkdtemp(prefix="transitdesk_test_")
os.environ["DB_URL"] = f"sqlite:///{os.path.join(DATABASE_DIR, 'transitdesk.db')}"
os.environ["JWT_SECRET_KEY"] = "transitdesk-test-secret"
os.environ["PROTECTED_SUPERADMIN_EMAIL"] = "root@transitdesk.com"

from fastapi.testclient import TestClient  # noqa: E402

from transitdesk.main import app  # noqa: E402
from transitdesk.src import argon2, jwt, openobserve, redis  # noqa: E402
from transitdesk.src.db import ORMbase, User, engine, sessionMaker  # noqa: E402
from transitdesk.src.enums import UserRole  # noqa: E402

PASSWORD = "Password@123"
PHONE = "+919496801157"


@pytest.fixture(autouse=True)
def database():
    ORMbase.metadata.create_all(engine)
    yield
    ORMbase.metadata.drop_all(engine)


@pytest.fixture(autouse=True)
def services(monkeypatch):
    """Replace the Redis client and the OpenObserve shipper."""
    redisClient = MagicMock()
    redisClient.lock.return_value.acquire.return_value = True
    monkeypatch.setattr(redis, "redisClient", redisClient)
    shipper = MagicMock()
    monkeypatch.setattr(openobserve, "logEvent", shipper)
    return shipper


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def createUser(role: UserRole, email: str, **kwargs) -> User:
    session = sessionMaker()
    try:
        user = User(
            username=kwargs.pop("username", email.split("@")[0]),
            email=email,
            password=argon2.makePassword(PASSWORD),
            role=role.value,
            **kwargs,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    finally:
        session.close()


def authHeader(user: User, expiresDelta: timedelta | None = None) -> dict:
    token = jwt.createAccessToken({"userId": user.id}, expiresDelta)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def superadmin():
    return createUser(UserRole.SUPERADMIN, "root@transitdesk.com")


@pytest.fixture
def admin(superadmin):
    return createUser(UserRole.ADMIN, "admin@transitdesk.com", myadmin=superadmin.email)


@pytest.fixture
def parent(admin):
    return createUser(
        UserRole.PARENT, "parent@transitdesk.com", myadmin=admin.email, cin_number="P100"
    )


@pytest.fixture
def rootHeader(superadmin):
    return authHeader(superadmin)


@pytest.fixture
def adminHeader(admin):
    return authHeader(admin)


@pytest.fixture
def parentHeader(parent):
    return authHeader(parent)


@pytest.fixture
def agency(client, rootHeader):
    response = client.post(
        "/api/agencies",
        headers=rootHeader,
        json={"name": "City transit", "email": "contact@transitdesk.com", "phone": PHONE},
    )
    assert response.status_code == 200, response.text
    return response.json()


@pytest.fixture
def route(client, rootHeader, agency):
    response = client.post(
        "/api/routes",
        headers=rootHeader,
        json={
            "agency": agency["id"],
            "route_id": "R1",
            "route_short_name": "1",
            "route_type": "bus",
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def calendar(client, rootHeader):
    days = ["monday", "tuesday", "wednesday", "thursday", "friday"]
    data = {day: day in days for day in days + ["saturday", "sunday"]}
    data.update(
        {"service_id": "WEEKDAYS", "start_date": "2025-01-01", "end_date": "2025-12-31"}
    )
    response = client.post("/api/calendars", headers=rootHeader, json=data)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def trip(client, rootHeader, route, calendar):
    response = client.post(
        "/api/trips",
        headers=rootHeader,
        json={
            "route": route["id"],
            "trip_id": "R1-T1",
            "service_id": calendar["id"],
            "direction_id": 0,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def stop(client):
    response = client.post(
        "/api/stops",
        json={
            "stop_id": "S1",
            "stop_name": "Central station",
            "stop_lat": 36.8065,
            "stop_lon": 10.1815,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def drivers(client, rootHeader):
    created = []
    for index in (1, 2, 3):
        response = client.post(
            "/api/drivers",
            headers=rootHeader,
            json={
                "username": f"Driver {index}",
                "email": f"driver{index}@transitdesk.com",
                "cinNumber": f"D{index}",
                "phoneNumber": PHONE,
            },
        )
        assert response.status_code == 201, response.text
        created.append(response.json())
    return created


@pytest.fixture
def vehicle(client, drivers):
    response = client.post(
        "/api/vehicles",
        json={
            "uniqueId": "BUS-001",
            "name": "Bus 001",
            "drivers": ["D1", "D2"],
            "latitude": 36.8065,
            "longitude": 10.1815,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()
