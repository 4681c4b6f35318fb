from datetime import datetime, timedelta

import mongomock
import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from app.api.deps import directions_service, khalti_gateway
from app.auth.security import hash_password, make_access_token, new_auth_id
from app.client.khalti_client import KhaltiError
from app.database import database
from app.main import app


class FakeKhalti:
    """Stands in for KhaltiClient; records calls and answers with canned data."""

    def __init__(self, configured=True, lookup_status="Completed", fail_initiate=False, fail_lookup=False):
        self.configured = configured
        self.lookup_status = lookup_status
        self.fail_initiate = fail_initiate
        self.fail_lookup = fail_lookup
        self.initiated = []
        self.lookups = []

    async def initiate(self, **kwargs):
        self.initiated.append(kwargs)
        if self.fail_initiate:
            raise KhaltiError("gateway down", status_code=500)
        n = len(self.initiated)
        return {"pidx": f"pidx-{n}", "payment_url": f"https://test-pay.khalti.com/?pidx=pidx-{n}"}

    async def lookup(self, pidx):
        self.lookups.append(pidx)
        if self.fail_lookup:
            raise KhaltiError("gateway down", status_code=500)
        return {"pidx": pidx, "status": self.lookup_status, "total_amount": 20000}


class FakeDirections:
    configured = True

    def __init__(self, duration_s=None, distance_m=None):
        self.duration_s = duration_s
        self.distance_m = distance_m

    async def route(self, origin_lat, origin_lng, dest_lat, dest_lng):
        if self.duration_s is None:
            return None
        return {"duration_s": self.duration_s, "distance_m": self.distance_m}


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    client = mongomock.MongoClient()
    monkeypatch.setattr(database, "client", client)
    monkeypatch.setattr(database, "db", client[database.DB_NAME])
    monkeypatch.setattr(database, "MONGO_TRANSACTIONS", False)
    monkeypatch.delenv("MAPBOX_ACCESS_TOKEN", raising=False)
    yield client[database.DB_NAME]


@pytest.fixture
def khalti():
    return FakeKhalti()


@pytest.fixture
def directions():
    return FakeDirections()


@pytest.fixture
def api(khalti, directions):
    app.dependency_overrides[khalti_gateway] = lambda: khalti
    app.dependency_overrides[directions_service] = lambda: directions
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user():
    def _make(role="user", name="Test User", email=None, password="secret123", active=True):
        auth_id = new_auth_id()
        doc = {
            "auth_id": auth_id,
            "email": email or f"{auth_id}@example.com",
            "name": name,
            "phone": "9800000000",
            "password_hash": hash_password(password),
            "role": role,
            "active": active,
            "favorite_stations": [],
            "created_at": datetime.utcnow(),
            "updated_at": datetime.utcnow(),
        }
        database.users().insert_one(doc)
        doc.pop("password_hash")
        return doc
    return _make


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(role="admin", name="Station Admin")


@pytest.fixture
def superadmin(make_user):
    return make_user(role="superadmin", name="Root")


def auth(user: dict) -> dict:
    return {"Cookie": f"access_token={make_access_token(user['auth_id'])}"}


@pytest.fixture
def make_station():
    def _make(admin_id=None, name="Urja Hub", city="Kathmandu", lat=27.7172, lng=85.3240,
              per_hour=200, ports=2, is_active=True, connector="CCS2"):
        now = datetime.utcnow()
        doc = {
            "name": name,
            "location": {
                "address": f"{name} Road",
                "coordinates": {"lat": lat, "lng": lng},
                "city": city,
                "province": "Bagmati",
            },
            "telephone": "01-4000000",
            "vehicle_types": ["car"],
            "operating_hours": {"open": "06:00", "close": "22:00"},
            "charging_ports": [
                {
                    "_id": ObjectId(),
                    "port_number": f"P{i + 1}",
                    "connector_type": connector,
                    "power_output": "50Kw",
                    "charger_type": "DC",
                    "status": "available",
                    "current_booking_id": None,
                }
                for i in range(ports)
            ],
            "pricing": {"per_hour": per_hour},
            "amenities": [],
            "photos": [],
            "rating": 0,
            "total_reviews": 0,
            "is_active": is_active,
            "admin_id": admin_id,
            "created_at": now,
            "updated_at": now,
        }
        doc["_id"] = database.stations().insert_one(doc).inserted_id
        return doc
    return _make


@pytest.fixture
def station(make_station, admin):
    return make_station(admin_id=admin["auth_id"])


@pytest.fixture
def make_booking():
    def _make(user_id, station, port_index=0, status="confirmed", start=None, minutes=60,
              source="online", **extra):
        start = start or (datetime.utcnow() + timedelta(days=1)).replace(microsecond=0)
        now = datetime.utcnow()
        doc = {
            "user_id": user_id,
            "user_name": "Test User",
            "station_id": str(station["_id"]),
            "port_id": str(station["charging_ports"][port_index]["_id"]),
            "start_time": start,
            "end_time": start + timedelta(minutes=minutes),
            "estimated_duration": minutes,
            "status": status,
            "source": source,
            "amount_paid": 200,
            "payment_method": "khalti",
            "created_at": now,
            "updated_at": now,
            **extra,
        }
        doc["_id"] = database.bookings().insert_one(doc).inserted_id
        return doc
    return _make


def port_of(station_id, port_number="P1") -> dict:
    station = database.stations().find_one({"_id": ObjectId(str(station_id))})
    return next(p for p in station["charging_ports"] if p["port_number"] == port_number)
