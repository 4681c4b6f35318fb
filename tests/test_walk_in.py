from datetime import datetime, timedelta

from app.database import database
from app.services.walk_in import clamp_walk_in_duration, session_charge
from conftest import auth, port_of


def _checkin(api, station, port="P1", **extra):
    body = {
        "station_id": str(station["_id"]),
        "port_id": port,
        "customer_name": "Sita",
        "customer_phone": "9811111111",
        "vehicle_number": "BA 1 PA 1234",
        **extra,
    }
    return api.post("/api/walk-in/checkin", json=body)


# ==========================
# Pure helpers
# ==========================
def test_clamp_walk_in_duration():
    assert clamp_walk_in_duration(None) == 60
    assert clamp_walk_in_duration(5) == 30
    assert clamp_walk_in_duration(1000) == 480
    assert clamp_walk_in_duration(90) == 90


def test_session_charge_never_below_minimum():
    t = datetime(2025, 1, 1, 10, 0)
    assert session_charge(t, t, 200) == (1, 0)
    assert session_charge(t, t - timedelta(minutes=5), 200) == (1, 0)
    assert session_charge(t, t + timedelta(minutes=90), 200) == (90, 300)


# ==========================
# QR self check-in
# ==========================
def test_qr_checkin_occupies_port(api, station):
    r = _checkin(api, station, estimated_duration=90)
    assert r.status_code == 201
    booking = r.json()["booking"]
    assert booking["status"] == "active"
    assert booking["estimated_duration"] == 90
    assert booking["estimated_amount"] == 300
    assert booking["port_number"] == "P1"

    port = port_of(station["_id"])
    assert port["status"] == "occupied"
    assert port["current_booking_id"] == booking["id"]

    doc = database.bookings().find_one({})
    assert doc["source"] == "walk-in-qr"
    assert doc["user_id"].startswith("walk-in-qr-")
    assert doc["customer_phone"] == "9811111111"


def test_qr_checkin_on_busy_port(api, station):
    assert _checkin(api, station).status_code == 201
    r = _checkin(api, station)
    assert r.status_code == 409
    assert "occupied" in r.json()["detail"]
    assert _checkin(api, station, port="P2").status_code == 201


def test_qr_checkin_validation(api, station):
    assert _checkin(api, station, customer_phone="").status_code == 400
    assert api.post("/api/walk-in/checkin", json={"customer_name": "x", "customer_phone": "1"}).status_code == 400
    assert _checkin(api, station, port="P7").status_code == 404


# ==========================
# Admin console
# ==========================
def test_start_then_stop_frees_port(api, admin, station):
    r = api.post(
        "/api/admin/walk-in",
        json={"action": "start", "station_id": str(station["_id"]), "port_id": "P1"},
        headers=auth(admin),
    )
    assert r.status_code == 201
    booking_id = r.json()["booking"]["id"]
    assert port_of(station["_id"])["status"] == "occupied"

    again = api.post(
        "/api/admin/walk-in",
        json={"action": "start", "station_id": str(station["_id"]), "port_id": "P1"},
        headers=auth(admin),
    )
    assert again.status_code == 409

    r = api.post("/api/admin/walk-in", json={"action": "stop", "booking_id": booking_id}, headers=auth(admin))
    assert r.status_code == 200
    data = r.json()
    assert data["duration_mins"] >= 1
    assert data["amount"] >= 0
    assert data["booking"]["status"] == "completed"

    port = port_of(station["_id"])
    assert port["status"] == "available"
    assert port["current_booking_id"] is None


def test_stop_unknown_session(api, admin):
    r = api.post("/api/admin/walk-in", json={"action": "stop", "booking_id": "64b7f0c2a1b2c3d4e5f60718"},
                 headers=auth(admin))
    assert r.status_code == 404
    assert api.post("/api/admin/walk-in", json={"action": "stop"}, headers=auth(admin)).status_code == 400


def test_start_on_foreign_station(api, make_user, station):
    other = make_user(role="admin")
    r = api.post(
        "/api/admin/walk-in",
        json={"action": "start", "station_id": str(station["_id"]), "port_id": "P1"},
        headers=auth(other),
    )
    assert r.status_code == 403


def test_start_on_port_in_maintenance(api, superadmin, station):
    database.stations().update_one(
        {"_id": station["_id"], "charging_ports.port_number": "P2"},
        {"$set": {"charging_ports.$.status": "maintenance"}},
    )
    r = api.post(
        "/api/admin/walk-in",
        json={"action": "start", "station_id": str(station["_id"]), "port_id": "P2"},
        headers=auth(superadmin),
    )
    assert r.status_code == 409


def test_log_finished_session(api, admin, station):
    start = datetime(2025, 1, 5, 8, 0)
    body = {
        "action": "log",
        "station_id": str(station["_id"]),
        "port_id": "P2",
        "customer_name": "Hari",
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(minutes=45)).isoformat(),
        "amount_paid": 150,
        "payment_method": "cash",
    }
    r = api.post("/api/admin/walk-in", json=body, headers=auth(admin))
    assert r.status_code == 201
    booking = r.json()["booking"]
    assert booking["status"] == "completed"
    assert booking["source"] == "walk-in-manual"
    assert booking["estimated_duration"] == 45
    assert booking["amount_paid"] == 150
    # logging a past session never touches live port state
    assert port_of(station["_id"], "P2")["status"] == "available"

    body["end_time"] = start.isoformat()
    assert api.post("/api/admin/walk-in", json=body, headers=auth(admin)).status_code == 400


def test_list_walk_ins_scoped_to_admin(api, admin, superadmin, station, make_station):
    other = make_station(admin_id="other-admin")
    _checkin(api, station)
    _checkin(api, other)

    mine = api.get("/api/admin/walk-in", headers=auth(admin)).json()["walkins"]
    assert [w["station_id"] for w in mine] == [str(station["_id"])]
    assert len(api.get("/api/admin/walk-in", headers=auth(superadmin)).json()["walkins"]) == 2


def test_walk_in_console_needs_admin(api, user):
    assert api.get("/api/admin/walk-in", headers=auth(user)).status_code == 403
    assert api.get("/api/admin/walk-in").status_code == 401
