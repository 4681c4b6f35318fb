# walk_in.py
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException

from app.auth.roles import is_superadmin
from app.database import database
from app.database.serializers import to_naive_utc
from app.models.models import (
    WALK_IN_DEFAULT_MINUTES,
    WALK_IN_MAX_MINUTES,
    WALK_IN_MIN_MINUTES,
    WALK_IN_SOURCES,
)
from app.services import bookings as booking_service
from app.services import stations as station_service

logger = logging.getLogger(__name__)


def _walk_in_doc(station_id: str, port_id: str, source: str, start: datetime, end: datetime,
                 duration: int, status: str, amount: float, **fields) -> dict:
    now = datetime.utcnow()
    prefix = "walk-in-qr" if source == "walk-in-qr" else "walk-in"
    customer = fields.get("customer_name") or "Walk-in"
    return {
        "user_id": f"{prefix}-{int(time.time() * 1000)}",
        "user_name": customer,
        "user_email": "",
        "station_id": station_id,
        "port_id": port_id,
        "start_time": start,
        "end_time": end,
        "estimated_duration": duration,
        "status": status,
        "source": source,
        "amount_paid": amount,
        "payment_method": fields.get("payment_method") or "cash",
        "customer_name": customer,
        "customer_phone": fields.get("customer_phone", ""),
        "vehicle_number": fields.get("vehicle_number", ""),
        "vehicle_type": fields.get("vehicle_type", ""),
        "notes": fields.get("notes", ""),
        "created_at": now,
        "updated_at": now,
    }


def clamp_walk_in_duration(estimated: Optional[int]) -> int:
    return max(WALK_IN_MIN_MINUTES, min(int(estimated or WALK_IN_DEFAULT_MINUTES), WALK_IN_MAX_MINUTES))


# ==========================
# QR self check-in (public)
# ==========================
def qr_checkin(body) -> dict:
    if not body.station_id or not body.port_id:
        raise HTTPException(status_code=400, detail="Station and port are required")
    if not body.customer_name or not body.customer_phone:
        raise HTTPException(status_code=400, detail="Name and phone number are required")

    station = station_service.get_station_or_404(body.station_id)
    port = station_service.get_port_or_404(station, body.port_id)
    if port.get("status") != "available":
        raise HTTPException(
            status_code=409,
            detail=f"Port is currently {port.get('status')}. Please choose another port or wait.",
        )

    duration = clamp_walk_in_duration(body.estimated_duration)
    start = datetime.utcnow()
    end = start + timedelta(minutes=duration)
    amount = booking_service.booking_amount(station_service.hourly_rate(station), duration)
    station_id = str(station["_id"])
    port_id = station_service.canonical_port_id(port)

    doc = _walk_in_doc(
        station_id, port_id, "walk-in-qr", start, end, duration, "active", amount,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        vehicle_number=body.vehicle_number,
        vehicle_type=body.vehicle_type,
    )
    result = database.bookings().insert_one(doc)
    station_service.set_port_status(station_id, port_id, "occupied", str(result.inserted_id))
    logger.info("QR walk-in %s started on station %s port %s", result.inserted_id, station_id, port_id)

    return {
        "booking": {
            "id": str(result.inserted_id),
            "station_name": station.get("name"),
            "port_number": port.get("port_number"),
            "connector_type": port.get("connector_type"),
            "start_time": start,
            "end_time": end,
            "estimated_duration": duration,
            "estimated_amount": amount,
            "status": "active",
        },
        "message": "Check-in successful! Your charging session has started.",
    }


# ==========================
# Admin console
# ==========================
def _station_for_admin(user: dict, station_id: str) -> dict:
    station = station_service.find_station(station_id)
    if not station:
        raise HTTPException(status_code=404, detail="Station not found")
    if not station_service.can_manage(user, station):
        raise HTTPException(status_code=403, detail="Not authorized for this station")
    return station


def start_session(user: dict, station_id: str, port_id: str) -> dict:
    if not station_id or not port_id:
        raise HTTPException(status_code=400, detail="Station and port are required")
    station = _station_for_admin(user, station_id)
    port = station_service.get_port_or_404(station, port_id)
    station_id = str(station["_id"])
    port_id = station_service.canonical_port_id(port)

    existing = database.bookings().find_one({
        "station_id": station_id,
        "port_id": port_id,
        "source": {"$in": list(WALK_IN_SOURCES)},
        "status": "active",
    })
    if existing:
        raise HTTPException(status_code=409, detail="This port already has an active walk-in session")
    if port.get("status") != "available":
        raise HTTPException(status_code=409, detail=f"Port is currently {port.get('status')}")

    now = datetime.utcnow()
    doc = _walk_in_doc(
        station_id, port_id, "walk-in-manual", now, now + timedelta(minutes=WALK_IN_DEFAULT_MINUTES),
        WALK_IN_DEFAULT_MINUTES, "active", 0,
    )
    result = database.bookings().insert_one(doc)
    doc["_id"] = result.inserted_id
    station_service.set_port_status(station_id, port_id, "occupied", str(result.inserted_id))
    logger.info("Walk-in %s started by %s", result.inserted_id, user.get("auth_id"))
    return {"booking": doc, "message": "Walk-in session started"}


def session_charge(start: datetime, stop: datetime, per_hour: float) -> tuple[int, int]:
    """(duration minutes ≥ 1, amount NPR ≥ 0) for a walk-in that ran from start to stop."""
    elapsed_s = max(0.0, (stop - start).total_seconds())
    minutes = max(1, int(round(elapsed_s / 60)))
    amount = max(0, int(round(elapsed_s / 3600 * per_hour)))
    return minutes, amount


def stop_session(user: dict, booking_id: str) -> dict:
    if not booking_id:
        raise HTTPException(status_code=400, detail="Booking ID is required")
    booking = booking_service.find_booking(booking_id)
    if not booking or booking.get("status") != "active":
        raise HTTPException(status_code=404, detail="Active walk-in session not found")

    station = station_service.find_station(booking["station_id"])
    if not is_superadmin(user) and (not station or not station_service.can_manage(user, station)):
        raise HTTPException(status_code=403, detail="Not authorized")

    now = datetime.utcnow()
    duration, amount = session_charge(booking["start_time"], now, station_service.hourly_rate(station))
    database.bookings().update_one(
        {"_id": booking["_id"]},
        {"$set": {
            "end_time": now,
            "estimated_duration": duration,
            "amount_paid": amount,
            "status": "completed",
            "updated_at": now,
        }},
    )
    station_service.set_port_status(booking["station_id"], booking["port_id"], "available")
    logger.info("Walk-in %s completed: %s min, NPR %s", booking["_id"], duration, amount)
    return {
        "booking": database.bookings().find_one({"_id": booking["_id"]}),
        "amount": amount,
        "duration_mins": duration,
        "message": "Walk-in session completed",
    }


def log_session(user: dict, body) -> dict:
    """Record a walk-in that already happened (entered after the fact)."""
    if not body.station_id or not body.port_id or body.start_time is None or body.end_time is None:
        raise HTTPException(status_code=400, detail="Station, port, start and end time are required")
    station = _station_for_admin(user, body.station_id)
    port = station_service.get_port_or_404(station, body.port_id)

    start = to_naive_utc(body.start_time)
    end = to_naive_utc(body.end_time)
    if end <= start:
        raise HTTPException(status_code=400, detail="end_time must be after start_time")
    duration = max(1, int(round((end - start).total_seconds() / 60)))

    doc = _walk_in_doc(
        str(station["_id"]), station_service.canonical_port_id(port), "walk-in-manual",
        start, end, duration, "completed", body.amount_paid,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        vehicle_number=body.vehicle_number,
        vehicle_type=body.vehicle_type,
        payment_method=body.payment_method,
        notes=body.notes,
    )
    result = database.bookings().insert_one(doc)
    doc["_id"] = result.inserted_id
    return {"booking": doc, "message": "Walk-in session logged successfully"}


def list_walk_ins(user: dict, limit: int = 100) -> list[dict]:
    query: dict = {"source": {"$in": list(WALK_IN_SOURCES)}}
    if not is_superadmin(user):
        query["station_id"] = {"$in": station_service.admin_station_ids(user)}
    return list(database.bookings().find(query).sort("created_at", -1).limit(limit))
