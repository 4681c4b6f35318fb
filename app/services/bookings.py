# bookings.py
from __future__ import annotations

import json
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool

from app.auth.roles import is_admin, is_superadmin
from app.database import database
from app.database.serializers import to_naive_utc, to_object_id
from app.models.models import (
    BLOCKING_STATUSES,
    BOOKING_STATUSES,
    MAX_BOOKING_DURATION_MINUTES,
    MIN_BOOKING_DURATION_MINUTES,
    TERMINAL_STATUSES,
)
from app.services import stations as station_service
from app.services.eta import calculate_eta

logger = logging.getLogger(__name__)


def booking_window(start_time: Optional[datetime], duration_minutes: Optional[int]) -> tuple[datetime, datetime]:
    """Validated half-open [start, end) window in naive UTC."""
    if start_time is None or duration_minutes is None:
        raise HTTPException(status_code=400, detail="start_time and estimated_duration are required")
    if not MIN_BOOKING_DURATION_MINUTES <= duration_minutes <= MAX_BOOKING_DURATION_MINUTES:
        raise HTTPException(
            status_code=400,
            detail=f"estimated_duration must be between {MIN_BOOKING_DURATION_MINUTES} "
                   f"and {MAX_BOOKING_DURATION_MINUTES} minutes",
        )
    start = to_naive_utc(start_time)
    return start, start + timedelta(minutes=duration_minutes)


def booking_amount(per_hour: float, duration_minutes: float) -> int:
    """Price in NPR, rounded to the rupee."""
    return int(round(per_hour * (duration_minutes / 60)))


# ==========================
# Availability
# ==========================
def find_overlapping_booking(station_id: str, port_id: str, start: datetime, end: datetime, session=None) -> Optional[dict]:
    """First pending/confirmed/active booking on the port whose window overlaps [start, end)."""
    return database.bookings().find_one(
        {
            "station_id": str(station_id),
            "port_id": str(port_id),
            "status": {"$in": list(BLOCKING_STATUSES)},
            "start_time": {"$lt": end},
            "end_time": {"$gt": start},
        },
        session=session,
    )


def resolve_station_port(station_id: str, port_id: str) -> tuple[dict, dict]:
    if not station_id or not port_id:
        raise HTTPException(status_code=400, detail="station_id and port_id are required")
    station = station_service.get_station_or_404(station_id)
    port = station_service.get_port_or_404(station, port_id)
    return station, port


def check_availability(station_id: str, port_id: str, start_time: Optional[datetime], duration: Optional[int]) -> dict:
    station, port = resolve_station_port(station_id, port_id)
    start, end = booking_window(start_time, duration)
    canonical = station_service.canonical_port_id(port)
    if find_overlapping_booking(str(station["_id"]), canonical, start, end):
        raise HTTPException(status_code=409, detail="Time slot is not available for this port")
    return {"available": True, "station_id": str(station["_id"]), "port_id": canonical,
            "start_time": start, "end_time": end}


def create_pending_booking(user: dict, station_id: str, port_id: str, start: datetime, duration_minutes: int) -> dict:
    """Overlap re-check and insert run in one transaction; a conflict aborts it with 409."""
    end = start + timedelta(minutes=duration_minutes)
    now = datetime.utcnow()
    doc = {
        "user_id": user["auth_id"],
        "user_name": user.get("name", ""),
        "user_email": user.get("email", ""),
        "station_id": str(station_id),
        "port_id": str(port_id),
        "start_time": start,
        "estimated_duration": duration_minutes,
        "end_time": end,
        "status": "pending",
        "source": "online",
        "amount_paid": 0,
        "payment_method": "khalti",
        "customer_name": "",
        "customer_phone": "",
        "vehicle_number": "",
        "vehicle_type": "",
        "notes": "",
        "created_at": now,
        "updated_at": now,
    }
    with database.transaction() as session:
        if find_overlapping_booking(station_id, port_id, start, end, session=session):
            raise HTTPException(status_code=409, detail="Time slot is not available for this port")
        result = database.bookings().insert_one(doc, session=session)
    doc["_id"] = result.inserted_id
    logger.info("Pending booking %s on station %s port %s", result.inserted_id, station_id, port_id)
    return doc


def qr_payload(booking: dict) -> str:
    return json.dumps({
        "booking_id": str(booking["_id"]),
        "station_id": booking["station_id"],
        "port_id": booking["port_id"],
        "start_time": booking["start_time"].isoformat() + "Z",
        "end_time": booking["end_time"].isoformat() + "Z",
    })


# ==========================
# Reads
# ==========================
def find_booking(booking_id: str) -> Optional[dict]:
    oid = to_object_id(booking_id)
    if oid is None:
        return None
    return database.bookings().find_one({"_id": oid})


def get_booking_or_404(booking_id: str) -> dict:
    booking = find_booking(booking_id)
    if not booking:
        raise HTTPException(status_code=404, detail="Booking not found")
    return booking


def ensure_can_view(user: dict, booking: dict):
    if booking.get("user_id") != user.get("auth_id") and not is_admin(user):
        raise HTTPException(status_code=403, detail="Forbidden")


def list_user_bookings(user_id: str, status: Optional[str], page: int, limit: int) -> dict:
    query: dict = {"user_id": user_id}
    if status:
        query["status"] = status
    skip = (page - 1) * limit
    docs = list(database.bookings().find(query).sort("created_at", -1).skip(skip).limit(limit))
    total = database.bookings().count_documents(query)

    station_ids = {d["station_id"] for d in docs}
    station_map = {}
    for sid in station_ids:
        st = station_service.find_station(sid)
        if st:
            station_map[sid] = {
                "id": str(st["_id"]),
                "name": st.get("name"),
                "location": st.get("location"),
                "pricing": st.get("pricing"),
                "photos": st.get("photos", []),
            }
    for d in docs:
        d["station"] = station_map.get(d["station_id"])

    return {
        "bookings": docs,
        "pagination": {"page": page, "limit": limit, "total": total, "pages": math.ceil(total / limit)},
    }


# ==========================
# Status changes
# ==========================
def update_status(user: dict, booking: dict, status: str) -> dict:
    """
    Owners may only cancel a pending/confirmed booking; admins may set any status.
    Port state follows: terminal statuses free it, ``active`` occupies it.
    """
    if status not in BOOKING_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    owner = booking.get("user_id") == user.get("auth_id")
    if is_admin(user):
        station = station_service.find_station(booking["station_id"])
        if not is_superadmin(user) and not owner and (not station or not station_service.can_manage(user, station)):
            raise HTTPException(status_code=403, detail="Not authorized for this station")
    elif owner:
        if status != "cancelled":
            raise HTTPException(status_code=403, detail="Only cancellation is allowed")
        if booking.get("status") not in ("pending", "confirmed"):
            raise HTTPException(status_code=409, detail=f"Booking is already {booking.get('status')}")
    else:
        raise HTTPException(status_code=403, detail="Forbidden")

    database.bookings().update_one(
        {"_id": booking["_id"]},
        {"$set": {"status": status, "updated_at": datetime.utcnow()}},
    )
    booking_id = str(booking["_id"])
    if status in TERMINAL_STATUSES:
        station_service.release_port_if_current(booking["station_id"], booking["port_id"], booking_id)
    elif status == "active":
        station_service.set_port_status(booking["station_id"], booking["port_id"], "occupied", booking_id)
    logger.info("Booking %s → %s by %s", booking_id, status, user.get("auth_id"))
    return database.bookings().find_one({"_id": booking["_id"]})


def _save_eta(booking_id, location: dict, eta: dict) -> dict:
    database.bookings().update_one(
        {"_id": booking_id},
        {"$set": {"user_location": location, "eta": eta, "updated_at": datetime.utcnow()}},
    )
    return database.bookings().find_one({"_id": booking_id})


async def refresh_eta(booking: dict, location: dict, directions=None) -> dict:
    station = await run_in_threadpool(station_service.find_station, booking["station_id"])
    coords = station_service.station_coordinates(station) if station else None
    if coords is None:
        raise HTTPException(status_code=400, detail="Could not find station location")
    eta = await calculate_eta(location, coords, directions)
    return await run_in_threadpool(_save_eta, booking["_id"], location, eta)
