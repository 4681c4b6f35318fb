# payments.py
from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Optional

from dotenv import load_dotenv
from fastapi import HTTPException
from fastapi.concurrency import run_in_threadpool

from app.client.khalti_client import KhaltiClient, KhaltiError
from app.database import database
from app.models.models import KHALTI_AMOUNT_UNIT, PAID_STATUSES
from app.services import bookings as booking_service
from app.services import stations as station_service
from app.services.eta import calculate_eta

load_dotenv()

logger = logging.getLogger(__name__)

APP_URL = os.getenv("APP_URL", "http://localhost:3000").rstrip("/")

CANCELLED_GATEWAY_STATUSES = ("User canceled", "Expired", "Refunded", "Partially refunded")

# pymongo is blocking: the coroutines below hand every database step to the
# threadpool and keep only the HTTP calls on the event loop.


# ==========================
# Initiate
# ==========================
def _reserve_slot(user: dict, body) -> tuple[dict, dict, str, int]:
    """Resolve station/port, price the window and insert the pending booking."""
    station, port = booking_service.resolve_station_port(body.station_id, body.port_id)
    start, _ = booking_service.booking_window(body.start_time, body.estimated_duration)
    port_id = station_service.canonical_port_id(port)
    duration = int(body.estimated_duration)
    amount_npr = booking_service.booking_amount(station_service.hourly_rate(station), duration)
    booking = booking_service.create_pending_booking(user, str(station["_id"]), port_id, start, duration)
    return booking, station, port_id, amount_npr


def _save_fields(booking_id, fields: dict):
    database.bookings().update_one({"_id": booking_id}, {"$set": fields})


async def initiate_payment(user: dict, body, khalti: KhaltiClient, directions=None) -> dict:
    """
    Pending booking + Khalti session. Only the overlap check and insert are
    transactional; ETA, QR payload and the gateway call run afterwards.
    """
    if not body.station_id or not body.port_id or body.start_time is None or body.estimated_duration is None:
        raise HTTPException(
            status_code=400,
            detail="station_id, port_id, start_time, and estimated_duration are required",
        )
    if not khalti.configured:
        raise HTTPException(
            status_code=503,
            detail="Payment gateway is not configured. Please contact the administrator.",
        )

    booking, station, port_id, amount_npr = await run_in_threadpool(_reserve_slot, user, body)
    station_id = str(station["_id"])
    start = booking["start_time"]
    duration = booking["estimated_duration"]
    extra: dict = {"qr_code": booking_service.qr_payload(booking)}

    coords = station_service.station_coordinates(station)
    if body.user_location is not None and coords is not None:
        location = {"lat": body.user_location.lat, "lng": body.user_location.lng}
        extra["user_location"] = location
        extra["eta"] = await calculate_eta(location, coords, directions)

    booking_id = str(booking["_id"])
    try:
        khalti_res = await khalti.initiate(
            return_url=f"{APP_URL}/booking/confirmation/{booking_id}",
            website_url=APP_URL,
            amount=amount_npr * KHALTI_AMOUNT_UNIT,
            purchase_order_id=booking_id,
            purchase_order_name=f"Charging – {station.get('name', '')}",
            customer_info={"name": user.get("name"), "email": user.get("email"), "phone": user.get("phone")},
            merchant_booking_id=booking_id,
            merchant_station_id=station_id,
            merchant_port_id=port_id,
            merchant_start_time=start.isoformat() + "Z",
            merchant_estimated_duration=str(duration),
        )
    except KhaltiError as exc:
        # Booking stays pending without a payment reference
        logger.error("Khalti initiate failed for booking %s: %s", booking_id, exc)
        await run_in_threadpool(_save_fields, booking["_id"], extra)
        raise HTTPException(status_code=502, detail="Failed to initiate payment")

    extra.update({
        "khalti_pidx": khalti_res["pidx"],
        "amount_paid": amount_npr,
        "updated_at": datetime.utcnow(),
    })
    await run_in_threadpool(_save_fields, booking["_id"], extra)

    return {
        "booking_id": booking_id,
        "payment_url": khalti_res["payment_url"],
        "pidx": khalti_res["pidx"],
        "amount": amount_npr,
        "currency": "NPR",
    }


# ==========================
# Verify
# ==========================
def apply_gateway_status(booking: dict, gateway_status: str) -> Optional[str]:
    """
    Map a Khalti status onto a pending booking. Returns the status the booking
    was moved to, or None when it was no longer pending and nothing changed.
    """
    now = datetime.utcnow()
    if gateway_status == "Completed":
        new_status = "confirmed"
    elif gateway_status in CANCELLED_GATEWAY_STATUSES:
        new_status = "cancelled"
    else:
        return None

    result = database.bookings().update_one(
        {"_id": booking["_id"], "status": "pending"},
        {"$set": {"status": new_status, "updated_at": now}},
    )
    if not result.modified_count:
        return None
    if new_status == "confirmed":
        station_service.set_port_status(booking["station_id"], booking["port_id"], "reserved", str(booking["_id"]))
    logger.info("Booking %s %s (gateway status %s)", booking["_id"], new_status, gateway_status)
    return new_status


def _apply_and_reload(booking: dict, gateway_status: str) -> dict:
    apply_gateway_status(booking, gateway_status)
    return database.bookings().find_one({"_id": booking["_id"]})


async def verify_payment(user: dict, pidx: str, booking_id: str, khalti: KhaltiClient) -> dict:
    if not pidx or not booking_id:
        raise HTTPException(status_code=400, detail="pidx and booking_id are required")
    if not khalti.configured:
        raise HTTPException(status_code=503, detail="Payment gateway is not configured.")

    booking = await run_in_threadpool(booking_service.get_booking_or_404, booking_id)
    if booking.get("user_id") != user.get("auth_id"):
        raise HTTPException(status_code=403, detail="Forbidden")
    # a booking without a stored pidx never reached the gateway
    if booking.get("khalti_pidx") != pidx:
        raise HTTPException(status_code=400, detail="pidx does not match this booking")

    if booking.get("status") in PAID_STATUSES:
        return {"verified": True, "status": "Completed", "booking": booking}

    try:
        lookup = await khalti.lookup(pidx)
    except KhaltiError as exc:
        logger.error("Khalti lookup failed for %s: %s", pidx, exc)
        raise HTTPException(status_code=502, detail="Failed to verify payment")

    gateway_status = lookup.get("status")
    current = await run_in_threadpool(_apply_and_reload, booking, gateway_status)
    if gateway_status == "Completed" and current.get("status") in PAID_STATUSES:
        return {"verified": True, "status": "Completed", "booking": current}
    return {"verified": False, "status": gateway_status, "booking": current}


# ==========================
# Reconciliation (scheduled)
# ==========================
def _stale_pending(cutoff: datetime) -> list[dict]:
    return list(database.bookings().find({
        "status": "pending",
        "source": "online",
        "khalti_pidx": {"$nin": [None, ""]},
        "created_at": {"$lte": cutoff},
    }))


async def reconcile_pending_payments(khalti: KhaltiClient, min_age_minutes: int = 15, now: Optional[datetime] = None) -> dict:
    """
    Look up pending online bookings that already carry a pidx and apply the
    gateway status. Bookings without a pidx are not touched.
    """
    if not khalti.configured:
        return {"checked": 0, "confirmed": 0, "cancelled": 0}
    now = now or datetime.utcnow()
    pending = await run_in_threadpool(_stale_pending, now - timedelta(minutes=min_age_minutes))

    confirmed = cancelled = 0
    for b in pending:
        try:
            lookup = await khalti.lookup(b["khalti_pidx"])
        except KhaltiError as exc:
            logger.warning("Reconcile: lookup failed for booking %s: %s", b["_id"], exc)
            continue
        moved = await run_in_threadpool(apply_gateway_status, b, lookup.get("status"))
        if moved == "confirmed":
            confirmed += 1
        elif moved == "cancelled":
            cancelled += 1

    if pending:
        logger.info("Reconciled %s pending bookings: %s confirmed, %s cancelled", len(pending), confirmed, cancelled)
    return {"checked": len(pending), "confirmed": confirmed, "cancelled": cancelled}
