from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.concurrency import run_in_threadpool

from app.api.deps import current_user, directions_service
from app.database.serializers import to_jsonable
from app.models.models import (
    BOOKING_STATUSES,
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    AvailabilityQuery,
    BookingStatusUpdate,
    LocationBody,
)
from app.services import bookings as booking_service

router = APIRouter()


@router.get("/bookings", tags=["bookings"])  # /api/bookings
def list_bookings(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    user: dict = Depends(current_user),
):
    if status and status not in BOOKING_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    return to_jsonable(booking_service.list_user_bookings(user["auth_id"], status, page, limit))


@router.post("/bookings", tags=["bookings"])
def create_booking(user: dict = Depends(current_user)):
    raise HTTPException(
        status_code=403,
        detail="Bookings must be created through the payment gateway. Use POST /api/payments/initiate instead.",
    )


@router.post("/bookings/check-availability", tags=["bookings"])
def check_availability(body: AvailabilityQuery, user: dict = Depends(current_user)):
    return booking_service.check_availability(
        body.station_id, body.port_id, body.start_time, body.estimated_duration
    )


@router.get("/bookings/{booking_id}", tags=["bookings"])
def get_booking(booking_id: str, user: dict = Depends(current_user)):
    booking = booking_service.get_booking_or_404(booking_id)
    booking_service.ensure_can_view(user, booking)
    return {"booking": to_jsonable(booking)}


@router.patch("/bookings/{booking_id}", tags=["bookings"])
def update_booking(booking_id: str, body: BookingStatusUpdate, user: dict = Depends(current_user)):
    booking = booking_service.get_booking_or_404(booking_id)
    updated = booking_service.update_status(user, booking, body.status)
    return {"booking": to_jsonable(updated)}


async def _refresh_eta(booking_id: str, body: LocationBody, user: dict, directions) -> dict:
    location = body.point()
    if location is None:
        raise HTTPException(status_code=400, detail="User location (lat, lng) is required")
    booking = await run_in_threadpool(booking_service.get_booking_or_404, booking_id)
    booking_service.ensure_can_view(user, booking)
    updated = await booking_service.refresh_eta(booking, {"lat": location.lat, "lng": location.lng}, directions)
    return {"booking": to_jsonable(updated), "eta": updated.get("eta"), "message": "ETA refreshed successfully"}


@router.put("/bookings/{booking_id}/eta", tags=["bookings"])
async def put_eta(booking_id: str, body: LocationBody, user: dict = Depends(current_user),
                  directions=Depends(directions_service)):
    return await _refresh_eta(booking_id, body, user, directions)


@router.post("/bookings/{booking_id}/refresh-eta", tags=["bookings"])
async def refresh_eta(booking_id: str, body: LocationBody, user: dict = Depends(current_user),
                      directions=Depends(directions_service)):
    return await _refresh_eta(booking_id, body, user, directions)
