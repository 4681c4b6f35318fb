from datetime import datetime

from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from app.database import database
from app.services import bookings as booking_service
from app.services import stations as station_service


def list_reviews(station_id: str, limit: int = 50) -> list[dict]:
    return list(database.reviews().find({"station_id": station_id}).sort("created_at", -1).limit(limit))


def refresh_station_rating(station_id: str) -> dict:
    """Recompute rating/total_reviews from every review of the station."""
    ratings = [r["rating"] for r in database.reviews().find({"station_id": station_id}, {"rating": 1})]
    total = len(ratings)
    rating = round(sum(ratings) / total, 1) if total else 0
    station_oid = station_service.find_station(station_id)["_id"]
    database.stations().update_one(
        {"_id": station_oid},
        {"$set": {"rating": rating, "total_reviews": total, "updated_at": datetime.utcnow()}},
    )
    return {"rating": rating, "total_reviews": total}


def add_review(user: dict, station_id: str, booking_id: str, rating: int, comment: str) -> dict:
    station = station_service.get_station_or_404(station_id)
    station_id = str(station["_id"])
    booking = booking_service.get_booking_or_404(booking_id)
    if booking.get("user_id") != user.get("auth_id"):
        raise HTTPException(status_code=403, detail="Forbidden")
    if booking.get("station_id") != station_id:
        raise HTTPException(status_code=400, detail="Booking is not for this station")
    if booking.get("status") != "completed":
        raise HTTPException(status_code=400, detail="Only completed bookings can be reviewed")
    if database.reviews().find_one({"booking_id": booking_id}):
        raise HTTPException(status_code=409, detail="This booking has already been reviewed")

    doc = {
        "user_id": user["auth_id"],
        "user_name": user.get("name", ""),
        "station_id": station_id,
        "booking_id": str(booking["_id"]),
        "rating": rating,
        "comment": comment,
        "created_at": datetime.utcnow(),
    }
    try:
        result = database.reviews().insert_one(doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=409, detail="This booking has already been reviewed")
    doc["_id"] = result.inserted_id
    summary = refresh_station_rating(station_id)
    return {"review": doc, **summary}
