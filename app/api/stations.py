from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import current_user
from app.database.serializers import to_jsonable, to_object_id
from app.models.models import ReviewIn, RouteQuery
from app.services import reviews as review_service
from app.services import stations as station_service

router = APIRouter()


@router.get("/stations", tags=["stations"])  # /api/stations
def list_stations(
    city: Optional[str] = None,
    connector: Optional[str] = None,
    q: Optional[str] = None,
    lat: Optional[float] = Query(None, ge=-90, le=90),
    lng: Optional[float] = Query(None, ge=-180, le=180),
    radius_km: Optional[float] = Query(None, gt=0, le=1000),
    limit: int = Query(200, ge=1, le=1000),
):
    """Active stations, nearest first when lat/lng are given."""
    docs = station_service.list_stations(city, connector, q, lat, lng, radius_km, limit)
    return {"stations": to_jsonable(docs)}


@router.post("/stations/along-route", tags=["stations"])  # /api/stations/along-route
def along_route(body: RouteQuery):
    """Stations inside a corridor around a driving route ([lng, lat] pairs)."""
    for point in body.coordinates:
        if len(point) < 2 or not -180 <= point[0] <= 180 or not -90 <= point[1] <= 90:
            raise HTTPException(status_code=400, detail="Route coordinates must be [lng, lat] pairs")
    docs = station_service.stations_along_route(body.coordinates, body.corridor_km)
    return {"stations": to_jsonable(docs)}


@router.get("/stations/{station_id}", tags=["stations"])
def get_station(station_id: str):
    if to_object_id(station_id) is None:
        raise HTTPException(status_code=400, detail="Invalid station id")
    return {"station": to_jsonable(station_service.get_station_or_404(station_id))}


@router.get("/stations/{station_id}/reviews", tags=["reviews"])
def station_reviews(station_id: str, limit: int = Query(50, ge=1, le=200)):
    station = station_service.get_station_or_404(station_id)
    return {"reviews": to_jsonable(review_service.list_reviews(str(station["_id"]), limit))}


@router.post("/stations/{station_id}/reviews", status_code=201, tags=["reviews"])
def add_review(station_id: str, body: ReviewIn, user: dict = Depends(current_user)):
    result = review_service.add_review(user, station_id, body.booking_id, body.rating, body.comment)
    return to_jsonable(result)
