from datetime import datetime

from fastapi import APIRouter, Depends

from app.api.deps import current_user
from app.database import database
from app.database.serializers import to_jsonable, to_object_id
from app.models.models import ProfileUpdate
from app.services import stations as station_service

router = APIRouter()


@router.get("/users/me", tags=["users"])  # /api/users/me
def get_profile(user: dict = Depends(current_user)):
    return {"user": to_jsonable(user)}


@router.put("/users/me", tags=["users"])
def update_profile(body: ProfileUpdate, user: dict = Depends(current_user)):
    changes = body.model_dump(exclude_none=True)
    if changes:
        changes["updated_at"] = datetime.utcnow()
        database.users().update_one({"auth_id": user["auth_id"]}, {"$set": changes})
    updated = database.users().find_one({"auth_id": user["auth_id"]}, {"password_hash": 0})
    return {"user": to_jsonable(updated)}


@router.get("/users/favorites", tags=["users"])
def list_favorites(user: dict = Depends(current_user)):
    ids = [oid for oid in (to_object_id(s) for s in user.get("favorite_stations", [])) if oid]
    stations = list(database.stations().find({"_id": {"$in": ids}})) if ids else []
    return {"stations": to_jsonable(stations)}


@router.post("/users/favorites/{station_id}", tags=["users"])
def add_favorite(station_id: str, user: dict = Depends(current_user)):
    station = station_service.get_station_or_404(station_id)
    database.users().update_one(
        {"auth_id": user["auth_id"]},
        {"$addToSet": {"favorite_stations": str(station["_id"])}},
    )
    return {"ok": True}


@router.delete("/users/favorites/{station_id}", tags=["users"])
def remove_favorite(station_id: str, user: dict = Depends(current_user)):
    database.users().update_one({"auth_id": user["auth_id"]}, {"$pull": {"favorite_stations": station_id}})
    return {"ok": True}
