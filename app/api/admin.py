from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from app.api.deps import admin_user, superadmin_user
from app.auth.roles import is_superadmin
from app.database import database
from app.database.serializers import to_jsonable
from app.models.models import (
    PORT_STATUSES,
    AdminWalkInBody,
    PortStatusUpdate,
    RoleUpdate,
    StationIn,
    StationUpdate,
)
from app.services import stations as station_service
from app.services import walk_in as walk_in_service
from app.services.eta import arrival_status

router = APIRouter(prefix="/admin")


def _managed_station(user: dict, station_id: str) -> dict:
    station = station_service.get_station_or_404(station_id)
    if not station_service.can_manage(user, station):
        raise HTTPException(status_code=403, detail="You can only manage your own stations")
    return station


# ==========================
# Stations / ports
# ==========================
@router.get("/stations", tags=["admin"])  # /api/admin/stations
def list_stations(user: dict = Depends(admin_user)):
    """Admins see their own stations; superadmins see all of them."""
    docs = database.stations().find(station_service.admin_station_filter(user)).sort("created_at", -1)
    return {"stations": to_jsonable(list(docs))}


@router.post("/stations", status_code=201, tags=["admin"])
def create_station(body: StationIn, user: dict = Depends(admin_user)):
    station = station_service.create_station(body.model_dump(), user["auth_id"])
    return {"station": to_jsonable(station)}


@router.get("/stations/{station_id}", tags=["admin"])
def get_station(station_id: str, user: dict = Depends(admin_user)):
    return {"station": to_jsonable(_managed_station(user, station_id))}


@router.put("/stations/{station_id}", tags=["admin"])
def update_station(station_id: str, body: StationUpdate, user: dict = Depends(admin_user)):
    station = _managed_station(user, station_id)
    updated = station_service.update_station(station, body.model_dump(exclude_none=True))
    return {"station": to_jsonable(updated)}


@router.patch("/stations/{station_id}/ports", tags=["admin"])
def update_port_status(station_id: str, body: PortStatusUpdate, user: dict = Depends(admin_user)):
    station = _managed_station(user, station_id)
    if not body.port_id or not body.status:
        raise HTTPException(status_code=400, detail="port_id and status are required")
    if body.status not in PORT_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {', '.join(PORT_STATUSES)}",
        )
    port = station_service.get_port_or_404(station, body.port_id)
    station_service.set_port_status(str(station["_id"]), station_service.canonical_port_id(port), body.status)
    return {"station": to_jsonable(station_service.find_station(station_id))}


# ==========================
# Walk-in
# ==========================
@router.post("/walk-in", tags=["admin"])  # /api/admin/walk-in
def walk_in(body: AdminWalkInBody, response: Response, user: dict = Depends(admin_user)):
    """
    - action=start {station_id, port_id}: open a session on a free port
    - action=stop {booking_id}: close it and charge by elapsed time
    - action=log {...}: record a finished session entered after the fact
    """
    if body.action == "stop":
        return to_jsonable(walk_in_service.stop_session(user, body.booking_id))
    if body.action == "start":
        result = walk_in_service.start_session(user, body.station_id, body.port_id)
    else:
        result = walk_in_service.log_session(user, body)
    response.status_code = 201
    return to_jsonable(result)


@router.get("/walk-in", tags=["admin"])
def list_walk_ins(user: dict = Depends(admin_user)):
    return {"walkins": to_jsonable(walk_in_service.list_walk_ins(user))}


# ==========================
# Bookings
# ==========================
@router.get("/bookings", tags=["admin"])  # /api/admin/bookings
def list_bookings(
    status: str = Query("confirmed"),
    limit: int = Query(100, ge=1, le=500),
    user: dict = Depends(admin_user),
):
    """Online bookings on the admin's stations with the driver's arrival status."""
    query: dict = {"source": "online", "status": status}
    if not is_superadmin(user):
        query["station_id"] = {"$in": station_service.admin_station_ids(user)}
    docs = list(database.bookings().find(query).sort("start_time", 1).limit(limit))
    now = datetime.utcnow()
    for d in docs:
        d["arrival"] = arrival_status(d.get("created_at"), d.get("eta"), d.get("start_time"), now)
    return {"bookings": to_jsonable(docs)}


# ==========================
# Roles
# ==========================
@router.patch("/users/{auth_id}/role", tags=["admin"])
def set_role(auth_id: str, body: RoleUpdate, user: dict = Depends(superadmin_user)):
    result = database.users().update_one(
        {"auth_id": auth_id},
        {"$set": {"role": body.role, "updated_at": datetime.utcnow()}},
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=404, detail="User not found")
    return {"auth_id": auth_id, "role": body.role}
