# stations.py
from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Iterable, Optional

from bson import ObjectId
from fastapi import HTTPException

from app.auth.roles import is_admin, is_superadmin
from app.database import database
from app.database.serializers import to_object_id
from app.models.models import DEFAULT_HOURLY_RATE_NPR, PORT_STATUSES
from app.services.geo import haversine_distance, point_to_route_distance

logger = logging.getLogger(__name__)


# ==========================
# Lookup
# ==========================
def find_station(station_id: str) -> Optional[dict]:
    oid = to_object_id(station_id)
    if oid is None:
        return None
    return database.stations().find_one({"_id": oid})


def get_station_or_404(station_id: str) -> dict:
    station = find_station(station_id)
    if not station:
        raise HTTPException(status_code=404, detail="Station not found")
    return station


def find_port(station: dict, port_id: str) -> Optional[dict]:
    """Port matched by its id or by its port number."""
    for p in station.get("charging_ports", []):
        if str(p.get("_id")) == str(port_id) or p.get("port_number") == port_id:
            return p
    return None


def get_port_or_404(station: dict, port_id: str) -> dict:
    port = find_port(station, port_id)
    if not port:
        raise HTTPException(status_code=404, detail="Port not found")
    return port


def canonical_port_id(port: dict) -> str:
    return str(port.get("_id") or port.get("port_number"))


def hourly_rate(station: Optional[dict]) -> float:
    rate = ((station or {}).get("pricing") or {}).get("per_hour")
    if rate is None:
        return DEFAULT_HOURLY_RATE_NPR
    return float(rate)


def station_coordinates(station: dict) -> Optional[dict]:
    coords = (station.get("location") or {}).get("coordinates") or {}
    if coords.get("lat") is None or coords.get("lng") is None:
        return None
    return {"lat": float(coords["lat"]), "lng": float(coords["lng"])}


# ==========================
# Port state
# ==========================
def set_port_status(station_id: str, port_id: str, status: str, booking_id: Optional[str] = None) -> bool:
    """
    Update one embedded port. ``available`` always clears the booking reference;
    other statuses store ``booking_id`` when given.
    """
    if status not in PORT_STATUSES:
        raise ValueError(f"invalid port status {status}")
    station_oid = to_object_id(station_id)
    if station_oid is None:
        return False
    port_oid = to_object_id(port_id)
    query = {"_id": station_oid}
    if port_oid is not None:
        query["charging_ports._id"] = port_oid
    else:
        query["charging_ports.port_number"] = port_id

    update = {"charging_ports.$.status": status, "updated_at": datetime.utcnow()}
    if status == "available":
        update["charging_ports.$.current_booking_id"] = None
    elif booking_id is not None:
        update["charging_ports.$.current_booking_id"] = str(booking_id)

    result = database.stations().update_one(query, {"$set": update})
    if result.matched_count == 0:
        logger.warning("Port %s on station %s not found for status %s", port_id, station_id, status)
        return False
    return True


def release_port_if_current(station_id: str, port_id: str, booking_id: str) -> bool:
    """Free the port only while it still points at this booking."""
    station = find_station(station_id)
    port = find_port(station, port_id) if station else None
    if not port or str(port.get("current_booking_id") or "") != str(booking_id):
        return False
    return set_port_status(station_id, port_id, "available")


# ==========================
# Catalogue
# ==========================
def list_stations(
    city: Optional[str] = None,
    connector: Optional[str] = None,
    q: Optional[str] = None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius_km: Optional[float] = None,
    limit: int = 200,
) -> list[dict]:
    query: dict = {"is_active": {"$ne": False}}
    if city:
        query["location.city"] = {"$regex": re.escape(city), "$options": "i"}
    if connector:
        query["charging_ports.connector_type"] = {"$regex": f"^{re.escape(connector)}$", "$options": "i"}
    if q:
        pattern = {"$regex": re.escape(q), "$options": "i"}
        query["$or"] = [{"name": pattern}, {"location.address": pattern}]

    docs = list(database.stations().find(query))

    if lat is not None and lng is not None:
        with_distance = []
        for d in docs:
            coords = station_coordinates(d)
            if coords is None:
                continue
            dist = haversine_distance(lat, lng, coords["lat"], coords["lng"])
            if radius_km is not None and dist > radius_km:
                continue
            d["distance_km"] = round(dist, 2)
            with_distance.append(d)
        with_distance.sort(key=lambda x: x["distance_km"])
        docs = with_distance

    return docs[:limit]


def stations_along_route(route_coords: list[list[float]], corridor_km: float) -> list[dict]:
    """Active stations within ``corridor_km`` of a route polyline ([lng, lat] pairs)."""
    if len(route_coords) < 1:
        return []
    matches = []
    for d in database.stations().find({"is_active": {"$ne": False}}):
        coords = station_coordinates(d)
        if coords is None:
            continue
        dist = point_to_route_distance(coords["lat"], coords["lng"], route_coords)
        if dist <= corridor_km:
            d["distance_from_route_km"] = round(dist, 2)
            matches.append(d)
    matches.sort(key=lambda x: x["distance_from_route_km"])
    return matches


# ==========================
# Admin management
# ==========================
def can_manage(user: dict, station: dict) -> bool:
    if is_superadmin(user):
        return True
    return is_admin(user) and station.get("admin_id") == user.get("auth_id")


def admin_station_filter(user: dict) -> dict:
    if is_superadmin(user):
        return {}
    return {"admin_id": user.get("auth_id")}


def admin_station_ids(user: dict) -> list[str]:
    return [str(s["_id"]) for s in database.stations().find(admin_station_filter(user), {"_id": 1})]


def build_ports(ports: Iterable[dict], existing: Optional[list[dict]] = None) -> list[dict]:
    """
    Ports for storage. A port keeping the number of an existing one keeps its
    id and booking reference so live bookings stay attached.
    """
    by_number = {p.get("port_number"): p for p in (existing or [])}
    out = []
    for p in ports:
        prev = by_number.get(p["port_number"])
        out.append({
            "_id": prev["_id"] if prev else ObjectId(),
            "port_number": p["port_number"],
            "connector_type": p["connector_type"],
            "power_output": p.get("power_output", ""),
            "charger_type": p.get("charger_type", ""),
            "status": p.get("status", "available"),
            "current_booking_id": prev.get("current_booking_id") if prev else None,
        })
    return out


def _validate_location(location: Optional[dict]):
    if not location:
        return
    coords = location.get("coordinates") or {}
    lat, lng = coords.get("lat"), coords.get("lng")
    if lat is None or not -90 <= lat <= 90:
        raise HTTPException(status_code=400, detail="Invalid latitude: must be between -90 and 90")
    if lng is None or not -180 <= lng <= 180:
        raise HTTPException(status_code=400, detail="Invalid longitude: must be between -180 and 180")


def _validate_pricing(pricing: Optional[dict]):
    if pricing and pricing.get("per_hour") is not None and pricing["per_hour"] < 0:
        raise HTTPException(status_code=400, detail="Pricing per hour cannot be negative")


def create_station(data: dict, admin_id: str) -> dict:
    _validate_location(data.get("location"))
    _validate_pricing(data.get("pricing"))
    now = datetime.utcnow()
    doc = {
        **data,
        "admin_id": admin_id,
        "charging_ports": build_ports(data.get("charging_ports", [])),
        "rating": 0,
        "total_reviews": 0,
        "is_active": True,
        "created_at": now,
        "updated_at": now,
    }
    result = database.stations().insert_one(doc)
    doc["_id"] = result.inserted_id
    logger.info("Station %s created by %s", result.inserted_id, admin_id)
    return doc


def update_station(station: dict, changes: dict) -> dict:
    _validate_location(changes.get("location"))
    _validate_pricing(changes.get("pricing"))
    if "charging_ports" in changes:
        changes["charging_ports"] = build_ports(changes["charging_ports"], station.get("charging_ports"))
    changes["updated_at"] = datetime.utcnow()
    database.stations().update_one({"_id": station["_id"]}, {"$set": changes})
    return database.stations().find_one({"_id": station["_id"]})
