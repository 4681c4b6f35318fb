from __future__ import annotations

import math
import os
from datetime import datetime, timedelta
from typing import Optional

from app.client.directions_client import DirectionsClient, get_directions_client
from app.services.geo import haversine_distance


def _get_env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


# Average road speed used when no routing service answers
ETA_FALLBACK_SPEED_KMH = _get_env_float("ETA_FALLBACK_SPEED_KMH", 40.0)


def straight_line_eta(origin_lat: float, origin_lng: float, dest_lat: float, dest_lng: float) -> dict:
    distance_km = haversine_distance(origin_lat, origin_lng, dest_lat, dest_lng)
    minutes = math.ceil(distance_km / ETA_FALLBACK_SPEED_KMH * 60) if distance_km > 0 else 0
    return {
        "duration_minutes": int(minutes),
        "distance_km": round(distance_km, 2),
        "updated_at": datetime.utcnow(),
    }


async def calculate_eta(origin: dict, destination: dict, directions: Optional[DirectionsClient] = None) -> dict:
    """
    ETA from ``origin`` to ``destination`` (both ``{"lat", "lng"}``).
    Uses the driving directions service when configured, haversine at the
    fallback speed otherwise.
    """
    directions = directions or get_directions_client()
    route = await directions.route(origin["lat"], origin["lng"], destination["lat"], destination["lng"])
    if route is None:
        return straight_line_eta(origin["lat"], origin["lng"], destination["lat"], destination["lng"])
    return {
        "duration_minutes": int(math.ceil(route["duration_s"] / 60)),
        "distance_km": round(route["distance_m"] / 1000, 2),
        "updated_at": datetime.utcnow(),
    }


# ==========================
# Arrival status (admin console)
# ==========================
def arrival_status(
    created_at: Optional[datetime],
    eta: Optional[dict],
    start_time: Optional[datetime],
    now: Optional[datetime] = None,
) -> dict:
    """Expected arrival and urgency of a booked driver, from the last ETA snapshot."""
    now = now or datetime.utcnow()
    start_time = start_time or now

    if not eta or not eta.get("duration_minutes"):
        return {
            "expected_arrival_time": start_time,
            "minutes_until_arrival": max(0.0, (start_time - now).total_seconds() / 60),
            "urgency_level": "normal",
            "is_overdue": False,
            "status_label": "No location data",
        }

    updated_at = eta.get("updated_at") or created_at or now
    expected = updated_at + timedelta(minutes=eta["duration_minutes"])
    minutes = (expected - now).total_seconds() / 60
    is_overdue = minutes < 0
    rounded = round(abs(minutes))

    if is_overdue and abs(minutes) > 30:
        level, label = "delayed", f"{rounded} mins overdue"
    elif is_overdue:
        level, label = "urgent", f"Overdue by {rounded} mins"
    elif minutes <= 5:
        level, label = "urgent", f"Arrives in {rounded} min{'' if rounded == 1 else 's'}"
    elif minutes <= 15:
        level, label = "approaching", f"Arrives in {rounded} mins"
    else:
        level, label = "normal", f"Arrives in {rounded} mins"

    return {
        "expected_arrival_time": expected,
        "minutes_until_arrival": minutes,
        "urgency_level": level,
        "is_overdue": is_overdue,
        "status_label": label,
    }
