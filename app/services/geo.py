from __future__ import annotations

import math
from typing import Sequence

EARTH_RADIUS_KM = 6371.0


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in km between two lat/lng points."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def point_to_segment_distance(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> float:
    """
    Distance in km from point P to segment AB (all as lat, lng).
    The projection is done in degree space, which is fine for the short
    segments of a driving route.
    """
    dx = bx - ax
    dy = by - ay
    if dx == 0 and dy == 0:
        return haversine_distance(px, py, ax, ay)
    t = ((px - ax) * dx + (py - ay) * dy) / (dx * dx + dy * dy)
    t = max(0.0, min(1.0, t))
    return haversine_distance(px, py, ax + t * dx, ay + t * dy)


def point_to_route_distance(lat: float, lng: float, route_coords: Sequence[Sequence[float]]) -> float:
    """Minimum distance in km from a point to a polyline given as [lng, lat] pairs."""
    if len(route_coords) == 1:
        r_lng, r_lat = route_coords[0][0], route_coords[0][1]
        return haversine_distance(lat, lng, r_lat, r_lng)
    min_dist = math.inf
    for i in range(len(route_coords) - 1):
        a_lng, a_lat = route_coords[i][0], route_coords[i][1]
        b_lng, b_lat = route_coords[i + 1][0], route_coords[i + 1][1]
        d = point_to_segment_distance(lat, lng, a_lat, a_lng, b_lat, b_lng)
        if d < min_dist:
            min_dist = d
    return min_dist
