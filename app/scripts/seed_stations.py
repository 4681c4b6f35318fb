"""
Seed the stations collection from a JSON export of the public charger list.

    python -m app.scripts.seed_stations data/stations.json [--keep]

Each raw record looks like
``{"name", "city", "province", "address", "telephone", "type": [...],
"latitude", "longitude", "plugs": [{"plug", "power", "type"}], "amenities"}``.
Every station gets exactly three ports; missing plugs are filled with
Type 2 / CCS2 / CHAdeMO defaults.
"""
import argparse
import json
from collections import Counter
from datetime import datetime
from pathlib import Path

from bson import ObjectId

from app.database import database

DEFAULT_CONNECTORS = ["type2", "CCS2", "CHAdeMO"]
DEFAULT_POWER = ["7.2Kw", "22Kw", "50Kw"]
DEFAULT_CHARGER = ["AC", "AC", "DC"]
SEED_PRICE_PER_HOUR = 150


def transform(raw: dict, index: int) -> dict:
    plugs = raw.get("plugs") or []
    ports = []
    for p_index in range(3):
        plug = plugs[p_index] if p_index < len(plugs) else {}
        ports.append({
            "_id": ObjectId(),
            "port_number": f"P{index + 1}-{p_index + 1}",
            "connector_type": plug.get("plug") or DEFAULT_CONNECTORS[p_index],
            "power_output": plug.get("power") or DEFAULT_POWER[p_index],
            "charger_type": plug.get("type") or DEFAULT_CHARGER[p_index],
            "status": "available",
            "current_booking_id": None,
        })

    coming_soon = "Coming Soon" in raw["name"]
    now = datetime.utcnow()
    return {
        "name": raw["name"].replace(" (Coming Soon)", ""),
        "location": {
            "address": raw.get("address", ""),
            "coordinates": {"lat": float(raw["latitude"]), "lng": float(raw["longitude"])},
            "city": raw.get("city", ""),
            "province": raw.get("province") or "",
        },
        "telephone": raw.get("telephone") or "",
        "vehicle_types": raw.get("type") or ["car"],
        "operating_hours": {"open": "06:00", "close": "22:00"},
        "charging_ports": ports,
        "pricing": {"per_hour": SEED_PRICE_PER_HOUR},
        "amenities": raw.get("amenities") or [],
        "photos": [],
        "rating": 0,
        "total_reviews": 0,
        "is_active": not coming_soon,
        "created_at": now,
        "updated_at": now,
    }


def seed(path: Path, keep: bool = False) -> list[dict]:
    raw_stations = json.loads(path.read_text(encoding="utf-8"))
    docs = [transform(s, i) for i, s in enumerate(raw_stations)]
    if not keep:
        database.stations().delete_many({})
    if docs:
        database.stations().insert_many(docs)
    return docs


def main():
    p = argparse.ArgumentParser(description="Seed charging stations")
    p.add_argument("path", type=Path)
    p.add_argument("--keep", action="store_true", help="do not clear existing stations")
    args = p.parse_args()

    docs = seed(args.path, args.keep)
    print(f"Seeded {len(docs)} stations")
    for city, count in sorted(Counter(d["location"]["city"] for d in docs).items()):
        print(f"  {city}: {count}")
    active = sum(1 for d in docs if d["is_active"])
    print(f"Active: {active}, Coming Soon: {len(docs) - active}")


if __name__ == "__main__":
    main()
