from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId


def to_object_id(value: Any) -> Optional[ObjectId]:
    """ObjectId for a 24-hex string (or an ObjectId), None otherwise."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        return None


def to_naive_utc(dt: datetime) -> datetime:
    """Mongo stores naive UTC; aware values are converted first."""
    if dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_jsonable(value: Any) -> Any:
    """Turn a Mongo document into something FastAPI can encode (`_id` → `id`)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, list):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if k == "_id":
                out["id"] = to_jsonable(v)
            else:
                out[k] = to_jsonable(v)
        return out
    return value
