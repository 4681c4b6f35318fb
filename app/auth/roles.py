import logging
from typing import Optional

from pymongo.errors import PyMongoError

from app.database import database

logger = logging.getLogger(__name__)

ADMIN_ROLES = ("admin", "superadmin")


def get_user_by_auth_id(auth_id: str) -> Optional[dict]:
    if not auth_id:
        return None
    return database.users().find_one({"auth_id": auth_id}, {"password_hash": 0})


def is_admin(user: Optional[dict]) -> bool:
    """Admins and superadmins."""
    return bool(user) and user.get("role") in ADMIN_ROLES


def is_superadmin(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") == "superadmin"


def verify_admin_role(auth_id: str) -> Optional[dict]:
    """Admin or superadmin user document, None when the caller is neither."""
    try:
        user = get_user_by_auth_id(auth_id)
    except PyMongoError as e:
        logger.error(f"Error verifying admin role: {e}")
        return None
    return user if is_admin(user) else None
