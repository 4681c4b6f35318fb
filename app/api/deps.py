from fastapi import HTTPException, Request

from app.auth.roles import get_user_by_auth_id, is_superadmin, verify_admin_role
from app.auth.security import ACCESS_COOKIE, verify_access_token
from app.client.directions_client import DirectionsClient, get_directions_client
from app.client.khalti_client import KhaltiClient, get_khalti_client


def current_auth_id(request: Request) -> str:
    # set by the auth gate middleware; public paths and a disabled gate decode the cookie here
    uid = getattr(request.state, "auth_id", None) or verify_access_token(request.cookies.get(ACCESS_COOKIE) or "")
    if not uid:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return uid


def current_user(request: Request) -> dict:
    user = get_user_by_auth_id(current_auth_id(request))
    if not user or not user.get("active", True):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


def admin_user(request: Request) -> dict:
    user = verify_admin_role(current_auth_id(request))
    if not user:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def superadmin_user(request: Request) -> dict:
    user = admin_user(request)
    if not is_superadmin(user):
        raise HTTPException(status_code=403, detail="Forbidden")
    return user


def khalti_gateway() -> KhaltiClient:
    return get_khalti_client()


def directions_service() -> DirectionsClient:
    return get_directions_client()
