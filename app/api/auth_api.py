from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel, EmailStr

from app.auth.roles import get_user_by_auth_id
from app.auth.security import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    cookie_settings,
    hash_password,
    make_access_token,
    make_refresh_token,
    new_auth_id,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)
from app.database import database
from app.models.models import RegisterBody

router = APIRouter()


class LoginBody(BaseModel):
    email: EmailStr
    password: str


def _get_user_by_email(email: str) -> Optional[dict]:
    return database.users().find_one({"email": email.lower().strip()})


def _public(user: dict) -> dict:
    return {
        "auth_id": user.get("auth_id"),
        "email": user.get("email"),
        "name": user.get("name"),
        "role": user.get("role", "user"),
    }


def _set_session(response: Response, auth_id: str):
    ck = cookie_settings()
    response.set_cookie(ACCESS_COOKIE, make_access_token(auth_id), **ck)
    response.set_cookie(REFRESH_COOKIE, make_refresh_token(auth_id), **ck)


@router.post("/auth/register", status_code=201, tags=["auth"])
def register(body: RegisterBody, response: Response):
    email = body.email.lower().strip()
    if _get_user_by_email(email):
        raise HTTPException(status_code=409, detail="An account with this email already exists")
    now = datetime.utcnow()
    user = {
        "auth_id": new_auth_id(),
        "email": email,
        "name": body.name.strip(),
        "phone": body.phone,
        "password_hash": hash_password(body.password),
        "role": "user",
        "active": True,
        "favorite_stations": [],
        "created_at": now,
        "updated_at": now,
    }
    database.users().insert_one(user)
    _set_session(response, user["auth_id"])
    return {"user": _public(user)}


@router.post("/auth/login", tags=["auth"])
def login(body: LoginBody, response: Response):
    user = _get_user_by_email(body.email)
    if not user or not verify_password(body.password, user.get("password_hash", "")):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.get("active", True):
        raise HTTPException(status_code=403, detail="User disabled")
    _set_session(response, user["auth_id"])
    return {"user": _public(user)}


@router.post("/auth/logout", tags=["auth"])
def logout(response: Response):
    ck = cookie_settings()
    response.delete_cookie(ACCESS_COOKIE, path=ck["path"])
    response.delete_cookie(REFRESH_COOKIE, path=ck["path"])
    return {"ok": True}


@router.post("/auth/refresh", tags=["auth"])
def refresh(request: Request, response: Response):
    uid = verify_refresh_token(request.cookies.get(REFRESH_COOKIE) or "")
    if not uid:
        raise HTTPException(status_code=401, detail="Invalid refresh token")
    response.set_cookie(ACCESS_COOKIE, make_access_token(uid), **cookie_settings())
    return {"ok": True}


@router.get("/auth/me", tags=["auth"])
def me(request: Request):
    uid = verify_access_token(request.cookies.get(ACCESS_COOKIE) or "")
    user = get_user_by_auth_id(uid) if uid else None
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return _public(user)
