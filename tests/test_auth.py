import pytest
from fastapi import HTTPException
from starlette.requests import Request

from app.api.deps import current_auth_id
from app.auth import roles
from app.auth.security import (
    hash_password,
    make_access_token,
    make_refresh_token,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)
from app.database import database


def _cookie(response, name):
    for header in response.headers.get_list("set-cookie"):
        if header.startswith(f"{name}="):
            return header.split(";", 1)[0].split("=", 1)[1]
    return None


def test_register_sets_session(api):
    body = {"email": "Ram@Example.com", "password": "longenough", "name": "Ram"}
    r = api.post("/api/auth/register", json=body)
    assert r.status_code == 201
    assert r.json()["user"]["email"] == "ram@example.com"
    assert r.json()["user"]["role"] == "user"

    token = _cookie(r, "access_token")
    assert token and _cookie(r, "refresh_token")
    me = api.get("/api/auth/me", headers={"Cookie": f"access_token={token}"})
    assert me.json()["name"] == "Ram"

    saved = database.users().find_one({"email": "ram@example.com"})
    assert saved["password_hash"] != "longenough"


def test_register_duplicate_and_validation(api):
    body = {"email": "a@example.com", "password": "longenough", "name": "A"}
    assert api.post("/api/auth/register", json=body).status_code == 201
    assert api.post("/api/auth/register", json={**body, "email": "A@example.com"}).status_code == 409
    assert api.post("/api/auth/register", json={**body, "password": "short"}).status_code == 400
    assert api.post("/api/auth/register", json={**body, "email": "not-an-email"}).status_code == 400


def test_login(api, make_user):
    make_user(email="sita@example.com", password="pa55word!")
    r = api.post("/api/auth/login", json={"email": "sita@example.com", "password": "pa55word!"})
    assert r.status_code == 200
    assert verify_access_token(_cookie(r, "access_token"))

    bad = api.post("/api/auth/login", json={"email": "sita@example.com", "password": "nope"})
    assert bad.status_code == 401
    assert api.post("/api/auth/login", json={"email": "who@example.com", "password": "x"}).status_code == 401


def test_login_disabled_user(api, make_user):
    make_user(email="off@example.com", password="pa55word!", active=False)
    r = api.post("/api/auth/login", json={"email": "off@example.com", "password": "pa55word!"})
    assert r.status_code == 403


def test_refresh_and_logout(api, user):
    r = api.post("/api/auth/refresh", headers={"Cookie": f"refresh_token={make_refresh_token(user['auth_id'])}"})
    assert r.status_code == 200
    assert verify_access_token(_cookie(r, "access_token")) == user["auth_id"]

    # an access token is not accepted as a refresh token
    r = api.post("/api/auth/refresh", headers={"Cookie": f"refresh_token={make_access_token(user['auth_id'])}"})
    assert r.status_code == 401

    r = api.post("/api/auth/logout")
    assert r.json() == {"ok": True}
    assert _cookie(r, "access_token") == '""' or _cookie(r, "access_token") == ""


def test_me_requires_cookie(api):
    assert api.get("/api/auth/me").status_code == 401
    assert api.get("/api/auth/me", headers={"Cookie": "access_token=garbage"}).status_code == 401


def test_tokens_and_passwords():
    assert verify_refresh_token(make_refresh_token("user_1")) == "user_1"
    assert verify_refresh_token(make_access_token("user_1")) is None
    assert verify_access_token("") is None
    hashed = hash_password("s3cret")
    assert verify_password("s3cret", hashed)
    assert not verify_password("other", hashed)
    assert not verify_password("s3cret", "not-a-hash")


def test_role_helpers(user, admin, superadmin):
    assert roles.verify_admin_role(user["auth_id"]) is None
    assert roles.verify_admin_role(admin["auth_id"])["auth_id"] == admin["auth_id"]
    assert roles.is_admin(superadmin)
    assert roles.is_admin(admin)
    assert not roles.is_admin(user)
    assert not roles.is_admin(None)
    assert roles.is_superadmin(superadmin)
    assert not roles.is_superadmin(admin)
    assert roles.get_user_by_auth_id("") is None
    assert "password_hash" not in roles.get_user_by_auth_id(user["auth_id"])


def _request(cookie=None):
    headers = [(b"cookie", f"access_token={cookie}".encode())] if cookie else []
    return Request({"type": "http", "headers": headers})


def test_current_auth_id_prefers_gate_state():
    req = _request()
    req.state.auth_id = "user_gate"
    assert current_auth_id(req) == "user_gate"


def test_current_auth_id_falls_back_to_cookie():
    assert current_auth_id(_request(make_access_token("user_cookie"))) == "user_cookie"
    with pytest.raises(HTTPException) as exc:
        current_auth_id(_request())
    assert exc.value.status_code == 401
