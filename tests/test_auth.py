import time
from datetime import timedelta

import jwt

from security import create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES, JWT_SECRET
from conftest import PASSWORD


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_register_returns_token_and_responsible_role(client):
    r = client.post("/auth/register", json={
        "email": "  New.User@Example.com ", "password": "hunter22", "name": "New",
    })
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["access_token"]
    assert body["user"]["email"] == "new.user@example.com"
    assert body["user"]["role"] == "ASSET_RESPONSIBLE"
    assert "password_hash" not in body["user"]


def test_register_ignores_requested_role(client):
    r = client.post("/auth/register", json={
        "email": "sneaky@example.com", "password": "hunter22", "role": "ADMIN",
    })
    assert r.status_code == 201
    assert r.json()["user"]["role"] == "ASSET_RESPONSIBLE"


def test_register_duplicate_email(client, admin):
    r = client.post("/auth/register", json={"email": "admin@example.com", "password": "hunter22"})
    assert r.status_code == 409


def test_register_validation(client):
    assert client.post("/auth/register", json={"email": "nope", "password": "hunter22"}).status_code == 422
    assert client.post("/auth/register", json={"email": "a@b.co", "password": "123"}).status_code == 422


def test_login_and_me(client, manager):
    r = client.post("/auth/login", json={"email": "manager@example.com", "password": PASSWORD})
    assert r.status_code == 200, r.text
    token = r.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    data = me.json()
    assert data["email"] == "manager@example.com"
    assert data["role"] == "INVENTORY_MANAGER"
    assert data["permissions"]["categories"]["delete"] is False
    assert data["permissions"]["assets"]["create"] is True


def test_login_wrong_password(client, manager):
    r = client.post("/auth/login", json={"email": "manager@example.com", "password": "wrong-one"})
    assert r.status_code == 401
    assert r.json()["detail"] == "Invalid credentials"


def test_login_unknown_email(client, db):
    r = client.post("/auth/login", json={"email": "ghost@example.com", "password": PASSWORD})
    assert r.status_code == 401


def test_login_inactive_user(client, make_user):
    make_user("gone@example.com", is_active=False)
    r = client.post("/auth/login", json={"email": "gone@example.com", "password": PASSWORD})
    assert r.status_code == 401


def test_me_requires_token(client, db):
    assert client.get("/auth/me").status_code in (401, 403)


def test_me_rejects_garbage_token(client, db):
    r = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401


def test_me_rejects_expired_token(client, admin):
    token = create_access_token(
        {"sub": str(admin.id), "email": admin.email, "role": admin.role.value},
        expires_delta=timedelta(seconds=-10),
    )
    r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 401


def test_token_of_deactivated_user_is_rejected(client, db, make_user, headers_for):
    user = make_user("soon-gone@example.com")
    headers = headers_for(user)
    assert client.get("/auth/me", headers=headers).status_code == 200

    user.is_active = False
    db.commit()
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_token_default_lifetime(admin):
    token = create_access_token({"sub": str(admin.id)})
    claims = jwt.decode(token, JWT_SECRET, algorithms=["HS256"], options={"verify_iss": False})
    assert claims["iss"] == "inventory-api"
    assert abs(claims["exp"] - time.time() - ACCESS_TOKEN_EXPIRE_MINUTES * 60) < 60
