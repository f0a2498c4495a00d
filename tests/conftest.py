"""
Pytest fixtures: in-memory SQLite schema per test, a TestClient, one user
per role and bearer-token headers for each of them.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient

from api import app
from db import Base, SessionLocal, engine
from models import User, UserRole
from security import hash_password, token_for_user

PASSWORD = "secret123"


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    return TestClient(app)


def _make_user(db, email, role, name=None, is_active=True):
    user = User(email=email, name=name, password_hash=hash_password(PASSWORD),
                role=role, is_active=is_active)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def make_user(db):
    def factory(email, role=UserRole.ASSET_RESPONSIBLE, name=None, is_active=True):
        return _make_user(db, email, role, name=name, is_active=is_active)
    return factory


@pytest.fixture
def admin(db):
    return _make_user(db, "admin@example.com", UserRole.ADMIN, name="Admin")


@pytest.fixture
def manager(db):
    return _make_user(db, "manager@example.com", UserRole.INVENTORY_MANAGER, name="Manager")


@pytest.fixture
def responsible(db):
    return _make_user(db, "responsible@example.com", UserRole.ASSET_RESPONSIBLE, name="Responsible")


def auth_headers(user):
    return {"Authorization": f"Bearer {token_for_user(user)}"}


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def manager_headers(manager):
    return auth_headers(manager)


@pytest.fixture
def responsible_headers(responsible):
    return auth_headers(responsible)


@pytest.fixture
def category(client, admin_headers):
    r = client.post("/categories", json={"name": "Computers"}, headers=admin_headers)
    assert r.status_code == 201, r.text
    return r.json()


@pytest.fixture
def make_asset(client, admin_headers, category):
    counter = {"n": 0}

    def factory(**overrides):
        counter["n"] += 1
        body = {
            "code": f"AST-{counter['n']:03d}",
            "name": f"Asset {counter['n']}",
            "acquisition_cost": 1000.0,
            "purchase_date": "2024-01-15",
            "useful_life": 5,
            "residual_value": 100.0,
            "category_id": category["id"],
        }
        body.update(overrides)
        r = client.post("/assets", json=body, headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()
    return factory


@pytest.fixture
def headers_for():
    return auth_headers
