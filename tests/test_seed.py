from models import (
    Asset, AssetAssignment, AssetMovement, AssetStatus, AssignmentStatus, Category, Incident,
    Maintenance, User, UserRole,
)
from seed import seed, DEMO_ASSETS, DEMO_CATEGORIES, DEMO_USERS


def test_seed_is_idempotent(db):
    seed("demo-pass")
    seed("demo-pass")

    assert db.query(User).count() == len(DEMO_USERS)
    assert db.query(Category).count() == len(DEMO_CATEGORIES)
    assert db.query(Asset).count() == len(DEMO_ASSETS)
    assert {u.role for u in db.query(User)} == set(UserRole)

    laptops = db.query(Category).filter(Category.name == "Laptops").one()
    assert laptops.parent.name == "Computers"


def test_seeded_users_can_log_in(client, db):
    seed("demo-pass")
    r = client.post("/auth/login", json={"email": "manager@inventory.local", "password": "demo-pass"})
    assert r.status_code == 200
    assert r.json()["user"]["role"] == "INVENTORY_MANAGER"


def test_seed_adds_one_record_of_each_history_kind(db):
    seed("demo-pass")
    seed("demo-pass")

    for model in (AssetAssignment, AssetMovement, Maintenance, Incident):
        assert db.query(model).count() == 1

    laptop = db.query(Asset).filter(Asset.code == "LAP-001").one()
    assignment = db.query(AssetAssignment).one()
    assert assignment.asset_id == laptop.id
    assert assignment.status == AssignmentStatus.ACTIVE
    assert laptop.status == AssetStatus.IN_USE
    assert laptop.assigned_to.email == "responsible@inventory.local"
