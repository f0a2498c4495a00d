"""
Create the tables and load demo data.

    python seed.py [--password PASSWORD]

Safe to run more than once: rows that already exist (matched by email,
category name or asset code) are left alone, and the demo history below is
only added to an asset that has none of that kind yet.
"""
import argparse
import logging
from datetime import date, timedelta

from db import SessionLocal, init_db
from models import (
    Asset, AssetAssignment, AssetMovement, AssetStatus, AssignmentStatus, Category, Incident,
    IncidentStatus, IncidentType, Maintenance, MaintenanceStatus, MaintenanceType, MovementType,
    MovementSubtype, User, UserRole, utcnow,
)
from security import hash_password

logger = logging.getLogger("seed")

DEMO_USERS = [
    ("admin@inventory.local", "Administrator", UserRole.ADMIN),
    ("manager@inventory.local", "Inventory Manager", UserRole.INVENTORY_MANAGER),
    ("responsible@inventory.local", "Asset Responsible", UserRole.ASSET_RESPONSIBLE),
]

# (name, description, parent name)
DEMO_CATEGORIES = [
    ("Computers", "Desktops, laptops and servers", None),
    ("Laptops", "Portable computers", "Computers"),
    ("Furniture", "Desks, chairs and cabinets", None),
    ("Vehicles", "Cars, vans and trucks", None),
]

DEMO_ASSETS = [
    dict(code="LAP-001", name="Dell Latitude 5440", brand="Dell", model="Latitude 5440",
         serial_number="DL5440-0001", acquisition_cost=1200.0, purchase_date=date(2023, 3, 15),
         useful_life=4, residual_value=100.0, building="Main", office="101", category="Laptops"),
    dict(code="DSK-001", name="Standing desk", brand="Ikea", acquisition_cost=350.0,
         purchase_date=date(2022, 9, 1), useful_life=10, residual_value=0.0,
         building="Main", office="102", category="Furniture"),
    dict(code="VEH-001", name="Delivery van", brand="Ford", model="Transit",
         acquisition_cost=32000.0, purchase_date=date(2021, 1, 10), useful_life=8,
         residual_value=5000.0, building="Garage", category="Vehicles"),
]


def _asset(db, code):
    return db.query(Asset).filter(Asset.code == code).one()


def _seed_history(db, users):
    """One record of each lifecycle kind, so the history screens have data."""
    manager = users[UserRole.INVENTORY_MANAGER]
    responsible = users[UserRole.ASSET_RESPONSIBLE]
    now = utcnow()

    laptop = _asset(db, "LAP-001")
    if not db.query(AssetMovement.id).filter(AssetMovement.asset_id == laptop.id).first():
        db.add(AssetMovement(asset_id=laptop.id, type=MovementType.ENTRY,
                             movement_type=MovementSubtype.PURCHASE,
                             description="Laptop bought for the development team",
                             cost=laptop.acquisition_cost, quantity=1, user_id=manager.id,
                             date=now - timedelta(days=30)))
        logger.info("movement PURCHASE for %s", laptop.code)

    if not db.query(AssetAssignment.id).filter(AssetAssignment.asset_id == laptop.id).first():
        db.add(AssetAssignment(asset_id=laptop.id, assigned_to_id=responsible.id,
                               assigned_by_id=manager.id, location="Main, office 101",
                               reason="Initial assignment", status=AssignmentStatus.ACTIVE,
                               assigned_at=now))
        laptop.assigned_to_id = responsible.id
        laptop.assigned_at = now
        laptop.current_location = "Main, office 101"
        laptop.status = AssetStatus.IN_USE
        logger.info("assignment %s -> %s", laptop.code, responsible.email)

    van = _asset(db, "VEH-001")
    if not db.query(Maintenance.id).filter(Maintenance.asset_id == van.id).first():
        db.add(Maintenance(asset_id=van.id, type=MaintenanceType.PREVENTIVE,
                           status=MaintenanceStatus.SCHEDULED,
                           scheduled_date=now + timedelta(days=14),
                           description="Quarterly service and tyre check",
                           performed_by="Garage team", user_id=manager.id))
        logger.info("maintenance scheduled for %s", van.code)

    desk = _asset(db, "DSK-001")
    if not db.query(Incident.id).filter(Incident.asset_id == desk.id).first():
        db.add(Incident(asset_id=desk.id, type=IncidentType.MALFUNCTION,
                        status=IncidentStatus.REPORTED,
                        description="Height motor stops halfway",
                        reported_date=now, reported_by_id=responsible.id))
        logger.info("incident reported for %s", desk.code)


def seed(password: str) -> None:
    init_db()
    db = SessionLocal()
    try:
        users = {}
        for email, name, role in DEMO_USERS:
            u = db.query(User).filter(User.email == email).first()
            if not u:
                u = User(email=email, name=name, password_hash=hash_password(password), role=role)
                db.add(u)
                logger.info("user %s (%s)", email, role.value)
            users[role] = u
        db.flush()

        cats = {}
        for name, description, parent in DEMO_CATEGORIES:
            c = db.query(Category).filter(Category.name == name).first()
            if not c:
                c = Category(name=name, description=description,
                             parent_id=cats[parent].id if parent else None)
                db.add(c)
                db.flush()
                logger.info("category %s", name)
            cats[name] = c

        creator = users[UserRole.ADMIN]
        for row in DEMO_ASSETS:
            data = dict(row)
            category = cats[data.pop("category")]
            if db.query(Asset.id).filter(Asset.code == data["code"]).first():
                continue
            db.add(Asset(**data, category_id=category.id, created_by_id=creator.id,
                         status=AssetStatus.AVAILABLE))
            logger.info("asset %s", data["code"])

        db.flush()
        _seed_history(db, users)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def main(argv=None):
    parser = argparse.ArgumentParser(description="Load demo data into the inventory database")
    parser.add_argument("--password", default="password123",
                        help="password for the demo users (default: %(default)s)")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    seed(args.password)
    logger.info("done")


if __name__ == "__main__":
    main()
