import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, Float, ForeignKey,
    Integer, String, Text,
)
from sqlalchemy.orm import relationship

from db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)

def to_utc_naive(value):
    """Columns hold naive UTC. Aware values are converted, naive ones are taken as UTC."""
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# --------------------------------------------------------------------------
# Enums
# --------------------------------------------------------------------------
class UserRole(str, enum.Enum):
    ADMIN = "ADMIN"
    INVENTORY_MANAGER = "INVENTORY_MANAGER"
    ASSET_RESPONSIBLE = "ASSET_RESPONSIBLE"

class AssetStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    IN_USE = "IN_USE"
    IN_REPAIR = "IN_REPAIR"
    DECOMMISSIONED = "DECOMMISSIONED"

class AssignmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    TRANSFERRED = "TRANSFERRED"

class MovementType(str, enum.Enum):
    ENTRY = "ENTRY"
    EXIT = "EXIT"

class MovementSubtype(str, enum.Enum):
    PURCHASE = "PURCHASE"
    DONATION_IN = "DONATION_IN"
    TRANSFER_IN = "TRANSFER_IN"
    DISPOSAL = "DISPOSAL"
    SALE = "SALE"
    DONATION_OUT = "DONATION_OUT"
    TRANSFER_OUT = "TRANSFER_OUT"

ENTRY_SUBTYPES = (MovementSubtype.PURCHASE, MovementSubtype.DONATION_IN, MovementSubtype.TRANSFER_IN)
EXIT_SUBTYPES = (
    MovementSubtype.DISPOSAL, MovementSubtype.SALE,
    MovementSubtype.DONATION_OUT, MovementSubtype.TRANSFER_OUT,
)

class MaintenanceType(str, enum.Enum):
    PREVENTIVE = "PREVENTIVE"
    CORRECTIVE = "CORRECTIVE"

class MaintenanceStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

class IncidentType(str, enum.Enum):
    DAMAGE = "DAMAGE"
    THEFT = "THEFT"
    LOSS = "LOSS"
    MALFUNCTION = "MALFUNCTION"

class IncidentStatus(str, enum.Enum):
    REPORTED = "REPORTED"
    INVESTIGATING = "INVESTIGATING"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"


def _enum(cls):
    return Enum(cls, native_enum=False, length=30, validate_strings=True)


# --------------------------------------------------------------------------
# Tables
# --------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(_enum(UserRole), nullable=False, default=UserRole.ASSET_RESPONSIBLE)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    created_assets = relationship("Asset", back_populates="created_by", foreign_keys="Asset.created_by_id")
    assigned_assets = relationship("Asset", back_populates="assigned_to", foreign_keys="Asset.assigned_to_id")


class Category(Base):
    __tablename__ = "categories"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    parent_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    parent = relationship("Category", remote_side=[id], back_populates="subcategories")
    subcategories = relationship("Category", back_populates="parent")
    assets = relationship("Asset", back_populates="category")


class Asset(Base):
    __tablename__ = "assets"
    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(50), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)

    brand = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    serial_number = Column(String(100), nullable=True)

    acquisition_cost = Column(Float, nullable=False)
    purchase_date = Column(Date, nullable=False)
    supplier = Column(String(200), nullable=True)
    useful_life = Column(Integer, nullable=False)  # years
    residual_value = Column(Float, nullable=False, default=0)

    building = Column(String(100), nullable=True)
    office = Column(String(100), nullable=True)
    laboratory = Column(String(100), nullable=True)
    location = Column(String(200), nullable=True)
    current_location = Column(String(200), nullable=True)

    status = Column(_enum(AssetStatus), nullable=False, default=AssetStatus.AVAILABLE, index=True)

    category_id = Column(Integer, ForeignKey("categories.id"), nullable=False)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    assigned_at = Column(DateTime, nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    category = relationship("Category", back_populates="assets")
    assigned_to = relationship("User", back_populates="assigned_assets", foreign_keys=[assigned_to_id])
    created_by = relationship("User", back_populates="created_assets", foreign_keys=[created_by_id])

    assignments = relationship("AssetAssignment", back_populates="asset")
    movements = relationship("AssetMovement", back_populates="asset")
    maintenances = relationship("Maintenance", back_populates="asset")
    incidents = relationship("Incident", back_populates="asset")


class AssetAssignment(Base):
    __tablename__ = "asset_assignments"
    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    assigned_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    location = Column(String(200), nullable=True)
    reason = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(_enum(AssignmentStatus), nullable=False, default=AssignmentStatus.ACTIVE)
    assigned_at = Column(DateTime, nullable=False, default=utcnow)
    returned_at = Column(DateTime, nullable=True)

    asset = relationship("Asset", back_populates="assignments")
    assigned_to = relationship("User", foreign_keys=[assigned_to_id])
    assigned_by = relationship("User", foreign_keys=[assigned_by_id])


class AssetMovement(Base):
    __tablename__ = "asset_movements"
    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    type = Column(_enum(MovementType), nullable=False)
    movement_type = Column(_enum(MovementSubtype), nullable=False)
    description = Column(Text, nullable=False)
    cost = Column(Float, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(DateTime, nullable=False, default=utcnow)
    notes = Column(Text, nullable=True)

    asset = relationship("Asset", back_populates="movements")
    user = relationship("User")


class Maintenance(Base):
    __tablename__ = "maintenances"
    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    type = Column(_enum(MaintenanceType), nullable=False)
    status = Column(_enum(MaintenanceStatus), nullable=False, default=MaintenanceStatus.SCHEDULED)
    scheduled_date = Column(DateTime, nullable=False)
    completed_date = Column(DateTime, nullable=True)
    description = Column(Text, nullable=False)
    performed_by = Column(String(200), nullable=True)
    cost = Column(Float, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    asset = relationship("Asset", back_populates="maintenances")
    user = relationship("User")


class Incident(Base):
    __tablename__ = "incidents"
    id = Column(Integer, primary_key=True, index=True)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False, index=True)
    type = Column(_enum(IncidentType), nullable=False)
    status = Column(_enum(IncidentStatus), nullable=False, default=IncidentStatus.REPORTED)
    description = Column(Text, nullable=False)
    reported_date = Column(DateTime, nullable=False, default=utcnow)
    resolved_date = Column(DateTime, nullable=True)
    reported_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    cost = Column(Float, nullable=True)
    resolution = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    asset = relationship("Asset", back_populates="incidents")
    reported_by = relationship("User")
