import logging
from typing import Optional, List

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from asset_service import get_asset_or_404
from models import (
    Asset, AssetAssignment, AssetStatus, AssignmentStatus, User, utcnow,
)
from schemas import AssignIn, TransferIn

logger = logging.getLogger(__name__)


def _assignment_query(db: Session):
    return db.query(AssetAssignment).options(
        joinedload(AssetAssignment.asset).joinedload(Asset.category),
        joinedload(AssetAssignment.assigned_to),
        joinedload(AssetAssignment.assigned_by),
    )

def active_assignment(db: Session, asset_id: int) -> Optional[AssetAssignment]:
    return (
        db.query(AssetAssignment)
        .filter(AssetAssignment.asset_id == asset_id,
                AssetAssignment.status == AssignmentStatus.ACTIVE)
        .order_by(AssetAssignment.id.desc())
        .first()
    )

def _active_assignee(db: Session, user_id: int, missing: str, inactive: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, missing)
    if not user.is_active:
        raise HTTPException(409, inactive)
    return user

# --------------------------------------------------------------------------
# Assign / return / transfer
# --------------------------------------------------------------------------
def assign_asset(db: Session, body: AssignIn, assigned_by: User) -> AssetAssignment:
    asset = get_asset_or_404(db, body.asset_id)
    if asset.assigned_to_id:
        raise HTTPException(409, "Asset is already assigned to another user")
    if asset.status == AssetStatus.DECOMMISSIONED:
        raise HTTPException(409, "Decommissioned assets cannot be assigned")

    _active_assignee(db, body.assigned_to_id,
                     "User not found",
                     "User is inactive and cannot receive assignments")

    now = utcnow()
    assignment = AssetAssignment(
        asset_id=asset.id,
        assigned_to_id=body.assigned_to_id,
        assigned_by_id=assigned_by.id,
        location=body.location,
        reason=body.reason,
        notes=body.notes,
        status=AssignmentStatus.ACTIVE,
        assigned_at=now,
    )
    db.add(assignment)
    asset.assigned_to_id = body.assigned_to_id
    asset.assigned_at = now
    asset.current_location = body.location
    asset.status = AssetStatus.IN_USE
    db.commit()

    logger.info("asset %s assigned to user %s by %s", asset.code, body.assigned_to_id, assigned_by.id)
    return get_assignment(db, assignment.id)

def return_asset(db: Session, asset_id: int, notes: Optional[str] = None) -> AssetAssignment:
    asset = get_asset_or_404(db, asset_id)
    current = active_assignment(db, asset_id)
    if not current:
        raise HTTPException(409, "There is no active assignment for this asset")

    current.status = AssignmentStatus.RETURNED
    current.returned_at = utcnow()
    if notes is not None:
        current.notes = notes
    asset.assigned_to_id = None
    asset.assigned_at = None
    asset.status = AssetStatus.AVAILABLE
    db.commit()

    logger.info("asset %s returned", asset.code)
    return get_assignment(db, current.id)

def transfer_asset(db: Session, asset_id: int, body: TransferIn, assigned_by: User) -> AssetAssignment:
    asset = get_asset_or_404(db, asset_id)
    current = active_assignment(db, asset_id)
    if not current:
        raise HTTPException(409, "There is no active assignment for this asset")

    _active_assignee(db, body.new_assigned_to_id,
                     "Target user not found",
                     "Target user is inactive and cannot receive assignments")

    if current.assigned_to_id == body.new_assigned_to_id:
        raise HTTPException(409, "Asset is already assigned to this user")

    now = utcnow()
    location = body.location or current.location

    current.status = AssignmentStatus.TRANSFERRED
    current.returned_at = now
    current.notes = f"Transferred. {body.notes}" if body.notes else "Transferred"

    new = AssetAssignment(
        asset_id=asset.id,
        assigned_to_id=body.new_assigned_to_id,
        assigned_by_id=assigned_by.id,
        location=location,
        reason=body.reason or "Transfer",
        notes=body.notes,
        status=AssignmentStatus.ACTIVE,
        assigned_at=now,
    )
    db.add(new)
    asset.assigned_to_id = body.new_assigned_to_id
    asset.assigned_at = now
    asset.current_location = location
    db.commit()

    logger.info("asset %s transferred from user %s to %s",
                asset.code, current.assigned_to_id, body.new_assigned_to_id)
    return get_assignment(db, new.id)

# --------------------------------------------------------------------------
# Queries
# --------------------------------------------------------------------------
def assignment_history(
    db: Session,
    asset_id: Optional[int] = None,
    user_id: Optional[int] = None,
    status: Optional[AssignmentStatus] = None,
) -> List[AssetAssignment]:
    q = _assignment_query(db)
    if asset_id:
        q = q.filter(AssetAssignment.asset_id == asset_id)
    if user_id:
        q = q.filter(AssetAssignment.assigned_to_id == user_id)
    if status:
        q = q.filter(AssetAssignment.status == status)
    return q.order_by(AssetAssignment.assigned_at.desc(), AssetAssignment.id.desc()).all()

def active_assignments(db: Session) -> List[AssetAssignment]:
    return assignment_history(db, status=AssignmentStatus.ACTIVE)

def get_assignment(db: Session, assignment_id: int) -> AssetAssignment:
    a = _assignment_query(db).filter(AssetAssignment.id == assignment_id).first()
    if not a:
        raise HTTPException(404, "Assignment not found")
    return a

def decommission_asset(db: Session, asset: Asset, note: str) -> None:
    """Take an asset out of service, closing its active assignment. Caller commits."""
    current = active_assignment(db, asset.id)
    if current:
        current.status = AssignmentStatus.RETURNED
        current.returned_at = utcnow()
        current.notes = note
    asset.status = AssetStatus.DECOMMISSIONED
    asset.assigned_to_id = None
    asset.assigned_at = None
    asset.current_location = None
