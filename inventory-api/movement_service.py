import logging
from datetime import datetime
from typing import Optional, List

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from asset_service import get_asset_or_404
from assignment_service import decommission_asset
from models import (
    Asset, AssetMovement, AssetStatus, MovementType, MovementSubtype,
    ENTRY_SUBTYPES, EXIT_SUBTYPES, User, to_utc_naive, utcnow,
)
from schemas import MovementIn

logger = logging.getLogger(__name__)


def _movement_query(db: Session):
    return db.query(AssetMovement).options(
        joinedload(AssetMovement.asset).joinedload(Asset.category),
        joinedload(AssetMovement.user),
    )

def _new_movement(db: Session, body: MovementIn, direction: MovementType, user: User) -> AssetMovement:
    movement = AssetMovement(
        asset_id=body.asset_id,
        type=direction,
        movement_type=body.movement_type,
        description=body.description,
        cost=body.cost,
        quantity=body.quantity or 1,
        user_id=user.id,
        date=body.date or utcnow(),
        notes=body.notes,
    )
    db.add(movement)
    return movement

# --------------------------------------------------------------------------
# Entry / exit
# --------------------------------------------------------------------------
def register_entry(db: Session, body: MovementIn, user: User) -> AssetMovement:
    if body.movement_type not in ENTRY_SUBTYPES:
        raise HTTPException(400, "Movement type is not valid for an entry")
    asset = get_asset_or_404(db, body.asset_id)

    movement = _new_movement(db, body, MovementType.ENTRY, user)

    # any entry puts a decommissioned asset back into stock
    if asset.status == AssetStatus.DECOMMISSIONED:
        asset.status = AssetStatus.AVAILABLE

    db.commit()
    logger.info("entry %s registered for asset %s", body.movement_type.value, asset.code)
    return get_movement(db, movement.id)

def register_exit(db: Session, body: MovementIn, user: User) -> AssetMovement:
    if body.movement_type not in EXIT_SUBTYPES:
        raise HTTPException(400, "Movement type is not valid for an exit")
    asset = get_asset_or_404(db, body.asset_id)

    if asset.assigned_to_id and body.movement_type == MovementSubtype.DISPOSAL:
        logger.warning("disposal refused for assigned asset %s", asset.code)
        raise HTTPException(409, "Cannot dispose of an asset that is assigned")

    movement = _new_movement(db, body, MovementType.EXIT, user)

    if body.movement_type == MovementSubtype.DISPOSAL:
        decommission_asset(db, asset, "Disposed")

    db.commit()
    logger.info("exit %s registered for asset %s", body.movement_type.value, asset.code)
    return get_movement(db, movement.id)

# --------------------------------------------------------------------------
# Queries
# --------------------------------------------------------------------------
def movement_history(
    db: Session,
    asset_id: Optional[int] = None,
    type: Optional[MovementType] = None,
    movement_type: Optional[MovementSubtype] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> List[AssetMovement]:
    q = _movement_query(db)
    if asset_id:
        q = q.filter(AssetMovement.asset_id == asset_id)
    if type:
        q = q.filter(AssetMovement.type == type)
    if movement_type:
        q = q.filter(AssetMovement.movement_type == movement_type)
    if start_date:
        q = q.filter(AssetMovement.date >= to_utc_naive(start_date))
    if end_date:
        q = q.filter(AssetMovement.date <= to_utc_naive(end_date))
    return q.order_by(AssetMovement.date.desc(), AssetMovement.id.desc()).all()

def get_movement(db: Session, movement_id: int) -> AssetMovement:
    m = _movement_query(db).filter(AssetMovement.id == movement_id).first()
    if not m:
        raise HTTPException(404, "Movement not found")
    return m
