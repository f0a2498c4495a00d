import logging
import math
from typing import Optional, Dict, Any

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from db import integrity_kind
from models import (
    Asset, AssetStatus, AssetAssignment, AssetMovement, Maintenance, Incident, User,
)
from roles import can_view_all_assets
from schemas import AssetCreate, AssetUpdate

logger = logging.getLogger(__name__)

RECENT_ASSETS = 5

def _asset_query(db: Session):
    return db.query(Asset).options(
        joinedload(Asset.category),
        joinedload(Asset.assigned_to),
    )

def get_asset_or_404(db: Session, asset_id: int) -> Asset:
    asset = db.get(Asset, asset_id)
    if not asset:
        raise HTTPException(404, "Asset not found")
    return asset

def _integrity_to_http(exc: IntegrityError) -> HTTPException:
    kind = integrity_kind(exc)
    if kind == "unique":
        return HTTPException(409, "An asset with that code already exists")
    if kind == "foreign_key":
        return HTTPException(400, "Category not found")
    return HTTPException(400, "Asset could not be saved")

def _check_status_change(asset: Asset, status: AssetStatus) -> None:
    if status == AssetStatus.DECOMMISSIONED and asset.assigned_to_id:
        logger.warning("refused to decommission assigned asset %s", asset.code)
        raise HTTPException(409, "Asset is assigned; return it before decommissioning")

# --------------------------------------------------------------------------
# CRUD
# --------------------------------------------------------------------------
def create_asset(db: Session, data: AssetCreate, created_by: User) -> Asset:
    asset = Asset(**data.model_dump(), created_by_id=created_by.id)
    db.add(asset)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _integrity_to_http(e)
    db.refresh(asset)
    logger.info("asset %s created by user %s", asset.code, created_by.id)
    return asset

def list_assets(
    db: Session,
    user: User,
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    status: Optional[AssetStatus] = None,
    building: Optional[str] = None,
    office: Optional[str] = None,
    laboratory: Optional[str] = None,
    page: int = 1,
    limit: int = 10,
) -> Dict[str, Any]:
    q = db.query(Asset)

    if not can_view_all_assets(user.role):
        q = q.filter(Asset.assigned_to_id == user.id)

    if search:
        like = f"%{search}%"
        q = q.filter(or_(
            Asset.code.ilike(like),
            Asset.name.ilike(like),
            Asset.description.ilike(like),
        ))
    if category_id:
        q = q.filter(Asset.category_id == category_id)
    if status:
        q = q.filter(Asset.status == status)
    if building:
        q = q.filter(Asset.building.ilike(f"%{building}%"))
    if office:
        q = q.filter(Asset.office.ilike(f"%{office}%"))
    if laboratory:
        q = q.filter(Asset.laboratory.ilike(f"%{laboratory}%"))

    total = q.count()
    assets = (
        q.options(joinedload(Asset.category), joinedload(Asset.assigned_to))
        .order_by(Asset.created_at.desc(), Asset.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "assets": assets,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit),
        },
    }

def get_asset(db: Session, asset_id: int, user: Optional[User] = None) -> Asset:
    asset = _asset_query(db).filter(Asset.id == asset_id).first()
    if not asset:
        raise HTTPException(404, "Asset not found")
    if user is not None and not can_view_all_assets(user.role) and asset.assigned_to_id != user.id:
        raise HTTPException(403, "You do not have permission to view this asset")
    return asset

def get_asset_by_code(db: Session, code: str) -> Asset:
    asset = _asset_query(db).filter(Asset.code == code).first()
    if not asset:
        raise HTTPException(404, "Asset not found")
    return asset

def update_asset(db: Session, asset_id: int, patch: AssetUpdate) -> Asset:
    asset = get_asset_or_404(db, asset_id)
    if patch.status is not None:
        _check_status_change(asset, patch.status)
    for field, value in patch.model_dump(exclude_unset=True).items():
        if value is None and field in ("name", "acquisition_cost", "purchase_date",
                                       "useful_life", "residual_value", "status", "category_id"):
            continue
        setattr(asset, field, value)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _integrity_to_http(e)
    db.refresh(asset)
    logger.info("asset %s updated", asset.code)
    return asset

def change_asset_status(db: Session, asset_id: int, status: AssetStatus) -> Asset:
    asset = get_asset_or_404(db, asset_id)
    _check_status_change(asset, status)
    asset.status = status
    db.commit()
    db.refresh(asset)
    logger.info("asset %s status -> %s", asset.code, status.value)
    return asset

def delete_asset(db: Session, asset_id: int) -> Dict[str, str]:
    asset = get_asset_or_404(db, asset_id)
    if asset.assigned_to_id:
        raise HTTPException(409, "Asset is assigned; return it first")

    has_history = any(
        db.query(model.id).filter(model.asset_id == asset_id).first() is not None
        for model in (AssetAssignment, AssetMovement, Maintenance, Incident)
    )
    if has_history:
        raise HTTPException(409, "Asset has history records; decommission it instead")

    db.delete(asset)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "Asset has related records; decommission it instead")
    logger.info("asset %s deleted", asset.code)
    return {"message": "Asset deleted"}

def asset_stats(db: Session) -> Dict[str, Any]:
    total = db.query(Asset).count()
    recent = (
        _asset_query(db)
        .order_by(Asset.created_at.desc(), Asset.id.desc())
        .limit(RECENT_ASSETS)
        .all()
    )
    return {"total": total, "recent_assets": recent}
