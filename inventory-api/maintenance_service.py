import logging
from datetime import datetime, timedelta
from typing import Optional, List

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from asset_service import get_asset_or_404
from models import (
    Asset, AssetStatus, Maintenance, MaintenanceStatus, MaintenanceType, User, to_utc_naive, utcnow,
)
from schemas import MaintenanceIn, MaintenanceComplete

logger = logging.getLogger(__name__)


def _maintenance_query(db: Session):
    return db.query(Maintenance).options(
        joinedload(Maintenance.asset).joinedload(Asset.category),
        joinedload(Maintenance.user),
    )

def _get_or_404(db: Session, maintenance_id: int) -> Maintenance:
    m = db.get(Maintenance, maintenance_id)
    if not m:
        raise HTTPException(404, "Maintenance not found")
    return m

def restore_from_repair(asset: Asset) -> None:
    if asset.status == AssetStatus.IN_REPAIR:
        asset.status = AssetStatus.IN_USE if asset.assigned_to_id else AssetStatus.AVAILABLE

# --------------------------------------------------------------------------
# Lifecycle
# --------------------------------------------------------------------------
def schedule_maintenance(db: Session, body: MaintenanceIn, user: User) -> Maintenance:
    asset = get_asset_or_404(db, body.asset_id)
    if asset.status == AssetStatus.DECOMMISSIONED:
        raise HTTPException(409, "Cannot schedule maintenance for a decommissioned asset")

    m = Maintenance(
        asset_id=asset.id,
        type=body.type,
        status=MaintenanceStatus.SCHEDULED,
        scheduled_date=body.scheduled_date,
        description=body.description,
        performed_by=body.performed_by,
        cost=body.cost,
        user_id=user.id,
        notes=body.notes,
    )
    db.add(m)
    db.commit()
    logger.info("maintenance %s scheduled for asset %s", m.id, asset.code)
    return get_maintenance(db, m.id)

def start_maintenance(db: Session, maintenance_id: int) -> Maintenance:
    m = _get_or_404(db, maintenance_id)
    if m.status != MaintenanceStatus.SCHEDULED:
        raise HTTPException(409, "Only scheduled maintenance can be started")
    if m.asset.status == AssetStatus.DECOMMISSIONED:
        raise HTTPException(409, "Cannot start maintenance on a decommissioned asset")

    m.status = MaintenanceStatus.IN_PROGRESS
    m.asset.status = AssetStatus.IN_REPAIR
    db.commit()
    logger.info("maintenance %s started", m.id)
    return get_maintenance(db, m.id)

def complete_maintenance(db: Session, maintenance_id: int, body: MaintenanceComplete) -> Maintenance:
    m = _get_or_404(db, maintenance_id)
    if m.status in (MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED):
        raise HTTPException(409, f"Maintenance is already {m.status.value.lower()}")

    m.status = MaintenanceStatus.COMPLETED
    m.completed_date = body.completed_date or utcnow()
    if body.cost is not None:
        m.cost = body.cost
    if body.notes is not None:
        m.notes = body.notes
    restore_from_repair(m.asset)
    db.commit()
    logger.info("maintenance %s completed", m.id)
    return get_maintenance(db, m.id)

def cancel_maintenance(db: Session, maintenance_id: int) -> Maintenance:
    m = _get_or_404(db, maintenance_id)
    if m.status == MaintenanceStatus.COMPLETED:
        raise HTTPException(409, "Completed maintenance cannot be cancelled")

    was_running = m.status == MaintenanceStatus.IN_PROGRESS
    m.status = MaintenanceStatus.CANCELLED
    if was_running:
        restore_from_repair(m.asset)
    db.commit()
    logger.info("maintenance %s cancelled", m.id)
    return get_maintenance(db, m.id)

# --------------------------------------------------------------------------
# Queries
# --------------------------------------------------------------------------
def maintenance_history(
    db: Session,
    asset_id: Optional[int] = None,
    type: Optional[MaintenanceType] = None,
    status: Optional[MaintenanceStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> List[Maintenance]:
    q = _maintenance_query(db)
    if asset_id:
        q = q.filter(Maintenance.asset_id == asset_id)
    if type:
        q = q.filter(Maintenance.type == type)
    if status:
        q = q.filter(Maintenance.status == status)
    if start_date:
        q = q.filter(Maintenance.scheduled_date >= to_utc_naive(start_date))
    if end_date:
        q = q.filter(Maintenance.scheduled_date <= to_utc_naive(end_date))
    return q.order_by(Maintenance.scheduled_date.desc(), Maintenance.id.desc()).all()

def upcoming_maintenance(db: Session, days: int = 30) -> List[Maintenance]:
    now = utcnow()
    return (
        _maintenance_query(db)
        .filter(
            Maintenance.status.in_([MaintenanceStatus.SCHEDULED, MaintenanceStatus.IN_PROGRESS]),
            Maintenance.scheduled_date >= now,
            Maintenance.scheduled_date <= now + timedelta(days=days),
        )
        .order_by(Maintenance.scheduled_date.asc())
        .all()
    )

def get_maintenance(db: Session, maintenance_id: int) -> Maintenance:
    m = _maintenance_query(db).filter(Maintenance.id == maintenance_id).first()
    if not m:
        raise HTTPException(404, "Maintenance not found")
    return m
