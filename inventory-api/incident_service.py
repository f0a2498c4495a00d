import logging
from datetime import datetime
from typing import Optional, List

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from asset_service import get_asset_or_404
from assignment_service import decommission_asset
from maintenance_service import restore_from_repair
from models import (
    Asset, AssetStatus, Incident, IncidentStatus, IncidentType, User, to_utc_naive, utcnow,
)
from schemas import IncidentIn, IncidentResolve

logger = logging.getLogger(__name__)

# incident types that take the asset out of the inventory
LOSS_TYPES = (IncidentType.THEFT, IncidentType.LOSS)


def _incident_query(db: Session):
    return db.query(Incident).options(
        joinedload(Incident.asset).joinedload(Asset.category),
        joinedload(Incident.reported_by),
    )

def _get_or_404(db: Session, incident_id: int) -> Incident:
    inc = db.get(Incident, incident_id)
    if not inc:
        raise HTTPException(404, "Incident not found")
    return inc

# --------------------------------------------------------------------------
# Lifecycle
# --------------------------------------------------------------------------
def report_incident(db: Session, body: IncidentIn, user: User) -> Incident:
    asset = get_asset_or_404(db, body.asset_id)
    if asset.status == AssetStatus.DECOMMISSIONED:
        raise HTTPException(409, "Cannot report an incident for a decommissioned asset")

    inc = Incident(
        asset_id=asset.id,
        type=body.type,
        status=IncidentStatus.REPORTED,
        description=body.description,
        reported_date=utcnow(),
        reported_by_id=user.id,
        cost=body.cost,
        notes=body.notes,
    )
    db.add(inc)

    if body.type in LOSS_TYPES:
        decommission_asset(db, asset, f"Closed by {body.type.value.lower()} report")
        logger.warning("asset %s decommissioned after %s report", asset.code, body.type.value)

    db.commit()
    logger.info("incident %s reported for asset %s", inc.id, asset.code)
    return get_incident(db, inc.id)

def investigate_incident(db: Session, incident_id: int) -> Incident:
    inc = _get_or_404(db, incident_id)
    if inc.status != IncidentStatus.REPORTED:
        raise HTTPException(409, "Only reported incidents can be put under investigation")
    inc.status = IncidentStatus.INVESTIGATING
    db.commit()
    logger.info("incident %s under investigation", inc.id)
    return get_incident(db, inc.id)

def resolve_incident(db: Session, incident_id: int, body: IncidentResolve) -> Incident:
    inc = _get_or_404(db, incident_id)
    if inc.status in (IncidentStatus.RESOLVED, IncidentStatus.CLOSED):
        raise HTTPException(409, f"Incident is already {inc.status.value.lower()}")

    inc.status = IncidentStatus.RESOLVED
    inc.resolution = body.resolution
    inc.resolved_date = body.resolved_date or utcnow()
    if body.cost is not None:
        inc.cost = body.cost
    if inc.type == IncidentType.DAMAGE:
        restore_from_repair(inc.asset)
    db.commit()
    logger.info("incident %s resolved", inc.id)
    return get_incident(db, inc.id)

def close_incident(db: Session, incident_id: int) -> Incident:
    inc = _get_or_404(db, incident_id)
    if inc.status != IncidentStatus.RESOLVED:
        raise HTTPException(409, "Only resolved incidents can be closed")
    inc.status = IncidentStatus.CLOSED
    db.commit()
    logger.info("incident %s closed", inc.id)
    return get_incident(db, inc.id)

# --------------------------------------------------------------------------
# Queries
# --------------------------------------------------------------------------
def incident_history(
    db: Session,
    asset_id: Optional[int] = None,
    type: Optional[IncidentType] = None,
    status: Optional[IncidentStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> List[Incident]:
    q = _incident_query(db)
    if asset_id:
        q = q.filter(Incident.asset_id == asset_id)
    if type:
        q = q.filter(Incident.type == type)
    if status:
        q = q.filter(Incident.status == status)
    if start_date:
        q = q.filter(Incident.reported_date >= to_utc_naive(start_date))
    if end_date:
        q = q.filter(Incident.reported_date <= to_utc_naive(end_date))
    return q.order_by(Incident.reported_date.desc(), Incident.id.desc()).all()

def active_incidents(db: Session) -> List[Incident]:
    return (
        _incident_query(db)
        .filter(Incident.status.in_([IncidentStatus.REPORTED, IncidentStatus.INVESTIGATING]))
        .order_by(Incident.reported_date.desc(), Incident.id.desc())
        .all()
    )

def get_incident(db: Session, incident_id: int) -> Incident:
    inc = _incident_query(db).filter(Incident.id == incident_id).first()
    if not inc:
        raise HTTPException(404, "Incident not found")
    return inc
