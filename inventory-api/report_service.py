"""
Inventory reports.

Every report loads its assets through the ORM and does the grouping and
totals in Python. Each asset row is enriched with its age, remaining useful
life and straight-line depreciation.
"""
import logging
import math
from collections import OrderedDict
from datetime import date, datetime, timezone
from typing import Optional, List, Dict, Any, Callable

from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from models import (
    Asset, AssetStatus, Category, Maintenance, MaintenanceStatus, User,
)
from schemas import AssetOut, ReportRequest

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30


# --------------------------------------------------------------------------
# Asset enrichment
# --------------------------------------------------------------------------
def asset_age_days(purchase_date: Optional[date], today: Optional[date] = None) -> int:
    if not purchase_date:
        return 0
    today = today or date.today()
    return abs((today - purchase_date).days)

def remaining_life_months(purchase_date, useful_life, today=None) -> Optional[int]:
    if not purchase_date or not useful_life:
        return None
    age_months = asset_age_days(purchase_date, today) / DAYS_PER_MONTH
    remaining = useful_life * 12 - age_months
    # half-up rounding
    return max(0, math.floor(remaining + 0.5))

def depreciation_percent(purchase_date, useful_life, cost, residual, today=None) -> Optional[float]:
    if not purchase_date or not useful_life or not cost:
        return None
    age_months = asset_age_days(purchase_date, today) / DAYS_PER_MONTH
    life_months = useful_life * 12
    if age_months >= life_months:
        return 100.0
    per_month = (cost - (residual or 0)) / life_months
    return min(100.0, per_month * age_months / cost * 100)

def enrich_asset(asset: Asset, today: Optional[date] = None) -> Dict[str, Any]:
    row = AssetOut.model_validate(asset).model_dump(mode="json")
    row["days_in_use"] = asset_age_days(asset.purchase_date, today)
    row["remaining_life"] = remaining_life_months(asset.purchase_date, asset.useful_life, today)
    row["depreciation_percent"] = depreciation_percent(
        asset.purchase_date, asset.useful_life, asset.acquisition_cost, asset.residual_value, today,
    )
    return row

# --------------------------------------------------------------------------
# Shared helpers
# --------------------------------------------------------------------------
def _asset_query(db: Session):
    return db.query(Asset).options(
        joinedload(Asset.category),
        joinedload(Asset.assigned_to),
    )

def _total_value(rows: List[Dict[str, Any]]) -> float:
    return sum(r["acquisition_cost"] or 0 for r in rows)

def _summary(rows: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "total_assets": len(rows),
        "total_value": _total_value(rows),
        "average_age": (sum(r["days_in_use"] for r in rows) / len(rows)) if rows else 0,
    }

def _group(rows: List[Dict[str, Any]], label_of: Callable[[Dict[str, Any]], str]):
    groups: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for r in rows:
        groups.setdefault(label_of(r), []).append(r)
    grouped_data = [
        {"label": label, "count": len(items), "total_value": _total_value(items), "assets": items}
        for label, items in groups.items()
    ]
    counts = {label: len(items) for label, items in groups.items()}
    return grouped_data, counts

# --------------------------------------------------------------------------
# Report builders: each returns (assets, summary_extra, grouped_data)
# --------------------------------------------------------------------------
def _by_category(db: Session, req: ReportRequest):
    q = _asset_query(db).join(Asset.category)
    if req.category_id:
        ids = [req.category_id]
        if req.include_subcategories:
            ids += [cid for (cid,) in db.query(Category.id).filter(Category.parent_id == req.category_id)]
        q = q.filter(Asset.category_id.in_(ids))
    assets = q.order_by(Category.name.asc(), Asset.name.asc()).all()

    rows = [enrich_asset(a) for a in assets]
    grouped, counts = _group(rows, lambda r: (r["category"] or {}).get("name") or "No category")
    return rows, {"by_category": counts}, grouped

def _by_location(db: Session, req: ReportRequest):
    q = _asset_query(db)
    if req.location:
        like = f"%{req.location}%"
        q = q.filter(or_(
            Asset.building.ilike(like),
            Asset.office.ilike(like),
            Asset.current_location.ilike(like),
        ))
    assets = q.order_by(Asset.building.asc(), Asset.office.asc(), Asset.id.asc()).all()

    rows = [enrich_asset(a) for a in assets]
    grouped, counts = _group(
        rows, lambda r: f"{r['building'] or 'No building'} - {r['office'] or 'No office'}",
    )
    return rows, {"by_location": counts}, grouped

def _by_status(db: Session, req: ReportRequest):
    q = _asset_query(db)
    if req.status:
        q = q.filter(Asset.status == req.status)
    assets = q.order_by(Asset.status.asc(), Asset.name.asc()).all()

    rows = [enrich_asset(a) for a in assets]
    grouped, counts = _group(rows, lambda r: r["status"])
    return rows, {"by_status": counts}, grouped

def _by_responsible(db: Session, req: ReportRequest):
    q = _asset_query(db)
    if req.responsible_id:
        q = q.filter(Asset.assigned_to_id == req.responsible_id)
    else:
        q = q.filter(Asset.assigned_to_id.isnot(None))
    assets = q.order_by(Asset.name.asc()).all()

    rows = [enrich_asset(a) for a in assets]

    def label(r):
        who = r["assigned_to"] or {}
        return who.get("name") or who.get("email") or "Unassigned"

    grouped, _ = _group(rows, label)
    return rows, {}, grouped

def _useful_life_expiring(db: Session, req: ReportRequest):
    rows = [enrich_asset(a) for a in _asset_query(db).all()]
    rows = [
        r for r in rows
        if r["remaining_life"] is not None and 0 <= r["remaining_life"] <= req.months_to_expire
    ]
    rows.sort(key=lambda r: r["remaining_life"])
    return rows, {}, None

def _maintenance_pending(db: Session, req: ReportRequest):
    pending = (
        db.query(Maintenance)
        .options(
            joinedload(Maintenance.asset).joinedload(Asset.category),
            joinedload(Maintenance.asset).joinedload(Asset.assigned_to),
        )
        .filter(Maintenance.status.in_([MaintenanceStatus.SCHEDULED, MaintenanceStatus.IN_PROGRESS]))
        .order_by(Maintenance.scheduled_date.asc())
        .all()
    )
    # one row per pending maintenance, so an asset can appear more than once
    rows = [enrich_asset(m.asset) for m in pending]
    return rows, {}, None

def _in_repair(db: Session, req: ReportRequest):
    assets = (
        _asset_query(db)
        .filter(Asset.status == AssetStatus.IN_REPAIR)
        .order_by(Asset.updated_at.desc(), Asset.id.desc())
        .all()
    )
    return [enrich_asset(a) for a in assets], {}, None


REPORT_BUILDERS = {
    "BY_CATEGORY": _by_category,
    "BY_LOCATION": _by_location,
    "BY_STATUS": _by_status,
    "BY_RESPONSIBLE": _by_responsible,
    "USEFUL_LIFE_EXPIRING": _useful_life_expiring,
    "MAINTENANCE_PENDING": _maintenance_pending,
    "IN_REPAIR": _in_repair,
}

REPORT_TYPES = [
    {"type": "BY_CATEGORY", "label": "By category",
     "description": "Assets grouped by category",
     "filters": ["category_id", "include_subcategories"]},
    {"type": "BY_LOCATION", "label": "By location",
     "description": "Assets by physical location",
     "filters": ["location"]},
    {"type": "BY_STATUS", "label": "By status",
     "description": "Assets by status",
     "filters": ["status"]},
    {"type": "BY_RESPONSIBLE", "label": "By responsible",
     "description": "Assets assigned to each responsible",
     "filters": ["responsible_id"]},
    {"type": "USEFUL_LIFE_EXPIRING", "label": "Useful life expiring",
     "description": "Assets close to the end of their useful life",
     "filters": ["months_to_expire"]},
    {"type": "MAINTENANCE_PENDING", "label": "Maintenance pending",
     "description": "Assets with scheduled or in-progress maintenance",
     "filters": []},
    {"type": "IN_REPAIR", "label": "In repair",
     "description": "Assets currently in repair",
     "filters": []},
]

# --------------------------------------------------------------------------
# Public API
# --------------------------------------------------------------------------
def generate_report(db: Session, req: ReportRequest, user: User) -> Dict[str, Any]:
    builder = REPORT_BUILDERS.get(req.report_type)
    if builder is None:
        raise HTTPException(400, f"Unsupported report type: {req.report_type}")

    rows, extra, grouped = builder(db, req)
    summary = _summary(rows)
    summary.update(extra)

    logger.info("report %s generated by user %s (%d assets)", req.report_type, user.id, len(rows))
    return {
        "report_type": req.report_type,
        "filters": req.model_dump(mode="json", exclude_none=True),
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "generated_by": {"id": user.id, "email": user.email, "name": user.name},
        "summary": summary,
        "assets": rows,
        "grouped_data": grouped,
    }

def report_summary(db: Session, user: User) -> Dict[str, Any]:
    def run(report_type):
        return generate_report(db, ReportRequest(report_type=report_type), user)["summary"]

    by_status = run("BY_STATUS")
    by_category = run("BY_CATEGORY")
    return {
        "summary": {
            "total_assets": by_status["total_assets"],
            "total_value": by_status["total_value"],
            "average_age": by_status["average_age"],
            "by_status": by_status["by_status"],
            "by_category": by_category["by_category"],
            "maintenance_pending": run("MAINTENANCE_PENDING")["total_assets"],
            "in_repair": run("IN_REPAIR")["total_assets"],
        },
        "generated_at": datetime.now(timezone.utc).isoformat(),
    }
