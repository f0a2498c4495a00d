import logging
from typing import List, Dict, Any

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db import integrity_kind
from models import Asset, Category
from schemas import CategoryIn, CategoryPatch

logger = logging.getLogger(__name__)


def _asset_counts(db: Session) -> Dict[int, int]:
    rows = db.query(Asset.category_id, func.count(Asset.id)).group_by(Asset.category_id).all()
    return {cid: n for cid, n in rows}

def _subcategory_counts(db: Session) -> Dict[int, int]:
    rows = (
        db.query(Category.parent_id, func.count(Category.id))
        .filter(Category.parent_id.isnot(None))
        .group_by(Category.parent_id)
        .all()
    )
    return {pid: n for pid, n in rows}

def _to_out(c: Category, asset_counts, sub_counts) -> Dict[str, Any]:
    return {
        "id": c.id,
        "name": c.name,
        "description": c.description,
        "parent_id": c.parent_id,
        "created_at": c.created_at,
        "updated_at": c.updated_at,
        "asset_count": asset_counts.get(c.id, 0),
        "subcategory_count": sub_counts.get(c.id, 0),
    }

def _integrity_to_http(exc: IntegrityError) -> HTTPException:
    kind = integrity_kind(exc)
    if kind == "unique":
        return HTTPException(409, "A category with that name already exists")
    if kind == "foreign_key":
        return HTTPException(400, "Parent category not found")
    return HTTPException(400, "Category could not be saved")

def get_category_or_404(db: Session, category_id: int) -> Category:
    cat = db.get(Category, category_id)
    if not cat:
        raise HTTPException(404, "Category not found")
    return cat

# --------------------------------------------------------------------------
# Queries
# --------------------------------------------------------------------------
def list_categories(db: Session, main_only: bool = False) -> List[Dict[str, Any]]:
    q = db.query(Category)
    if main_only:
        q = q.filter(Category.parent_id.is_(None))
    cats = q.order_by(Category.name.asc()).all()
    asset_counts = _asset_counts(db)
    sub_counts = _subcategory_counts(db)
    return [_to_out(c, asset_counts, sub_counts) for c in cats]

def get_category(db: Session, category_id: int) -> Dict[str, Any]:
    cat = get_category_or_404(db, category_id)
    out = _to_out(cat, _asset_counts(db), _subcategory_counts(db))
    out["assets"] = sorted(cat.assets, key=lambda a: a.name)
    out["subcategories"] = sorted(cat.subcategories, key=lambda c: c.name)
    return out

# --------------------------------------------------------------------------
# Mutations
# --------------------------------------------------------------------------
def create_category(db: Session, body: CategoryIn) -> Dict[str, Any]:
    if body.parent_id is not None and not db.get(Category, body.parent_id):
        raise HTTPException(400, "Parent category not found")
    cat = Category(name=body.name.strip(), description=body.description, parent_id=body.parent_id)
    db.add(cat)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _integrity_to_http(e)
    db.refresh(cat)
    logger.info("category %r created", cat.name)
    return _to_out(cat, {}, {})

def update_category(db: Session, category_id: int, patch: CategoryPatch) -> Dict[str, Any]:
    cat = get_category_or_404(db, category_id)
    fields = patch.model_dump(exclude_unset=True)

    if "parent_id" in fields and fields["parent_id"] is not None:
        if fields["parent_id"] == category_id:
            raise HTTPException(400, "A category cannot be its own parent")
        if not db.get(Category, fields["parent_id"]):
            raise HTTPException(400, "Parent category not found")

    if fields.get("name") is not None:
        cat.name = fields["name"].strip()
    if "description" in fields:
        cat.description = fields["description"]
    if "parent_id" in fields:
        cat.parent_id = fields["parent_id"]

    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise _integrity_to_http(e)
    db.refresh(cat)
    return _to_out(cat, _asset_counts(db), _subcategory_counts(db))

def delete_category(db: Session, category_id: int) -> Dict[str, str]:
    """
    Categories with assets are kept. Subcategories are removed with their
    parent, but only when none of them hold assets or subcategories of their own.
    """
    cat = get_category_or_404(db, category_id)
    asset_counts = _asset_counts(db)

    if asset_counts.get(cat.id, 0) > 0:
        raise HTTPException(409, "Cannot delete a category that has assets")

    subs = list(cat.subcategories)
    busy = [s.name for s in subs if asset_counts.get(s.id, 0) > 0]
    if busy:
        raise HTTPException(
            409,
            "Cannot delete the category because these subcategories have assets: " + ", ".join(busy),
        )

    nested = [s.name for s in subs if s.subcategories]
    if nested:
        raise HTTPException(
            409,
            "Cannot delete the category because these subcategories have their own subcategories: "
            + ", ".join(nested),
        )

    try:
        for s in subs:
            db.delete(s)
        db.flush()
        db.expire(cat, ["subcategories"])
        db.delete(cat)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "Cannot delete the category because of related records")

    logger.info("category %r deleted (%d subcategories)", cat.name, len(subs))
    return {"message": "Category deleted"}
