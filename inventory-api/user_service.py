import logging
from typing import List, Dict, Any

from fastapi import HTTPException
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from models import Asset, User, UserRole
from roles import can_view_all_assets
from schemas import RegisterIn, LoginIn, UserCreate, UserPatch, PasswordChange
from security import hash_password, verify_password, token_for_user

logger = logging.getLogger(__name__)


def get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(404, "User not found")
    return user

def _email_taken(db: Session, email: str) -> bool:
    return db.query(User.id).filter(User.email == email).first() is not None

def _counts(db: Session, user_id: int) -> Dict[str, int]:
    created = db.query(func.count(Asset.id)).filter(Asset.created_by_id == user_id).scalar()
    assigned = db.query(func.count(Asset.id)).filter(Asset.assigned_to_id == user_id).scalar()
    return {"created_assets": created or 0, "assigned_assets": assigned or 0}

def _new_user(db: Session, email: str, password: str, name, role: UserRole) -> User:
    if _email_taken(db, email):
        raise HTTPException(409, "Email is already registered")
    user = User(email=email, name=name, password_hash=hash_password(password), role=role)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(409, "Email is already registered")
    db.refresh(user)
    return user

# --------------------------------------------------------------------------
# Auth
# --------------------------------------------------------------------------
def register_user(db: Session, body: RegisterIn) -> Dict[str, Any]:
    # self-registration never grants an elevated role
    user = _new_user(db, body.email, body.password, body.name, UserRole.ASSET_RESPONSIBLE)
    logger.info("user %s registered", user.email)
    return {"access_token": token_for_user(user), "user": user}

def login_user(db: Session, body: LoginIn) -> Dict[str, Any]:
    user = db.query(User).filter(User.email == body.email).first()
    if not user or not verify_password(body.password, user.password_hash):
        logger.warning("failed login for %s", body.email)
        raise HTTPException(401, "Invalid credentials")
    if not user.is_active:
        logger.warning("login attempt for inactive user %s", body.email)
        raise HTTPException(401, "Invalid credentials")
    return {"access_token": token_for_user(user), "user": user}

# --------------------------------------------------------------------------
# Admin CRUD
# --------------------------------------------------------------------------
def list_users(db: Session) -> List[Dict[str, Any]]:
    users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()
    created = dict(
        db.query(Asset.created_by_id, func.count(Asset.id)).group_by(Asset.created_by_id).all()
    )
    assigned = dict(
        db.query(Asset.assigned_to_id, func.count(Asset.id))
        .filter(Asset.assigned_to_id.isnot(None))
        .group_by(Asset.assigned_to_id)
        .all()
    )
    out = []
    for u in users:
        out.append({
            "id": u.id, "email": u.email, "name": u.name, "role": u.role,
            "is_active": u.is_active, "created_at": u.created_at, "updated_at": u.updated_at,
            "counts": {
                "created_assets": created.get(u.id, 0),
                "assigned_assets": assigned.get(u.id, 0),
            },
        })
    return out

def get_user(db: Session, user_id: int) -> Dict[str, Any]:
    u = get_user_or_404(db, user_id)
    return {
        "id": u.id, "email": u.email, "name": u.name, "role": u.role,
        "is_active": u.is_active, "created_at": u.created_at, "updated_at": u.updated_at,
        "counts": _counts(db, u.id),
    }

def create_user(db: Session, body: UserCreate) -> User:
    user = _new_user(db, body.email, body.password, body.name, body.role)
    logger.info("user %s created with role %s", user.email, user.role.value)
    return user

def update_user(db: Session, user_id: int, patch: UserPatch) -> User:
    user = get_user_or_404(db, user_id)
    fields = patch.model_dump(exclude_unset=True)

    if fields.get("email") and fields["email"] != user.email:
        if _email_taken(db, fields["email"]):
            raise HTTPException(409, "Email is already registered")
        user.email = fields["email"]
    if "name" in fields:
        user.name = fields["name"]
    if fields.get("role") is not None:
        user.role = fields["role"]
    if fields.get("is_active") is not None:
        user.is_active = fields["is_active"]

    db.commit()
    db.refresh(user)
    logger.info("user %s updated", user.id)
    return user

def change_password(db: Session, user: User, body: PasswordChange) -> Dict[str, Any]:
    if not verify_password(body.current_password, user.password_hash):
        raise HTTPException(400, "Current password is incorrect")
    user.password_hash = hash_password(body.new_password)
    db.commit()
    logger.info("user %s changed password", user.id)
    return {"message": "Password updated"}

def delete_user(db: Session, user_id: int, requesting_user: User) -> Dict[str, Any]:
    """
    Delete a user account.

    - You cannot delete yourself.
    - Users still holding assets are refused (409).
    - Users who created assets are deactivated instead, so the audit
      trail on those assets stays intact.
    """
    if user_id == requesting_user.id:
        raise HTTPException(400, "You cannot delete your own account")

    user = get_user_or_404(db, user_id)
    counts = _counts(db, user.id)

    if counts["assigned_assets"] > 0:
        raise HTTPException(
            409,
            f"Cannot delete the user because they have {counts['assigned_assets']} assigned asset(s)",
        )

    if counts["created_assets"] > 0:
        user.is_active = False
        db.commit()
        db.refresh(user)
        logger.info("user %s deactivated (has created assets)", user.id)
        return {"message": "User deactivated (has created assets)", "user": user}

    db.delete(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # still referenced by assignment/movement/maintenance/incident history
        user = get_user_or_404(db, user_id)
        user.is_active = False
        db.commit()
        db.refresh(user)
        logger.info("user %s deactivated (has history records)", user.id)
        return {"message": "User deactivated (has history records)", "user": user}

    logger.info("user %s deleted", user_id)
    return {"message": "User deleted"}

# --------------------------------------------------------------------------
# Responsibles / assigned assets
# --------------------------------------------------------------------------
def list_responsibles(db: Session) -> List[Dict[str, Any]]:
    users = (
        db.query(User)
        .filter(User.is_active.is_(True))
        .order_by(User.name.asc(), User.email.asc())
        .all()
    )
    assigned = dict(
        db.query(Asset.assigned_to_id, func.count(Asset.id))
        .filter(Asset.assigned_to_id.isnot(None))
        .group_by(Asset.assigned_to_id)
        .all()
    )
    return [
        {"id": u.id, "email": u.email, "name": u.name, "role": u.role,
         "assigned_assets": assigned.get(u.id, 0)}
        for u in users
    ]

def user_assigned_assets(db: Session, user_id: int, requesting_user: User) -> List[Asset]:
    if not can_view_all_assets(requesting_user.role) and requesting_user.id != user_id:
        raise HTTPException(403, "You can only view your own assets")
    get_user_or_404(db, user_id)
    return (
        db.query(Asset)
        .options(joinedload(Asset.category))
        .filter(Asset.assigned_to_id == user_id)
        .order_by(Asset.assigned_at.desc())
        .all()
    )
