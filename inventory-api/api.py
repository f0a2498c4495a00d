from fastapi import FastAPI, HTTPException, Depends, Path, Query
from typing import Optional, List
from contextlib import asynccontextmanager
from datetime import datetime
import logging, os

from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jwt import PyJWTError
from sqlalchemy.orm import Session

from db import get_db, init_db
from models import (
    User, AssetStatus, AssignmentStatus, MovementType, MovementSubtype,
    MaintenanceType, MaintenanceStatus, IncidentType, IncidentStatus,
)
from roles import has_permission, get_role_permissions, can_manage_assets, can_manage_users
from security import decode_token
from schemas import (
    RegisterIn, LoginIn, TokenOut, MeOut, UserOut, UserWithCountsOut, UserCreate, UserPatch,
    PasswordChange, UserDeleteOut, ResponsibleOut, MessageOut,
    CategoryIn, CategoryPatch, CategoryOut, CategoryDetailOut,
    AssetCreate, AssetUpdate, StatusChange, AssetOut, AssetPageOut, AssetStatsOut,
    AssignIn, ReturnIn, TransferIn, AssignmentOut,
    MovementIn, MovementOut,
    MaintenanceIn, MaintenanceComplete, MaintenanceOut,
    IncidentIn, IncidentResolve, IncidentOut,
    ReportRequest, ReportTypeOut, ReportOut, ReportSummaryOut,
)
import asset_service, assignment_service, category_service, incident_service
import maintenance_service, movement_service, report_service, user_service

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------
# App / CORS
# --------------------------------------------------------------------------
auth_scheme = HTTPBearer(auto_error=True)

@asynccontextmanager
async def lifespan(_app: FastAPI):
    init_db()
    yield

app = FastAPI(title="Inventory API", version="1.0", lifespan=lifespan)

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_methods=["*"],
    allow_headers=["*"],
    allow_credentials=True,
)

# --------------------------------------------------------------------------
# Auth helpers
# --------------------------------------------------------------------------
def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
    db: Session = Depends(get_db),
) -> User:
    try:
        payload = decode_token(credentials.credentials)
        user_id = int(payload.get("sub"))
    except (PyJWTError, TypeError, ValueError):
        raise HTTPException(401, "Invalid or expired token")

    user = db.get(User, user_id)
    if not user or not user.is_active:
        raise HTTPException(401, "User inactive or not found")
    return user

def require_permission(resource: str, action: str):
    def checker(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user.role, resource, action):
            logger.warning("user %s denied %s.%s", user.id, resource, action)
            raise HTTPException(403, "You do not have permission to perform this action")
        return user
    return checker

def require_inventory_access(user: User = Depends(get_current_user)) -> User:
    if not can_manage_assets(user.role):
        raise HTTPException(403, "Inventory access required")
    return user

def require_admin(user: User = Depends(get_current_user)) -> User:
    if not can_manage_users(user.role):
        raise HTTPException(403, "Admin only")
    return user

# --------------------------------------------------------------------------
# Health
# --------------------------------------------------------------------------
@app.get("/health")
def health():
    return {"ok": True}

# --------------------------------------------------------------------------
# Auth
# --------------------------------------------------------------------------
@app.post("/auth/register", status_code=201, response_model=TokenOut)
def register(body: RegisterIn, db: Session = Depends(get_db)):
    return user_service.register_user(db, body)

@app.post("/auth/login", response_model=TokenOut)
def login(body: LoginIn, db: Session = Depends(get_db)):
    return user_service.login_user(db, body)

@app.get("/auth/me", response_model=MeOut)
def me(user: User = Depends(get_current_user)):
    out = UserOut.model_validate(user).model_dump()
    out["permissions"] = get_role_permissions(user.role)
    return out

# --------------------------------------------------------------------------
# Users
# --------------------------------------------------------------------------
@app.get("/users", response_model=List[UserWithCountsOut])
def list_users(db: Session = Depends(get_db), _u = Depends(require_permission("users", "read"))):
    return user_service.list_users(db)

@app.post("/users", status_code=201, response_model=UserOut)
def create_user_api(body: UserCreate, db: Session = Depends(get_db), _admin = Depends(require_admin)):
    return user_service.create_user(db, body)

@app.get("/users/responsibles", response_model=List[ResponsibleOut])
def list_responsibles(db: Session = Depends(get_db), _u = Depends(require_inventory_access)):
    return user_service.list_responsibles(db)

@app.put("/users/me/password", response_model=MessageOut)
def change_my_password(body: PasswordChange, db: Session = Depends(get_db),
                       user: User = Depends(get_current_user)):
    return user_service.change_password(db, user, body)

@app.get("/users/{user_id}", response_model=UserWithCountsOut)
def get_user_api(user_id: int, db: Session = Depends(get_db),
                 _u = Depends(require_permission("users", "read"))):
    return user_service.get_user(db, user_id)

@app.put("/users/{user_id}", response_model=UserOut)
def update_user_api(user_id: int, body: UserPatch, db: Session = Depends(get_db),
                    _admin = Depends(require_admin)):
    return user_service.update_user(db, user_id, body)

@app.delete("/users/{user_id}", response_model=UserDeleteOut)
def delete_user_api(user_id: int, db: Session = Depends(get_db), admin: User = Depends(require_admin)):
    return user_service.delete_user(db, user_id, admin)

@app.get("/users/{user_id}/assets", response_model=List[AssetOut])
def user_assets(user_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return user_service.user_assigned_assets(db, user_id, user)

# --------------------------------------------------------------------------
# Categories
# --------------------------------------------------------------------------
@app.get("/categories", response_model=List[CategoryOut])
def list_categories(db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return category_service.list_categories(db)

@app.get("/categories/main", response_model=List[CategoryOut])
def list_main_categories(db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return category_service.list_categories(db, main_only=True)

@app.post("/categories", status_code=201, response_model=CategoryOut)
def create_category(body: CategoryIn, db: Session = Depends(get_db),
                    _u = Depends(require_permission("categories", "create"))):
    return category_service.create_category(db, body)

@app.get("/categories/{category_id}", response_model=CategoryDetailOut)
def get_category(category_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return category_service.get_category(db, category_id)

@app.put("/categories/{category_id}", response_model=CategoryOut)
def update_category(category_id: int, body: CategoryPatch, db: Session = Depends(get_db),
                    _u = Depends(require_permission("categories", "update"))):
    return category_service.update_category(db, category_id, body)

@app.delete("/categories/{category_id}", response_model=MessageOut)
def delete_category(category_id: int, db: Session = Depends(get_db),
                    _u = Depends(require_permission("categories", "delete"))):
    return category_service.delete_category(db, category_id)

# --------------------------------------------------------------------------
# Assets
# --------------------------------------------------------------------------
@app.get("/assets", response_model=AssetPageOut)
def list_assets(
    search: Optional[str] = None,
    category_id: Optional[int] = None,
    status: Optional[AssetStatus] = None,
    building: Optional[str] = None,
    office: Optional[str] = None,
    laboratory: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=1000),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return asset_service.list_assets(
        db, user, search=search, category_id=category_id, status=status,
        building=building, office=office, laboratory=laboratory, page=page, limit=limit,
    )

@app.post("/assets", status_code=201, response_model=AssetOut)
def create_asset(body: AssetCreate, db: Session = Depends(get_db),
                 user: User = Depends(require_permission("assets", "create"))):
    asset = asset_service.create_asset(db, body, user)
    return asset_service.get_asset(db, asset.id)

@app.get("/assets/stats", response_model=AssetStatsOut)
def asset_stats(db: Session = Depends(get_db), _u = Depends(require_permission("assets", "viewAll"))):
    return asset_service.asset_stats(db)

@app.get("/assets/code/{code}", response_model=AssetOut)
def get_asset_by_code(code: str = Path(..., min_length=1), db: Session = Depends(get_db),
                      user: User = Depends(get_current_user)):
    asset = asset_service.get_asset_by_code(db, code)
    return asset_service.get_asset(db, asset.id, user)

@app.get("/assets/{asset_id}", response_model=AssetOut)
def get_asset(asset_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return asset_service.get_asset(db, asset_id, user)

@app.put("/assets/{asset_id}", response_model=AssetOut)
def update_asset(asset_id: int, body: AssetUpdate, db: Session = Depends(get_db),
                 _u = Depends(require_permission("assets", "update"))):
    asset_service.update_asset(db, asset_id, body)
    return asset_service.get_asset(db, asset_id)

@app.patch("/assets/{asset_id}/status", response_model=AssetOut)
def change_asset_status(asset_id: int, body: StatusChange, db: Session = Depends(get_db),
                        _u = Depends(require_permission("assets", "update"))):
    asset_service.change_asset_status(db, asset_id, body.status)
    return asset_service.get_asset(db, asset_id)

@app.delete("/assets/{asset_id}", response_model=MessageOut)
def delete_asset(asset_id: int, db: Session = Depends(get_db),
                 _u = Depends(require_permission("assets", "delete"))):
    return asset_service.delete_asset(db, asset_id)

# --------------------------------------------------------------------------
# Assignments
# --------------------------------------------------------------------------
@app.get("/assignments", response_model=List[AssignmentOut])
def assignment_history(
    asset_id: Optional[int] = None,
    user_id: Optional[int] = None,
    status: Optional[AssignmentStatus] = None,
    db: Session = Depends(get_db),
    _u = Depends(get_current_user),
):
    return assignment_service.assignment_history(db, asset_id=asset_id, user_id=user_id, status=status)

@app.get("/assignments/active", response_model=List[AssignmentOut])
def active_assignments(db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return assignment_service.active_assignments(db)

@app.post("/assignments", status_code=201, response_model=AssignmentOut)
def assign_asset(body: AssignIn, db: Session = Depends(get_db),
                 user: User = Depends(require_inventory_access)):
    return assignment_service.assign_asset(db, body, user)

@app.get("/assignments/asset/{asset_id}", response_model=List[AssignmentOut])
def asset_assignment_history(asset_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return assignment_service.assignment_history(db, asset_id=asset_id)

@app.get("/assignments/user/{user_id}", response_model=List[AssignmentOut])
def user_assignment_history(user_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return assignment_service.assignment_history(db, user_id=user_id)

@app.get("/assignments/{assignment_id}", response_model=AssignmentOut)
def get_assignment(assignment_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return assignment_service.get_assignment(db, assignment_id)

@app.post("/assignments/{asset_id}/return", response_model=AssignmentOut)
def return_asset(asset_id: int, body: Optional[ReturnIn] = None, db: Session = Depends(get_db),
                 _u = Depends(require_inventory_access)):
    return assignment_service.return_asset(db, asset_id, body.notes if body else None)

@app.post("/assignments/{asset_id}/transfer", response_model=AssignmentOut)
def transfer_asset(asset_id: int, body: TransferIn, db: Session = Depends(get_db),
                   user: User = Depends(require_inventory_access)):
    return assignment_service.transfer_asset(db, asset_id, body, user)

# --------------------------------------------------------------------------
# Movements
# --------------------------------------------------------------------------
@app.get("/movements", response_model=List[MovementOut])
def movement_history(
    asset_id: Optional[int] = None,
    type: Optional[MovementType] = None,
    movement_type: Optional[MovementSubtype] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    _u = Depends(get_current_user),
):
    return movement_service.movement_history(
        db, asset_id=asset_id, type=type, movement_type=movement_type,
        start_date=start_date, end_date=end_date,
    )

@app.post("/movements/entry", status_code=201, response_model=MovementOut)
def register_entry(body: MovementIn, db: Session = Depends(get_db),
                   user: User = Depends(require_inventory_access)):
    return movement_service.register_entry(db, body, user)

@app.post("/movements/exit", status_code=201, response_model=MovementOut)
def register_exit(body: MovementIn, db: Session = Depends(get_db),
                  user: User = Depends(require_inventory_access)):
    return movement_service.register_exit(db, body, user)

@app.get("/movements/asset/{asset_id}", response_model=List[MovementOut])
def asset_movements(asset_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return movement_service.movement_history(db, asset_id=asset_id)

@app.get("/movements/{movement_id}", response_model=MovementOut)
def get_movement(movement_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return movement_service.get_movement(db, movement_id)

# --------------------------------------------------------------------------
# Maintenance
# --------------------------------------------------------------------------
@app.get("/maintenance", response_model=List[MaintenanceOut])
def maintenance_history(
    asset_id: Optional[int] = None,
    type: Optional[MaintenanceType] = None,
    status: Optional[MaintenanceStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    _u = Depends(get_current_user),
):
    return maintenance_service.maintenance_history(
        db, asset_id=asset_id, type=type, status=status, start_date=start_date, end_date=end_date,
    )

@app.get("/maintenance/upcoming", response_model=List[MaintenanceOut])
def upcoming_maintenance(days: int = Query(30, ge=1), db: Session = Depends(get_db),
                         _u = Depends(get_current_user)):
    return maintenance_service.upcoming_maintenance(db, days)

@app.post("/maintenance", status_code=201, response_model=MaintenanceOut)
def schedule_maintenance(body: MaintenanceIn, db: Session = Depends(get_db),
                         user: User = Depends(get_current_user)):
    return maintenance_service.schedule_maintenance(db, body, user)

@app.get("/maintenance/asset/{asset_id}", response_model=List[MaintenanceOut])
def asset_maintenance(asset_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return maintenance_service.maintenance_history(db, asset_id=asset_id)

@app.get("/maintenance/{maintenance_id}", response_model=MaintenanceOut)
def get_maintenance(maintenance_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return maintenance_service.get_maintenance(db, maintenance_id)

@app.post("/maintenance/{maintenance_id}/start", response_model=MaintenanceOut)
def start_maintenance(maintenance_id: int, db: Session = Depends(get_db),
                      _u = Depends(require_inventory_access)):
    return maintenance_service.start_maintenance(db, maintenance_id)

@app.post("/maintenance/{maintenance_id}/complete", response_model=MaintenanceOut)
def complete_maintenance(maintenance_id: int, body: Optional[MaintenanceComplete] = None,
                         db: Session = Depends(get_db), _u = Depends(require_inventory_access)):
    return maintenance_service.complete_maintenance(db, maintenance_id, body or MaintenanceComplete())

@app.post("/maintenance/{maintenance_id}/cancel", response_model=MaintenanceOut)
def cancel_maintenance(maintenance_id: int, db: Session = Depends(get_db),
                       _u = Depends(require_inventory_access)):
    return maintenance_service.cancel_maintenance(db, maintenance_id)

# --------------------------------------------------------------------------
# Incidents
# --------------------------------------------------------------------------
@app.get("/incidents", response_model=List[IncidentOut])
def incident_history(
    asset_id: Optional[int] = None,
    type: Optional[IncidentType] = None,
    status: Optional[IncidentStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    db: Session = Depends(get_db),
    _u = Depends(get_current_user),
):
    return incident_service.incident_history(
        db, asset_id=asset_id, type=type, status=status, start_date=start_date, end_date=end_date,
    )

@app.get("/incidents/active", response_model=List[IncidentOut])
def active_incidents(db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return incident_service.active_incidents(db)

@app.post("/incidents", status_code=201, response_model=IncidentOut)
def report_incident(body: IncidentIn, db: Session = Depends(get_db),
                    user: User = Depends(get_current_user)):
    return incident_service.report_incident(db, body, user)

@app.get("/incidents/asset/{asset_id}", response_model=List[IncidentOut])
def asset_incidents(asset_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return incident_service.incident_history(db, asset_id=asset_id)

@app.get("/incidents/{incident_id}", response_model=IncidentOut)
def get_incident(incident_id: int, db: Session = Depends(get_db), _u = Depends(get_current_user)):
    return incident_service.get_incident(db, incident_id)

@app.post("/incidents/{incident_id}/investigate", response_model=IncidentOut)
def investigate_incident(incident_id: int, db: Session = Depends(get_db),
                         _u = Depends(require_inventory_access)):
    return incident_service.investigate_incident(db, incident_id)

@app.post("/incidents/{incident_id}/resolve", response_model=IncidentOut)
def resolve_incident(incident_id: int, body: IncidentResolve, db: Session = Depends(get_db),
                     _u = Depends(require_inventory_access)):
    return incident_service.resolve_incident(db, incident_id, body)

@app.post("/incidents/{incident_id}/close", response_model=IncidentOut)
def close_incident(incident_id: int, db: Session = Depends(get_db),
                   _u = Depends(require_inventory_access)):
    return incident_service.close_incident(db, incident_id)

# --------------------------------------------------------------------------
# Reports
# --------------------------------------------------------------------------
@app.get("/reports/types", response_model=List[ReportTypeOut])
def report_types(_u = Depends(require_permission("reports", "generate"))):
    return report_service.REPORT_TYPES

@app.post("/reports/generate", response_model=ReportOut)
def generate_report(body: ReportRequest, db: Session = Depends(get_db),
                    user: User = Depends(require_permission("reports", "generate"))):
    try:
        return report_service.generate_report(db, body, user)
    except HTTPException:
        raise
    except Exception:
        logger.exception("report %s failed", body.report_type)
        raise HTTPException(500, "Report generation failed")

@app.get("/reports/summary", response_model=ReportSummaryOut)
def report_summary(db: Session = Depends(get_db),
                   user: User = Depends(require_permission("reports", "generate"))):
    try:
        return report_service.report_summary(db, user)
    except Exception:
        logger.exception("report summary failed")
        raise HTTPException(500, "Report summary failed")
