import re
from datetime import date, datetime
from typing import Optional, List, Dict, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import (
    to_utc_naive, UserRole, AssetStatus, AssignmentStatus, MovementType, MovementSubtype,
    MaintenanceType, MaintenanceStatus, IncidentType, IncidentStatus,
)

EMAIL_REGEX = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

def _check_email(v):
    if v is None:
        return v
    v = v.strip().lower()
    if not EMAIL_REGEX.match(v):
        raise ValueError("Invalid email")
    return v


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

# --------------------------------------------------------------------------
# Auth / users
# --------------------------------------------------------------------------
class RegisterIn(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: Optional[str] = None

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _check_email(v)

class LoginIn(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _check_email(v)

class UserBrief(ORMModel):
    id: int
    email: str
    name: Optional[str] = None
    role: UserRole

class UserOut(UserBrief):
    is_active: bool
    created_at: datetime
    updated_at: datetime

class UserCounts(BaseModel):
    created_assets: int = 0
    assigned_assets: int = 0

class UserWithCountsOut(UserOut):
    counts: UserCounts = Field(default_factory=UserCounts)

class ResponsibleOut(UserBrief):
    assigned_assets: int = 0

class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut

class MeOut(UserOut):
    permissions: Dict[str, Dict[str, bool]]

class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=6)
    name: Optional[str] = None
    role: UserRole = UserRole.ASSET_RESPONSIBLE

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _check_email(v)

class UserPatch(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def normalise_email(cls, v):
        return _check_email(v)

class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)

class UserDeleteOut(BaseModel):
    success: bool = True
    message: str
    user: Optional[UserOut] = None

# --------------------------------------------------------------------------
# Categories
# --------------------------------------------------------------------------
class CategoryIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[int] = None

class CategoryPatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    parent_id: Optional[int] = None

class CategoryBrief(ORMModel):
    id: int
    name: str

class CategoryOut(ORMModel):
    id: int
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    asset_count: int = 0
    subcategory_count: int = 0

class CategoryAssetOut(ORMModel):
    id: int
    code: str
    name: str

class CategoryDetailOut(CategoryOut):
    assets: List[CategoryAssetOut] = Field(default_factory=list)
    subcategories: List[CategoryBrief] = Field(default_factory=list)

class MessageOut(BaseModel):
    message: str

# --------------------------------------------------------------------------
# Assets
# --------------------------------------------------------------------------
class AssetCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None

    brand: Optional[str] = Field(None, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)

    acquisition_cost: float = Field(gt=0)
    purchase_date: date
    supplier: Optional[str] = Field(None, max_length=200)
    useful_life: int = Field(gt=0, le=100)
    residual_value: float = Field(0, ge=0)

    building: Optional[str] = Field(None, max_length=100)
    office: Optional[str] = Field(None, max_length=100)
    laboratory: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)

    status: AssetStatus = AssetStatus.AVAILABLE
    category_id: int

class AssetUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    # code is immutable once created
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None

    brand: Optional[str] = Field(None, max_length=100)
    model: Optional[str] = Field(None, max_length=100)
    serial_number: Optional[str] = Field(None, max_length=100)

    acquisition_cost: Optional[float] = Field(None, gt=0)
    purchase_date: Optional[date] = None
    supplier: Optional[str] = Field(None, max_length=200)
    useful_life: Optional[int] = Field(None, gt=0, le=100)
    residual_value: Optional[float] = Field(None, ge=0)

    building: Optional[str] = Field(None, max_length=100)
    office: Optional[str] = Field(None, max_length=100)
    laboratory: Optional[str] = Field(None, max_length=100)
    location: Optional[str] = Field(None, max_length=200)

    status: Optional[AssetStatus] = None
    category_id: Optional[int] = None

class StatusChange(BaseModel):
    status: AssetStatus

class AssetOut(ORMModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    acquisition_cost: float
    purchase_date: date
    supplier: Optional[str] = None
    useful_life: int
    residual_value: float
    building: Optional[str] = None
    office: Optional[str] = None
    laboratory: Optional[str] = None
    location: Optional[str] = None
    current_location: Optional[str] = None
    status: AssetStatus
    category_id: int
    category: Optional[CategoryBrief] = None
    assigned_to_id: Optional[int] = None
    assigned_to: Optional[UserBrief] = None
    assigned_at: Optional[datetime] = None
    created_by_id: int
    created_at: datetime
    updated_at: datetime

class AssetBrief(ORMModel):
    id: int
    code: str
    name: str
    status: AssetStatus
    category: Optional[CategoryBrief] = None

class PaginationOut(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class AssetPageOut(BaseModel):
    assets: List[AssetOut]
    pagination: PaginationOut

class AssetStatsOut(BaseModel):
    total: int
    recent_assets: List[AssetOut]

# --------------------------------------------------------------------------
# Assignments
# --------------------------------------------------------------------------
class AssignIn(BaseModel):
    asset_id: int
    assigned_to_id: int
    location: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

class ReturnIn(BaseModel):
    notes: Optional[str] = None

class TransferIn(BaseModel):
    new_assigned_to_id: int
    location: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None

class AssignmentOut(ORMModel):
    id: int
    asset_id: int
    asset: Optional[AssetBrief] = None
    assigned_to_id: int
    assigned_to: Optional[UserBrief] = None
    assigned_by_id: int
    assigned_by: Optional[UserBrief] = None
    location: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    status: AssignmentStatus
    assigned_at: datetime
    returned_at: Optional[datetime] = None

# --------------------------------------------------------------------------
# Movements
# --------------------------------------------------------------------------
class MovementIn(BaseModel):
    asset_id: int
    movement_type: MovementSubtype
    description: str = Field(min_length=1)
    cost: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, gt=0)
    date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("date")
    @classmethod
    def as_utc(cls, v):
        return to_utc_naive(v)

class MovementOut(ORMModel):
    id: int
    asset_id: int
    asset: Optional[AssetBrief] = None
    type: MovementType
    movement_type: MovementSubtype
    description: str
    cost: Optional[float] = None
    quantity: int
    user_id: int
    user: Optional[UserBrief] = None
    date: datetime
    notes: Optional[str] = None

# --------------------------------------------------------------------------
# Maintenance
# --------------------------------------------------------------------------
class MaintenanceIn(BaseModel):
    asset_id: int
    type: MaintenanceType
    scheduled_date: datetime
    description: str = Field(min_length=1)
    performed_by: Optional[str] = None
    cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("scheduled_date")
    @classmethod
    def as_utc(cls, v):
        return to_utc_naive(v)

class MaintenanceComplete(BaseModel):
    completed_date: Optional[datetime] = None
    cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

    @field_validator("completed_date")
    @classmethod
    def as_utc(cls, v):
        return to_utc_naive(v)

class MaintenanceOut(ORMModel):
    id: int
    asset_id: int
    asset: Optional[AssetBrief] = None
    type: MaintenanceType
    status: MaintenanceStatus
    scheduled_date: datetime
    completed_date: Optional[datetime] = None
    description: str
    performed_by: Optional[str] = None
    cost: Optional[float] = None
    user_id: int
    user: Optional[UserBrief] = None
    notes: Optional[str] = None

# --------------------------------------------------------------------------
# Incidents
# --------------------------------------------------------------------------
class IncidentIn(BaseModel):
    asset_id: int
    type: IncidentType
    description: str = Field(min_length=1)
    cost: Optional[float] = Field(None, ge=0)
    notes: Optional[str] = None

class IncidentResolve(BaseModel):
    resolution: str = Field(min_length=1)
    resolved_date: Optional[datetime] = None
    cost: Optional[float] = Field(None, ge=0)

    @field_validator("resolved_date")
    @classmethod
    def as_utc(cls, v):
        return to_utc_naive(v)

class IncidentOut(ORMModel):
    id: int
    asset_id: int
    asset: Optional[AssetBrief] = None
    type: IncidentType
    status: IncidentStatus
    description: str
    reported_date: datetime
    resolved_date: Optional[datetime] = None
    reported_by_id: int
    reported_by: Optional[UserBrief] = None
    cost: Optional[float] = None
    resolution: Optional[str] = None
    notes: Optional[str] = None

# --------------------------------------------------------------------------
# Reports
# --------------------------------------------------------------------------
class ReportRequest(BaseModel):
    report_type: str
    category_id: Optional[int] = None
    include_subcategories: bool = True
    location: Optional[str] = None
    status: Optional[AssetStatus] = None
    responsible_id: Optional[int] = None
    months_to_expire: int = Field(12, ge=0)

class ReportTypeOut(BaseModel):
    type: str
    label: str
    description: str
    filters: List[str]

class ReportOut(BaseModel):
    report_type: str
    filters: Dict[str, Any]
    generated_at: str
    generated_by: Dict[str, Any]
    summary: Dict[str, Any]
    assets: List[Dict[str, Any]]
    grouped_data: Optional[List[Dict[str, Any]]] = None

class ReportSummaryOut(BaseModel):
    summary: Dict[str, Any]
    generated_at: str
