"""
Roles and the per-role permission table.

Resources are users / assets / categories / reports; each maps action
names to a bool. Anything not listed is denied.
"""
from typing import Dict

from models import UserRole

ROLE_PERMISSIONS: Dict[UserRole, Dict[str, Dict[str, bool]]] = {
    UserRole.ADMIN: {
        "users": {"create": True, "read": True, "update": True, "delete": True, "manageRoles": True},
        "assets": {"create": True, "read": True, "update": True, "delete": True, "assign": True, "viewAll": True},
        "categories": {"create": True, "read": True, "update": True, "delete": True},
        "reports": {"generate": True, "viewAll": True},
    },
    UserRole.INVENTORY_MANAGER: {
        # can read users so assets can be assigned to them
        "users": {"create": False, "read": True, "update": False, "delete": False, "manageRoles": False},
        "assets": {"create": True, "read": True, "update": True, "delete": True, "assign": True, "viewAll": True},
        "categories": {"create": True, "read": True, "update": True, "delete": False},
        "reports": {"generate": True, "viewAll": True},
    },
    UserRole.ASSET_RESPONSIBLE: {
        "users": {"create": False, "read": False, "update": False, "delete": False, "manageRoles": False},
        "assets": {"create": False, "read": True, "update": False, "delete": False, "assign": False, "viewAll": False},
        "categories": {"create": False, "read": True, "update": False, "delete": False},
        "reports": {"generate": False, "viewAll": False},
    },
}

ROLE_LABELS = {
    UserRole.ADMIN: "Administrator",
    UserRole.INVENTORY_MANAGER: "Inventory Manager",
    UserRole.ASSET_RESPONSIBLE: "Asset Responsible",
}

ROLE_DESCRIPTIONS = {
    UserRole.ADMIN: "Full control of the system, users and assets",
    UserRole.INVENTORY_MANAGER: "Creates, updates and decommissions assets; manages the inventory",
    UserRole.ASSET_RESPONSIBLE: "Views assigned assets and requests maintenance",
}

INVENTORY_ROLES = (UserRole.ADMIN, UserRole.INVENTORY_MANAGER)


def _as_role(role):
    try:
        return UserRole(role)
    except ValueError:
        return None

def has_permission(role, resource: str, action: str) -> bool:
    perms = ROLE_PERMISSIONS.get(_as_role(role))
    if not perms:
        return False
    return perms.get(resource, {}).get(action, False)

def get_role_permissions(role) -> Dict[str, Dict[str, bool]]:
    return ROLE_PERMISSIONS.get(_as_role(role), {})

def can_manage_assets(role) -> bool:
    return _as_role(role) in INVENTORY_ROLES

def can_manage_users(role) -> bool:
    return _as_role(role) == UserRole.ADMIN

def can_view_all_assets(role) -> bool:
    return has_permission(role, "assets", "viewAll")
