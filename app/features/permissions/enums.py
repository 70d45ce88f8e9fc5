"""
Positions, permissions and request statuses.

Values are stored as their names, so renaming a member is a data migration.
Raw strings from the outside are converted with parse_position and
parse_permission, which reject unknown values instead of passing them through.
"""
import enum
from typing import Dict, List

from app.core.errors import UnknownVariantError


class Position(str, enum.Enum):
    """A user's job role; the key into the default policy."""
    DOCTOR = "DOCTOR"
    NURSE = "NURSE"
    SPORTS_THERAPIST = "SPORTS_THERAPIST"
    RECEPTIONIST = "RECEPTIONIST"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"


class Permission(str, enum.Enum):
    """Capability tokens, named <DOMAIN>_<ACTION>. No hierarchy between them."""
    # Handover
    HANDOVER_VIEW = "HANDOVER_VIEW"
    HANDOVER_CREATE = "HANDOVER_CREATE"
    HANDOVER_EDIT_OWN = "HANDOVER_EDIT_OWN"
    HANDOVER_EDIT_ALL = "HANDOVER_EDIT_ALL"
    HANDOVER_DELETE = "HANDOVER_DELETE"

    # Inventory
    INVENTORY_VIEW = "INVENTORY_VIEW"
    INVENTORY_TRANSACTION = "INVENTORY_TRANSACTION"
    INVENTORY_MANAGE = "INVENTORY_MANAGE"

    # Scheduling
    SCHEDULING_VIEW = "SCHEDULING_VIEW"
    SCHEDULING_MANAGE = "SCHEDULING_MANAGE"

    # HR
    HR_VIEW = "HR_VIEW"
    HR_MANAGE = "HR_MANAGE"

    # Assets
    ASSETS_VIEW = "ASSETS_VIEW"
    ASSETS_REPORT_FAULT = "ASSETS_REPORT_FAULT"
    ASSETS_MANAGE = "ASSETS_MANAGE"

    # Procurement
    PROCUREMENT_VIEW = "PROCUREMENT_VIEW"
    PROCUREMENT_REQUEST = "PROCUREMENT_REQUEST"
    PROCUREMENT_APPROVE = "PROCUREMENT_APPROVE"

    # Quality
    QUALITY_VIEW = "QUALITY_VIEW"
    QUALITY_REPORT = "QUALITY_REPORT"
    QUALITY_MANAGE = "QUALITY_MANAGE"

    # Documents
    DOCUMENTS_VIEW = "DOCUMENTS_VIEW"
    DOCUMENTS_MANAGE = "DOCUMENTS_MANAGE"

    # Finance
    FINANCE_VIEW = "FINANCE_VIEW"
    FINANCE_MANAGE = "FINANCE_MANAGE"

    # System
    USERS_VIEW = "USERS_VIEW"
    USERS_MANAGE = "USERS_MANAGE"
    AUDIT_VIEW = "AUDIT_VIEW"
    PERMISSIONS_MANAGE = "PERMISSIONS_MANAGE"


class PermissionRequestStatus(str, enum.Enum):
    """PENDING is the only non-terminal status."""
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


POSITION_LABELS: Dict[Position, str] = {
    Position.DOCTOR: "Doctor",
    Position.NURSE: "Nurse",
    Position.SPORTS_THERAPIST: "Sports therapist",
    Position.RECEPTIONIST: "Receptionist",
    Position.MANAGER: "Manager",
    Position.ADMIN: "Administrator",
}

PERMISSION_LABELS: Dict[Permission, str] = {
    Permission.HANDOVER_VIEW: "View handovers",
    Permission.HANDOVER_CREATE: "Create handovers",
    Permission.HANDOVER_EDIT_OWN: "Edit own handovers",
    Permission.HANDOVER_EDIT_ALL: "Edit all handovers",
    Permission.HANDOVER_DELETE: "Delete handovers",
    Permission.INVENTORY_VIEW: "View inventory",
    Permission.INVENTORY_TRANSACTION: "Record inventory transactions",
    Permission.INVENTORY_MANAGE: "Manage inventory items",
    Permission.SCHEDULING_VIEW: "View schedules",
    Permission.SCHEDULING_MANAGE: "Manage schedules",
    Permission.HR_VIEW: "View staff records",
    Permission.HR_MANAGE: "Manage staff records",
    Permission.ASSETS_VIEW: "View equipment",
    Permission.ASSETS_REPORT_FAULT: "Report equipment faults",
    Permission.ASSETS_MANAGE: "Manage equipment",
    Permission.PROCUREMENT_VIEW: "View procurement",
    Permission.PROCUREMENT_REQUEST: "Request purchases",
    Permission.PROCUREMENT_APPROVE: "Approve purchases",
    Permission.QUALITY_VIEW: "View quality reports",
    Permission.QUALITY_REPORT: "Report quality incidents",
    Permission.QUALITY_MANAGE: "Manage quality",
    Permission.DOCUMENTS_VIEW: "View documents",
    Permission.DOCUMENTS_MANAGE: "Manage documents",
    Permission.FINANCE_VIEW: "View financial reports",
    Permission.FINANCE_MANAGE: "Manage finance",
    Permission.USERS_VIEW: "View users",
    Permission.USERS_MANAGE: "Manage users",
    Permission.AUDIT_VIEW: "View audit log",
    Permission.PERMISSIONS_MANAGE: "Manage permissions",
}

PERMISSION_REQUEST_STATUS_LABELS: Dict[PermissionRequestStatus, str] = {
    PermissionRequestStatus.PENDING: "Pending review",
    PermissionRequestStatus.APPROVED: "Approved",
    PermissionRequestStatus.REJECTED: "Rejected",
}

# Category key -> (label, permissions), in display order
PERMISSION_CATEGORIES: Dict[str, Dict[str, object]] = {
    "handover": {
        "label": "Handover",
        "permissions": [
            Permission.HANDOVER_VIEW,
            Permission.HANDOVER_CREATE,
            Permission.HANDOVER_EDIT_OWN,
            Permission.HANDOVER_EDIT_ALL,
            Permission.HANDOVER_DELETE,
        ],
    },
    "inventory": {
        "label": "Inventory",
        "permissions": [
            Permission.INVENTORY_VIEW,
            Permission.INVENTORY_TRANSACTION,
            Permission.INVENTORY_MANAGE,
        ],
    },
    "scheduling": {
        "label": "Scheduling",
        "permissions": [Permission.SCHEDULING_VIEW, Permission.SCHEDULING_MANAGE],
    },
    "hr": {
        "label": "Human resources",
        "permissions": [Permission.HR_VIEW, Permission.HR_MANAGE],
    },
    "assets": {
        "label": "Equipment",
        "permissions": [
            Permission.ASSETS_VIEW,
            Permission.ASSETS_REPORT_FAULT,
            Permission.ASSETS_MANAGE,
        ],
    },
    "procurement": {
        "label": "Procurement",
        "permissions": [
            Permission.PROCUREMENT_VIEW,
            Permission.PROCUREMENT_REQUEST,
            Permission.PROCUREMENT_APPROVE,
        ],
    },
    "quality": {
        "label": "Quality",
        "permissions": [
            Permission.QUALITY_VIEW,
            Permission.QUALITY_REPORT,
            Permission.QUALITY_MANAGE,
        ],
    },
    "documents": {
        "label": "Documents",
        "permissions": [Permission.DOCUMENTS_VIEW, Permission.DOCUMENTS_MANAGE],
    },
    "finance": {
        "label": "Finance",
        "permissions": [Permission.FINANCE_VIEW, Permission.FINANCE_MANAGE],
    },
    "system": {
        "label": "System",
        "permissions": [
            Permission.USERS_VIEW,
            Permission.USERS_MANAGE,
            Permission.AUDIT_VIEW,
            Permission.PERMISSIONS_MANAGE,
        ],
    },
}


def parse_position(value: object) -> Position:
    """Return the Position named by value, or raise UnknownVariantError."""
    if isinstance(value, Position):
        return value
    try:
        return Position(value)
    except ValueError:
        raise UnknownVariantError("position", value) from None


def parse_permission(value: object) -> Permission:
    """Return the Permission named by value, or raise UnknownVariantError."""
    if isinstance(value, Permission):
        return value
    try:
        return Permission(value)
    except ValueError:
        raise UnknownVariantError("permission", value) from None


def sorted_permissions(permissions) -> List[Permission]:
    """Permissions in declaration order, for stable API output."""
    order = {p: i for i, p in enumerate(Permission)}
    return sorted(permissions, key=order.__getitem__)
