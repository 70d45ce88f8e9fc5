"""
Authorization predicates over an already-resolved permission set.

Callers resolve first (PermissionService.effective_permissions or the
require_permissions dependency) and then ask these questions; nothing here
touches storage.
"""
from typing import AbstractSet

from app.features.permissions.enums import Permission


def has_permission(permissions: AbstractSet[Permission], permission: Permission) -> bool:
    return permission in permissions


def has_any(permissions: AbstractSet[Permission], *required: Permission) -> bool:
    """True iff at least one of `required` is held. No arguments means False."""
    return any(p in permissions for p in required)


def has_all(permissions: AbstractSet[Permission], *required: Permission) -> bool:
    """True iff every one of `required` is held. No arguments means True."""
    return all(p in permissions for p in required)
