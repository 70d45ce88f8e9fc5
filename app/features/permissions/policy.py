"""
Position -> baseline permission policy.

The policy is plain data checked once when a PolicyTable is built; after that
it is read-only and safe to share between any number of concurrent readers.
The application builds the default table at import time and injects it
through get_policy(), so tests can hand in a table of their own.
"""
from collections import Counter
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, List, Mapping, Tuple

from app.core.errors import UnknownVariantError
from app.features.permissions.enums import (
    Permission,
    Position,
    parse_permission,
    parse_position,
    sorted_permissions,
)


_CLINICAL_STAFF: Tuple[Permission, ...] = (
    Permission.HANDOVER_VIEW,
    Permission.HANDOVER_CREATE,
    Permission.HANDOVER_EDIT_OWN,
    Permission.INVENTORY_VIEW,
    Permission.INVENTORY_TRANSACTION,
    Permission.SCHEDULING_VIEW,
    Permission.ASSETS_VIEW,
    Permission.ASSETS_REPORT_FAULT,
    Permission.PROCUREMENT_VIEW,
    Permission.PROCUREMENT_REQUEST,
    Permission.QUALITY_VIEW,
    Permission.QUALITY_REPORT,
    Permission.DOCUMENTS_VIEW,
)

DEFAULT_PERMISSIONS_BY_POSITION: Mapping[Position, Tuple[Permission, ...]] = {
    Position.DOCTOR: _CLINICAL_STAFF,
    Position.NURSE: _CLINICAL_STAFF,
    Position.SPORTS_THERAPIST: _CLINICAL_STAFF,
    Position.RECEPTIONIST: (
        Permission.HANDOVER_VIEW,
        Permission.HANDOVER_CREATE,
        Permission.HANDOVER_EDIT_OWN,
        # Inventory is view-only at the front desk
        Permission.INVENTORY_VIEW,
        Permission.SCHEDULING_VIEW,
        Permission.ASSETS_VIEW,
        Permission.ASSETS_REPORT_FAULT,
        Permission.PROCUREMENT_VIEW,
        Permission.PROCUREMENT_REQUEST,
        Permission.DOCUMENTS_VIEW,
    ),
    Position.MANAGER: _CLINICAL_STAFF + (
        Permission.HANDOVER_EDIT_ALL,
        Permission.HANDOVER_DELETE,
        Permission.INVENTORY_MANAGE,
        Permission.SCHEDULING_MANAGE,
        Permission.HR_VIEW,
        Permission.HR_MANAGE,
        Permission.ASSETS_MANAGE,
        Permission.PROCUREMENT_APPROVE,
        Permission.QUALITY_MANAGE,
        Permission.DOCUMENTS_MANAGE,
        Permission.FINANCE_VIEW,
        Permission.USERS_VIEW,
    ),
    Position.ADMIN: tuple(Permission),
}


class PolicyError(ValueError):
    """The policy table is malformed. Carries every problem found, not just the first."""

    def __init__(self, problems: List[str]):
        self.problems = problems
        super().__init__("Invalid permission policy: " + "; ".join(problems))


class PolicyTable:
    """
    Immutable mapping from Position to its default permissions.

    Construction fails with PolicyError unless every Position has exactly one
    entry, every key and value names a known enumerator, and no entry lists
    the same permission twice.

    Usage:
        policy = PolicyTable({Position.NURSE: [Permission.HANDOVER_VIEW], ...})
        policy.defaults_for(Position.NURSE)
    """

    def __init__(self, entries: Mapping[object, Iterable[object]]):
        problems: List[str] = []
        table: Dict[Position, FrozenSet[Permission]] = {}

        for raw_position, raw_permissions in entries.items():
            try:
                position = parse_position(raw_position)
            except UnknownVariantError as e:
                problems.append(e.message)
                continue
            if position in table:
                problems.append(f"{position.value}: more than one entry")
                continue

            permissions: List[Permission] = []
            for raw in raw_permissions:
                try:
                    permissions.append(parse_permission(raw))
                except UnknownVariantError as e:
                    problems.append(f"{position.value}: {e.message}")

            duplicates = [p.value for p, n in Counter(permissions).items() if n > 1]
            if duplicates:
                problems.append(f"{position.value}: duplicate permissions {sorted(duplicates)}")

            table[position] = frozenset(permissions)

        missing = [p.value for p in Position if p not in table]
        if missing:
            problems.append(f"missing entries for {missing}")

        if problems:
            raise PolicyError(problems)

        self._table: Mapping[Position, FrozenSet[Permission]] = MappingProxyType(table)

    def defaults_for(self, position: Position) -> FrozenSet[Permission]:
        """Default permissions for a position; empty for a position without an entry."""
        return self._table.get(position, frozenset())

    def as_dict(self) -> Dict[str, List[str]]:
        """Plain, JSON-friendly view of the table in declaration order."""
        return {
            position.value: [p.value for p in sorted_permissions(self.defaults_for(position))]
            for position in Position
        }

    def __repr__(self) -> str:
        return f"<PolicyTable(positions={len(self._table)})>"


def build_default_policy() -> PolicyTable:
    """Build and validate the deployment policy."""
    return PolicyTable(DEFAULT_PERMISSIONS_BY_POSITION)
