"""
Effective permission resolution.

    effective = defaults_for(position)
                + permissions whose latest active grant says granted
                - permissions whose latest active grant says revoked

Everything here is a pure function of (policy, position, grants, now): no
I/O, no caching, nothing remembered between calls.
"""
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol

from app.features.permissions.enums import Permission, Position
from app.features.permissions.policy import PolicyTable
from app.utils import as_naive_utc


class GrantLike(Protocol):
    """Anything shaped like a PermissionGrant row."""
    permission: Permission
    granted: bool
    granted_at: datetime
    expires_at: Optional[datetime]


def is_active(grant: GrantLike, now: datetime) -> bool:
    """A grant is active until its expiry; no expiry means forever."""
    if grant.expires_at is None:
        return True
    return as_naive_utc(grant.expires_at) > as_naive_utc(now)


def active_grants(grants: Iterable[GrantLike], now: datetime) -> List[GrantLike]:
    """Grants that have not expired at `now`, in their original order."""
    return [g for g in grants if is_active(g, now)]


def applicable_grants(grants: Iterable[GrantLike], now: datetime) -> Dict[Permission, GrantLike]:
    """
    The one grant that decides each permission.

    Among active grants for the same permission the newest granted_at wins.
    On equal granted_at the grant that comes later in `grants` wins, so
    callers pass grants in insertion order.
    """
    latest: Dict[Permission, GrantLike] = {}
    for grant in active_grants(grants, now):
        current = latest.get(grant.permission)
        if current is None or as_naive_utc(grant.granted_at) >= as_naive_utc(current.granted_at):
            latest[grant.permission] = grant
    return latest


def apply_grants(
    defaults: FrozenSet[Permission],
    grants: Iterable[GrantLike],
    now: datetime,
) -> FrozenSet[Permission]:
    effective = set(defaults)
    for permission, grant in applicable_grants(grants, now).items():
        if grant.granted:
            effective.add(permission)
        else:
            effective.discard(permission)
    return frozenset(effective)


class PermissionResolver:
    """Merges an injected PolicyTable with a user's grants."""

    def __init__(self, policy: PolicyTable):
        self.policy = policy

    def resolve(
        self,
        position: Position,
        grants: Iterable[GrantLike],
        now: datetime,
    ) -> FrozenSet[Permission]:
        """
        Effective permission set for a user holding `position` with `grants` at `now`.

        Empty grants give exactly the position defaults; an expired grant,
        whether it granted or revoked, has no effect.
        """
        return apply_grants(self.policy.defaults_for(position), grants, now)
