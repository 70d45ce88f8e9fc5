"""
Grant Store: the per-user record of permission grants and revocations.

Grants are append-only. Granting or revoking inserts a new row that shadows
any earlier row for the same permission; nothing is updated in place and
expired rows are kept. Reads always return rows in insertion order, which
is the order the resolver expects for its tie-break.
"""
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError, UnauthorizedError, ValidationError
from app.features.permissions.enums import Permission, parse_permission
from app.features.permissions.models import PermissionGrant
from app.features.users.models import User
from app.utils import as_naive_utc, get_logger, utcnow


log = get_logger(__name__)


class GrantStore:
    """
    Session-scoped access to permission grants.

    add() only stages a row so it can share a transaction with other writes
    (request approval uses that); grant() and revoke() are the standalone
    administrative actions and commit on their own.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(
        self,
        user_id: str,
        permission: Permission | str,
        granted: bool,
        granted_by_id: Optional[str],
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> PermissionGrant:
        """
        Stage a new grant row and flush it. Does not commit.

        Raises:
            UnauthorizedError: granted_by_id is missing
            ValidationError: unknown permission, or expires_at not in the future
        """
        if not granted_by_id:
            raise UnauthorizedError("A granting identity is required")
        permission = parse_permission(permission)
        now = as_naive_utc(now) if now else utcnow()
        if expires_at is not None:
            expires_at = as_naive_utc(expires_at)
            if expires_at <= now:
                raise ValidationError("expires_at must be in the future")

        grant = PermissionGrant(
            user_id=user_id,
            permission=permission,
            granted=granted,
            granted_by_id=granted_by_id,
            granted_at=now,
            reason=reason,
            expires_at=expires_at,
        )
        self.db.add(grant)
        await self.db.flush()
        return grant

    async def grant(
        self,
        user_id: str,
        permission: Permission | str,
        granted_by_id: Optional[str],
        reason: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> PermissionGrant:
        """Give a user a permission beyond their position defaults."""
        return await self._record(user_id, permission, True, granted_by_id, reason, expires_at)

    async def revoke(
        self,
        user_id: str,
        permission: Permission | str,
        revoked_by_id: Optional[str],
        reason: Optional[str] = None,
    ) -> PermissionGrant:
        """
        Take a permission away, including one the position would give by default.

        The revocation never expires; granting again later shadows it.
        """
        return await self._record(user_id, permission, False, revoked_by_id, reason, None)

    async def _record(
        self,
        user_id: str,
        permission: Permission | str,
        granted: bool,
        actor_id: Optional[str],
        reason: Optional[str],
        expires_at: Optional[datetime],
    ) -> PermissionGrant:
        await self.get_user(user_id)
        grant = await self.add(user_id, permission, granted, actor_id, reason, expires_at)
        await self.db.commit()
        await self.db.refresh(grant)
        log.info(
            "Permission %s %s for user=%s by=%s expires_at=%s",
            grant.permission.value, "granted" if granted else "revoked", user_id, actor_id, grant.expires_at,
        )
        return grant

    async def get_user(self, user_id: str) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def list_for_user(self, user_id: str) -> List[PermissionGrant]:
        """Every grant row for the user, expired ones included, oldest first."""
        result = await self.db.execute(
            select(PermissionGrant)
            .where(PermissionGrant.user_id == user_id)
            .order_by(PermissionGrant.id)
        )
        return list(result.scalars().all())

    async def list_active_for_user(self, user_id: str, now: Optional[datetime] = None) -> List[PermissionGrant]:
        """Grant rows still in force at `now`, oldest first."""
        now = as_naive_utc(now) if now else utcnow()
        result = await self.db.execute(
            select(PermissionGrant)
            .where(
                PermissionGrant.user_id == user_id,
                or_(PermissionGrant.expires_at.is_(None), PermissionGrant.expires_at > now),
            )
            .order_by(PermissionGrant.id)
        )
        return list(result.scalars().all())

    async def list_for_users(self, user_ids: Iterable[str]) -> Dict[str, List[PermissionGrant]]:
        """Grant rows for several users at once, grouped by user, oldest first."""
        user_ids = list(user_ids)
        grouped: Dict[str, List[PermissionGrant]] = defaultdict(list)
        if not user_ids:
            return grouped
        result = await self.db.execute(
            select(PermissionGrant)
            .where(PermissionGrant.user_id.in_(user_ids))
            .order_by(PermissionGrant.id)
        )
        for grant in result.scalars().all():
            grouped[grant.user_id].append(grant)
        return grouped
