"""
Read-side permission queries and administrative changes that are not part of
the request workflow.
"""
import math
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import UnauthorizedError, ValidationError
from app.features.permissions.enums import (
    PERMISSION_CATEGORIES,
    PERMISSION_LABELS,
    PERMISSION_REQUEST_STATUS_LABELS,
    POSITION_LABELS,
    Permission,
    Position,
    parse_position,
    sorted_permissions,
)
from app.features.permissions.events import (
    PERMISSION_GRANTED,
    PERMISSION_REVOKED,
    USER_POSITION_CHANGED,
    AuditEvent,
    EventPublisher,
)
from app.features.permissions.models import PermissionGrant
from app.features.permissions.policy import PolicyTable
from app.features.permissions.resolver import PermissionResolver, applicable_grants
from app.features.permissions.store import GrantStore
from app.features.users.models import User
from app.utils import get_logger, utcnow


log = get_logger(__name__)


class PermissionService:
    """
    Resolves and describes users' permissions.

    Usage:
        service = PermissionService(db, policy)
        permissions = await service.effective_permissions(user)
    """

    def __init__(self, db: AsyncSession, policy: PolicyTable, publisher: Optional[EventPublisher] = None):
        self.db = db
        self.policy = policy
        self.resolver = PermissionResolver(policy)
        self.grants = GrantStore(db)
        self.publisher = publisher or EventPublisher()

    async def effective_permissions(self, user: User, now: Optional[datetime] = None) -> FrozenSet[Permission]:
        now = now or utcnow()
        active = await self.grants.list_active_for_user(user.id, now)
        return self.resolver.resolve(user.position, active, now)

    async def user_permission_details(self, user_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Where a user's permissions come from.

        custom_permissions lists only the grants that currently decide a
        permission: expired and shadowed rows are left out.
        """
        now = now or utcnow()
        user = await self.grants.get_user(user_id)
        active = await self.grants.list_active_for_user(user.id, now)
        deciding = applicable_grants(active, now)

        return {
            "user_id": user.id,
            "position": user.position,
            "default_permissions": sorted_permissions(self.policy.defaults_for(user.position)),
            "custom_permissions": [deciding[p] for p in sorted_permissions(deciding)],
            "effective_permissions": sorted_permissions(self.resolver.resolve(user.position, active, now)),
        }

    async def permission_matrix(self, page: int = 1, page_size: int = 20, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Effective permissions of every active user, one page at a time, ordered by name."""
        if page < 1 or page_size < 1:
            raise ValidationError("page and page_size must be positive")
        now = now or utcnow()

        total = (await self.db.execute(
            select(func.count()).select_from(User).where(User.is_active.is_(True))
        )).scalar_one()
        result = await self.db.execute(
            select(User)
            .where(User.is_active.is_(True))
            .order_by(User.name, User.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        users = list(result.scalars().all())
        grants_by_user = await self.grants.list_for_users(u.id for u in users)

        items = []
        for user in users:
            grants: List[PermissionGrant] = grants_by_user.get(user.id, [])
            items.append({
                "user_id": user.id,
                "name": user.name,
                "email": user.email,
                "position": user.position,
                "permissions": sorted_permissions(self.resolver.resolve(user.position, grants, now)),
                "custom_permission_count": len(applicable_grants(grants, now)),
            })

        return {
            "items": items,
            "total": total,
            "page": page,
            "page_size": page_size,
            "pages": math.ceil(total / page_size),
        }

    async def grant(self, user_id: str, permission: Permission, actor: Optional[User],
                    reason: Optional[str] = None, expires_at: Optional[datetime] = None) -> PermissionGrant:
        if actor is None:
            raise UnauthorizedError()
        grant = await self.grants.grant(user_id, permission, actor.id, reason, expires_at)
        self.publisher.publish_audit(AuditEvent(
            action=PERMISSION_GRANTED,
            target_type="USER",
            target_id=user_id,
            actor_id=actor.id,
            details={
                "permission": grant.permission.value,
                "reason": reason,
                "expires_at": grant.expires_at.isoformat() if grant.expires_at else None,
            },
        ))
        return grant

    async def revoke(self, user_id: str, permission: Permission, actor: Optional[User],
                     reason: Optional[str] = None) -> PermissionGrant:
        if actor is None:
            raise UnauthorizedError()
        grant = await self.grants.revoke(user_id, permission, actor.id, reason)
        self.publisher.publish_audit(AuditEvent(
            action=PERMISSION_REVOKED,
            target_type="USER",
            target_id=user_id,
            actor_id=actor.id,
            details={"permission": grant.permission.value, "reason": reason},
        ))
        return grant

    async def update_user_position(self, user_id: str, position: Position | str, actor: Optional[User]) -> User:
        """Move a user to another position. Their grants are kept and still apply."""
        if actor is None:
            raise UnauthorizedError()
        position = parse_position(position)
        user = await self.grants.get_user(user_id)
        previous = user.position
        user.position = position
        await self.db.commit()
        await self.db.refresh(user)

        log.info("User %s position changed %s -> %s by %s", user_id, previous.value, position.value, actor.id)
        self.publisher.publish_audit(AuditEvent(
            action=USER_POSITION_CHANGED,
            target_type="USER",
            target_id=user_id,
            actor_id=actor.id,
            details={"from": previous.value, "to": position.value},
        ))
        return user

    def definitions(self) -> Dict[str, Any]:
        """Everything a client needs to label and group permissions."""
        return {
            "permissions": [p.value for p in Permission],
            "permission_labels": {p.value: label for p, label in PERMISSION_LABELS.items()},
            "permission_categories": {
                key: {"label": category["label"], "permissions": [p.value for p in category["permissions"]]}
                for key, category in PERMISSION_CATEGORIES.items()
            },
            "positions": [p.value for p in Position],
            "position_labels": {p.value: label for p, label in POSITION_LABELS.items()},
            "request_status_labels": {s.value: label for s, label in PERMISSION_REQUEST_STATUS_LABELS.items()},
            "default_permissions_by_position": self.policy.as_dict(),
        }
