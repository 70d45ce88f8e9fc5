"""
FastAPI dependencies for the access control engine.

Implements:
- Injection of the shared PolicyTable and the event publisher
- Per-request PermissionService and PermissionRequestWorkflow
- require_permissions(), the route guard
"""
from typing import Annotated, Literal

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database.engine import get_db
from app.core.errors import ForbiddenError
from app.features.permissions.enums import Permission
from app.features.permissions.events import EventPublisher
from app.features.permissions.guard import has_all, has_any
from app.features.permissions.policy import PolicyTable, build_default_policy
from app.features.permissions.resolver import PermissionResolver
from app.features.permissions.service import PermissionService
from app.features.permissions.workflow import PermissionRequestWorkflow
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.utils import get_logger


log = get_logger(__name__)

_publisher = EventPublisher()


def get_policy(request: Request) -> PolicyTable:
    """The policy built at startup; falls back to the default table for bare apps."""
    policy = getattr(request.app.state, "policy", None)
    if policy is None:
        policy = build_default_policy()
        request.app.state.policy = policy
    return policy


def get_event_publisher() -> EventPublisher:
    return _publisher


async def get_permission_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    policy: Annotated[PolicyTable, Depends(get_policy)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> PermissionService:
    return PermissionService(db, policy, publisher)


async def get_workflow(
    db: Annotated[AsyncSession, Depends(get_db)],
    policy: Annotated[PolicyTable, Depends(get_policy)],
    publisher: Annotated[EventPublisher, Depends(get_event_publisher)],
) -> PermissionRequestWorkflow:
    return PermissionRequestWorkflow(db, PermissionResolver(policy), publisher)


def require_permissions(*permissions: Permission, mode: Literal["all", "any"] = "all"):
    """
    FastAPI dependency to require permissions of the current user.

    Usage:
        @router.get("/matrix")
        async def matrix(
            user: User = Depends(require_permissions(Permission.PERMISSIONS_MANAGE))
        ):
            # User holds PERMISSIONS_MANAGE
            pass

    Args:
        permissions: Permissions to check
        mode: "all" requires every one, "any" at least one

    Returns:
        Dependency function that returns the current user if the check passes

    Raises:
        ForbiddenError: 403 if the check fails
    """
    if mode not in ("all", "any"):
        raise ValueError(f"mode must be 'all' or 'any', not {mode!r}")
    check = has_all if mode == "all" else has_any

    async def permission_dependency(
        current_user: Annotated[User, Depends(get_current_user)],
        service: Annotated[PermissionService, Depends(get_permission_service)],
    ) -> User:
        effective = await service.effective_permissions(current_user)
        required = [p.value for p in permissions]

        if not check(effective, *permissions):
            log.debug("User %s denied: requires %s of %s", current_user.id, mode, required)
            raise ForbiddenError(f"Permission denied: requires {mode} of {required}")

        log.debug("User %s allowed: holds %s of %s", current_user.id, mode, required)
        return current_user

    return permission_dependency
