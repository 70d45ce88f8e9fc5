"""
Permission management API routes.

Provides endpoints for effective permissions, per-user grants and
revocations, positions, permission requests and the permission matrix.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, Request, status

from app.core import config
from app.core.rate_limit import limiter
from app.features.users.dependencies import get_current_user
from app.features.users.models import User
from app.features.permissions.enums import Permission, PermissionRequestStatus
from app.features.permissions.schemas import (
    DefinitionsResponse,
    GrantPermissionBody,
    MatrixResponse,
    PermissionGrantResponse,
    PermissionRequestCreate,
    PermissionRequestListResponse,
    PermissionRequestResponse,
    PermissionRequestReview,
    RevokePermissionBody,
    UpdatePositionBody,
    UserPermissionsResponse,
    UserPositionResponse,
)
from app.features.permissions.dependencies import (
    get_permission_service,
    get_workflow,
    require_permissions,
)
from app.features.permissions.service import PermissionService
from app.features.permissions.workflow import PermissionRequestWorkflow
from app.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

Service = Annotated[PermissionService, Depends(get_permission_service)]
Workflow = Annotated[PermissionRequestWorkflow, Depends(get_workflow)]
Page = Annotated[int, Query(ge=1)]
PageSize = Annotated[int, Query(ge=1, le=config.MAX_PAGE_SIZE)]


# ============================================================================
# Effective Permissions
# ============================================================================

@router.get("/my", response_model=UserPermissionsResponse)
async def get_my_permissions(
    service: Service,
    current_user: User = Depends(get_current_user),
):
    """The caller's default, custom and effective permissions."""
    return await service.user_permission_details(current_user.id)


@router.get("/users/{user_id}", response_model=UserPermissionsResponse)
async def get_user_permissions(
    user_id: str,
    service: Service,
    current_user: User = Depends(require_permissions(Permission.USERS_VIEW)),
):
    """Another user's default, custom and effective permissions."""
    return await service.user_permission_details(user_id)


# ============================================================================
# Grants and Positions
# ============================================================================

@router.post("/users/{user_id}/grant", response_model=PermissionGrantResponse, status_code=status.HTTP_201_CREATED)
async def grant_permission(
    user_id: str,
    body: GrantPermissionBody,
    service: Service,
    current_user: User = Depends(require_permissions(Permission.PERMISSIONS_MANAGE)),
):
    """Grant a permission beyond the user's position defaults."""
    return await service.grant(user_id, body.permission, current_user, body.reason, body.expires_at)


@router.post("/users/{user_id}/revoke", response_model=PermissionGrantResponse, status_code=status.HTTP_201_CREATED)
async def revoke_permission(
    user_id: str,
    body: RevokePermissionBody,
    service: Service,
    current_user: User = Depends(require_permissions(Permission.PERMISSIONS_MANAGE)),
):
    """Revoke a permission, including one the position grants by default."""
    return await service.revoke(user_id, body.permission, current_user, body.reason)


@router.post("/users/{user_id}/position", response_model=UserPositionResponse)
async def update_user_position(
    user_id: str,
    body: UpdatePositionBody,
    service: Service,
    current_user: User = Depends(require_permissions(Permission.USERS_MANAGE)),
):
    """Move a user to another position."""
    user = await service.update_user_position(user_id, body.position, current_user)
    return UserPositionResponse(user_id=user.id, position=user.position)


# ============================================================================
# Permission Requests
# ============================================================================

@router.get("/requests", response_model=PermissionRequestListResponse)
async def list_permission_requests(
    workflow: Workflow,
    status_filter: Optional[PermissionRequestStatus] = Query(None, alias="status"),
    page: Page = 1,
    page_size: PageSize = config.DEFAULT_PAGE_SIZE,
    current_user: User = Depends(require_permissions(Permission.PERMISSIONS_MANAGE)),
):
    """List permission requests, newest first."""
    result = await workflow.list_requests(status=status_filter, page=page, page_size=page_size)
    return PermissionRequestListResponse(
        items=[PermissionRequestResponse.model_validate(r) for r in result.items],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        pages=result.pages,
    )


@router.get("/requests/my", response_model=List[PermissionRequestResponse])
async def list_my_permission_requests(
    workflow: Workflow,
    current_user: User = Depends(get_current_user),
):
    """The caller's own permission requests, newest first."""
    return await workflow.list_for_requester(current_user.id)


@router.post("/requests", response_model=PermissionRequestResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(config.PERMISSION_REQUEST_RATE_LIMIT)
async def create_permission_request(
    request: Request,
    body: PermissionRequestCreate,
    workflow: Workflow,
    current_user: User = Depends(get_current_user),
):
    """Ask for a permission the caller does not hold."""
    return await workflow.create(current_user.id, body.permission, body.reason)


@router.post("/requests/{request_id}/review", response_model=PermissionRequestResponse)
async def review_permission_request(
    request_id: str,
    body: PermissionRequestReview,
    workflow: Workflow,
    current_user: User = Depends(require_permissions(Permission.PERMISSIONS_MANAGE)),
):
    """Approve or reject a pending request. Approval grants the permission."""
    return await workflow.review(request_id, current_user.id, body.approved, body.review_note)


# ============================================================================
# Matrix and Definitions
# ============================================================================

@router.get("/matrix", response_model=MatrixResponse)
async def get_permission_matrix(
    service: Service,
    page: Page = 1,
    page_size: PageSize = config.DEFAULT_PAGE_SIZE,
    current_user: User = Depends(require_permissions(Permission.PERMISSIONS_MANAGE)),
):
    """Effective permissions of every active user."""
    return await service.permission_matrix(page=page, page_size=page_size)


@router.get("/definitions", response_model=DefinitionsResponse)
async def get_definitions(service: Service):
    """Permission labels, categories, positions and the default policy."""
    return service.definitions()
