"""
Pydantic schemas for permission management.

Request and response models for grants, positions, permission requests and
the permission matrix.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from app.features.permissions.enums import Permission, PermissionRequestStatus, Position


# ============================================================================
# Grant Schemas
# ============================================================================

class GrantPermissionBody(BaseModel):
    """Schema for granting a permission to a user."""
    permission: Permission
    reason: Optional[str] = Field(None, max_length=1000, description="Why the permission is granted")
    expires_at: Optional[datetime] = Field(None, description="When the grant lapses (never if omitted)")


class RevokePermissionBody(BaseModel):
    """Schema for revoking a permission from a user."""
    permission: Permission
    reason: Optional[str] = Field(None, max_length=1000)


class PermissionGrantResponse(BaseModel):
    """Schema for a grant row."""
    id: int
    user_id: str
    permission: Permission
    granted: bool
    granted_by_id: Optional[str]
    granted_at: datetime
    reason: Optional[str]
    expires_at: Optional[datetime]

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Position Schemas
# ============================================================================

class UpdatePositionBody(BaseModel):
    """Schema for moving a user to another position."""
    position: Position


class UserPositionResponse(BaseModel):
    user_id: str
    position: Position


# ============================================================================
# Effective Permissions
# ============================================================================

class UserPermissionsResponse(BaseModel):
    """Where a user's permissions come from."""
    user_id: str
    position: Position
    default_permissions: List[Permission]
    custom_permissions: List[PermissionGrantResponse]
    effective_permissions: List[Permission]


# ============================================================================
# Permission Request Schemas
# ============================================================================

class PermissionRequestCreate(BaseModel):
    """Schema for asking for a permission."""
    permission: Permission
    reason: str = Field(..., min_length=1, max_length=2000, description="Why the permission is needed")

    @field_validator('reason')
    @classmethod
    def reason_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError('Reason must not be blank')
        return v


class PermissionRequestReview(BaseModel):
    """Schema for approving or rejecting a request."""
    approved: bool
    review_note: Optional[str] = Field(None, max_length=2000)


class PermissionRequestResponse(BaseModel):
    """Schema for permission request response."""
    id: str
    requester_id: str
    permission: Permission
    reason: str
    status: PermissionRequestStatus
    reviewer_id: Optional[str]
    reviewed_at: Optional[datetime]
    review_note: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionRequestListResponse(BaseModel):
    """Schema for paginated permission request list."""
    items: List[PermissionRequestResponse]
    total: int
    page: int
    page_size: int
    pages: int


# ============================================================================
# Matrix and Definitions
# ============================================================================

class MatrixRow(BaseModel):
    user_id: str
    name: Optional[str]
    email: str
    position: Position
    permissions: List[Permission]
    custom_permission_count: int


class MatrixResponse(BaseModel):
    """Schema for paginated permission matrix."""
    items: List[MatrixRow]
    total: int
    page: int
    page_size: int
    pages: int


class PermissionCategory(BaseModel):
    label: str
    permissions: List[Permission]


class DefinitionsResponse(BaseModel):
    """Labels and groupings for every permission, position and request status."""
    permissions: List[Permission]
    permission_labels: Dict[str, str]
    permission_categories: Dict[str, PermissionCategory]
    positions: List[Position]
    position_labels: Dict[str, str]
    request_status_labels: Dict[str, str]
    default_permissions_by_position: Dict[str, List[Permission]]
