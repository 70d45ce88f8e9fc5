"""
Pydantic schemas for user responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr

from app.features.permissions.enums import Position


class UserResponse(BaseModel):
    """Schema for user responses."""
    id: str
    email: EmailStr
    name: str
    position: Position
    is_active: bool
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str
    position: Position

    model_config = {"from_attributes": True}
