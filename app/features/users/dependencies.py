"""
FastAPI dependencies for authentication.
"""
from typing import Annotated, Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import config
from app.core.database.engine import get_db
from app.core.errors import ForbiddenError, UnauthorizedError
from app.features.permissions.enums import parse_position
from app.features.users.models import User
from app.features.users.auth import verify_jwt_token, get_appwrite_user, position_from_appwrite
from app.utils import get_logger, utcnow


log = get_logger(__name__)

security = HTTPBearer(auto_error=False)

# Fails at import on a misconfigured DEFAULT_POSITION
DEFAULT_POSITION = parse_position(config.DEFAULT_POSITION)


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from JWT token.

    This dependency:
    1. Extracts JWT from Authorization header
    2. Decodes the Appwrite JWT
    3. Looks up the user locally, provisioning them from Appwrite on first login
    4. Updates last_login_at timestamp

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    if credentials is None:
        raise UnauthorizedError()

    payload = verify_jwt_token(credentials.credentials)
    appwrite_user_id = payload.get("userId")
    if not appwrite_user_id:
        raise UnauthorizedError("Invalid token payload")

    result = await db.execute(
        select(User).where(User.appwrite_id == appwrite_user_id)
    )
    user = result.scalar_one_or_none()

    if user is None:
        appwrite_user = await get_appwrite_user(appwrite_user_id)
        user = User(
            appwrite_id=appwrite_user_id,
            email=appwrite_user.get("email", ""),
            name=appwrite_user.get("name") or "Unknown",
            position=position_from_appwrite(appwrite_user, DEFAULT_POSITION),
            last_login_at=utcnow(),
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        log.info("Provisioned user %s (%s) as %s", user.id, user.email, user.position.value)
    else:
        user.last_login_at = utcnow()
        await db.commit()
        await db.refresh(user)

    if not user.is_active:
        raise ForbiddenError("User account is deactivated")

    return user
