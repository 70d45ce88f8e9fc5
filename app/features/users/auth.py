"""
Authentication utilities for Appwrite JWT verification.
"""
import jwt
from typing import Optional
from appwrite.client import Client
from appwrite.services.users import Users
from appwrite.exception import AppwriteException

from app.core import config
from app.core.errors import UnauthorizedError, UnknownVariantError
from app.features.permissions.enums import Position, parse_position
from app.utils import get_logger


log = get_logger(__name__)


class AppwriteClient:
    """Singleton Appwrite client for server-side operations."""

    _instance: Optional[Client] = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create Appwrite client instance."""
        if cls._instance is None:
            cls._instance = Client()
            cls._instance.set_endpoint(config.APPWRITE_ENDPOINT)
            cls._instance.set_project(config.APPWRITE_PROJECT_ID)
            cls._instance.set_key(config.APPWRITE_API_KEY)
        return cls._instance


def verify_jwt_token(token: str) -> dict:
    """
    Decode an Appwrite JWT and return its payload.

    The signature is not checked here; Appwrite signs the token and the user
    is looked up in Appwrite on first sight. Expiry is checked.

    Raises:
        UnauthorizedError: token is expired or malformed
    """
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": True}
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise UnauthorizedError(f"Invalid token: {e}")


async def get_appwrite_user(user_id: str) -> dict:
    """
    Get user information from Appwrite.

    Raises:
        UnauthorizedError: user not found or API error
    """
    try:
        client = AppwriteClient.get_client()
        return Users(client).get(user_id)
    except AppwriteException as e:
        raise UnauthorizedError(f"Failed to verify user: {e}")


def position_from_appwrite(appwrite_user: dict, default: Position) -> Position:
    """
    The position stored in the Appwrite user's prefs, or `default`.

    An unrecognized value is logged and replaced by the default rather than
    guessed at.
    """
    prefs = appwrite_user.get("prefs") or {}
    raw = prefs.get("position")
    if not raw:
        return default
    try:
        return parse_position(raw)
    except UnknownVariantError:
        log.warning("Appwrite user %s has unknown position %r, using %s",
                    appwrite_user.get("$id"), raw, default.value)
        return default
