"""
HTTP client for the permissions API, used by services that consume it
remotely (and as the fetcher behind EffectivePermissionCache).
"""
from typing import Any, Dict, FrozenSet, Optional

import httpx

from app.core import config
from app.core.errors import UnauthorizedError, UnknownVariantError, UpstreamUnavailable
from app.features.permissions.enums import Permission, parse_permission
from app.utils import get_logger


log = get_logger(__name__)


class PermissionsClient:
    """
    Thin async wrapper around GET /permissions/my.

    Transport failures, non-200 responses and bodies that do not parse become
    UpstreamUnavailable so the cache can fall back to position defaults. Only
    401 is a hard failure (UnauthorizedError).

    Usage:
        async with PermissionsClient() as client:
            permissions = await client.effective_permissions(token)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None,
    ):
        self.base_url = (base_url or config.PERMISSIONS_API_URL).rstrip("/")
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(
            timeout=timeout if timeout is not None else config.PERMISSIONS_API_TIMEOUT
        )

    async def __aenter__(self) -> "PermissionsClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def get_my_permissions(self, token: str) -> Dict[str, Any]:
        """Raw /permissions/my payload for the identity behind `token`."""
        url = f"{self.base_url}/permissions/my"
        try:
            response = await self.http.get(url, headers={"Authorization": f"Bearer {token}"})
        except httpx.HTTPError as e:
            log.warning("Permissions API unreachable at %s: %s", url, e)
            raise UpstreamUnavailable(f"Permissions API unreachable: {e}") from e

        if response.status_code == 401:
            raise UnauthorizedError("Permissions API rejected the token")
        if response.status_code != 200:
            log.warning("Permissions API returned %s", response.status_code)
            raise UpstreamUnavailable(f"Permissions API returned {response.status_code}")
        try:
            payload = response.json()
        except ValueError as e:
            log.warning("Permissions API sent a body that is not JSON: %s", e)
            raise UpstreamUnavailable("Permissions API sent a malformed response") from e
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("Permissions API sent a malformed response")
        return payload

    async def effective_permissions(self, token: str) -> FrozenSet[Permission]:
        payload = await self.get_my_permissions(token)
        raw = payload.get("effective_permissions")
        if not isinstance(raw, list):
            raise UpstreamUnavailable("Permissions API response has no effective_permissions list")
        try:
            return frozenset(parse_permission(p) for p in raw)
        except UnknownVariantError as e:
            # A newer server knows permissions this build does not
            log.warning("Permissions API sent %s", e.message)
            raise UpstreamUnavailable(f"Permissions API sent {e.message}") from e
