"""
Client-side memoization of a session's effective permissions.

One cache serves one client (a UI backend, a worker, a CLI). It remembers the
last resolved set for one identity token:

- fetch() with the token already being resolved joins the in-flight
  resolution instead of starting another (single-flight);
- fetch() with the token already resolved returns the remembered set;
- fetch() after a fallback to defaults tries the fetcher again;
- fetch() with any other token, or after invalidate(), resolves afresh.

When resolution fails with UpstreamUnavailable the caller still gets the
position defaults computed locally from the policy, and the error is kept in
`error`. Least privilege beats locking the user out of everything.
"""
import asyncio
import enum
from typing import Awaitable, Callable, FrozenSet, Optional

from app.core.errors import UpstreamUnavailable
from app.features.permissions.enums import Permission, Position
from app.features.permissions.policy import PolicyTable
from app.utils import get_logger


log = get_logger(__name__)

Fetcher = Callable[[str], Awaitable[FrozenSet[Permission]]]


class CacheState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ResolutionResult:
    """
    Either a resolved permission set or the UpstreamUnavailable that prevented it.

    or_defaults() is the fallback: a failure becomes the position defaults.
    """

    __slots__ = ("permissions", "error")

    def __init__(self, permissions: Optional[FrozenSet[Permission]], error: Optional[UpstreamUnavailable]):
        self.permissions = permissions
        self.error = error

    @classmethod
    def success(cls, permissions: FrozenSet[Permission]) -> "ResolutionResult":
        return cls(frozenset(permissions), None)

    @classmethod
    def failure(cls, error: UpstreamUnavailable) -> "ResolutionResult":
        return cls(None, error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def or_defaults(self, policy: PolicyTable, position: Position) -> FrozenSet[Permission]:
        if self.ok:
            return self.permissions
        return policy.defaults_for(position)

    def __repr__(self) -> str:
        if self.ok:
            return f"<ResolutionResult(ok, {len(self.permissions)} permissions)>"
        return f"<ResolutionResult(error={self.error.message!r})>"


async def resolve_with_fallback(fetcher: Fetcher, token: str) -> ResolutionResult:
    """Run the fetcher, turning UpstreamUnavailable into a failed result."""
    try:
        return ResolutionResult.success(await fetcher(token))
    except UpstreamUnavailable as e:
        return ResolutionResult.failure(e)


class EffectivePermissionCache:
    """
    Single-flight cache of one identity's effective permissions.

    Usage:
        client = PermissionsClient()
        cache = EffectivePermissionCache(client.effective_permissions, build_default_policy())
        permissions = await cache.fetch(session.token, session.position)
        ...
        cache.invalidate()  # after a grant changes or the session ends
    """

    def __init__(self, fetcher: Fetcher, policy: PolicyTable):
        self._fetcher = fetcher
        self._policy = policy
        self._key: Optional[str] = None
        self._generation = 0
        self._inflight: Optional[asyncio.Task] = None
        self.state = CacheState.IDLE
        self.permissions: FrozenSet[Permission] = frozenset()
        self.error: Optional[Exception] = None

    @property
    def key(self) -> Optional[str]:
        return self._key

    @property
    def loading(self) -> bool:
        return self.state == CacheState.LOADING

    async def fetch(self, token: str, position: Position) -> FrozenSet[Permission]:
        """
        Effective permissions for `token`; `position` supplies the fallback defaults.

        Every caller sharing one resolution sees the same set, or the same
        exception if the fetcher failed with anything other than
        UpstreamUnavailable.
        """
        if token == self._key:
            if self._inflight is not None:
                return await asyncio.shield(self._inflight)
            if self.state == CacheState.READY:
                return self.permissions

        self._generation += 1
        self._key = token
        self.state = CacheState.LOADING
        self.error = None
        task = asyncio.ensure_future(self._resolve(token, position, self._generation))
        self._inflight = task
        return await asyncio.shield(task)

    async def _resolve(self, token: str, position: Position, generation: int) -> FrozenSet[Permission]:
        try:
            result = await resolve_with_fallback(self._fetcher, token)
        except Exception as e:
            if generation == self._generation:
                self.state = CacheState.ERROR
                self.error = e
                self.permissions = frozenset()
                self._inflight = None
                # Forget the key so the next fetch retries instead of replaying the failure
                self._key = None
            log.exception("Permission resolution failed")
            raise

        permissions = result.or_defaults(self._policy, position)
        if generation != self._generation:
            # A newer token or an invalidate() superseded this resolution
            return permissions

        self._inflight = None
        self.permissions = permissions
        if result.ok:
            self.state = CacheState.READY
        else:
            self.state = CacheState.ERROR
            self.error = result.error
            log.warning(
                "Permission resolution unavailable, using %s defaults: %s",
                position.value, result.error.message,
            )
        return permissions

    def invalidate(self) -> None:
        """Forget the cached key; the next fetch() resolves again."""
        self._generation += 1
        self._key = None
        self._inflight = None
        self.state = CacheState.IDLE
        self.permissions = frozenset()
        self.error = None
