"""
Fixed-window rate limiter for verification-code issuance and auth attempts.

Built on the ``limits`` fixed-window strategy. Counters are namespaced per
(scope, key); unrelated keys never contend. A Redis storage is used when
configured so every app instance shares the window; otherwise, or whenever
that storage fails, an in-process MemoryStorage takes over.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from limits import RateLimitItem, RateLimitItemPerSecond
from limits.aio.storage import MemoryStorage, Storage
from limits.aio.strategies import FixedWindowRateLimiter
from limits.errors import StorageError
from limits.storage import storage_from_string

from config import RateLimitSettings
from errors import RateLimitError
from shared.logging import get_logger

log = get_logger(__name__)

NAMESPACE = "ratelimit"


class RateLimitScope(str, Enum):
    AUTH_ATTEMPT = "auth-attempt"
    CODE_ISSUANCE = "code-issuance"


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    remaining: int
    retry_after: int = 0  # seconds; 0 when allowed


def rules_from_settings(settings: RateLimitSettings) -> dict[RateLimitScope, RateLimitRule]:
    return {
        RateLimitScope.AUTH_ATTEMPT: RateLimitRule(
            settings.auth_attempt_limit, settings.auth_attempt_window_seconds
        ),
        RateLimitScope.CODE_ISSUANCE: RateLimitRule(
            settings.code_issuance_limit, settings.code_issuance_window_seconds
        ),
    }


def redis_storage(redis_uri: str) -> Storage:
    """Async Redis storage for *redis_uri*; errors surface as StorageError."""
    uri = redis_uri if redis_uri.startswith("async+") else f"async+{redis_uri}"
    return storage_from_string(uri, wrap_exceptions=True)


class RateLimiter:
    def __init__(
        self,
        rules: dict[RateLimitScope, RateLimitRule],
        storage: Optional[Storage] = None,
        fallback_storage: Optional[Storage] = None,
        namespace: str = NAMESPACE,
    ) -> None:
        self._items: dict[RateLimitScope, RateLimitItem] = {
            RateLimitScope(scope): RateLimitItemPerSecond(
                rule.limit, rule.window_seconds, namespace=namespace
            )
            for scope, rule in rules.items()
        }
        self._shared = FixedWindowRateLimiter(storage) if storage is not None else None
        if fallback_storage is None:
            fallback_storage = MemoryStorage()
        self._local = FixedWindowRateLimiter(fallback_storage)

    @classmethod
    def from_settings(
        cls, settings: RateLimitSettings, redis_uri: Optional[str] = None
    ) -> "RateLimiter":
        storage = redis_storage(redis_uri) if redis_uri else None
        return cls(rules_from_settings(settings), storage)

    async def _decide(
        self,
        limiter: FixedWindowRateLimiter,
        item: RateLimitItem,
        scope: RateLimitScope,
        key: str,
    ) -> RateLimitDecision:
        allowed = await limiter.hit(item, scope.value, key)
        stats = await limiter.get_window_stats(item, scope.value, key)
        if allowed:
            return RateLimitDecision(allowed=True, remaining=stats.remaining)
        return RateLimitDecision(
            allowed=False,
            remaining=0,
            retry_after=max(1, math.ceil(stats.reset_time - time.time())),
        )

    async def check(self, key: str, scope: RateLimitScope) -> RateLimitDecision:
        """Count one attempt for *key* in *scope* and say whether it is allowed."""
        scope = RateLimitScope(scope)
        item = self._items[scope]
        if self._shared is not None:
            try:
                return await self._decide(self._shared, item, scope, key)
            except StorageError as e:
                log.warning(
                    "rate_limit_storage_unavailable",
                    scope=scope.value,
                    error=str(e.storage_error),
                    error_type=type(e.storage_error).__name__,
                )
        return await self._decide(self._local, item, scope, key)

    async def enforce(self, key: str, scope: RateLimitScope) -> RateLimitDecision:
        """check() that raises RateLimitError (with retry-after) when denied."""
        decision = await self.check(key, scope)
        if not decision.allowed:
            log.warning(
                "rate_limited",
                scope=RateLimitScope(scope).value,
                retry_after=decision.retry_after,
            )
            raise RateLimitError(
                f"Too many attempts. Try again in {decision.retry_after} seconds.",
                retry_after=decision.retry_after,
            )
        return decision

    async def reset(self, key: str, scope: RateLimitScope) -> None:
        scope = RateLimitScope(scope)
        item = self._items[scope]
        await self._local.clear(item, scope.value, key)
        if self._shared is not None:
            try:
                await self._shared.clear(item, scope.value, key)
            except StorageError as e:
                log.warning("rate_limit_reset_failed", error=str(e.storage_error))
