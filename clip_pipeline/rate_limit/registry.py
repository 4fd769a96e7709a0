"""
Rate Limiter Registry
=====================
Keyed permit pools shared by every stage that calls an external API.

Usage:
    >>> limiter = RateLimiterRegistry({"twitch-api": (100, 60.0)})
    >>> async with limiter.permit("twitch-api"):
    ...     await client.get(...)
    >>>
    >>> # Lazy creation on first use
    >>> await limiter.acquire("clip-download", 10, 60.0)
"""
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Tuple

from loguru import logger

from clip_pipeline.exceptions import (
    ConfigurationError,
    RateLimiterConfigError,
    RateLimitExceededError,
)
from clip_pipeline.rate_limit.permit_pool import Permit, PermitPool


class RateLimiterRegistry:
    """
    Owns one PermitPool per rate-limit key.

    Pools are created lazily on the first call that supplies parameters, or
    up front through ``declare``. Asking for an existing key with different
    parameters raises RateLimiterConfigError; ``reconfigure`` replaces a pool.
    """

    def __init__(self, limits: Optional[Mapping[str, Tuple[int, float]]] = None):
        self._pools: Dict[str, PermitPool] = {}
        for key, (max_permits, interval) in (limits or {}).items():
            self.declare(key, max_permits, interval)

    def declare(self, key: str, max_permits: int, interval: float) -> PermitPool:
        """Create the pool for ``key`` or confirm the existing one matches."""
        return self._get_or_create(key, max_permits, interval)

    def reconfigure(self, key: str, max_permits: int, interval: float) -> PermitPool:
        """
        Replace the pool for ``key``.

        Permits already granted by the old pool keep their own timers; new
        callers queue on the new pool.
        """
        pool = PermitPool(key, max_permits, interval)
        self._pools[key] = pool
        logger.info(f"🔧 Rate limiter '{key}' reconfigured: {max_permits} permits / {interval}s")
        return pool

    def _get_or_create(
        self,
        key: str,
        max_permits: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> PermitPool:
        pool = self._pools.get(key)
        if pool is not None:
            if max_permits is not None and interval is not None:
                requested = (max_permits, float(interval))
                if requested != pool.params:
                    raise RateLimiterConfigError(key, pool.params, requested)
            return pool

        if max_permits is None or interval is None:
            raise ConfigurationError(
                f"Rate limiter '{key}' is not declared and no limits were given",
                {"key": key},
            )

        pool = PermitPool(key, max_permits, interval)
        self._pools[key] = pool
        logger.info(f"⏱️  Rate limiter created: '{key}' = {max_permits} permits / {interval}s")
        return pool

    def get_pool(self, key: str) -> Optional[PermitPool]:
        return self._pools.get(key)

    async def acquire(
        self,
        key: str,
        max_permits: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> Permit:
        """Block until a permit is granted. The permit returns after the spacing."""
        pool = self._get_or_create(key, max_permits, interval)
        if pool.is_exhausted():
            logger.debug(f"⏳ Waiting for permit on '{key}' (~{pool.estimated_wait():.1f}s)")
        return await pool.acquire()

    async def try_acquire(
        self,
        key: str,
        max_permits: Optional[int] = None,
        interval: Optional[float] = None,
        timeout: Optional[float] = 0.0,
    ) -> bool:
        """Wait at most ``timeout`` seconds for a permit."""
        pool = self._get_or_create(key, max_permits, interval)
        permit = await pool.try_acquire(timeout)
        if permit is None:
            logger.warning(f"🚦 No permit for '{key}' within {timeout}s")
            return False
        return True

    async def acquire_or_raise(
        self,
        key: str,
        timeout: float,
        max_permits: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> Permit:
        """Like ``try_acquire`` but raises RateLimitExceededError on timeout."""
        pool = self._get_or_create(key, max_permits, interval)
        permit = await pool.try_acquire(timeout)
        if permit is None:
            raise RateLimitExceededError(key, timeout)
        return permit

    @asynccontextmanager
    async def permit(
        self,
        key: str,
        max_permits: Optional[int] = None,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> AsyncIterator[Permit]:
        """
        Hold a permit for the duration of the block.

        The permit goes back to the pool when the block exits and the
        replenish spacing has elapsed, whichever is later. With a timeout,
        raises RateLimitExceededError when no permit is granted in time.
        """
        pool = self._get_or_create(key, max_permits, interval)
        if timeout is None:
            granted = await pool.acquire(held=True)
        else:
            granted = await pool.try_acquire(timeout, held=True)
            if granted is None:
                raise RateLimitExceededError(key, timeout)
        try:
            yield granted
        finally:
            granted.done()

    def release(self, key: str) -> bool:
        """Return the oldest permit for ``key`` that is not held in a block."""
        pool = self._pools.get(key)
        if pool is None:
            return False
        return pool.release()

    def is_rate_limited(self, key: str) -> bool:
        pool = self._pools.get(key)
        return pool is not None and pool.is_exhausted()

    def available_permits(self, key: str) -> Optional[int]:
        pool = self._pools.get(key)
        return pool.available if pool else None

    def estimated_wait(self, key: str) -> float:
        pool = self._pools.get(key)
        return pool.estimated_wait() if pool else 0.0

    def request_rate(self, key: str) -> float:
        pool = self._pools.get(key)
        return pool.request_rate() if pool else 0.0

    def status_report(self, key: str) -> str:
        """Human-readable one-line status for ``key``."""
        pool = self._pools.get(key)
        if pool is None:
            return f"Rate limiter '{key}': not configured"
        return (
            f"Rate limiter '{key}': {pool.available}/{pool.max_permits} permits available, "
            f"{pool.waiting} waiting, {pool.total_granted} granted, "
            f"{pool.request_rate():.2f} req/s, est. wait {pool.estimated_wait():.1f}s"
        )

    def get_all_status(self) -> Dict[str, Dict[str, Any]]:
        return {key: pool.status() for key, pool in self._pools.items()}

    @property
    def keys(self) -> list:
        return list(self._pools.keys())
