"""
Permit Pool
===========
Fair FIFO permit pool for one external resource.

A pool of ``max_permits`` grants at most that many permits at once. Every
granted permit comes back to the pool once both of these hold:

    - the replenish spacing (``interval / max_permits``) has elapsed since grant
    - the holder is done with it (bare ``acquire`` callers are never "holding")

All pool mutation happens on the event loop with no awaits between the
availability check and the update.
"""
import asyncio
import time
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Optional, Tuple

from loguru import logger


class Permit:
    """One granted permit."""

    def __init__(self, pool: "PermitPool", held: bool):
        loop = asyncio.get_running_loop()
        self._pool = pool
        self.held = held
        self.granted_at = time.monotonic()
        self._spacing_elapsed = False
        self._returned = False
        self._timer = loop.call_later(pool.spacing, self._on_spacing_elapsed)

    @property
    def returned(self) -> bool:
        return self._returned

    def done(self) -> None:
        """The holder finished its call."""
        self.held = False
        self._maybe_return()

    def _on_spacing_elapsed(self) -> None:
        self._spacing_elapsed = True
        self._maybe_return()

    def _maybe_return(self) -> None:
        if self._spacing_elapsed and not self.held:
            self.force_return()

    def force_return(self) -> None:
        if self._returned:
            return
        self._returned = True
        self._timer.cancel()
        self._pool._return(self)


class PermitPool:
    """
    Fixed-size permit pool with timed replenishment.

    Args:
        key: Name of the external resource
        max_permits: Pool size (> 0)
        interval: Seconds over which ``max_permits`` calls are allowed (> 0)
    """

    def __init__(self, key: str, max_permits: int, interval: float):
        if max_permits <= 0:
            raise ValueError(f"max_permits must be positive, got {max_permits}")
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.key = key
        self.max_permits = max_permits
        self.interval = float(interval)

        self._outstanding: Deque[Permit] = deque()
        self._waiters: Deque[Tuple[asyncio.Future, bool]] = deque()

        self.total_granted = 0
        self.last_grant_at: Optional[datetime] = None
        self.created_at = datetime.now(timezone.utc)
        self._created_mono = time.monotonic()

    @property
    def spacing(self) -> float:
        return self.interval / self.max_permits

    @property
    def params(self) -> tuple:
        return (self.max_permits, self.interval)

    @property
    def available(self) -> int:
        return max(0, self.max_permits - len(self._outstanding))

    @property
    def waiting(self) -> int:
        return sum(1 for waiter, _ in self._waiters if not waiter.done())

    def is_exhausted(self) -> bool:
        return self.available == 0

    def _grant(self, held: bool) -> Permit:
        permit = Permit(self, held)
        self._outstanding.append(permit)
        self.total_granted += 1
        self.last_grant_at = datetime.now(timezone.utc)
        return permit

    def _grant_now(self, held: bool) -> Optional[Permit]:
        """Grant without waiting, only when nobody is queued ahead."""
        if self.available > 0 and self.waiting == 0:
            return self._grant(held)
        return None

    async def acquire(self, held: bool = False) -> Permit:
        """
        Wait for a permit in FIFO order.

        Only cancellation ends the wait early.
        """
        permit = self._grant_now(held)
        if permit is not None:
            return permit

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        entry = (waiter, held)
        self._waiters.append(entry)

        try:
            return await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Granted just as we were cancelled; hand it back.
                waiter.result().force_return()
            else:
                try:
                    self._waiters.remove(entry)
                except ValueError:
                    pass
            raise

    async def try_acquire(self, timeout: Optional[float], held: bool = False) -> Optional[Permit]:
        """Wait at most ``timeout`` seconds. Returns None on timeout."""
        permit = self._grant_now(held)
        if permit is not None:
            return permit
        if timeout is not None and timeout <= 0:
            return None
        try:
            return await asyncio.wait_for(self.acquire(held), timeout)
        except asyncio.TimeoutError:
            return None

    def release(self) -> bool:
        """
        Return the oldest outstanding permit that is not held inside a
        ``permit()`` block. Held permits only come back through their holder.
        """
        for permit in self._outstanding:
            if not permit.held:
                permit.force_return()
                return True
        logger.debug(f"Release on '{self.key}' ignored: no releasable permit")
        return False

    def _return(self, permit: Permit) -> None:
        try:
            self._outstanding.remove(permit)
        except ValueError:
            return
        self._wake_waiters()

    def _wake_waiters(self) -> None:
        while self._waiters and self.available > 0:
            waiter, held = self._waiters.popleft()
            if waiter.done():
                continue
            waiter.set_result(self._grant(held))

    def estimated_wait(self) -> float:
        """Seconds until a new caller would likely be granted."""
        if self.available > 0 and self.waiting == 0:
            return 0.0
        oldest_remaining = 0.0
        if self._outstanding:
            oldest = self._outstanding[0]
            oldest_remaining = max(0.0, oldest.granted_at + self.spacing - time.monotonic())
        return oldest_remaining + self.spacing * self.waiting

    def request_rate(self) -> float:
        """Granted permits per second since the pool was created."""
        elapsed = time.monotonic() - self._created_mono
        if elapsed <= 0:
            return 0.0
        return self.total_granted / elapsed

    def status(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "max_permits": self.max_permits,
            "interval_seconds": self.interval,
            "available_permits": self.available,
            "waiting": self.waiting,
            "total_granted": self.total_granted,
            "last_grant_at": self.last_grant_at.isoformat() if self.last_grant_at else None,
            "created_at": self.created_at.isoformat(),
            "request_rate": round(self.request_rate(), 4),
        }

    def __repr__(self) -> str:
        return f"PermitPool(key={self.key}, {self.available}/{self.max_permits}, interval={self.interval}s)"
