"""
Tests for the permit pool and the rate limiter registry.
"""
import asyncio

import pytest

from clip_pipeline.exceptions import ConfigurationError, RateLimiterConfigError, RateLimitExceededError
from clip_pipeline.rate_limit import PermitPool, RateLimiterRegistry


class TestPermitPool:
    """Pool size, replenishment and fairness."""

    def test_invalid_parameters(self):
        """Non-positive pool size or interval is rejected."""
        with pytest.raises(ValueError):
            PermitPool("k", 0, 60)
        with pytest.raises(ValueError):
            PermitPool("k", 5, 0)

    def test_spacing(self):
        pool = PermitPool("k", 10, 60)
        assert pool.spacing == 6.0
        assert pool.params == (10, 60.0)

    @pytest.mark.asyncio
    async def test_available_stays_within_bounds(self):
        pool = PermitPool("k", 3, 60)
        assert pool.available == 3

        await pool.acquire()
        assert pool.available == 2

        assert pool.release() is True
        assert pool.available == 3
        assert pool.release() is False
        assert pool.available == 3

    @pytest.mark.asyncio
    async def test_permit_returns_after_spacing(self):
        """A bare permit goes back to the pool once the spacing elapses."""
        pool = PermitPool("k", 1, 0.05)
        await pool.acquire()
        assert pool.available == 0

        permit = await asyncio.wait_for(pool.acquire(), timeout=1.0)
        assert permit is not None
        assert pool.total_granted == 2

    @pytest.mark.asyncio
    async def test_held_permit_waits_for_holder(self):
        """A held permit is not returned while the holder is still working."""
        pool = PermitPool("k", 1, 0.01)
        permit = await pool.acquire(held=True)

        await asyncio.sleep(0.05)
        assert pool.available == 0

        permit.done()
        assert pool.available == 1
        assert permit.returned

    @pytest.mark.asyncio
    async def test_waiters_are_served_in_order(self):
        pool = PermitPool("k", 1, 0.02)
        await pool.acquire()
        order = []

        async def waiter(name):
            await pool.acquire()
            order.append(name)

        tasks = []
        for name in ("first", "second", "third"):
            tasks.append(asyncio.create_task(waiter(name)))
            await asyncio.sleep(0)

        await asyncio.wait_for(asyncio.gather(*tasks), timeout=2.0)
        assert order == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_try_acquire_times_out(self):
        pool = PermitPool("k", 1, 60)
        assert await pool.try_acquire(0) is not None
        assert await pool.try_acquire(0) is None
        assert await pool.try_acquire(0.05) is None
        assert pool.waiting == 0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_leaves_queue(self):
        pool = PermitPool("k", 1, 60)
        await pool.acquire()

        task = asyncio.create_task(pool.acquire())
        await asyncio.sleep(0)
        assert pool.waiting == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert pool.waiting == 0

    @pytest.mark.asyncio
    async def test_status(self):
        pool = PermitPool("twitch-api", 100, 60)
        await pool.acquire()
        status = pool.status()
        assert status["key"] == "twitch-api"
        assert status["available_permits"] == 99
        assert status["total_granted"] == 1
        assert status["last_grant_at"] is not None


class TestRateLimiterRegistry:
    """Keyed pools shared by the stages."""

    @pytest.mark.asyncio
    async def test_concurrency_never_exceeds_pool_size(self):
        """At most max_permits holders run at once."""
        registry = RateLimiterRegistry({"k": (2, 0.05)})
        active = 0
        max_active = 0

        async def call():
            nonlocal active, max_active
            async with registry.permit("k"):
                active += 1
                max_active = max(max_active, active)
                await asyncio.sleep(0.01)
                active -= 1

        await asyncio.wait_for(asyncio.gather(*(call() for _ in range(6))), timeout=5.0)
        assert max_active <= 2
        assert registry.get_pool("k").total_granted == 6

    @pytest.mark.asyncio
    async def test_try_acquire_returns_false_when_exhausted(self):
        registry = RateLimiterRegistry()
        assert await registry.try_acquire("k", 1, 60.0) is True
        assert await registry.try_acquire("k", 1, 60.0, timeout=0.05) is False
        assert registry.is_rate_limited("k")

    @pytest.mark.asyncio
    async def test_mismatched_parameters_raise(self):
        registry = RateLimiterRegistry({"k": (1, 60.0)})
        with pytest.raises(RateLimiterConfigError) as exc_info:
            await registry.acquire("k", 2, 60.0)
        assert exc_info.value.key == "k"

    @pytest.mark.asyncio
    async def test_undeclared_key_needs_parameters(self):
        registry = RateLimiterRegistry()
        with pytest.raises(ConfigurationError):
            await registry.acquire("unknown")

    @pytest.mark.asyncio
    async def test_lazy_creation_and_reuse(self):
        registry = RateLimiterRegistry()
        await registry.acquire("clip-download", 10, 60.0)
        await registry.acquire("clip-download", 10, 60.0)
        await registry.acquire("clip-download")
        assert registry.available_permits("clip-download") == 7
        assert registry.keys == ["clip-download"]

    @pytest.mark.asyncio
    async def test_reconfigure_replaces_pool(self):
        registry = RateLimiterRegistry({"k": (1, 60.0)})
        await registry.acquire("k")
        registry.reconfigure("k", 5, 60.0)
        assert registry.available_permits("k") == 5

    @pytest.mark.asyncio
    async def test_permit_timeout_raises(self):
        registry = RateLimiterRegistry({"k": (1, 60.0)})
        await registry.acquire("k")
        with pytest.raises(RateLimitExceededError):
            async with registry.permit("k", timeout=0.01):
                pass

    @pytest.mark.asyncio
    async def test_acquire_or_raise(self):
        registry = RateLimiterRegistry({"k": (1, 60.0)})
        await registry.acquire_or_raise("k", timeout=0)
        with pytest.raises(RateLimitExceededError):
            await registry.acquire_or_raise("k", timeout=0)

    @pytest.mark.asyncio
    async def test_release_and_introspection(self):
        registry = RateLimiterRegistry({"k": (2, 60.0)})
        await registry.acquire("k")
        assert registry.available_permits("k") == 1
        assert registry.release("k") is True
        assert registry.available_permits("k") == 2
        assert registry.release("missing") is False
        assert registry.available_permits("missing") is None
        assert registry.estimated_wait("k") == 0.0
        assert registry.request_rate("missing") == 0.0

    @pytest.mark.asyncio
    async def test_release_skips_permit_held_in_block(self):
        """A stray release cannot push concurrency past the pool size."""
        registry = RateLimiterRegistry({"k": (1, 0.01)})
        async with registry.permit("k"):
            assert registry.release("k") is False
            assert registry.available_permits("k") == 0
            assert await registry.try_acquire("k", timeout=0.05) is False

        await asyncio.sleep(0.02)
        assert registry.available_permits("k") == 1

    @pytest.mark.asyncio
    async def test_estimated_wait_when_exhausted(self):
        registry = RateLimiterRegistry({"k": (1, 60.0)})
        await registry.acquire("k")
        assert 0 < registry.estimated_wait("k") <= 60.0

    def test_status_report(self):
        registry = RateLimiterRegistry({"twitch-api": (100, 60.0)})
        report = registry.status_report("twitch-api")
        assert "twitch-api" in report
        assert "100/100" in report
        assert "not configured" in registry.status_report("other")
        assert set(registry.get_all_status()) == {"twitch-api"}
