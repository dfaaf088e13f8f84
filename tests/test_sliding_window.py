"""Tests for the anonymous sliding-window limiter."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from quizgen.app.core.store import InMemoryAllowanceStore
from quizgen.app.exceptions import InfrastructureError
from quizgen.app.services.metering import SlidingWindowLimiter

WINDOW = timedelta(hours=24)


class TestSlidingWindowLimiter:
    @pytest.fixture
    def store(self):
        return InMemoryAllowanceStore()

    @pytest.fixture
    def limiter(self, store, clock):
        return SlidingWindowLimiter(store, quota=5, window=WINDOW, clock=clock)

    @pytest.mark.asyncio
    async def test_allows_quota_then_denies(self, limiter, clock):
        for i in range(5):
            result = await limiter.try_consume("1.2.3.4")
            assert result.success is True
            assert result.limit == 5
            assert result.remaining == 4 - i

        result = await limiter.try_consume("1.2.3.4")
        assert result.success is False
        assert result.remaining == 0
        assert result.reset_at == clock.now + WINDOW

    @pytest.mark.asyncio
    async def test_denied_requests_are_not_recorded(self, limiter, store, clock):
        for _ in range(5):
            await limiter.try_consume("1.2.3.4")
        for _ in range(3):
            await limiter.try_consume("1.2.3.4")

        peek = await limiter.peek("1.2.3.4")
        assert peek.remaining == 0
        # Only the five accepted requests occupy the window
        assert len(store._windows["ratelimit:ip:1.2.3.4"].hits) == 5

    @pytest.mark.asyncio
    async def test_window_slides(self, limiter, clock):
        start = clock.now
        for _ in range(5):
            await limiter.try_consume("1.2.3.4")
            clock.advance(hours=1)

        denied = await limiter.try_consume("1.2.3.4")
        assert denied.success is False
        assert denied.reset_at == start + WINDOW

        clock.now = start + WINDOW
        result = await limiter.try_consume("1.2.3.4")
        assert result.success is True
        assert result.remaining == 0

    @pytest.mark.asyncio
    async def test_allows_again_after_full_window(self, limiter, clock):
        for _ in range(5):
            await limiter.try_consume("1.2.3.4")

        clock.advance(hours=24, seconds=1)
        result = await limiter.try_consume("1.2.3.4")
        assert result.success is True
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_identities_are_independent(self, limiter):
        for _ in range(5):
            await limiter.try_consume("1.2.3.4")

        result = await limiter.try_consume("5.6.7.8")
        assert result.success is True
        assert result.remaining == 4

    @pytest.mark.asyncio
    async def test_peek_is_read_only(self, limiter, clock):
        await limiter.try_consume("1.2.3.4")

        for _ in range(10):
            result = await limiter.peek("1.2.3.4")
            assert result.remaining == 4
            assert result.success is True

        fresh = await limiter.peek("9.9.9.9")
        assert fresh.remaining == 5
        assert fresh.reset_at == clock.now + WINDOW

    @pytest.mark.asyncio
    async def test_concurrent_requests_admit_exactly_quota(self, limiter):
        results = await asyncio.gather(*[limiter.try_consume("1.2.3.4") for _ in range(12)])
        assert sum(1 for r in results if r.success) == 5
        assert sum(1 for r in results if not r.success) == 7

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, clock):
        store = InMemoryAllowanceStore()
        store.sliding_window_consume = AsyncMock(side_effect=InfrastructureError("down"))
        limiter = SlidingWindowLimiter(store, quota=5, window=WINDOW, clock=clock)

        with pytest.raises(InfrastructureError):
            await limiter.try_consume("1.2.3.4")
