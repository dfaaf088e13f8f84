"""Tests for AllowanceResolver.

Tests cover:
- Anonymous path: check consumes, consume is a no-op
- Authenticated path: pure-read check, daily-then-credit consume
- Lazy daily reset seen through the resolver
- Store failures propagating instead of becoming allow/deny
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from quizgen.app.core.store import InMemoryAllowanceStore, StoredDailyCounter
from quizgen.app.core.utils import to_epoch_ms
from quizgen.app.exceptions import InfrastructureError, LedgerConsistencyError
from quizgen.app.services.metering import (
    AllowanceResolver,
    Anonymous,
    AuthenticatedUser,
    get_allowance_resolver,
    identity_from_user_id,
)

DAY = timedelta(hours=24)


@pytest.fixture
def store():
    return InMemoryAllowanceStore()


@pytest.fixture
def resolver(store, clock):
    return AllowanceResolver(store, clock=clock)


class TestIdentity:
    def test_user_id_selects_authenticated(self):
        identity = identity_from_user_id("u1", "1.2.3.4")
        assert identity == AuthenticatedUser("u1")
        assert identity.is_authenticated is True

    def test_missing_user_id_selects_anonymous(self):
        assert identity_from_user_id(None, "1.2.3.4") == Anonymous("1.2.3.4")
        assert identity_from_user_id("", "1.2.3.4") == Anonymous("1.2.3.4")


class TestAnonymousPath:
    @pytest.mark.asyncio
    async def test_check_consumes_window(self, resolver):
        anon = Anonymous("1.2.3.4")
        for expected in (4, 3, 2, 1, 0):
            verdict = await resolver.check(anon)
            assert verdict.allowed is True
            assert verdict.remaining == expected
            assert verdict.limit == 5
            assert verdict.is_authenticated is False

        verdict = await resolver.check(anon)
        assert verdict.allowed is False
        assert verdict.remaining == 0

    @pytest.mark.asyncio
    async def test_consume_is_noop(self, resolver):
        anon = Anonymous("1.2.3.4")
        await resolver.check(anon)
        await resolver.consume(anon)
        await resolver.consume(anon)
        assert await resolver.remaining(anon) == 4

    @pytest.mark.asyncio
    async def test_remaining_does_not_consume(self, resolver):
        anon = Anonymous("1.2.3.4")
        for _ in range(10):
            assert await resolver.remaining(anon) == 5

    @pytest.mark.asyncio
    async def test_reset_at_from_oldest_request(self, resolver, clock):
        anon = Anonymous("1.2.3.4")
        first = clock.now
        for _ in range(5):
            await resolver.check(anon)
            clock.advance(minutes=10)

        verdict = await resolver.check(anon)
        assert verdict.allowed is False
        assert verdict.reset_at == first + DAY


class TestAuthenticatedPath:
    @pytest.mark.asyncio
    async def test_new_user(self, resolver, clock):
        verdict = await resolver.check(AuthenticatedUser("u1"))
        assert verdict.allowed is True
        assert verdict.limit == 15
        assert verdict.remaining == 15
        assert verdict.reset_at == clock.now + DAY
        assert verdict.is_authenticated is True

    @pytest.mark.asyncio
    async def test_check_is_pure_read(self, resolver, store):
        user = AuthenticatedUser("u1")
        for _ in range(20):
            await resolver.check(user)
        assert await store.get_daily("u1") is None
        assert await store.get_credits("u1") == 0

    @pytest.mark.asyncio
    async def test_remaining_adds_credits(self, resolver, store, clock):
        for _ in range(3):
            await store.consume_daily("u1", to_epoch_ms(clock.now), 86_400_000)
        await store.grant_credits("u1", 5)

        verdict = await resolver.check(AuthenticatedUser("u1"))
        assert verdict.remaining == 12 + 5
        assert verdict.daily_used == 3
        assert verdict.purchased_credits == 5

    @pytest.mark.asyncio
    async def test_reset_at_from_last_reset(self, resolver, clock):
        user = AuthenticatedUser("u1")
        start = clock.now
        await resolver.consume(user)
        clock.advance(hours=3)

        verdict = await resolver.check(user)
        assert verdict.reset_at == start + DAY

    @pytest.mark.asyncio
    async def test_full_day_then_credits(self, resolver, store, clock):
        """14 used -> 15th allowed -> denied -> purchase -> credits spent."""
        user = AuthenticatedUser("u1")
        for _ in range(14):
            await resolver.consume(user)

        verdict = await resolver.check(user)
        assert verdict.allowed is True
        assert verdict.remaining == 1
        await resolver.consume(user)
        assert (await store.get_daily("u1")).count == 15

        verdict = await resolver.check(user)
        assert verdict.allowed is False
        assert verdict.remaining == 0

        await resolver.credit_ledger.grant("u1", 5, event_id="evt_1")
        verdict = await resolver.check(user)
        assert verdict.allowed is True
        assert verdict.remaining == 5

        await resolver.consume(user)
        assert await store.get_credits("u1") == 4
        assert (await store.get_daily("u1")).count == 15

    @pytest.mark.asyncio
    async def test_daily_used_before_credits(self, resolver, store):
        user = AuthenticatedUser("u1")
        await resolver.credit_ledger.grant("u1", 5)

        await resolver.consume(user)

        assert (await store.get_daily("u1")).count == 1
        assert await store.get_credits("u1") == 5

    @pytest.mark.asyncio
    async def test_lazy_reset_through_resolver(self, resolver, store, clock):
        user = AuthenticatedUser("u1")
        for _ in range(15):
            await resolver.consume(user)
        await resolver.credit_ledger.grant("u1", 2)

        clock.advance(hours=24, minutes=1)
        verdict = await resolver.check(user)
        assert verdict.remaining == 15 + 2
        assert verdict.reset_at == clock.now + DAY
        # Check does not commit the reset
        assert (await store.get_daily("u1")).count == 15

        await resolver.consume(user)
        assert await store.get_daily("u1") == StoredDailyCounter(1, to_epoch_ms(clock.now))
        assert await store.get_credits("u1") == 2

    @pytest.mark.asyncio
    async def test_consume_without_allowance_fails_closed(self, resolver):
        user = AuthenticatedUser("u1")
        for _ in range(15):
            await resolver.consume(user)

        with pytest.raises(LedgerConsistencyError):
            await resolver.consume(user)

    @pytest.mark.asyncio
    async def test_remaining_for_authenticated(self, resolver):
        user = AuthenticatedUser("u1")
        await resolver.consume(user)
        assert await resolver.remaining(user) == 14


class TestInfrastructureFailures:
    @pytest.mark.asyncio
    async def test_check_propagates_for_authenticated(self, store, clock):
        store.get_daily = AsyncMock(side_effect=InfrastructureError("down"))
        resolver = AllowanceResolver(store, clock=clock)

        with pytest.raises(InfrastructureError):
            await resolver.check(AuthenticatedUser("u1"))

    @pytest.mark.asyncio
    async def test_check_propagates_for_anonymous(self, store, clock):
        store.sliding_window_consume = AsyncMock(side_effect=InfrastructureError("down"))
        resolver = AllowanceResolver(store, clock=clock)

        with pytest.raises(InfrastructureError):
            await resolver.check(Anonymous("1.2.3.4"))

    @pytest.mark.asyncio
    async def test_consume_propagates(self, store, clock):
        store.consume_daily = AsyncMock(side_effect=InfrastructureError("down"))
        resolver = AllowanceResolver(store, clock=clock)

        with pytest.raises(InfrastructureError):
            await resolver.consume(AuthenticatedUser("u1"))


class TestResolverSingleton:
    def test_built_from_settings(self):
        resolver = get_allowance_resolver()
        assert resolver.daily_quota == 15
        assert resolver.limiter.quota == 5
        assert get_allowance_resolver() is resolver
