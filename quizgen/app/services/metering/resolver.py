"""Allowance resolver: the single decision point for generation requests.

Anonymous callers go through the sliding-window limiter, whose check
already consumes. Authenticated callers get a pure-read check against the
daily counter and credit ledger, then a separate ``consume`` once their
generation has actually started.

Accepted race: two concurrent requests for the same user can both pass
``check`` on the last daily unit and both be counted, overshooting the
daily quota by the number of concurrent requests. Credit debits do not
share this window; they are atomic in the store and fail closed with
LedgerConsistencyError.
"""

from datetime import timedelta
from typing import Optional

from quizgen.app.core.config import settings
from quizgen.app.core.logging import get_logger
from quizgen.app.core.store import AllowanceStore, get_allowance_store
from quizgen.app.core.utils import Clock, utc_now

from .credit_ledger import CreditLedger
from .daily_counter import DailyCounter
from .models import AllowanceVerdict, Anonymous, AuthenticatedUser, Identity
from .sliding_window import SlidingWindowLimiter

logger = get_logger(__name__)


class AllowanceResolver:
    """Decides whether an identity may generate, and charges it afterwards.

    Holds no counters itself; every call re-reads the store.
    """

    def __init__(
        self,
        store: AllowanceStore,
        anonymous_quota: int = 5,
        anonymous_window: timedelta = timedelta(hours=24),
        daily_quota: int = 15,
        daily_window: timedelta = timedelta(hours=24),
        event_ttl_seconds: int = 86400 * 30,
        clock: Optional[Clock] = None,
    ) -> None:
        self._clock = clock or utc_now
        self.daily_quota = daily_quota
        self.daily_window = daily_window
        self.limiter = SlidingWindowLimiter(
            store, anonymous_quota, anonymous_window, clock=self._clock
        )
        self.daily_counter = DailyCounter(store, window=daily_window, clock=self._clock)
        self.credit_ledger = CreditLedger(store, event_ttl_seconds=event_ttl_seconds)

    async def check(self, identity: Identity) -> AllowanceVerdict:
        """Produce the verdict for ``identity``.

        For anonymous callers this consumes one unit of the rolling window.
        Never raises for an exhausted allowance; store failures propagate
        as InfrastructureError.
        """
        if isinstance(identity, Anonymous):
            result = await self.limiter.try_consume(identity.ip_address)
            return AllowanceVerdict(
                allowed=result.success,
                limit=result.limit,
                remaining=result.remaining,
                reset_at=result.reset_at,
                is_authenticated=False,
                daily_used=result.limit - result.remaining,
            )

        if not isinstance(identity, AuthenticatedUser):
            raise TypeError(f"Unsupported identity: {identity!r}")

        daily = await self.daily_counter.peek(identity.user_id)
        credits = await self.credit_ledger.balance(identity.user_id)
        now = self._clock()

        remaining_daily = max(0, self.daily_quota - daily.count)
        if daily.last_reset is None or daily.elapsed:
            reset_at = now + self.daily_window
        else:
            reset_at = daily.last_reset + self.daily_window

        return AllowanceVerdict(
            allowed=remaining_daily > 0 or credits > 0,
            limit=self.daily_quota,
            remaining=remaining_daily + credits,
            reset_at=reset_at,
            is_authenticated=True,
            daily_used=daily.count,
            purchased_credits=credits,
        )

    async def consume(self, identity: Identity) -> None:
        """Charge one generation to ``identity``.

        Call exactly once per generation, after it has started producing
        output. Anonymous callers were already charged by ``check``.

        Raises:
            LedgerConsistencyError: Daily quota used up and no credits left
            InfrastructureError: If the store cannot be reached
        """
        if isinstance(identity, Anonymous):
            return

        user_id = identity.user_id
        daily = await self.daily_counter.peek(user_id)
        if daily.count < self.daily_quota:
            new_count = await self.daily_counter.consume(user_id)
            logger.info(
                f"Consumed daily generation {new_count}/{self.daily_quota} for user {user_id}",
                extra={"user_id": user_id},
            )
            return

        await self.credit_ledger.debit(user_id)

    async def remaining(self, identity: Identity) -> int:
        """Generations left for ``identity`` without charging anything."""
        if isinstance(identity, Anonymous):
            result = await self.limiter.peek(identity.ip_address)
            return result.remaining
        verdict = await self.check(identity)
        return verdict.remaining


_allowance_resolver: Optional[AllowanceResolver] = None


def get_allowance_resolver() -> AllowanceResolver:
    """Get the global allowance resolver, built from settings."""
    global _allowance_resolver
    if _allowance_resolver is None:
        _allowance_resolver = AllowanceResolver(
            store=get_allowance_store(),
            anonymous_quota=settings.anonymous_daily_limit,
            anonymous_window=timedelta(seconds=settings.anonymous_window_seconds),
            daily_quota=settings.authenticated_daily_limit,
            daily_window=timedelta(seconds=settings.daily_window_seconds),
            event_ttl_seconds=settings.payment_event_ttl_seconds,
        )
    return _allowance_resolver


def reset_allowance_resolver() -> None:
    """Reset the global allowance resolver instance."""
    global _allowance_resolver
    _allowance_resolver = None
