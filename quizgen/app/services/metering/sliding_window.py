"""Sliding-window limiter for anonymous callers.

A fixed quota per rolling window, keyed by an arbitrary identity string.
Check and consume are one store operation; there is no separate check.
"""

from datetime import timedelta
from typing import Optional

from quizgen.app.core.logging import get_logger
from quizgen.app.core.store import AllowanceStore, WindowCounts
from quizgen.app.core.utils import Clock, from_epoch_ms, to_epoch_ms, utc_now

from .models import SlidingWindowResult

logger = get_logger(__name__)

WINDOW_KEY_PREFIX = "ratelimit:ip"


class SlidingWindowLimiter:
    """Rolling-window limiter backed by the allowance store."""

    def __init__(
        self,
        store: AllowanceStore,
        quota: int,
        window: timedelta,
        clock: Optional[Clock] = None,
        key_prefix: str = WINDOW_KEY_PREFIX,
    ) -> None:
        self._store = store
        self.quota = quota
        self.window = window
        self._clock = clock or utc_now
        self._key_prefix = key_prefix

    def _make_key(self, identity: str) -> str:
        return f"{self._key_prefix}:{identity}"

    def _to_result(self, counts: WindowCounts, success: bool, now_ms: int) -> SlidingWindowResult:
        window_ms = int(self.window.total_seconds() * 1000)
        oldest = counts.oldest_ms if counts.oldest_ms is not None else now_ms
        return SlidingWindowResult(
            success=success,
            limit=self.quota,
            remaining=max(0, self.quota - counts.count),
            reset_at=from_epoch_ms(oldest + window_ms),
        )

    async def try_consume(self, identity: str) -> SlidingWindowResult:
        """Consume one unit for ``identity`` if the rolling window allows it.

        Raises:
            InfrastructureError: If the store cannot be reached
        """
        now_ms = to_epoch_ms(self._clock())
        counts = await self._store.sliding_window_consume(
            self._make_key(identity),
            self.quota,
            int(self.window.total_seconds() * 1000),
            now_ms,
        )
        if not counts.added:
            logger.debug(f"Sliding window full for {identity}: {counts.count}/{self.quota}")
        return self._to_result(counts, counts.added, now_ms)

    async def peek(self, identity: str) -> SlidingWindowResult:
        """Read-only view of the window; never records a request."""
        now_ms = to_epoch_ms(self._clock())
        counts = await self._store.sliding_window_peek(
            self._make_key(identity),
            int(self.window.total_seconds() * 1000),
            now_ms,
        )
        return self._to_result(counts, counts.count < self.quota, now_ms)
