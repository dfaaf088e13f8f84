"""Per-user daily counter with lazy reset.

There is no background sweep. A lapsed window is only noticed when the
counter is read or consumed; reads compute the reset, and only consume
writes it.
"""

from datetime import datetime, timedelta
from typing import Optional

from quizgen.app.core.logging import get_logger
from quizgen.app.core.store import AllowanceStore, StoredDailyCounter
from quizgen.app.core.utils import Clock, from_epoch_ms, to_epoch_ms, utc_now

from .models import EffectiveDaily

logger = get_logger(__name__)

DAILY_WINDOW = timedelta(hours=24)


def effective_daily_state(
    stored: Optional[StoredDailyCounter],
    now: datetime,
    window: timedelta = DAILY_WINDOW,
) -> EffectiveDaily:
    """Compute the counter as it stands at ``now``.

    The count is treated as zero once ``now - last_reset >= window``. A
    counter that was never stamped keeps its stored count.

    >>> from datetime import timezone
    >>> now = datetime(2026, 1, 2, tzinfo=timezone.utc)
    >>> effective_daily_state(StoredDailyCounter(7, 0), now).count
    0
    """
    if stored is None:
        return EffectiveDaily(count=0, last_reset=None)
    if stored.last_reset_ms is None:
        return EffectiveDaily(count=stored.count, last_reset=None)

    last_reset = from_epoch_ms(stored.last_reset_ms)
    if now - last_reset >= window:
        return EffectiveDaily(count=0, last_reset=last_reset, elapsed=True)
    return EffectiveDaily(count=stored.count, last_reset=last_reset)


class DailyCounter:
    """Daily generation counter for authenticated users."""

    def __init__(
        self,
        store: AllowanceStore,
        window: timedelta = DAILY_WINDOW,
        clock: Optional[Clock] = None,
    ) -> None:
        self._store = store
        self.window = window
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    async def peek(self, user_id: str) -> EffectiveDaily:
        """Effective counter for ``user_id``. Never writes, even after a lapse."""
        stored = await self._store.get_daily(user_id)
        return effective_daily_state(stored, self._clock(), self.window)

    async def consume(self, user_id: str) -> int:
        """Count one generation and return the new count.

        Commits the reset (count=1, lastReset=now) when the window has
        lapsed; otherwise increments, stamping lastReset on first use.
        """
        now = self._clock()
        result = await self._store.consume_daily(
            user_id,
            to_epoch_ms(now),
            int(self.window.total_seconds() * 1000),
        )
        logger.debug(
            f"Daily generation {result.count} consumed for user {user_id}",
            extra={"user_id": user_id},
        )
        return result.count
