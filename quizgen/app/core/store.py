"""Allowance store: the single source of truth for metering state.

Provides a pluggable backend with in-memory and Redis implementations.
Callers never read-modify-write through this layer; every mutation is one
named operation that the backend performs atomically.

Key layout:
- generations:{user_id}          hash {count, lastReset (epoch ms)}
- credits:{user_id}              integer purchased-credit balance
- ratelimit:ip:{ip}              sorted set of request timestamps (ms)
- payments:processed:{event_id}  marker for an applied payment event
"""

import asyncio
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Optional

import redis
import redis.asyncio as aioredis

from quizgen.app.core.logging import get_logger
from quizgen.app.core.redis_lua import (
    DAILY_CONSUME_SCRIPT,
    DEBIT_CREDIT_SCRIPT,
    GRANT_CREDITS_SCRIPT,
    SLIDING_WINDOW_CONSUME_SCRIPT,
    SLIDING_WINDOW_PEEK_SCRIPT,
)
from quizgen.app.exceptions import InfrastructureError

logger = get_logger(__name__)

DAILY_KEY_PREFIX = "generations"
CREDITS_KEY_PREFIX = "credits"
PAYMENT_EVENT_KEY_PREFIX = "payments:processed"


def daily_key(user_id: str) -> str:
    return f"{DAILY_KEY_PREFIX}:{user_id}"


def credits_key(user_id: str) -> str:
    return f"{CREDITS_KEY_PREFIX}:{user_id}"


def payment_event_key(event_id: str) -> str:
    return f"{PAYMENT_EVENT_KEY_PREFIX}:{event_id}"


@dataclass(frozen=True)
class WindowCounts:
    """Sliding-window state after a consume or peek."""
    added: bool
    count: int
    oldest_ms: Optional[int] = None


@dataclass(frozen=True)
class StoredDailyCounter:
    """Daily counter exactly as persisted (no reset applied)."""
    count: int
    last_reset_ms: Optional[int] = None


@dataclass(frozen=True)
class GrantOutcome:
    """Result of a credit grant. ``applied`` is False for a duplicate event."""
    applied: bool
    balance: int


@dataclass(frozen=True)
class DebitOutcome:
    """Result of a credit debit. ``debited`` is False when the balance was 0."""
    debited: bool
    balance: int


class AllowanceStore(ABC):
    """Abstract base class for allowance store backends.

    Every operation raises InfrastructureError when the backend cannot
    answer or holds data it cannot parse.
    """

    @abstractmethod
    async def sliding_window_consume(
        self, key: str, quota: int, window_ms: int, now_ms: int
    ) -> WindowCounts:
        """Drop expired entries, then record one request if under quota."""

    @abstractmethod
    async def sliding_window_peek(
        self, key: str, window_ms: int, now_ms: int
    ) -> WindowCounts:
        """Count requests inside the window without recording one."""

    @abstractmethod
    async def get_daily(self, user_id: str) -> Optional[StoredDailyCounter]:
        """Read the stored daily counter, or None if the user has none."""

    @abstractmethod
    async def consume_daily(
        self, user_id: str, now_ms: int, window_ms: int
    ) -> StoredDailyCounter:
        """Reset-or-increment the daily counter and return the new state."""

    @abstractmethod
    async def get_credits(self, user_id: str) -> int:
        """Read the purchased-credit balance (absent == 0)."""

    @abstractmethod
    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        event_id: Optional[str] = None,
        marker_ttl_seconds: int = 0,
    ) -> GrantOutcome:
        """Add credits; a repeated ``event_id`` leaves the balance untouched."""

    @abstractmethod
    async def debit_credit(self, user_id: str) -> DebitOutcome:
        """Take one credit if the balance is positive."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check the backend is reachable."""

    async def close(self) -> None:
        """Release backend resources."""


@dataclass
class _DailyRecord:
    count: int = 0
    last_reset_ms: Optional[int] = None


@dataclass
class _Window:
    hits: deque = field(default_factory=deque)
    window_ms: int = 0


class InMemoryAllowanceStore(AllowanceStore):
    """In-process allowance store guarded by a single asyncio lock.

    Suitable for tests and single-instance development. State is lost on
    restart and is not shared between processes. Windows whose entries
    have all expired, and payment-event markers past their TTL, are
    evicted as the store is used; ``cleanup()`` forces a full sweep.
    """

    def __init__(self) -> None:
        self._windows: dict[str, _Window] = {}
        self._daily: dict[str, _DailyRecord] = {}
        self._credits: dict[str, int] = {}
        self._processed_events: dict[str, float] = {}
        self._last_sweep_ms: Optional[int] = None
        self._lock = asyncio.Lock()

    @staticmethod
    def _prune(window: _Window, now_ms: int, window_ms: int) -> None:
        while window.hits and window.hits[0] <= now_ms - window_ms:
            window.hits.popleft()

    def _evict_windows(self, now_ms: int) -> None:
        expired = [
            key for key, window in self._windows.items()
            if not window.hits or window.hits[-1] <= now_ms - window.window_ms
        ]
        for key in expired:
            del self._windows[key]
        self._last_sweep_ms = now_ms

    def _evict_events(self, now: float) -> None:
        expired = [
            event_id for event_id, expires_at in self._processed_events.items()
            if expires_at <= now
        ]
        for event_id in expired:
            del self._processed_events[event_id]

    async def sliding_window_consume(
        self, key: str, quota: int, window_ms: int, now_ms: int
    ) -> WindowCounts:
        async with self._lock:
            # Sweep at most once per window length
            if self._last_sweep_ms is None or now_ms - self._last_sweep_ms >= window_ms:
                self._evict_windows(now_ms)
            window = self._windows.setdefault(key, _Window())
            window.window_ms = window_ms
            self._prune(window, now_ms, window_ms)
            added = len(window.hits) < quota
            if added:
                window.hits.append(now_ms)
            oldest = window.hits[0] if window.hits else None
            return WindowCounts(added=added, count=len(window.hits), oldest_ms=oldest)

    async def sliding_window_peek(
        self, key: str, window_ms: int, now_ms: int
    ) -> WindowCounts:
        async with self._lock:
            window = self._windows.get(key)
            if window is None:
                return WindowCounts(added=False, count=0)
            live = [hit for hit in window.hits if hit > now_ms - window_ms]
            return WindowCounts(
                added=False,
                count=len(live),
                oldest_ms=live[0] if live else None,
            )

    async def get_daily(self, user_id: str) -> Optional[StoredDailyCounter]:
        async with self._lock:
            record = self._daily.get(user_id)
            if record is None:
                return None
            return StoredDailyCounter(record.count, record.last_reset_ms)

    async def consume_daily(
        self, user_id: str, now_ms: int, window_ms: int
    ) -> StoredDailyCounter:
        async with self._lock:
            record = self._daily.setdefault(user_id, _DailyRecord())
            if record.last_reset_ms is not None and now_ms - record.last_reset_ms >= window_ms:
                record.count = 1
                record.last_reset_ms = now_ms
            else:
                record.count += 1
                if record.last_reset_ms is None:
                    record.last_reset_ms = now_ms
            return StoredDailyCounter(record.count, record.last_reset_ms)

    async def get_credits(self, user_id: str) -> int:
        async with self._lock:
            return self._credits.get(user_id, 0)

    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        event_id: Optional[str] = None,
        marker_ttl_seconds: int = 0,
    ) -> GrantOutcome:
        async with self._lock:
            if event_id is not None:
                now = time.time()
                self._evict_events(now)
                expires_at = self._processed_events.get(event_id)
                if expires_at is not None and expires_at > now:
                    return GrantOutcome(applied=False, balance=self._credits.get(user_id, 0))
                self._processed_events[event_id] = now + marker_ttl_seconds
            balance = self._credits.get(user_id, 0) + amount
            self._credits[user_id] = balance
            return GrantOutcome(applied=True, balance=balance)

    async def debit_credit(self, user_id: str) -> DebitOutcome:
        async with self._lock:
            balance = self._credits.get(user_id, 0)
            if balance <= 0:
                return DebitOutcome(debited=False, balance=balance)
            self._credits[user_id] = balance - 1
            return DebitOutcome(debited=True, balance=balance - 1)

    async def ping(self) -> bool:
        return True

    async def cleanup(self, now_ms: Optional[int] = None) -> None:
        """Evict expired windows and payment-event markers."""
        async with self._lock:
            if now_ms is None:
                now_ms = int(time.time() * 1000)
            self._evict_windows(now_ms)
            self._evict_events(now_ms / 1000)

    async def clear(self) -> None:
        """Drop all state."""
        async with self._lock:
            self._windows.clear()
            self._daily.clear()
            self._credits.clear()
            self._processed_events.clear()
            self._last_sweep_ms = None


class RedisAllowanceStore(AllowanceStore):
    """Redis-backed allowance store shared by every handler instance.

    Mutations run as Lua scripts (see redis_lua) so checks and writes
    are atomic server-side. Redis failures and unparsable values surface
    as InfrastructureError; there is no fail-open or fail-closed fallback.
    """

    def __init__(
        self,
        redis_client: Optional[Any] = None,
        redis_url: Optional[str] = None,
        socket_timeout: float = 2.0,
        connect_timeout: float = 2.0,
    ) -> None:
        self._redis = redis_client
        self._redis_url = redis_url
        self._socket_timeout = socket_timeout
        self._connect_timeout = connect_timeout

    def _get_redis(self) -> Any:
        """Get or create the Redis client."""
        if self._redis is None:
            if not self._redis_url:
                raise InfrastructureError("Redis URL not configured")
            self._redis = aioredis.from_url(
                self._redis_url,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._connect_timeout,
            )
        return self._redis

    async def _eval(self, operation: str, script: str, keys: list[str], args: list[Any]) -> list:
        client = self._get_redis()
        try:
            return await client.eval(script, len(keys), *keys, *args)
        except redis.TimeoutError as e:
            logger.warning(f"Redis timeout during {operation}: {e}")
            raise InfrastructureError("Allowance store timed out", operation=operation) from e
        except redis.ConnectionError as e:
            logger.error(f"Redis connection failed during {operation}: {e}")
            raise InfrastructureError("Allowance store unreachable", operation=operation) from e
        except redis.RedisError as e:
            logger.error(f"Redis error during {operation}: {e}")
            raise InfrastructureError("Allowance store error", operation=operation) from e

    @staticmethod
    def _ints(operation: str, result: Any, size: int) -> list[int]:
        try:
            values = [int(v) for v in result]
        except (TypeError, ValueError) as e:
            raise InfrastructureError(
                f"Malformed reply from allowance store: {result!r}", operation=operation
            ) from e
        if len(values) != size:
            raise InfrastructureError(
                f"Malformed reply from allowance store: {result!r}", operation=operation
            )
        return values

    async def sliding_window_consume(
        self, key: str, quota: int, window_ms: int, now_ms: int
    ) -> WindowCounts:
        member = f"{now_ms}-{uuid.uuid4().hex}"
        result = await self._eval(
            "sliding_window_consume",
            SLIDING_WINDOW_CONSUME_SCRIPT,
            [key],
            [quota, window_ms, now_ms, member],
        )
        added, count, oldest = self._ints("sliding_window_consume", result, 3)
        return WindowCounts(added=bool(added), count=count, oldest_ms=oldest if oldest >= 0 else None)

    async def sliding_window_peek(
        self, key: str, window_ms: int, now_ms: int
    ) -> WindowCounts:
        result = await self._eval(
            "sliding_window_peek", SLIDING_WINDOW_PEEK_SCRIPT, [key], [window_ms, now_ms]
        )
        _, count, oldest = self._ints("sliding_window_peek", result, 3)
        return WindowCounts(added=False, count=count, oldest_ms=oldest if oldest >= 0 else None)

    async def get_daily(self, user_id: str) -> Optional[StoredDailyCounter]:
        client = self._get_redis()
        try:
            raw_count, raw_reset = await client.hmget(daily_key(user_id), ["count", "lastReset"])
        except redis.RedisError as e:
            logger.error(f"Redis error reading daily counter for {user_id}: {e}")
            raise InfrastructureError("Allowance store error", operation="get_daily") from e
        if raw_count is None and raw_reset is None:
            return None
        try:
            count = int(raw_count) if raw_count is not None else 0
            last_reset = int(raw_reset) if raw_reset is not None else None
        except ValueError as e:
            raise InfrastructureError(
                f"Malformed daily counter for user {user_id}", operation="get_daily"
            ) from e
        return StoredDailyCounter(count=count, last_reset_ms=last_reset)

    async def consume_daily(
        self, user_id: str, now_ms: int, window_ms: int
    ) -> StoredDailyCounter:
        result = await self._eval(
            "consume_daily", DAILY_CONSUME_SCRIPT, [daily_key(user_id)], [now_ms, window_ms]
        )
        count, last_reset = self._ints("consume_daily", result, 2)
        return StoredDailyCounter(count=count, last_reset_ms=last_reset)

    async def get_credits(self, user_id: str) -> int:
        client = self._get_redis()
        try:
            raw = await client.get(credits_key(user_id))
        except redis.RedisError as e:
            logger.error(f"Redis error reading credits for {user_id}: {e}")
            raise InfrastructureError("Allowance store error", operation="get_credits") from e
        if raw is None:
            return 0
        try:
            return int(raw)
        except ValueError as e:
            raise InfrastructureError(
                f"Malformed credit balance for user {user_id}", operation="get_credits"
            ) from e

    async def grant_credits(
        self,
        user_id: str,
        amount: int,
        event_id: Optional[str] = None,
        marker_ttl_seconds: int = 0,
    ) -> GrantOutcome:
        keys = [credits_key(user_id)]
        args: list[Any] = [amount]
        if event_id is not None:
            keys.append(payment_event_key(event_id))
            args.extend([user_id, max(1, marker_ttl_seconds)])
        result = await self._eval("grant_credits", GRANT_CREDITS_SCRIPT, keys, args)
        applied, balance = self._ints("grant_credits", result, 2)
        return GrantOutcome(applied=bool(applied), balance=balance)

    async def debit_credit(self, user_id: str) -> DebitOutcome:
        result = await self._eval(
            "debit_credit", DEBIT_CREDIT_SCRIPT, [credits_key(user_id)], []
        )
        debited, balance = self._ints("debit_credit", result, 2)
        return DebitOutcome(debited=bool(debited), balance=balance)

    async def ping(self) -> bool:
        client = self._get_redis()
        try:
            return bool(await client.ping())
        except redis.RedisError as e:
            raise InfrastructureError("Allowance store unreachable", operation="ping") from e

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


# Global store instance (singleton pattern)
_store_instance: AllowanceStore | None = None


def get_allowance_store(
    backend: str | None = None,
    redis_url: str | None = None,
    force_new: bool = False,
) -> AllowanceStore:
    """Get or create the global allowance store.

    Args:
        backend: 'memory', 'redis', or None to follow settings.redis_enabled.
        redis_url: Redis connection URL. Defaults to settings.redis_url.
        force_new: If True, create a new instance even if one exists.

    Returns:
        An AllowanceStore instance.
    """
    global _store_instance

    if _store_instance is not None and not force_new:
        return _store_instance

    from quizgen.app.core.config import settings

    if backend is None:
        backend = "redis" if settings.redis_enabled else "memory"

    if backend == "redis":
        _store_instance = RedisAllowanceStore(
            redis_url=redis_url or settings.redis_url,
            socket_timeout=settings.redis_socket_timeout,
            connect_timeout=settings.redis_connect_timeout,
        )
        logger.info("Using Redis allowance store")
    elif backend == "memory":
        _store_instance = InMemoryAllowanceStore()
        logger.info("Using in-memory allowance store")
    else:
        raise ValueError(f"Unknown allowance store backend: {backend}")
    return _store_instance


def reset_allowance_store() -> None:
    """Reset the global allowance store instance.

    This is primarily useful for testing.
    """
    global _store_instance
    _store_instance = None
