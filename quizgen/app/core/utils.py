"""Utility functions for the quizgen application."""

from datetime import datetime, timezone
from typing import Callable

# Source of "now" for metering code; tests substitute a controllable clock.
Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    """Convert a datetime to integer epoch milliseconds.

    Naive datetimes are taken to be UTC.

    Examples:
        >>> to_epoch_ms(datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc))
        1000
    """
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    """Convert epoch milliseconds back to an aware UTC datetime."""
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def get_client_ip(headers, peer_host: str | None) -> str:
    """Pick the caller address used as the anonymous metering key.

    Order: first X-Forwarded-For entry, X-Real-IP, remote-addr, the socket
    peer, then 127.0.0.1.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for header in ("x-real-ip", "remote-addr"):
        value = headers.get(header)
        if value:
            return value.strip()
    return peer_host or "127.0.0.1"
