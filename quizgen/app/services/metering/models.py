"""Data models for usage metering."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union


@dataclass(frozen=True)
class Anonymous:
    """Caller without a session, metered by IP address."""
    ip_address: str

    @property
    def is_authenticated(self) -> bool:
        return False


@dataclass(frozen=True)
class AuthenticatedUser:
    """Signed-in caller, metered by user id."""
    user_id: str

    @property
    def is_authenticated(self) -> bool:
        return True


Identity = Union[Anonymous, AuthenticatedUser]


def identity_from_user_id(user_id: Optional[str], ip_address: str) -> Identity:
    """Build the metering identity from what the auth subsystem supplied.

    A missing or empty user id selects the anonymous path.
    """
    if user_id:
        return AuthenticatedUser(user_id=user_id)
    return Anonymous(ip_address=ip_address)


@dataclass(frozen=True)
class SlidingWindowResult:
    """Outcome of an atomic sliding-window check-and-consume."""
    success: bool
    limit: int
    remaining: int
    reset_at: datetime


@dataclass(frozen=True)
class EffectiveDaily:
    """Daily counter as seen at a given moment, with any due reset applied.

    Attributes:
        count: Generations used in the current window (0 after a lapse)
        last_reset: Start of the current window; None if the user never
            generated anything
        elapsed: True when the stored window has lapsed and the next
            consume must commit a reset
    """
    count: int
    last_reset: Optional[datetime]
    elapsed: bool = False


@dataclass(frozen=True)
class AllowanceVerdict:
    """Allow/deny decision plus the data needed to render a limit message.

    Attributes:
        allowed: Whether the generation may proceed
        limit: Daily quota of the identity's tier
        remaining: Daily generations left plus purchased credits
        reset_at: When the daily allowance next frees up
        is_authenticated: Which tier produced the verdict
        daily_used: Generations counted against the daily quota
        purchased_credits: Purchased balance at check time
    """
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    is_authenticated: bool = False
    daily_used: int = field(default=0)
    purchased_credits: int = field(default=0)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "allowed": self.allowed,
            "limit": self.limit,
            "remaining": self.remaining,
            "reset_at": self.reset_at.isoformat(),
            "is_authenticated": self.is_authenticated,
            "daily_used": self.daily_used,
            "purchased_credits": self.purchased_credits,
        }
