"""Usage metering: sliding-window, daily-counter and credit allowances.

All state lives in the allowance store (quizgen.app.core.store); the
classes here hold no counters between calls.
"""

from .credit_ledger import CreditLedger
from .daily_counter import DAILY_WINDOW, DailyCounter, effective_daily_state
from .models import (
    AllowanceVerdict,
    Anonymous,
    AuthenticatedUser,
    EffectiveDaily,
    Identity,
    SlidingWindowResult,
    identity_from_user_id,
)
from .resolver import (
    AllowanceResolver,
    get_allowance_resolver,
    reset_allowance_resolver,
)
from .sliding_window import SlidingWindowLimiter

__all__ = [
    "AllowanceResolver",
    "AllowanceVerdict",
    "Anonymous",
    "AuthenticatedUser",
    "CreditLedger",
    "DAILY_WINDOW",
    "DailyCounter",
    "EffectiveDaily",
    "Identity",
    "SlidingWindowLimiter",
    "SlidingWindowResult",
    "effective_daily_state",
    "get_allowance_resolver",
    "identity_from_user_id",
    "reset_allowance_resolver",
]
