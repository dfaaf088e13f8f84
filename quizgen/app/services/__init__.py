"""Services package for quizgen.

This package provides:
- Usage metering (sliding window, daily counter, credit ledger, resolver)
- Question generation on top of the configured provider
"""

from quizgen.app.services.metering import (
    AllowanceResolver,
    AllowanceVerdict,
    Anonymous,
    AuthenticatedUser,
    CreditLedger,
    DailyCounter,
    SlidingWindowLimiter,
    get_allowance_resolver,
    reset_allowance_resolver,
)

__all__ = [
    "AllowanceResolver",
    "AllowanceVerdict",
    "Anonymous",
    "AuthenticatedUser",
    "CreditLedger",
    "DailyCounter",
    "SlidingWindowLimiter",
    "get_allowance_resolver",
    "reset_allowance_resolver",
]
