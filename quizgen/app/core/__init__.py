"""Core utilities for the quizgen application."""

from quizgen.app.core.config import settings
from quizgen.app.core.logging import get_logger, setup_logging
from quizgen.app.core.store import (
    AllowanceStore,
    InMemoryAllowanceStore,
    RedisAllowanceStore,
    get_allowance_store,
    reset_allowance_store,
)

__all__ = [
    "AllowanceStore",
    "InMemoryAllowanceStore",
    "RedisAllowanceStore",
    "get_allowance_store",
    "reset_allowance_store",
    "settings",
    "get_logger",
    "setup_logging",
]
