"""Shared fixtures for metering tests."""

from datetime import datetime, timedelta, timezone

import pytest

from quizgen.app.core.store import reset_allowance_store
from quizgen.app.providers.factory import reset_question_provider
from quizgen.app.services.metering import reset_allowance_resolver

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Controllable replacement for utc_now."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_globals():
    """Reset global singletons before and after each test."""
    reset_allowance_store()
    reset_allowance_resolver()
    reset_question_provider()
    yield
    reset_allowance_store()
    reset_allowance_resolver()
    reset_question_provider()
