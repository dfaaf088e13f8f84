import pytest
from pydantic import ValidationError

from quizgen.app.core.config import Settings


def test_defaults(monkeypatch) -> None:
    for name in ("ANONYMOUS_DAILY_LIMIT", "AUTHENTICATED_DAILY_LIMIT", "CREDITS_PER_PURCHASE"):
        monkeypatch.delenv(name, raising=False)

    settings = Settings(_env_file=None)
    assert settings.anonymous_daily_limit == 5
    assert settings.authenticated_daily_limit == 15
    assert settings.credits_per_purchase == 5
    assert settings.daily_window_seconds == 86400
    assert settings.redis_enabled is False


def test_quota_from_env(monkeypatch) -> None:
    monkeypatch.setenv("AUTHENTICATED_DAILY_LIMIT", "30")
    monkeypatch.setenv("REDIS_ENABLED", "true")

    settings = Settings(_env_file=None)
    assert settings.authenticated_daily_limit == 30
    assert settings.redis_enabled is True


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("anonymous_daily_limit", 0),
        ("daily_window_seconds", 30),
        ("redis_socket_timeout", 0),
        ("log_format", "xml"),
    ],
)
def test_invalid_values_rejected(field: str, value) -> None:
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **{field: value})


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('["http://localhost:3000"]', ["http://localhost:3000"]),
        ("http://a.test, http://b.test", ["http://a.test", "http://b.test"]),
        ("*", ["*"]),
        ("[]", []),
        ("", []),
    ],
)
def test_cors_origins_parsing_variants(monkeypatch, raw: str, expected: list[str]) -> None:
    monkeypatch.setenv("CORS_ORIGINS", raw)

    settings = Settings(_env_file=None)
    assert settings.cors_origins == expected
