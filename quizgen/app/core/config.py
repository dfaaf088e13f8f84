import json
import re
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _parse_cors_origins(raw: Any) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, list):
        items = [str(v).strip() for v in raw]
        return [v for v in items if v]

    raw = str(raw).strip()
    if not raw or raw == "[]":
        return []
    if raw == "*":
        return ["*"]

    # Prefer JSON, but tolerate comma/space separated values.
    if raw.startswith(("[", '"')):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(v).strip() for v in parsed]
            return [v for v in items if v]
        if isinstance(parsed, str):
            raw = parsed.strip()

    origins: list[str] = []
    for part in re.split(r"[,\s]+", raw):
        if not part:
            continue
        if part == "*":
            return ["*"]
        if part not in origins:
            origins.append(part)
    return origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Debug mode - enables detailed error responses
    debug: bool = False

    # Metering quotas
    anonymous_daily_limit: int = 5
    anonymous_window_seconds: int = 86400
    authenticated_daily_limit: int = 15
    daily_window_seconds: int = 86400

    # Credits granted by one completed purchase
    credits_per_purchase: int = 5
    # How long a processed payment event id is remembered (webhook retries)
    payment_event_ttl_seconds: int = 86400 * 30
    payment_webhook_secret: str = ""

    # Secret used to sign session tokens handed out by the auth subsystem
    session_secret: str = ""

    # Quiz request limits
    max_question_count: int = 20

    # Redis settings (the allowance store); in-memory store when disabled
    redis_enabled: bool = False
    redis_url: str = "redis://localhost:6379/0"
    redis_socket_timeout: float = 2.0
    redis_connect_timeout: float = 2.0

    # Question generation provider (OpenAI-compatible endpoint)
    llm_base_url: str = "https://api.openai.com/v1"
    llm_api_key: str = ""
    llm_model: str = "gpt-4o-mini"
    llm_timeout: float = 60.0
    use_mock_provider: bool = False

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    cors_origins: Annotated[list[str], NoDecode] = ["*"]

    @field_validator("cors_origins", mode="before")
    @classmethod
    def decode_cors_origins(cls, v: Any) -> list[str]:
        return _parse_cors_origins(v)

    @field_validator(
        "anonymous_daily_limit",
        "authenticated_daily_limit",
        "credits_per_purchase",
        "max_question_count",
    )
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate quota values are positive."""
        if v < 1:
            raise ValueError("Quota values must be at least 1")
        return v

    @field_validator("anonymous_window_seconds", "daily_window_seconds")
    @classmethod
    def validate_window(cls, v: int) -> int:
        """Validate window lengths are at least one minute."""
        if v < 60:
            raise ValueError("Window lengths should be at least 60 seconds")
        return v

    @field_validator("redis_socket_timeout", "redis_connect_timeout", "llm_timeout")
    @classmethod
    def validate_timeout_positive(cls, v: float) -> float:
        """Validate timeout values are positive."""
        if v <= 0:
            raise ValueError("Timeout values must be positive")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v = v.lower()
        if v not in ("text", "structured", "json"):
            raise ValueError("log_format must be one of: text, structured, json")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
