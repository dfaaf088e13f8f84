"""Provider factory: builds the question provider from settings."""

from typing import Optional

import httpx

from quizgen.app.core.config import settings
from quizgen.app.core.logging import get_logger
from quizgen.app.providers.base import BaseProvider
from quizgen.app.providers.mock import MockProvider
from quizgen.app.providers.openai import OpenAIProvider

logger = get_logger(__name__)

_provider_instance: Optional[BaseProvider] = None


def create_provider(http_client: Optional[httpx.AsyncClient] = None) -> BaseProvider:
    """Create a provider instance according to settings."""
    if settings.use_mock_provider:
        logger.info("Using mock question provider")
        return MockProvider()
    if not settings.llm_api_key:
        logger.warning("LLM_API_KEY is empty; provider calls will be rejected upstream")
    return OpenAIProvider(
        base_url=settings.llm_base_url,
        api_key=settings.llm_api_key,
        http_client=http_client,
        timeout=settings.llm_timeout,
    )


def get_question_provider(http_client: Optional[httpx.AsyncClient] = None) -> BaseProvider:
    """Get the global provider instance, creating it on first use."""
    global _provider_instance
    if _provider_instance is None:
        _provider_instance = create_provider(http_client)
    return _provider_instance


def reset_question_provider() -> None:
    """Reset the global provider instance."""
    global _provider_instance
    _provider_instance = None
