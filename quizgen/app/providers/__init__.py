"""Question providers for quizgen.

This package provides:
- Base provider interface (BaseProvider)
- OpenAI-compatible streaming provider (OpenAIProvider)
- Deterministic mock provider (MockProvider)
- Factory helpers selecting one from settings
"""

from quizgen.app.providers.base import BaseProvider
from quizgen.app.providers.factory import (
    create_provider,
    get_question_provider,
    reset_question_provider,
)
from quizgen.app.providers.mock import MockProvider
from quizgen.app.providers.openai import OpenAIProvider

__all__ = [
    "BaseProvider",
    "MockProvider",
    "OpenAIProvider",
    "create_provider",
    "get_question_provider",
    "reset_question_provider",
]
