"""Shared HTTP client for provider calls.

Initialized in the application lifespan and reused across requests.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx

from quizgen.app.core.config import settings

_shared_http_client: httpx.AsyncClient | None = None


def get_http_client() -> httpx.AsyncClient:
    """Get the shared HTTP client instance.

    Raises:
        RuntimeError: If the HTTP client has not been initialized.
    """
    if _shared_http_client is None:
        raise RuntimeError(
            "HTTP client not initialized. Ensure lifespan context is active."
        )
    return _shared_http_client


@asynccontextmanager
async def init_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Initialize and yield the shared HTTP client for the app lifespan."""
    global _shared_http_client

    # Streaming generations need a long read timeout; connecting should be quick
    timeout = httpx.Timeout(settings.llm_timeout, connect=10.0)
    _shared_http_client = httpx.AsyncClient(timeout=timeout)

    try:
        yield _shared_http_client
    finally:
        if _shared_http_client is not None:
            await _shared_http_client.aclose()
            _shared_http_client = None
