"""OpenAI-compatible question provider.

Works with the OpenAI API and any endpoint exposing the same
``/chat/completions`` streaming contract.
"""

import json
from typing import Any, AsyncGenerator, Dict, Optional

from quizgen.app.core.logging import get_logger
from quizgen.app.providers.base import BaseProvider

logger = get_logger(__name__)


class OpenAIProvider(BaseProvider):
    """Streams chat completions and yields only the content deltas."""

    async def stream_questions(self, payload: Dict[str, Any]) -> AsyncGenerator[str, None]:
        """Send a streaming chat completion request, yielding content deltas.

        Raises:
            httpx.HTTPStatusError: If the API returns an error
        """
        url = self._get_endpoint_url("/chat/completions")
        body = dict(payload, stream=True)

        async with self._client_context() as client:
            async with client.stream("POST", url, headers=self.headers, json=body) as resp:
                resp.raise_for_status()
                async for line in resp.aiter_lines():
                    content = _parse_sse_line(line)
                    if content:
                        yield content


def _parse_sse_line(line: str) -> Optional[str]:
    """Extract the content delta from one SSE line, if it carries one."""
    line = line.strip()
    if not line.startswith("data:"):
        return None
    data = line[len("data:"):].strip()
    if not data or data == "[DONE]":
        return None
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"Skipping malformed stream chunk: {data[:100]}")
        return None
    choices = chunk.get("choices") or []
    if not choices:
        return None
    return (choices[0].get("delta") or {}).get("content")
