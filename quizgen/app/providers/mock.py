"""Mock provider for tests and local development.

Produces a deterministic quiz without calling any external API.

Enable by setting environment variable:
    USE_MOCK_PROVIDER=true
"""

import asyncio
import json
import re
from typing import Any, AsyncGenerator, Dict, Optional

from quizgen.app.providers.base import BaseProvider

QUESTION_COUNT_PATTERN = re.compile(r"generating (\d+) questions")
GRADING_PATTERN = re.compile(r'Correct answer: "(.*)"\nUser answer: "(.*)"', re.DOTALL)


class MockProvider(BaseProvider):
    """Returns the requested number of canned true/false questions in small chunks.

    Grading requests are answered true when the answers match ignoring case.

    Set ``fail_before_output`` to simulate a provider that errors before
    streaming anything.
    """

    def __init__(
        self,
        base_url: str = "http://mock.provider",
        api_key: str = "mock-key",
        http_client: Optional[Any] = None,
        timeout: float = 60.0,
        delay: float = 0.0,
        chunk_size: int = 64,
        fail_before_output: bool = False,
    ):
        super().__init__(base_url, api_key, http_client, timeout)
        self.delay = delay
        self.chunk_size = chunk_size
        self.fail_before_output = fail_before_output
        self.calls: list[Dict[str, Any]] = []

    def _render(self, payload: Dict[str, Any]) -> str:
        for message in payload.get("messages", []):
            grading = GRADING_PATTERN.search(message.get("content", ""))
            if grading:
                correct, answer = (part.strip().casefold() for part in grading.groups())
                return "true" if answer == correct else "false"

        count = 1
        for message in payload.get("messages", []):
            match = QUESTION_COUNT_PATTERN.search(message.get("content", ""))
            if match:
                count = int(match.group(1))
                break
        questions = [
            {
                "type": "true-false",
                "question": f"Sample statement {i + 1} is true.",
                "correctAnswer": True,
                "explanation": "Generated by the mock provider.",
            }
            for i in range(count)
        ]
        return json.dumps({"questions": questions})

    async def stream_questions(self, payload: Dict[str, Any]) -> AsyncGenerator[str, None]:
        self.calls.append(payload)
        if self.fail_before_output:
            raise RuntimeError("Mock provider failure")
        text = self._render(payload)
        for start in range(0, len(text), self.chunk_size):
            if self.delay:
                await asyncio.sleep(self.delay)
            yield text[start:start + self.chunk_size]
