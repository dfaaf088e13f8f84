"""Question generation on top of the configured provider.

Builds the chat payload for a quiz request and exposes the provider
stream in two parts: the first chunk, which proves the generation has
started, and an iterator over the rest.
"""

import json
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Dict, Optional

import httpx

from quizgen.app.core.logging import get_logger
from quizgen.app.exceptions import GenerationError
from quizgen.app.providers.base import BaseProvider

logger = get_logger(__name__)

QUESTION_TYPE_RULES = {
    "multiple-choice": "The questions must be multiple choice.",
    "true-false": "The questions must be true false.",
    "short-answer": "The questions must be short answer.",
    "mixed": "The questions can be multiple-choice, true-false, or short-answer.",
}


def build_system_prompt(
    question_type: str,
    question_count: int,
    options_count: int = 4,
    correct_answers_count: int = 1,
    random_correct_answers: bool = False,
    min_correct_answers: int = 1,
    max_correct_answers: int = 1,
    extra_instructions: Optional[str] = None,
) -> str:
    """Render the system prompt for one quiz request."""
    if random_correct_answers:
        answers_rule = (
            f"Each multiple-choice question has between {min_correct_answers} and "
            f"{max_correct_answers} correct answers; vary the number between consecutive questions."
        )
    else:
        answers_rule = (
            f"Each multiple-choice question has exactly {correct_answers_count} correct answer(s)."
        )

    lines = [
        f"You are an expert quiz creator generating {question_count} questions.",
        QUESTION_TYPE_RULES[question_type],
        f"Multiple-choice questions have exactly {options_count} options. {answers_rule}",
        "correctAnswer is an array of option indices for multiple choice, a boolean for "
        "true-false and a short string for short answer.",
        "When the content has page markers, set 'page' to the page the answer comes from.",
        "Write in the same language as the provided content.",
        'Respond with JSON of the form {"questions": [...]}.',
    ]
    if extra_instructions:
        lines.append(extra_instructions)
    return "\n".join(lines)


def build_generation_payload(
    model: str,
    system_prompt: str,
    user_input: str,
    file_content: str = "",
    previous_output: Any = None,
) -> Dict[str, Any]:
    """Chat payload for the provider."""
    user_message = f"User input: {user_input}\n\nAttached file: {file_content}"
    if previous_output:
        user_message += (
            "\n\nQuestions generated so far, keep following the rules strictly: "
            f"{json.dumps(previous_output, ensure_ascii=False)}"
        )
    return {
        "model": model,
        "temperature": 0.5,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_message},
        ],
    }


@dataclass
class StartedGeneration:
    """A generation that has produced its first chunk."""
    first_chunk: str
    rest: AsyncGenerator[str, None]

    async def chunks(self) -> AsyncIterator[str]:
        """Yield the whole output, first chunk included."""
        yield self.first_chunk
        async for chunk in self.rest:
            yield chunk

    async def aclose(self) -> None:
        await self.rest.aclose()


async def start_generation(
    provider: BaseProvider,
    payload: Dict[str, Any],
    request_id: Optional[str] = None,
) -> StartedGeneration:
    """Open the provider stream and wait for its first non-empty chunk.

    Raises:
        GenerationError: If the provider fails or ends before any output
    """
    stream = provider.stream_questions(payload)
    try:
        async for chunk in stream:
            if chunk:
                return StartedGeneration(first_chunk=chunk, rest=stream)
    except httpx.HTTPStatusError as e:
        logger.error(
            f"Provider returned {e.response.status_code}",
            extra={"request_id": request_id},
        )
        raise GenerationError() from e
    except httpx.TimeoutException as e:
        logger.error("Provider timed out before output", extra={"request_id": request_id})
        raise GenerationError("Question generation timed out, please retry.") from e
    except Exception as e:
        logger.exception(
            f"Provider failed before output: {e}", extra={"request_id": request_id}
        )
        await stream.aclose()
        raise GenerationError() from e

    logger.error("Provider produced no output", extra={"request_id": request_id})
    raise GenerationError()


GRADING_SYSTEM_PROMPT = (
    "You are a quiz grader. Compare the user's answer with the correct answer. "
    "Respond with true if they mean the same thing and false if they do not. "
    "Respond with only true or false."
)


def build_grading_payload(model: str, user_answer: str, correct_answer: str) -> Dict[str, Any]:
    """Chat payload asking the provider to grade one short answer."""
    return {
        "model": model,
        "temperature": 0.1,
        "max_tokens": 5,
        "messages": [
            {"role": "system", "content": GRADING_SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f'Correct answer: "{correct_answer}"\nUser answer: "{user_answer}"',
            },
        ],
    }


def parse_grading_verdict(text: str) -> bool:
    """Read the grader's reply: bare true/false or ``{"isCorrect": bool}``.

    Raises:
        GenerationError: If the reply is neither
    """
    word = text.strip().strip("\"'.").lower()
    if word in ("true", "false"):
        return word == "true"
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = None
    if isinstance(data, dict) and isinstance(data.get("isCorrect"), bool):
        return data["isCorrect"]
    raise GenerationError(f"Unreadable grading verdict: {text[:50]!r}")


async def grade_answer(
    provider: BaseProvider,
    user_answer: str,
    correct_answer: str,
    model: str,
    request_id: Optional[str] = None,
) -> bool:
    """Ask the provider whether ``user_answer`` matches ``correct_answer``.

    Raises:
        GenerationError: If the provider fails or its verdict cannot be read
    """
    payload = build_grading_payload(model, user_answer, correct_answer)
    generation = await start_generation(provider, payload, request_id=request_id)
    try:
        text = "".join([chunk async for chunk in generation.chunks()])
    except httpx.HTTPError as e:
        logger.error(f"Grading stream interrupted: {e}", extra={"request_id": request_id})
        raise GenerationError() from e
    return parse_grading_verdict(text)
