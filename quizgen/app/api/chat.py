"""Question generation endpoint."""

import json
from typing import Any, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel

from quizgen.app.core.config import settings
from quizgen.app.core.http_client import get_http_client
from quizgen.app.core.logging import get_log_context, get_logger
from quizgen.app.exceptions import (
    InfrastructureError,
    LedgerConsistencyError,
    QuotaExceededError,
    epoch_seconds_ceil,
)
from quizgen.app.middleware.auth import get_identity
from quizgen.app.middleware.request_id import get_request_id
from quizgen.app.providers.base import BaseProvider
from quizgen.app.providers.factory import get_question_provider
from quizgen.app.services.generation import (
    StartedGeneration,
    build_generation_payload,
    build_system_prompt,
    start_generation,
)
from quizgen.app.services.metering import (
    AllowanceResolver,
    AllowanceVerdict,
    Anonymous,
    Identity,
    get_allowance_resolver,
)

router = APIRouter()
logger = get_logger(__name__)


class QuizRequest(BaseModel):
    """Request body for question generation (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    input: str = ""
    file_content: str = ""
    question_type: Literal["multiple-choice", "true-false", "short-answer", "mixed"] = "mixed"
    question_count: int = Field(default=5, ge=1)
    options_count: int = Field(default=4, ge=2, le=10)
    system_prompt: Optional[str] = None
    correct_answers_count: int = Field(default=1, ge=1)
    is_random_correct_answers: bool = False
    min_correct_answers: int = Field(default=1, ge=1)
    max_correct_answers: int = Field(default=1, ge=1)
    output: Any = None
    model: Optional[str] = None

    @model_validator(mode="after")
    def validate_answer_bounds(self) -> "QuizRequest":
        if self.min_correct_answers > self.max_correct_answers:
            raise ValueError("minCorrectAnswers cannot exceed maxCorrectAnswers")
        if not self.input.strip() and not self.file_content.strip():
            raise ValueError("Either input or fileContent is required")
        return self


def get_provider_dependency() -> BaseProvider:
    """Get the question provider as a FastAPI dependency."""
    try:
        return get_question_provider(get_http_client())
    except RuntimeError:
        # HTTP client not initialized (outside the app lifespan)
        return get_question_provider(None)


def _rate_limit_headers(verdict: AllowanceVerdict, remaining: int) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(verdict.limit),
        "X-RateLimit-Remaining": str(max(0, remaining)),
        "X-RateLimit-Reset": str(epoch_seconds_ceil(verdict.reset_at)),
    }


def _log_context(identity: Identity, request_id: str) -> dict:
    if isinstance(identity, Anonymous):
        return get_log_context(request_id=request_id, client_ip=identity.ip_address)
    return get_log_context(request_id=request_id, user_id=identity.user_id)


async def _relay(generation: StartedGeneration, request_id: str):
    try:
        async for chunk in generation.chunks():
            yield chunk
    except Exception:
        # Headers are already sent; the client sees a truncated stream.
        logger.exception("Question stream interrupted", extra={"request_id": request_id})


@router.post("/api/chat", response_model=None)
async def generate_questions(
    request: Request,
    identity: Identity = Depends(get_identity),
    resolver: AllowanceResolver = Depends(get_allowance_resolver),
    provider: BaseProvider = Depends(get_provider_dependency),
) -> StreamingResponse:
    """Generate quiz questions, metered by the allowance resolver.

    1. Validates the body (nothing is charged for a malformed request)
    2. Checks the caller's allowance; 429 with reset info on denial
    3. Starts the provider stream and waits for the first chunk
    4. Charges the generation, then streams the questions back
    """
    request_id = get_request_id(request)
    log_context = _log_context(identity, request_id)

    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid JSON in request body")

    try:
        quiz = QuizRequest.model_validate(body)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail={"error": "validation_error", "message": str(e)},
        )

    if quiz.question_count > settings.max_question_count:
        raise HTTPException(
            status_code=400,
            detail=f"The maximum number of questions is {settings.max_question_count}.",
        )

    verdict = await resolver.check(identity)
    if not verdict.allowed:
        logger.info(
            f"Generation rate limited. Limit: {verdict.limit}, "
            f"Daily Used: {verdict.daily_used}, Purchased: {verdict.purchased_credits}",
            extra=log_context,
        )
        raise QuotaExceededError(
            limit=verdict.limit,
            reset_at=verdict.reset_at,
            is_authenticated=verdict.is_authenticated,
        )

    system_prompt = build_system_prompt(
        question_type=quiz.question_type,
        question_count=quiz.question_count,
        options_count=quiz.options_count,
        correct_answers_count=quiz.correct_answers_count,
        random_correct_answers=quiz.is_random_correct_answers,
        min_correct_answers=quiz.min_correct_answers,
        max_correct_answers=quiz.max_correct_answers,
        extra_instructions=quiz.system_prompt,
    )
    payload = build_generation_payload(
        model=quiz.model or settings.llm_model,
        system_prompt=system_prompt,
        user_input=quiz.input,
        file_content=quiz.file_content,
        previous_output=quiz.output,
    )
    generation = await start_generation(provider, payload, request_id=request_id)

    try:
        await resolver.consume(identity)
    except (InfrastructureError, LedgerConsistencyError):
        await generation.aclose()
        logger.error("Failed to record generation usage", extra=log_context)
        raise

    # Anonymous verdicts already reflect the unit taken by the check
    remaining = verdict.remaining - (1 if verdict.is_authenticated else 0)
    return StreamingResponse(
        _relay(generation, request_id),
        media_type="text/plain; charset=utf-8",
        headers=_rate_limit_headers(verdict, remaining),
    )
