"""Short-answer grading endpoint."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from quizgen.app.api.chat import get_provider_dependency
from quizgen.app.core.config import settings
from quizgen.app.core.logging import get_logger
from quizgen.app.exceptions import GenerationError
from quizgen.app.middleware.request_id import get_request_id
from quizgen.app.providers.base import BaseProvider
from quizgen.app.services.generation import grade_answer

router = APIRouter()
logger = get_logger(__name__)


class AnswerCheckRequest(BaseModel):
    """A user's short answer and the expected one (camelCase on the wire)."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_answer: str
    correct_answer: str


@router.post("/api/check-answer", response_model=None)
async def check_answer(
    body: AnswerCheckRequest,
    request: Request,
    provider: BaseProvider = Depends(get_provider_dependency),
) -> dict | JSONResponse:
    """Grade a short answer for semantic equivalence.

    Grading is not metered against the caller's generation allowance.
    """
    request_id = get_request_id(request)
    try:
        is_correct = await grade_answer(
            provider,
            user_answer=body.user_answer,
            correct_answer=body.correct_answer,
            model=settings.llm_model,
            request_id=request_id,
        )
    except GenerationError as e:
        logger.error(f"Error checking answer: {e}", extra={"request_id": request_id})
        return JSONResponse(status_code=500, content={"error": "Failed to check answer"})
    return {"isCorrect": is_correct}
