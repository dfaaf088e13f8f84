"""Remaining-generations query for the UI."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from quizgen.app.core.logging import get_logger
from quizgen.app.exceptions import InfrastructureError
from quizgen.app.middleware.auth import get_identity
from quizgen.app.services.metering import (
    AllowanceResolver,
    Identity,
    get_allowance_resolver,
)

router = APIRouter()
logger = get_logger(__name__)


@router.get("/api/user/credits", response_model=None)
async def remaining_generations(
    identity: Identity = Depends(get_identity),
    resolver: AllowanceResolver = Depends(get_allowance_resolver),
) -> dict | JSONResponse:
    """Return how many generations the caller has left.

    Does not charge anonymous callers for asking.
    """
    try:
        remaining = await resolver.remaining(identity)
    except InfrastructureError as e:
        logger.error(f"Error fetching remaining generations: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "remainingGenerations": 0,
                "error": "Failed to fetch remaining generations",
            },
        )
    return {"remainingGenerations": remaining}
