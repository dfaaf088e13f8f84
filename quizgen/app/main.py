from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quizgen.app.api.chat import router as chat_router
from quizgen.app.api.credits import router as credits_router
from quizgen.app.api.grading import router as grading_router
from quizgen.app.api.payments import router as payments_router
from quizgen.app.core.config import settings
from quizgen.app.core.http_client import init_http_client
from quizgen.app.core.logging import get_logger, setup_logging
from quizgen.app.core.store import get_allowance_store
from quizgen.app.exceptions import (
    AuthenticationError,
    GenerationError,
    InfrastructureError,
    LedgerConsistencyError,
    QuotaExceededError,
    WebhookVerificationError,
)
from quizgen.app.middleware.request_id import RequestIdMiddleware, get_request_id


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    setup_logging()
    logger = get_logger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[dict, None]:
        """Open the shared HTTP client on startup; close the store on shutdown."""
        async with init_http_client() as http_client:
            store = get_allowance_store()
            logger.info(
                "Application startup complete",
                extra={
                    "store": type(store).__name__,
                    "debug_mode": settings.debug,
                },
            )
            yield {"http_client": http_client}

        await get_allowance_store().close()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="quizgen",
        description="Quiz generation with per-identity usage metering and purchased credits",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "X-RateLimit-Reset"],
        max_age=600,
    )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(chat_router)
    app.include_router(credits_router)
    app.include_router(grading_router)
    app.include_router(payments_router)

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """Health check including allowance store connectivity."""
        health_status: dict[str, Any] = {"status": "ok", "components": {}}
        store = get_allowance_store()
        try:
            await store.ping()
            health_status["components"]["store"] = {
                "status": "ok",
                "type": type(store).__name__,
            }
        except InfrastructureError as e:
            health_status["status"] = "degraded"
            health_status["components"]["store"] = {
                "status": "error",
                "error": str(e)[:100],
            }
        return health_status

    @app.exception_handler(QuotaExceededError)
    async def quota_exceeded_handler(request: Request, exc: QuotaExceededError) -> JSONResponse:
        """Structured 429 with rate-limit headers."""
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response(),
            headers=exc.rate_limit_headers(),
        )

    @app.exception_handler(InfrastructureError)
    async def infrastructure_error_handler(request: Request, exc: InfrastructureError) -> JSONResponse:
        """Store failures: generic retry message, never a quota answer."""
        request_id = get_request_id(request)
        logger.error(
            f"Allowance store failure during {exc.operation or 'request'}: {exc.message}",
            extra={"request_id": request_id},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "service_unavailable",
                "message": "Something went wrong on our side. Please retry in a moment.",
                "request_id": request_id,
            },
            headers={"Retry-After": "5"},
        )

    @app.exception_handler(LedgerConsistencyError)
    async def ledger_consistency_handler(request: Request, exc: LedgerConsistencyError) -> JSONResponse:
        """Fail closed: the request that hit the inconsistency is denied."""
        request_id = get_request_id(request)
        logger.error(
            f"Ledger consistency error: {exc.message}",
            extra={"request_id": request_id, "user_id": exc.user_id},
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": "ledger_conflict",
                "message": "Your request could not be charged. Please try again.",
                "request_id": request_id,
            },
        )

    @app.exception_handler(AuthenticationError)
    async def auth_error_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "authentication_failed", "message": exc.detail},
        )

    @app.exception_handler(WebhookVerificationError)
    async def webhook_error_handler(request: Request, exc: WebhookVerificationError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "webhook_rejected", "message": exc.message},
        )

    @app.exception_handler(GenerationError)
    async def generation_error_handler(request: Request, exc: GenerationError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": "generation_failed", "message": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Global exception handler for unhandled exceptions.

        Never returns a traceback to the client; debug mode adds the
        exception message and type.
        """
        request_id = get_request_id(request)
        logger.exception(
            f"Unhandled exception [request_id={request_id}]",
            extra={
                "request_id": request_id,
                "exception_type": type(exc).__name__,
            },
        )
        content: dict[str, Any] = {
            "error": "internal_error",
            "message": "Internal server error",
            "request_id": request_id,
        }
        if settings.debug:
            content["message"] = str(exc)
            content["exception_type"] = type(exc).__name__
        return JSONResponse(status_code=500, content=content)

    return app


# Create the application instance
app = create_app()
