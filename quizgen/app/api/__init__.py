"""API endpoints package for quizgen."""

from quizgen.app.api.chat import router as chat_router
from quizgen.app.api.credits import router as credits_router
from quizgen.app.api.grading import router as grading_router
from quizgen.app.api.payments import router as payments_router

__all__ = [
    "chat_router",
    "credits_router",
    "grading_router",
    "payments_router",
]
