"""Middleware package for quizgen."""

from quizgen.app.middleware.auth import get_identity, get_session_user_id
from quizgen.app.middleware.request_id import RequestIdMiddleware, get_request_id

__all__ = [
    "get_identity",
    "get_session_user_id",
    "RequestIdMiddleware",
    "get_request_id",
]
