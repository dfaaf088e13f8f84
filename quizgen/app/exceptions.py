"""Custom exceptions for the quizgen application."""

from datetime import datetime


class QuizGenException(Exception):
    """Base class for quizgen exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "quizgen error"):
        self.message = message
        super().__init__(message)


class QuotaExceededError(QuizGenException):
    """Raised when a caller has no daily generations and no purchased credits left.

    This is the expected outcome of metering, not a system failure.
    Maps to HTTP 429 Too Many Requests.
    """
    status_code = 429

    def __init__(
        self,
        limit: int,
        reset_at: datetime,
        is_authenticated: bool,
        detail: str | None = None,
    ):
        self.limit = limit
        self.reset_at = reset_at
        self.is_authenticated = is_authenticated
        super().__init__(detail or "Rate limit exceeded. Please try again later.")

    def to_response(self) -> dict:
        return {
            "error": self.message,
            "limit": self.limit,
            "remaining": 0,
            "reset": self.reset_at.isoformat().replace("+00:00", "Z"),
            "isLoggedIn": self.is_authenticated,
        }

    def rate_limit_headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(epoch_seconds_ceil(self.reset_at)),
        }


class InfrastructureError(QuizGenException):
    """Raised when the allowance store is unreachable or returns malformed data.

    Never to be read as "allowed" or "denied"; the caller should retry.
    Maps to HTTP 503 Service Unavailable.
    """
    status_code = 503

    def __init__(self, detail: str = "Allowance store unavailable", operation: str | None = None):
        self.operation = operation
        super().__init__(detail)


class LedgerConsistencyError(QuizGenException):
    """Raised when a credit debit would take a balance below zero.

    Points at a double consumption race or a resolver bug; the request
    that triggered it is denied.
    Maps to HTTP 409 Conflict.
    """
    status_code = 409

    def __init__(self, user_id: str, balance: int):
        self.user_id = user_id
        self.balance = balance
        super().__init__(
            f"Credit debit refused for user {user_id}: balance is {balance}"
        )


class AuthenticationError(QuizGenException):
    """Raised when a session token is present but invalid.

    Maps to HTTP 401 Unauthorized.
    """
    status_code = 401

    def __init__(self, detail: str = "Invalid session token"):
        self.detail = detail
        super().__init__(detail)


class WebhookVerificationError(QuizGenException):
    """Raised when a payment webhook fails signature or payload validation.

    Maps to HTTP 400 Bad Request.
    """
    status_code = 400


class GenerationError(QuizGenException):
    """Raised when the question provider fails before producing output.

    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502

    def __init__(self, detail: str = "An error occurred while generating questions."):
        super().__init__(detail)


def epoch_seconds_ceil(moment: datetime) -> int:
    """Epoch seconds for ``moment``, rounded up to the next whole second."""
    ts = moment.timestamp()
    whole = int(ts)
    return whole if ts == whole else whole + 1
