from fastapi import Request

from quizgen.app.core.logging import get_logger
from quizgen.app.core.security import verify_session_token
from quizgen.app.core.utils import get_client_ip
from quizgen.app.exceptions import AuthenticationError
from quizgen.app.services.metering import Identity, identity_from_user_id

logger = get_logger(__name__)


def get_session_user_id(request: Request) -> str | None:
    """User id from the session token, None when the request carries none.

    Raises:
        AuthenticationError: If a Bearer token is present but does not verify
    """
    auth = request.headers.get("Authorization", "")
    if not auth:
        return None
    if not auth.startswith("Bearer "):
        raise AuthenticationError("Authorization header must use the Bearer scheme")

    token = auth[7:].strip()
    if not token:
        return None
    if len(token) > 1024:
        raise AuthenticationError("Session token too long")

    user_id = verify_session_token(token)
    if user_id is None:
        logger.info("Rejected invalid session token", extra={"path": request.url.path})
        raise AuthenticationError()
    return user_id


async def get_identity(request: Request) -> Identity:
    """FastAPI dependency resolving the metering identity of the caller."""
    user_id = get_session_user_id(request)
    peer = request.client.host if request.client else None
    identity = identity_from_user_id(user_id, get_client_ip(request.headers, peer))
    request.state.identity = identity
    return identity
