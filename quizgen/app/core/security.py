"""Signing helpers for session tokens and payment webhooks."""

import base64
import binascii
import hashlib
import hmac

from quizgen.app.core.config import settings


def _sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def issue_session_token(user_id: str, secret: str | None = None) -> str:
    """Issue a session token for ``user_id``.

    The token is ``<base64url(user_id)>.<hex HMAC-SHA256>``. The auth
    subsystem hands it to the browser after sign-in.

    Raises:
        ValueError: If no session secret is configured
    """
    secret = secret if secret is not None else settings.session_secret
    if not secret:
        raise ValueError("session_secret is not configured")
    encoded = base64.urlsafe_b64encode(user_id.encode("utf-8")).decode("ascii").rstrip("=")
    return f"{encoded}.{_sign(secret, encoded.encode('ascii'))}"


def verify_session_token(token: str, secret: str | None = None) -> str | None:
    """Return the user id carried by ``token``, or None if it does not verify."""
    secret = secret if secret is not None else settings.session_secret
    if not secret or not token.isascii() or token.count(".") != 1:
        return None
    encoded, signature = token.split(".")
    expected = _sign(secret, encoded.encode("ascii"))
    if not hmac.compare_digest(expected, signature):
        return None
    try:
        padded = encoded + "=" * (-len(encoded) % 4)
        user_id = base64.urlsafe_b64decode(padded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    return user_id or None


def sign_webhook_payload(body: bytes, secret: str | None = None) -> str:
    """Hex HMAC-SHA256 of a webhook body, as sent in X-Webhook-Signature."""
    secret = secret if secret is not None else settings.payment_webhook_secret
    return _sign(secret, body)


def verify_webhook_signature(body: bytes, signature: str | None, secret: str | None = None) -> bool:
    """Check a webhook signature in constant time.

    Always False when no secret is configured.
    """
    secret = secret if secret is not None else settings.payment_webhook_secret
    if not secret or not signature or not signature.isascii():
        return False
    return hmac.compare_digest(sign_webhook_payload(body, secret), signature.strip())
