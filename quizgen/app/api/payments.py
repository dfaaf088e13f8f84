"""Payment-completion webhook.

The payment subsystem forwards completed purchase events here. Delivery
is at-least-once, so every grant is keyed by the event id.
"""

import json
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from quizgen.app.core.config import settings
from quizgen.app.core.logging import get_logger
from quizgen.app.core.security import verify_webhook_signature
from quizgen.app.exceptions import WebhookVerificationError
from quizgen.app.services.metering import AllowanceResolver, get_allowance_resolver

router = APIRouter()
logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
CHECKOUT_COMPLETED = "checkout.session.completed"


class PaymentEventData(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    user_id: Optional[str] = None


class PaymentEvent(BaseModel):
    id: str = Field(..., min_length=1, max_length=255)
    type: str
    data: PaymentEventData = Field(default_factory=PaymentEventData)


@router.post("/api/payments/webhook")
async def payment_webhook(
    request: Request,
    resolver: AllowanceResolver = Depends(get_allowance_resolver),
) -> dict[str, Any]:
    """Grant purchased credits for a completed checkout, once per event id."""
    body = await request.body()
    if not verify_webhook_signature(body, request.headers.get(SIGNATURE_HEADER)):
        logger.warning("Webhook signature verification failed")
        raise WebhookVerificationError("Webhook Error: invalid signature")

    try:
        event = PaymentEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        raise WebhookVerificationError(f"Webhook Error: malformed event ({e.__class__.__name__})")

    if event.type != CHECKOUT_COMPLETED:
        logger.debug(f"Ignoring payment event {event.id} of type {event.type}")
        return {"received": True, "applied": False}

    if not event.data.user_id:
        raise WebhookVerificationError("Webhook Error: Missing user ID")

    outcome = await resolver.credit_ledger.grant(
        event.data.user_id, settings.credits_per_purchase, event_id=event.id
    )
    return {
        "received": True,
        "applied": outcome.applied,
        "duplicate": not outcome.applied,
    }
