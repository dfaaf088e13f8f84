"""Purchased-credit ledger.

Credits never expire. They are granted by completed payments and spent
one at a time, only once the daily quota is used up.
"""

from typing import Optional

from quizgen.app.core.logging import get_logger
from quizgen.app.core.store import AllowanceStore, GrantOutcome
from quizgen.app.exceptions import LedgerConsistencyError

logger = get_logger(__name__)

PAYMENT_EVENT_TTL_SECONDS = 86400 * 30


class CreditLedger:
    """Per-user purchased-credit balance kept in the allowance store."""

    def __init__(
        self,
        store: AllowanceStore,
        event_ttl_seconds: int = PAYMENT_EVENT_TTL_SECONDS,
    ) -> None:
        self._store = store
        self._event_ttl_seconds = event_ttl_seconds

    async def balance(self, user_id: str) -> int:
        return await self._store.get_credits(user_id)

    async def grant(
        self, user_id: str, amount: int, event_id: Optional[str] = None
    ) -> GrantOutcome:
        """Add ``amount`` credits to ``user_id``.

        When ``event_id`` is given it is remembered, and a later grant with
        the same id (a redelivered payment webhook) changes nothing.

        Raises:
            ValueError: If amount is not positive
            InfrastructureError: If the store cannot be reached
        """
        if amount <= 0:
            raise ValueError("Credit grants must be positive")
        outcome = await self._store.grant_credits(
            user_id,
            amount,
            event_id=event_id,
            marker_ttl_seconds=self._event_ttl_seconds,
        )
        if outcome.applied:
            logger.info(
                f"Granted {amount} credits to user {user_id}, balance now {outcome.balance}",
                extra={"user_id": user_id, "event_id": event_id},
            )
        else:
            logger.warning(
                f"Duplicate payment event {event_id} for user {user_id} ignored",
                extra={"user_id": user_id, "event_id": event_id},
            )
        return outcome

    async def debit(self, user_id: str) -> int:
        """Spend exactly one credit and return the new balance.

        Raises:
            LedgerConsistencyError: If the balance is already zero. The
                balance is left as is rather than clamped.
            InfrastructureError: If the store cannot be reached
        """
        outcome = await self._store.debit_credit(user_id)
        if not outcome.debited:
            logger.error(
                f"Ledger inconsistency: debit requested for user {user_id} "
                f"with balance {outcome.balance}",
                extra={"user_id": user_id},
            )
            raise LedgerConsistencyError(user_id=user_id, balance=outcome.balance)
        logger.info(
            f"Consumed purchased credit for user {user_id}. Remaining purchased: {outcome.balance}",
            extra={"user_id": user_id},
        )
        return outcome.balance
