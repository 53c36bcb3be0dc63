"""
Throttle gate: deliberately delays cycles for denylisted shoppers.

This is an administrative degradation lever. It must never fail a request,
only delay it.
"""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

from core.logging_config import get_logger
from domain.payment.entity import CustomField, PaymentRecord, parse_payload
from domain.throttle.denylist import Denylist


logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

# Staged fields inspected for the shopper reference, in order
SUBJECT_FIELDS = (
    CustomField.GET_PAYMENT_METHODS_REQUEST,
    CustomField.MAKE_PAYMENT_REQUEST,
)
SUBJECT_KEY = "shopperReference"


def extract_subject(payment: Union[PaymentRecord, dict[str, Any]]) -> Optional[str]:
    """Find the shopper reference in a staged request payload.

    Looks at the staged custom fields first, then at a top-level
    `shopperReference` on a raw payment body.
    """
    if isinstance(payment, PaymentRecord):
        fields = payment.custom_fields
        top_level = payment.raw
    else:
        fields = (payment.get("custom") or {}).get("fields") or {}
        top_level = payment

    for name in SUBJECT_FIELDS:
        staged = parse_payload(fields.get(name.value))
        if staged and staged.get(SUBJECT_KEY):
            return str(staged[SUBJECT_KEY])

    value = top_level.get(SUBJECT_KEY) if isinstance(top_level, dict) else None
    return str(value) if value else None


class ThrottleGate:
    def __init__(self, denylist: Denylist, *, delay_ms: int = 15_000, sleep: Sleep = asyncio.sleep) -> None:
        self.denylist = denylist
        self.delay_ms = delay_ms
        self._sleep = sleep

    @property
    def delay_seconds(self) -> float:
        return self.delay_ms / 1000.0

    async def maybe_delay(self, payment: Union[PaymentRecord, dict[str, Any]]) -> float:
        """Suspend the current cycle if its shopper is denylisted.

        Returns the delay applied in seconds (0.0 when not throttled).
        """
        try:
            subject = extract_subject(payment)
            throttled = bool(subject) and await self.denylist.contains(subject)
        except Exception as exc:
            logger.warning("throttle_check_failed", error=str(exc))
            return 0.0

        if not throttled:
            return 0.0

        logger.info("request_throttled", shopper_reference=subject, delay_ms=self.delay_ms)
        await self._sleep(self.delay_seconds)
        return self.delay_seconds
