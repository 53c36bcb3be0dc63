"""
Commerce platform port: versioned payment object store.
"""
from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable

from application.dtos.payments import UpdateAction
from domain.payment.entity import PaymentRecord


@runtime_checkable
class PaymentPlatform(Protocol):
    """Per-project client of the platform's payment store.

    `update_payment` applies all actions against `expected_version` or none of
    them; a stale version raises VersionConflictException.
    """

    project_key: str

    async def get_payment(self, payment_id: str) -> PaymentRecord: ...

    async def update_payment(
        self,
        payment_id: str,
        expected_version: int,
        actions: Sequence[UpdateAction],
    ) -> PaymentRecord: ...

    async def create_payment(self, draft: dict[str, Any]) -> PaymentRecord: ...
