"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import GatewayResult
from domain.payment.entity import PaymentRecord


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for the external payment provider.

    Every call returns the ordered update actions to apply to the record; the
    caller forwards them without interpreting their content.
    """

    provider: str

    async def handle_payment(self, payment: dict[str, Any]) -> GatewayResult: ...

    async def make_payment(self, record: PaymentRecord) -> GatewayResult: ...

    async def submit_additional_details(self, record: PaymentRecord) -> GatewayResult: ...
