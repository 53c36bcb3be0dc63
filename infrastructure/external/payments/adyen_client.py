"""
Adyen checkout adapter.

Each call forwards a staged request to the checkout API and answers with
the update actions that record the outcome on the payment:

- setCustomField of the matching `*Response` field
- addInterfaceInteraction with request/response for audit
- setStatusInterfaceCode when the gateway reports a resultCode
"""
from __future__ import annotations

from typing import Any, Optional

import httpx

from application.dtos.payments import GatewayResult, UpdateAction
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import DownstreamException
from domain.payment.entity import RESPONSE_FIELD_FOR, CustomField, PaymentRecord, parse_payload
from infrastructure.external.api_clients.base import APIError, BaseAPIClient


logger = get_logger(__name__)

# Request field -> (checkout endpoint, interaction type, needs merchantAccount)
OPERATIONS: dict[CustomField, tuple[str, str, bool]] = {
    CustomField.GET_PAYMENT_METHODS_REQUEST: ("paymentMethods", "getPaymentMethods", True),
    CustomField.MAKE_PAYMENT_REQUEST: ("payments", "makePayment", True),
    CustomField.SUBMIT_ADDITIONAL_PAYMENT_DETAILS_REQUEST: ("payments/details", "submitAdditionalPaymentDetails", False),
}


class AdyenClient(BaseAPIClient, PaymentGateway):
    provider = "adyen"

    def __init__(
        self,
        *,
        api_key: str,
        merchant_account: Optional[str],
        base_url: str,
        interaction_type_key: str,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        t = timeouts or {"connect": 1.0, "read": 10.0, "write": 10.0, "total": 15.0}
        r = retry or {"max": 2, "base": 0.2}
        super().__init__(
            base_url=base_url,
            timeout=httpx.Timeout(t["total"], connect=t["connect"], read=t["read"], write=t["write"]),
            max_retries=int(r["max"]),
            retry_delay=float(r["base"]),
            headers={"X-API-Key": api_key},
            transport=transport,
        )
        self.merchant_account = merchant_account
        self.interaction_type_key = interaction_type_key

    async def handle_payment(self, payment: dict[str, Any]) -> GatewayResult:  # type: ignore[override]
        """Run the first staged request on the payment that has no response yet."""
        fields = (payment.get("custom") or {}).get("fields") or {}
        for request_field in OPERATIONS:
            if fields.get(request_field.value) and not fields.get(RESPONSE_FIELD_FOR[request_field].value):
                request = parse_payload(fields[request_field.value])
                if request is None:
                    raise DownstreamException(
                        f"{request_field.value} is not a JSON object",
                        source="gateway",
                        payment_id=payment.get("id"),
                    )
                return await self._execute(request_field, request, payment_id=payment.get("id"))
        logger.info("gateway_nothing_pending", provider=self.provider, payment_id=payment.get("id"))
        return GatewayResult()

    async def make_payment(self, record: PaymentRecord) -> GatewayResult:  # type: ignore[override]
        return await self._execute_staged(record, CustomField.MAKE_PAYMENT_REQUEST)

    async def submit_additional_details(self, record: PaymentRecord) -> GatewayResult:  # type: ignore[override]
        return await self._execute_staged(record, CustomField.SUBMIT_ADDITIONAL_PAYMENT_DETAILS_REQUEST)

    async def _execute_staged(self, record: PaymentRecord, request_field: CustomField) -> GatewayResult:
        request = record.payload(request_field)
        if request is None:
            raise DownstreamException(
                f"Staged {request_field.value} is missing or not a JSON object",
                source="gateway",
                payment_id=record.id,
            )
        return await self._execute(request_field, request, payment_id=record.id)

    async def _execute(
        self,
        request_field: CustomField,
        request: dict[str, Any],
        *,
        payment_id: Optional[str],
    ) -> GatewayResult:
        endpoint, interaction_type, needs_merchant = OPERATIONS[request_field]
        body = dict(request)
        if needs_merchant and self.merchant_account:
            body.setdefault("merchantAccount", self.merchant_account)

        try:
            response = await self.post(endpoint, json_data=body)
        except APIError as exc:
            raise DownstreamException(
                exc.message,
                source="gateway",
                payment_id=payment_id,
                status_code=exc.status_code,
                payload=exc.payload,
            ) from exc

        result = response.payload()
        actions = [
            UpdateAction.set_custom_field(RESPONSE_FIELD_FOR[request_field].value, result),
            UpdateAction.add_interface_interaction(
                self.interaction_type_key,
                interaction_type=interaction_type,
                request=body,
                response=result,
            ),
        ]
        result_code = result.get("resultCode") if isinstance(result, dict) else None
        if result_code:
            actions.append(UpdateAction.set_status_interface_code(str(result_code)))

        logger.info(
            "gateway_call_completed",
            provider=self.provider,
            payment_id=payment_id,
            operation=interaction_type,
            result_code=result_code,
        )
        return GatewayResult(actions=actions)
