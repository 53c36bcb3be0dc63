"""
Payment record entity - the platform's versioned payment object.

The platform owns identity and version; this service only reads the record
and appends update actions conditioned on its version.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DownstreamException


class CustomField(str, Enum):
    """Custom field names on the payment record.

    These names are a wire contract with the platform UI and must not change.
    """
    GET_PAYMENT_METHODS_REQUEST = "getPaymentMethodsRequest"
    GET_PAYMENT_METHODS_RESPONSE = "getPaymentMethodsResponse"
    MAKE_PAYMENT_REQUEST = "makePaymentRequest"
    MAKE_PAYMENT_RESPONSE = "makePaymentResponse"
    SUBMIT_ADDITIONAL_PAYMENT_DETAILS_REQUEST = "submitAdditionalPaymentDetailsRequest"
    SUBMIT_ADDITIONAL_PAYMENT_DETAILS_RESPONSE = "submitAdditionalPaymentDetailsResponse"


# Request field -> field the gateway answer is written to
RESPONSE_FIELD_FOR = {
    CustomField.GET_PAYMENT_METHODS_REQUEST: CustomField.GET_PAYMENT_METHODS_RESPONSE,
    CustomField.MAKE_PAYMENT_REQUEST: CustomField.MAKE_PAYMENT_RESPONSE,
    CustomField.SUBMIT_ADDITIONAL_PAYMENT_DETAILS_REQUEST: CustomField.SUBMIT_ADDITIONAL_PAYMENT_DETAILS_RESPONSE,
}


def parse_payload(value: Any) -> Optional[dict[str, Any]]:
    """Parse a staged custom field value (JSON string or object) into a dict.

    Returns None when the value is absent or not a JSON object.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        return value
    if isinstance(value, (str, bytes)):
        try:
            parsed = json.loads(value)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return None


@dataclass
class PaymentRecord:
    """
    Payment record as returned by the platform.

    Rules:
    1. `version` strictly increases on every successful write
    2. writes are accepted only against the exact current version
    """

    id: str
    version: int
    custom_fields: dict[str, Any] = field(default_factory=dict)
    has_custom_type: bool = False
    key: Optional[str] = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_platform(cls, body: dict[str, Any]) -> "PaymentRecord":
        try:
            payment_id = str(body["id"])
            version = int(body["version"])
        except (KeyError, TypeError, ValueError) as exc:
            raise DownstreamException(
                "Platform returned a payment without id/version",
                source="platform",
                payload=body,
            ) from exc
        custom = body.get("custom") or {}
        return cls(
            id=payment_id,
            version=version,
            custom_fields=dict(custom.get("fields") or {}),
            has_custom_type=bool(custom.get("type")),
            key=body.get("key"),
            raw=body,
        )

    def field_value(self, name: CustomField | str) -> Any:
        return self.custom_fields.get(getattr(name, "value", name))

    def payload(self, name: CustomField | str) -> Optional[dict[str, Any]]:
        return parse_payload(self.field_value(name))

    def to_dict(self) -> dict[str, Any]:
        if self.raw:
            return self.raw
        body: dict[str, Any] = {"id": self.id, "version": self.version}
        if self.key is not None:
            body["key"] = self.key
        if self.has_custom_type or self.custom_fields:
            body["custom"] = {"fields": dict(self.custom_fields)}
        return body
