"""
Custom type drafts the payment record and its interface interactions rely on.
"""
from __future__ import annotations

from typing import Any

from domain.payment.entity import CustomField


def _string_field(name: str) -> dict[str, Any]:
    return {
        "name": name,
        "label": {"en": name},
        "required": False,
        "type": {"name": "String"},
        "inputHint": "MultiLine",
    }


def payment_type_draft(key: str) -> dict[str, Any]:
    return {
        "key": key,
        "name": {"en": "Payment gateway fields"},
        "resourceTypeIds": ["payment"],
        "fieldDefinitions": [_string_field(f.value) for f in CustomField],
    }


def interaction_type_draft(key: str) -> dict[str, Any]:
    return {
        "key": key,
        "name": {"en": "Payment gateway interaction"},
        "resourceTypeIds": ["payment-interface-interaction"],
        "fieldDefinitions": [
            _string_field("type"),
            _string_field("request"),
            _string_field("response"),
            {
                "name": "createdAt",
                "label": {"en": "createdAt"},
                "required": False,
                "type": {"name": "DateTime"},
                "inputHint": "SingleLine",
            },
        ],
    }
