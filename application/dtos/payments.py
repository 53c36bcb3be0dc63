"""
Payment synchronization DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_json(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class UpdateAction(BaseModel):
    """Tagged update instruction applied to a payment record.

    Only `action` is interpreted here; any other attribute is forwarded to the
    platform untouched.
    """

    action: str

    model_config = ConfigDict(extra="allow")

    @classmethod
    def set_custom_field(cls, name: str, value: Any) -> "UpdateAction":
        return cls(action="setCustomField", name=name, value=_as_json(value))

    @classmethod
    def set_custom_type(cls, type_key: str, fields: dict[str, Any]) -> "UpdateAction":
        return cls(
            action="setCustomType",
            type={"typeId": "type", "key": type_key},
            fields={k: _as_json(v) for k, v in fields.items()},
        )

    @classmethod
    def add_interface_interaction(
        cls,
        type_key: str,
        *,
        interaction_type: str,
        request: Any,
        response: Any,
    ) -> "UpdateAction":
        return cls(
            action="addInterfaceInteraction",
            type={"typeId": "type", "key": type_key},
            fields={
                "type": interaction_type,
                "request": _as_json(request),
                "response": _as_json(response),
                "createdAt": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            },
        )

    @classmethod
    def set_status_interface_code(cls, code: str) -> "UpdateAction":
        return cls(action="setStatusInterfaceCode", interfaceCode=code)

    def to_platform(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class GatewayResult(BaseModel):
    """Ordered update actions produced by the payment gateway."""

    actions: list[UpdateAction] = Field(default_factory=list)


class PaymentEnvelope(BaseModel):
    """Body of the direct variant: a payment snapshot with caller-supplied version."""

    id: str
    version: int = Field(ge=0)

    model_config = ConfigDict(extra="allow")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class SlowedUserRequest(BaseModel):
    shopper_reference: str = Field(alias="shopperReference", min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("shopper_reference")
    @classmethod
    def _strip(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("shopperReference must not be blank")
        return s


class SlowedUserChange(BaseModel):
    shopper_reference: str = Field(serialization_alias="shopperReference")
    added: Optional[bool] = None
    removed: Optional[bool] = None
