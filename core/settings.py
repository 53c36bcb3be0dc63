"""
Payment gateway settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials live in their
own GATEWAY__* namespace.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class GatewayTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 10.0
    write: float = 10.0
    total: float = 15.0


class GatewayRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class AdyenSettings(BaseModel):
    api_key: Optional[str] = None
    merchant_account: Optional[str] = None
    checkout_base_url: str = "https://checkout-test.adyen.com/v71"


class GatewaySettings(BaseSettings):
    provider: str = Field(default="adyen")
    timeouts: GatewayTimeouts = Field(default_factory=GatewayTimeouts)
    retry: GatewayRetry = Field(default_factory=GatewayRetry)
    adyen: AdyenSettings = Field(default_factory=AdyenSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="GATEWAY__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


gateway_settings = GatewaySettings()
