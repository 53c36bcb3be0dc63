"""
Factory for payment gateway clients.
"""
from __future__ import annotations

from typing import Optional

from core.config import settings
from core.settings import GatewaySettings, gateway_settings
from application.ports.payment_gateway import PaymentGateway


def get_payment_gateway(provider: Optional[str] = None, config: Optional[GatewaySettings] = None) -> PaymentGateway:
    cfg = config or gateway_settings
    name = (provider or cfg.provider).lower()
    if name == "adyen":
        if not cfg.adyen.api_key:
            raise RuntimeError("GATEWAY__ADYEN__API_KEY not configured")
        from .adyen_client import AdyenClient
        return AdyenClient(
            api_key=cfg.adyen.api_key,
            merchant_account=cfg.adyen.merchant_account,
            base_url=cfg.adyen.checkout_base_url,
            interaction_type_key=settings.platform.interaction_type_key,
            timeouts=cfg.timeouts.model_dump(),
            retry={"max": cfg.retry.max, "base": cfg.retry.base_backoff},
        )
    raise ValueError(f"Unsupported payment provider: {name}")
