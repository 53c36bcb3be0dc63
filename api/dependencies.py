"""
API依赖项 - 租户认证与服务装配

认证门、租户注册表、网关与限流门在应用生命周期内只构建一次，
这里从 app.state 读取。
"""
from typing import Optional

import structlog
from fastapi import Depends, Header, Request

from application.ports.payment_gateway import PaymentGateway
from application.services.payment_service import PaymentUpdateService
from application.services.throttle_service import ThrottleGate
from core.config import settings
from core.logging_config import get_logger
from domain.auth.gate import AuthGate, DenyReason, tokens_match
from domain.common.exceptions import AdminAuthenticationException, AuthenticationException, DownstreamException
from domain.throttle.denylist import Denylist
from infrastructure.external.platform.registry import TenantRegistry


logger = get_logger(__name__)

PROJECT_KEY_HEADER = "x-project-key"


def get_auth_gate(request: Request) -> AuthGate:
    return request.app.state.auth_gate


def get_tenant_registry(request: Request) -> TenantRegistry:
    return request.app.state.tenants


def get_gateway(request: Request) -> PaymentGateway:
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        raise DownstreamException("Payment gateway is not configured", source="gateway")
    return gateway


def get_denylist(request: Request) -> Denylist:
    return request.app.state.denylist


def get_throttle_gate(request: Request) -> ThrottleGate:
    return request.app.state.throttle_gate


async def require_tenant(
    x_project_key: Optional[str] = Header(default=None, alias=PROJECT_KEY_HEADER),
    authorization: Optional[str] = Header(default=None),
    gate: AuthGate = Depends(get_auth_gate),
) -> str:
    """按 project key 校验调用方凭证，在任何下游调用之前执行"""
    decision = gate.authorize(x_project_key, authorization)
    if not decision.allowed:
        logger.warning("auth_rejected", project_key=x_project_key, reason=decision.reason.value)
        raise AuthenticationException(
            missing_credential=decision.reason is DenyReason.MISSING_CREDENTIAL,
            project_key=x_project_key,
        )
    structlog.contextvars.bind_contextvars(project_key=x_project_key)
    return x_project_key  # type: ignore[return-value]


async def get_payment_service(
    project_key: str = Depends(require_tenant),
    tenants: TenantRegistry = Depends(get_tenant_registry),
    gateway: PaymentGateway = Depends(get_gateway),
    throttle: ThrottleGate = Depends(get_throttle_gate),
) -> PaymentUpdateService:
    return PaymentUpdateService(
        platform=tenants.require(project_key),
        gateway=gateway,
        throttle=throttle,
        call_timeout=settings.cycle.call_timeout_seconds,
        payment_type_key=settings.platform.payment_type_key,
    )


async def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """管理端点：仅在配置 ADMIN__TOKEN 时校验 x-admin-token"""
    expected = settings.admin.token
    if expected and not tokens_match(expected, x_admin_token):
        raise AdminAuthenticationException()
