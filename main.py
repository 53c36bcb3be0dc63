"""
FastAPI应用主入口
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.responses import Response

from api.routes import payments as payments_routes
from api.routes import slowed_users as slowed_users_routes
from api.middleware import RequestIDMiddleware, LoggingMiddleware
from application.services.throttle_service import ThrottleGate
from core.config import settings
from core.settings import gateway_settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger, configure_logging
from domain.auth import AuthGate, AuthMode, CredentialStore
from domain.throttle import Denylist
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.platform import build_tenant_registry


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时一次性构建租户凭证、平台客户端与网关"""
    credentials = CredentialStore.from_pairs((t.project_key, t.credential) for t in settings.TENANTS)
    auth_mode = AuthMode(settings.auth.mode.value)
    app.state.auth_gate = AuthGate(credentials, mode=auth_mode)
    if auth_mode is not AuthMode.STRICT:
        logger.warning("auth_token_check_disabled", mode=auth_mode.value)

    tenants = build_tenant_registry(settings.TENANTS, settings.platform)
    app.state.tenants = tenants
    if settings.platform.ensure_types:
        await tenants.ensure_types(settings.platform)

    try:
        app.state.gateway = get_payment_gateway()
    except Exception as exc:
        app.state.gateway = None
        logger.error("gateway_init_failed", provider=gateway_settings.provider, error=str(exc))

    denylist = Denylist()
    app.state.denylist = denylist
    app.state.throttle_gate = ThrottleGate(denylist, delay_ms=settings.throttle.delay_ms)

    logger.info(
        "extension_configured",
        project_keys=tenants.project_keys(),
        credentialed_project_keys=credentials.project_keys(),
        merchant_account=gateway_settings.adyen.merchant_account,
    )

    yield

    await tenants.aclose()
    close = getattr(app.state.gateway, "aclose", None)
    if callable(close):
        await close()
    logger.info("application_shutdown", message="Application shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Synchronizes platform payment records with the payment gateway",
)

# 中间件（从下往上执行）：Request ID 最先执行，为日志提供 request_id
app.add_middleware(LoggingMiddleware)
app.add_middleware(RequestIDMiddleware)

register_exception_handlers(app)

app.include_router(payments_routes.router)
app.include_router(slowed_users_routes.router)


@app.get("/health", tags=["Health"])
async def health_check():
    """健康检查端点"""
    return Response(status_code=200)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8080,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
