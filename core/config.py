"""
配置文件 - 项目配置管理
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AuthModeSetting(str, Enum):
    STRICT = "strict"
    PRESENCE_ONLY = "presence_only"


class TenantSettings(BaseModel):
    """单个平台项目：入站凭证与出站 API 客户端配置"""
    project_key: str
    # 入站调用方需出示的共享密钥；未设置视为未配置凭证的租户
    credential: Optional[str] = None
    client_id: str
    client_secret: str
    api_url: str = "https://api.europe-west1.gcp.commercetools.com"
    auth_url: str = "https://auth.europe-west1.gcp.commercetools.com"
    scopes: Optional[str] = None

    @field_validator("project_key")
    @classmethod
    def _non_blank_key(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("project_key must not be blank")
        return s


class AuthSettings(BaseModel):
    # presence_only 跳过令牌比对，必须显式开启
    mode: AuthModeSetting = AuthModeSetting.STRICT


class ThrottleSettings(BaseModel):
    delay_ms: int = Field(default=15_000, ge=0)


class CycleSettings(BaseModel):
    # 更新周期内每次平台/网关调用的超时上限
    call_timeout_seconds: float = Field(default=30.0, gt=0)


class PlatformSettings(BaseModel):
    payment_type_key: str = "ctp-adyen-integration-web-components-payment-type"
    interaction_type_key: str = "ctp-adyen-integration-interaction-payment-type"
    ensure_types: bool = True
    timeout: float = 10.0
    max_retries: int = 2


class AdminSettings(BaseModel):
    # 未设置时 slowed-users 端点不做认证
    token: Optional[str] = None


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="Payment Sync Extension")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")
    LOG_LEVEL: Optional[str] = Field(default=None)

    # 分组配置：嵌套模型，环境变量使用 "__" 分隔，例如 AUTH__MODE
    auth: AuthSettings = Field(default_factory=AuthSettings)
    throttle: ThrottleSettings = Field(default_factory=ThrottleSettings)
    cycle: CycleSettings = Field(default_factory=CycleSettings)
    platform: PlatformSettings = Field(default_factory=PlatformSettings)
    admin: AdminSettings = Field(default_factory=AdminSettings)

    # 租户配置（JSON 列表）
    TENANTS: list[TenantSettings] = Field(default_factory=list)

    # 日志/请求体记录配置
    LOG_REQUEST_BODY_ENABLE_BY_DEFAULT: bool = Field(default=True)
    LOG_REQUEST_BODY_MAX_BYTES: int = Field(default=2048)

    # pydantic-settings v2 配置
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @model_validator(mode="after")
    def _validate_unique_tenants(self):
        # 每个 project key 至多一个凭证
        seen: set[str] = set()
        for tenant in self.TENANTS:
            if tenant.project_key in seen:
                raise ValueError(f"TENANTS 中 project_key '{tenant.project_key}' 重复")
            seen.add(tenant.project_key)
        return self


settings = Settings()
