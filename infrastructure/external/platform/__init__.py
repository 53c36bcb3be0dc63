"""Commerce platform integration."""
from .client import CommercePlatformClient
from .registry import TenantRegistry, build_tenant_registry

__all__ = ["CommercePlatformClient", "TenantRegistry", "build_tenant_registry"]
