"""
Process-scoped registry of per-tenant platform clients.

Built once at startup from configuration and never mutated afterwards, so
concurrent reads from request handlers need no locking.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from core.config import PlatformSettings, TenantSettings
from core.logging_config import get_logger
from domain.common.exceptions import DownstreamException
from .client import CommercePlatformClient
from .types import interaction_type_draft, payment_type_draft


logger = get_logger(__name__)


class TenantRegistry:
    def __init__(self, clients: Mapping[str, CommercePlatformClient]) -> None:
        self._clients: Mapping[str, CommercePlatformClient] = MappingProxyType(dict(clients))

    def require(self, project_key: str) -> CommercePlatformClient:
        client = self._clients.get(project_key)
        if client is None:
            raise DownstreamException(
                f"No platform client configured for project key '{project_key}'",
                source="platform",
            )
        return client

    def project_keys(self) -> list[str]:
        return list(self._clients)

    async def ensure_types(self, platform: PlatformSettings) -> None:
        """Create missing custom types in every project; failures are logged only."""
        drafts = (
            payment_type_draft(platform.payment_type_key),
            interaction_type_draft(platform.interaction_type_key),
        )
        for project_key, client in self._clients.items():
            for draft in drafts:
                try:
                    await client.ensure_type(draft)
                except DownstreamException as exc:
                    logger.error(
                        "platform_type_ensure_failed",
                        project_key=project_key,
                        type_key=draft["key"],
                        error=exc.message,
                    )

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()


def build_tenant_registry(tenants: Iterable[TenantSettings], platform: PlatformSettings) -> TenantRegistry:
    clients = {
        t.project_key: CommercePlatformClient(
            project_key=t.project_key,
            client_id=t.client_id,
            client_secret=t.client_secret,
            api_url=t.api_url,
            auth_url=t.auth_url,
            scopes=t.scopes,
            timeout=platform.timeout,
            max_retries=platform.max_retries,
        )
        for t in tenants
    }
    logger.info("tenant_registry_built", project_keys=list(clients))
    return TenantRegistry(clients)
