"""
Commerce platform client for one project.

Authenticates with OAuth2 client credentials, reads payments and applies
version-conditioned update batches. The platform applies a batch in full
against the expected version or rejects it with HTTP 409.
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, Optional, Sequence

import httpx

from application.dtos.payments import UpdateAction
from core.logging_config import get_logger
from domain.common.exceptions import DownstreamException, VersionConflictException
from domain.payment.entity import PaymentRecord
from infrastructure.external.api_clients.base import (
    APIError,
    BaseAPIClient,
    ConflictError,
    NotFoundError,
    TransportError,
)


logger = get_logger(__name__)

# Refresh the token this many seconds before it expires
TOKEN_EXPIRY_MARGIN = 60


def _current_version_from_conflict(payload: Any) -> Optional[int]:
    """Extract `currentVersion` from a ConcurrentModification error body."""
    if not isinstance(payload, dict):
        return None
    for err in payload.get("errors") or []:
        if isinstance(err, dict) and err.get("currentVersion") is not None:
            try:
                return int(err["currentVersion"])
            except (TypeError, ValueError):
                return None
    return None


class CommercePlatformClient(BaseAPIClient):
    def __init__(
        self,
        *,
        project_key: str,
        client_id: str,
        client_secret: str,
        api_url: str,
        auth_url: str,
        scopes: Optional[str] = None,
        timeout: float = 10.0,
        max_retries: int = 2,
        retry_delay: float = 0.2,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(
            base_url=f"{api_url.rstrip('/')}/{project_key}",
            timeout=timeout,
            max_retries=max_retries,
            retry_delay=retry_delay,
            transport=transport,
        )
        self.project_key = project_key
        self._client_id = client_id
        self._client_secret = client_secret
        self._auth_url = auth_url.rstrip("/")
        self._scopes = scopes or f"manage_project:{project_key}"
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    async def _access_token(self) -> str:
        async with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            response = await self.post(
                f"{self._auth_url}/oauth/token",
                data={"grant_type": "client_credentials", "scope": self._scopes},
                auth=(self._client_id, self._client_secret),
            )
            body = response.json()
            self._token = body["access_token"]
            expires_in = int(body.get("expires_in", 172800))
            self._token_expires_at = time.monotonic() + max(0, expires_in - TOKEN_EXPIRY_MARGIN)
            logger.info("platform_token_refreshed", project_key=self.project_key, expires_in=expires_in)
            return self._token

    async def _auth_headers(self) -> dict[str, str]:
        try:
            token = await self._access_token()
        except APIError as exc:
            raise DownstreamException(
                f"Platform authentication failed: {exc.message}",
                source="platform",
                status_code=exc.status_code,
                payload=exc.payload,
            ) from exc
        return {"Authorization": f"Bearer {token}"}

    async def get_payment(self, payment_id: str) -> PaymentRecord:
        headers = await self._auth_headers()
        try:
            response = await self.get(f"payments/{payment_id}", headers=headers)
        except APIError as exc:
            raise self._downstream(exc, payment_id) from exc
        return PaymentRecord.from_platform(response.json())

    async def update_payment(
        self,
        payment_id: str,
        expected_version: int,
        actions: Sequence[UpdateAction],
    ) -> PaymentRecord:
        headers = await self._auth_headers()
        body = {
            "version": expected_version,
            "actions": [a.to_platform() for a in actions],
        }
        try:
            response = await self.post(f"payments/{payment_id}", json_data=body, headers=headers)
        except ConflictError as exc:
            raise VersionConflictException(
                payment_id,
                expected_version=expected_version,
                current_version=_current_version_from_conflict(exc.payload),
                payload=exc.payload,
            ) from exc
        except APIError as exc:
            raise self._downstream_write(exc, payment_id) from exc
        record = PaymentRecord.from_platform(response.json())
        logger.info(
            "platform_payment_updated",
            project_key=self.project_key,
            payment_id=payment_id,
            expected_version=expected_version,
            version=record.version,
            actions=[a.action for a in actions],
        )
        return record

    async def create_payment(self, draft: dict[str, Any]) -> PaymentRecord:
        headers = await self._auth_headers()
        try:
            response = await self.post("payments", json_data=draft, headers=headers)
        except APIError as exc:
            raise self._downstream_write(exc, None) from exc
        return PaymentRecord.from_platform(response.json())

    async def ensure_type(self, draft: dict[str, Any]) -> bool:
        """Create a custom type unless one with the same key exists.

        Returns True when the type was created.
        """
        headers = await self._auth_headers()
        key = draft["key"]
        try:
            await self.get(f"types/key={key}", headers=headers)
            return False
        except NotFoundError:
            pass
        except APIError as exc:
            raise self._downstream(exc, None) from exc
        try:
            await self.post("types", json_data=draft, headers=headers)
        except APIError as exc:
            raise self._downstream(exc, None) from exc
        logger.info("platform_type_created", project_key=self.project_key, type_key=key)
        return True

    def _downstream(self, exc: APIError, payment_id: Optional[str]) -> DownstreamException:
        return DownstreamException(
            exc.message,
            source="platform",
            payment_id=payment_id,
            status_code=exc.status_code,
            payload=exc.payload,
        )

    def _downstream_write(self, exc: APIError, payment_id: Optional[str]) -> DownstreamException:
        """A write sent but left unanswered may have committed."""
        error = self._downstream(exc, payment_id)
        if isinstance(exc, TransportError) and exc.request_sent:
            error.mark_write_indeterminate()
        return error
