"""Pytest bootstrap configuration.

In-memory fakes for the platform and gateway ports, plus an app client
wired the way the lifespan wires the real collaborators.
"""
import copy
import os
from typing import Any, Optional, Sequence

# Never reach a real platform project from tests
os.environ.setdefault("PLATFORM__ENSURE_TYPES", "false")

import httpx
import pytest

from application.dtos.payments import GatewayResult, UpdateAction
from application.services.throttle_service import ThrottleGate
from domain.auth import AuthGate, AuthMode, CredentialStore
from domain.common.exceptions import DownstreamException, VersionConflictException
from domain.payment.entity import PaymentRecord
from domain.throttle import Denylist
from infrastructure.external.platform.registry import TenantRegistry


class FakePlatform:
    """Versioned payment store applying batches all-or-nothing."""

    def __init__(self, project_key: str = "acme", journal: Optional[list] = None) -> None:
        self.project_key = project_key
        self.records: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple] = []
        self.journal = journal if journal is not None else []
        # version to report on the next read instead of the stored one
        self.bump_before_update: Optional[int] = None

    def seed(self, payment_id: str, version: int, fields: Optional[dict] = None, custom_type: bool = True) -> None:
        record: dict[str, Any] = {"id": payment_id, "version": version}
        if custom_type:
            record["custom"] = {"type": {"typeId": "type", "id": "t-1"}, "fields": dict(fields or {})}
        self.records[payment_id] = record

    async def get_payment(self, payment_id: str) -> PaymentRecord:
        self.calls.append(("get", payment_id))
        self.journal.append("platform.get")
        if payment_id not in self.records:
            raise DownstreamException("Payment not found", source="platform", status_code=404)
        return PaymentRecord.from_platform(copy.deepcopy(self.records[payment_id]))

    async def update_payment(self, payment_id: str, expected_version: int, actions: Sequence[UpdateAction]) -> PaymentRecord:
        dumped = [a.to_platform() for a in actions]
        self.calls.append(("update", payment_id, expected_version, dumped))
        self.journal.append("platform.update")
        record = self.records[payment_id]
        if self.bump_before_update is not None:
            record["version"] = self.bump_before_update
            self.bump_before_update = None
        if record["version"] != expected_version:
            raise VersionConflictException(
                payment_id, expected_version=expected_version, current_version=record["version"]
            )
        for action in dumped:
            if action["action"] == "setCustomField":
                record.setdefault("custom", {"fields": {}})["fields"][action["name"]] = action["value"]
            elif action["action"] == "setCustomType":
                record["custom"] = {"type": action["type"], "fields": dict(action["fields"])}
            else:
                record.setdefault("applied", []).append(action)
        record["version"] += 1
        return PaymentRecord.from_platform(copy.deepcopy(record))

    async def create_payment(self, draft: dict[str, Any]) -> PaymentRecord:
        payment_id = draft.get("id") or f"p{len(self.records) + 1}"
        self.records[payment_id] = {**draft, "id": payment_id, "version": 1}
        return PaymentRecord.from_platform(copy.deepcopy(self.records[payment_id]))

    def updates(self) -> list[tuple]:
        return [c for c in self.calls if c[0] == "update"]


class FakeGateway:
    provider = "fake"

    def __init__(self, actions: Optional[list[UpdateAction]] = None, journal: Optional[list] = None) -> None:
        self.actions = actions if actions is not None else [UpdateAction(action="setStatusInterfaceText", value="ok")]
        self.calls: list[tuple] = []
        self.journal = journal if journal is not None else []
        self.error: Optional[Exception] = None

    async def _answer(self, kind: str, arg: Any) -> GatewayResult:
        self.calls.append((kind, arg))
        self.journal.append(f"gateway.{kind}")
        if self.error is not None:
            raise self.error
        return GatewayResult(actions=list(self.actions))

    async def handle_payment(self, payment: dict) -> GatewayResult:
        return await self._answer("handle", payment)

    async def make_payment(self, record: PaymentRecord) -> GatewayResult:
        return await self._answer("make", record)

    async def submit_additional_details(self, record: PaymentRecord) -> GatewayResult:
        return await self._answer("details", record)


class RecordingSleep:
    def __init__(self, journal: Optional[list] = None) -> None:
        self.delays: list[float] = []
        self.journal = journal if journal is not None else []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        self.journal.append("sleep")


@pytest.fixture
def journal() -> list:
    return []


@pytest.fixture
def platform(journal) -> FakePlatform:
    return FakePlatform(journal=journal)


@pytest.fixture
def gateway(journal) -> FakeGateway:
    return FakeGateway(journal=journal)


@pytest.fixture
def denylist() -> Denylist:
    return Denylist()


@pytest.fixture
def sleep(journal) -> RecordingSleep:
    return RecordingSleep(journal=journal)


@pytest.fixture
def throttle(denylist, sleep) -> ThrottleGate:
    return ThrottleGate(denylist, delay_ms=15_000, sleep=sleep)


@pytest.fixture
def credentials() -> CredentialStore:
    # "beta" is a known project without a configured credential
    return CredentialStore.from_pairs([("acme", "secret1"), ("beta", None)])


@pytest.fixture
async def client(platform, gateway, denylist, throttle, credentials):
    from main import app

    app.state.auth_gate = AuthGate(credentials, mode=AuthMode.STRICT)
    app.state.tenants = TenantRegistry({"acme": platform, "beta": FakePlatform("beta")})
    app.state.gateway = gateway
    app.state.denylist = denylist
    app.state.throttle_gate = throttle

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
