"""
Application service running the optimistic-concurrency payment update cycle.

    Fetched -> Staged -> GatewayCalled -> Applied     (or Rejected)

Correctness across concurrent cycles relies solely on the platform's
version-conditioned writes: a stale version fails the cycle, nothing is
retried. Gateway and platform implementations are injected from the
composition root (API), keeping dependencies one-way.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Optional, TypeVar, Union

from application.dtos.payments import GatewayResult, PaymentEnvelope, UpdateAction
from application.ports.payment_gateway import PaymentGateway
from application.ports.payment_platform import PaymentPlatform
from application.services.throttle_service import ThrottleGate
from core.logging_config import get_logger
from domain.common.exceptions import (
    BusinessException,
    DownstreamException,
    ExternalCallTimeoutException,
    PaymentCycleException,
    STAGED_UNKNOWN,
    WRITE_INDETERMINATE,
)
from domain.payment.entity import CustomField, PaymentRecord


logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_PAYMENT_TYPE_KEY = "ctp-adyen-integration-web-components-payment-type"


class CycleStage(str, Enum):
    FETCHED = "fetched"
    STAGED = "staged"
    GATEWAY_CALLED = "gateway_called"
    APPLIED = "applied"


class CycleVariant(str, Enum):
    DIRECT = "direct"
    MAKE_PAYMENT = "make_payment"
    ADDITIONAL_DETAILS = "additional_details"


@dataclass
class _Cycle:
    variant: CycleVariant
    payment_id: str
    completed: list[CycleStage] = field(default_factory=list)
    version: Optional[int] = None

    @property
    def staged(self) -> bool:
        return CycleStage.STAGED in self.completed

    def advance(self, stage: CycleStage, version: Optional[int] = None) -> None:
        self.completed.append(stage)
        if version is not None:
            self.version = version
        logger.info(
            "payment_cycle_stage",
            variant=self.variant.value,
            payment_id=self.payment_id,
            stage=stage.value,
            version=self.version,
        )


class PaymentUpdateService:
    def __init__(
        self,
        platform: PaymentPlatform,
        gateway: PaymentGateway,
        throttle: Optional[ThrottleGate] = None,
        *,
        call_timeout: float = 30.0,
        payment_type_key: str = DEFAULT_PAYMENT_TYPE_KEY,
    ) -> None:
        self.platform = platform
        self.gateway = gateway
        self.throttle = throttle
        self.call_timeout = call_timeout
        self.payment_type_key = payment_type_key

    # Variants

    async def handle_payment(self, envelope: PaymentEnvelope) -> PaymentRecord:
        """Direct variant: the caller supplies the version, nothing is staged."""
        cycle = _Cycle(CycleVariant.DIRECT, envelope.id)
        payload = envelope.to_payload()
        with _StageGuard(cycle, CycleStage.FETCHED) as step:
            cycle.advance(CycleStage.FETCHED, envelope.version)

            step.attempt(CycleStage.GATEWAY_CALLED)
            result = await self._call(cycle, "gateway", self.gateway.handle_payment(payload))
            cycle.advance(CycleStage.GATEWAY_CALLED)

            if self.throttle is not None:
                await self.throttle.maybe_delay(payload)

            step.attempt(CycleStage.APPLIED)
            final = await self._apply(cycle, result, expected_version=envelope.version)
        return final

    async def make_payment(self, payment_id: str, request: dict[str, Any]) -> PaymentRecord:
        return await self._staged_cycle(
            CycleVariant.MAKE_PAYMENT,
            payment_id,
            CustomField.MAKE_PAYMENT_REQUEST,
            request,
        )

    async def submit_additional_details(self, payment_id: str, request: dict[str, Any]) -> PaymentRecord:
        return await self._staged_cycle(
            CycleVariant.ADDITIONAL_DETAILS,
            payment_id,
            CustomField.SUBMIT_ADDITIONAL_PAYMENT_DETAILS_REQUEST,
            request,
        )

    # Cycle internals

    async def _staged_cycle(
        self,
        variant: CycleVariant,
        payment_id: str,
        staged_field: CustomField,
        request: dict[str, Any],
    ) -> PaymentRecord:
        cycle = _Cycle(variant, payment_id)
        with _StageGuard(cycle, CycleStage.FETCHED) as step:
            # Always re-read: the record may have advanced since the caller saw it
            current = await self._call(cycle, "platform", self.platform.get_payment(payment_id))
            cycle.advance(CycleStage.FETCHED, current.version)

            step.attempt(CycleStage.STAGED)
            staged = await self._call(
                cycle,
                "platform",
                self.platform.update_payment(
                    payment_id,
                    current.version,
                    [self._staging_action(current, staged_field, request)],
                ),
                write=True,
            )
            if staged.version <= current.version:
                raise DownstreamException(
                    "Platform did not advance the payment version on staging",
                    source="platform",
                    payment_id=payment_id,
                    payload={"before": current.version, "after": staged.version},
                )
            cycle.advance(CycleStage.STAGED, staged.version)

            step.attempt(CycleStage.GATEWAY_CALLED)
            gateway_call = (
                self.gateway.make_payment(staged)
                if variant is CycleVariant.MAKE_PAYMENT
                else self.gateway.submit_additional_details(staged)
            )
            result = await self._call(cycle, "gateway", gateway_call)
            cycle.advance(CycleStage.GATEWAY_CALLED)

            step.attempt(CycleStage.APPLIED)
            final = await self._apply(cycle, result, expected_version=staged.version)
        return final

    def _staging_action(self, record: PaymentRecord, name: CustomField, request: dict[str, Any]) -> UpdateAction:
        if record.has_custom_type:
            return UpdateAction.set_custom_field(name.value, request)
        return UpdateAction.set_custom_type(self.payment_type_key, {name.value: request})

    async def _apply(self, cycle: _Cycle, result: GatewayResult, *, expected_version: int) -> PaymentRecord:
        final = await self._call(
            cycle,
            "platform",
            self.platform.update_payment(cycle.payment_id, expected_version, result.actions),
            write=True,
        )
        cycle.advance(CycleStage.APPLIED, final.version)
        return final

    async def _call(self, cycle: _Cycle, source: str, awaitable: Awaitable[T], *, write: bool = False) -> T:
        """Await one external call with a bounded timeout.

        Business exceptions pass through; anything else becomes a
        DownstreamException carrying the raw error. A `write` that times out
        or fails unexpectedly may have committed and is marked indeterminate.
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.call_timeout)
        except asyncio.TimeoutError as exc:
            raise ExternalCallTimeoutException(
                source=source, timeout=self.call_timeout, payment_id=cycle.payment_id, write=write
            ) from exc
        except BusinessException:
            raise
        except Exception as exc:
            error = DownstreamException(
                str(exc) or type(exc).__name__,
                source=source,
                payment_id=cycle.payment_id,
                payload={"error_type": type(exc).__name__, "error": str(exc)},
            )
            if write:
                error.mark_write_indeterminate()
            raise error from exc


class _StageGuard:
    """Tags cycle failures with the stage being attempted and logs the rejection."""

    def __init__(self, cycle: _Cycle, first: CycleStage) -> None:
        self.cycle = cycle
        self.current = first

    def attempt(self, stage: CycleStage) -> None:
        self.current = stage

    def __enter__(self) -> "_StageGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc is None or not isinstance(exc, PaymentCycleException):
            return False
        staged: Union[bool, str] = self.cycle.staged
        if self.current is CycleStage.STAGED and exc.write_outcome == WRITE_INDETERMINATE:
            staged = STAGED_UNKNOWN
        exc.at_stage(self.current.value, staged=staged, payment_id=self.cycle.payment_id)
        logger.warning(
            "payment_cycle_rejected",
            variant=self.cycle.variant.value,
            payment_id=self.cycle.payment_id,
            stage=self.current.value,
            staged=staged,
            write_outcome=exc.write_outcome,
            error_type=exc.error_type,
            error=exc.message,
        )
        return False
