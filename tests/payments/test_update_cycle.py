import asyncio
import json

import pytest

from application.dtos.payments import PaymentEnvelope, UpdateAction
from application.services.payment_service import PaymentUpdateService
from domain.common.exceptions import (
    DownstreamException,
    ExternalCallTimeoutException,
    VersionConflictException,
)


def _service(platform, gateway, throttle=None, **kwargs) -> PaymentUpdateService:
    return PaymentUpdateService(platform, gateway, throttle, payment_type_key="payment-type", **kwargs)


@pytest.mark.asyncio
async def test_direct_variant_applies_gateway_actions_against_supplied_version(platform, gateway):
    platform.seed("p1", 3)

    record = await _service(platform, gateway).handle_payment(PaymentEnvelope(id="p1", version=3))

    assert record.version == 4
    assert platform.updates() == [
        ("update", "p1", 3, [{"action": "setStatusInterfaceText", "value": "ok"}])
    ]
    # direct variant never reads the record first
    assert ("get", "p1") not in platform.calls
    kind, payload = gateway.calls[0]
    assert kind == "handle"
    assert payload == {"id": "p1", "version": 3}


@pytest.mark.asyncio
async def test_direct_variant_with_stale_version_conflicts(platform, gateway):
    platform.seed("p1", 5)

    with pytest.raises(VersionConflictException) as excinfo:
        await _service(platform, gateway).handle_payment(PaymentEnvelope(id="p1", version=3))

    exc = excinfo.value
    assert exc.details["stage"] == "applied"
    assert exc.details["staged"] is False
    assert exc.current_version == 5
    assert platform.records["p1"]["version"] == 5


@pytest.mark.asyncio
async def test_direct_variant_delays_listed_shopper_before_final_write(platform, gateway, throttle, denylist, sleep, journal):
    platform.seed("p1", 3)
    await denylist.add("shopper-1")
    envelope = PaymentEnvelope(
        id="p1",
        version=3,
        custom={"fields": {"makePaymentRequest": json.dumps({"shopperReference": "shopper-1"})}},
    )

    record = await _service(platform, gateway, throttle).handle_payment(envelope)

    assert record.version == 4
    assert journal == ["gateway.handle", "sleep", "platform.update"]
    assert sleep.delays == [15.0]


@pytest.mark.asyncio
async def test_make_payment_chains_versions(platform, gateway):
    platform.seed("p1", 7)
    request = {"amount": {"currency": "EUR", "value": 1000}, "shopperReference": "shopper-1"}

    record = await _service(platform, gateway).make_payment("p1", request)

    get, stage, final = platform.calls
    assert get == ("get", "p1")
    assert stage[2] == 7
    assert stage[3] == [{"action": "setCustomField", "name": "makePaymentRequest", "value": json.dumps(request, separators=(",", ":"))}]
    assert final[2] == 8
    assert record.version == 9

    kind, staged = gateway.calls[0]
    assert kind == "make"
    assert staged.version == 8
    assert staged.payload("makePaymentRequest") == request


@pytest.mark.asyncio
async def test_make_payment_sets_custom_type_when_record_has_none(platform, gateway):
    platform.seed("p1", 1, custom_type=False)

    await _service(platform, gateway).make_payment("p1", {"amount": 1})

    action = platform.updates()[0][3][0]
    assert action["action"] == "setCustomType"
    assert action["type"] == {"typeId": "type", "key": "payment-type"}
    assert json.loads(action["fields"]["makePaymentRequest"]) == {"amount": 1}


@pytest.mark.asyncio
async def test_submit_additional_details_stages_its_own_field(platform, gateway):
    platform.seed("p1", 2)

    record = await _service(platform, gateway).submit_additional_details("p1", {"details": {"payload": "x"}})

    assert platform.updates()[0][3][0]["name"] == "submitAdditionalPaymentDetailsRequest"
    assert gateway.calls[0][0] == "details"
    assert record.version == 4


@pytest.mark.asyncio
async def test_replay_runs_a_new_cycle_from_the_fresh_version(platform, gateway):
    platform.seed("p1", 7)
    service = _service(platform, gateway)

    first = await service.make_payment("p1", {"amount": 1})
    second = await service.make_payment("p1", {"amount": 1})

    assert first.version == 9
    assert second.version == 11
    assert len(gateway.calls) == 2


@pytest.mark.asyncio
async def test_conflict_after_staging_is_reported_without_retry(platform, gateway):
    platform.seed("p1", 7)
    service = _service(platform, gateway)

    answer = gateway._answer

    async def concurrent_writer(kind, arg):
        # another cycle writes while the gateway call is in flight
        platform.records["p1"]["version"] += 1
        return await answer(kind, arg)

    gateway._answer = concurrent_writer

    with pytest.raises(VersionConflictException) as excinfo:
        await service.make_payment("p1", {"amount": 1})

    exc = excinfo.value
    assert exc.details["stage"] == "applied"
    assert exc.details["staged"] is True
    assert exc.details["payment_id"] == "p1"
    assert exc.expected_version == 8
    # staging committed, final write rejected, nothing retried
    assert len(platform.updates()) == 2
    assert len(gateway.calls) == 1


@pytest.mark.asyncio
async def test_conflict_while_staging_skips_gateway(platform, gateway):
    platform.seed("p1", 7)
    platform.bump_before_update = 8

    with pytest.raises(VersionConflictException) as excinfo:
        await _service(platform, gateway).make_payment("p1", {"amount": 1})

    assert excinfo.value.details["stage"] == "staged"
    assert excinfo.value.details["staged"] is False
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_gateway_failure_reports_staged_record(platform, gateway):
    platform.seed("p1", 7)
    gateway.error = RuntimeError("gateway exploded")

    with pytest.raises(DownstreamException) as excinfo:
        await _service(platform, gateway).make_payment("p1", {"amount": 1})

    exc = excinfo.value
    assert exc.source == "gateway"
    assert exc.details["stage"] == "gateway_called"
    assert exc.details["staged"] is True
    assert exc.payload == {"error_type": "RuntimeError", "error": "gateway exploded"}
    # only the staging write happened
    assert len(platform.updates()) == 1


@pytest.mark.asyncio
async def test_gateway_business_error_passes_through(platform, gateway):
    platform.seed("p1", 7)
    gateway.error = DownstreamException("Refused", source="gateway", status_code=422, payload={"errorCode": "101"})

    with pytest.raises(DownstreamException) as excinfo:
        await _service(platform, gateway).make_payment("p1", {"amount": 1})

    assert excinfo.value.payload == {"errorCode": "101"}
    assert excinfo.value.details["payment_id"] == "p1"


@pytest.mark.asyncio
async def test_missing_payment_fails_at_fetch(platform, gateway):
    with pytest.raises(DownstreamException) as excinfo:
        await _service(platform, gateway).make_payment("nope", {"amount": 1})

    assert excinfo.value.details["stage"] == "fetched"
    assert excinfo.value.details["staged"] is False


@pytest.mark.asyncio
async def test_slow_gateway_times_out(platform, gateway):
    platform.seed("p1", 3)

    async def hang(payment):
        await asyncio.sleep(10)

    gateway.handle_payment = hang

    with pytest.raises(ExternalCallTimeoutException) as excinfo:
        await _service(platform, gateway, call_timeout=0.01).handle_payment(PaymentEnvelope(id="p1", version=3))

    exc = excinfo.value
    assert exc.source == "gateway"
    assert exc.details["retryable"] is True
    assert "write_outcome" not in exc.details
    assert exc.details["stage"] == "gateway_called"
    assert platform.updates() == []


@pytest.mark.asyncio
async def test_empty_gateway_result_still_writes(platform, gateway):
    platform.seed("p1", 3)
    gateway.actions = []

    record = await _service(platform, gateway).handle_payment(PaymentEnvelope(id="p1", version=3))

    assert record.version == 4
    assert platform.updates()[0][3] == []


def test_update_action_keeps_extra_attributes():
    action = UpdateAction(action="setStatusInterfaceCode", interfaceCode="Authorised")
    assert action.to_platform() == {"action": "setStatusInterfaceCode", "interfaceCode": "Authorised"}


def _commit_then(platform, failure):
    """Make the platform commit the write and then fail to answer."""
    commit = platform.update_payment

    async def update_payment(payment_id, expected_version, actions):
        record = await commit(payment_id, expected_version, actions)
        await failure()
        return record

    platform.update_payment = update_payment


@pytest.mark.asyncio
async def test_staging_write_timeout_reports_unknown_outcome(platform, gateway):
    platform.seed("p1", 3)
    _commit_then(platform, lambda: asyncio.sleep(10))

    with pytest.raises(ExternalCallTimeoutException) as excinfo:
        await _service(platform, gateway, call_timeout=0.05).make_payment("p1", {"amount": 1})

    exc = excinfo.value
    assert exc.details["stage"] == "staged"
    assert exc.details["staged"] == "unknown"
    assert exc.details["write_outcome"] == "indeterminate"
    assert exc.details["retryable"] is False
    assert exc.retryable is False
    # the staging write landed even though no answer came back
    assert platform.records["p1"]["version"] == 4
    assert "makePaymentRequest" in platform.records["p1"]["custom"]["fields"]
    assert gateway.calls == []


@pytest.mark.asyncio
async def test_staging_write_cut_off_reports_unknown_outcome(platform, gateway):
    platform.seed("p1", 3)

    async def connection_reset():
        raise ConnectionResetError("peer closed")

    _commit_then(platform, connection_reset)

    with pytest.raises(DownstreamException) as excinfo:
        await _service(platform, gateway).make_payment("p1", {"amount": 1})

    assert excinfo.value.details["staged"] == "unknown"
    assert excinfo.value.details["write_outcome"] == "indeterminate"
    assert excinfo.value.details["retryable"] is False


@pytest.mark.asyncio
async def test_final_write_timeout_is_not_retryable(platform, gateway):
    platform.seed("p1", 3)
    _commit_then(platform, lambda: asyncio.sleep(10))

    with pytest.raises(ExternalCallTimeoutException) as excinfo:
        await _service(platform, gateway, call_timeout=0.05).handle_payment(PaymentEnvelope(id="p1", version=3))

    exc = excinfo.value
    assert exc.details["stage"] == "applied"
    assert exc.details["staged"] is False
    assert exc.details["write_outcome"] == "indeterminate"
    assert exc.retryable is False
    assert platform.records["p1"]["version"] == 4


@pytest.mark.asyncio
async def test_final_write_timeout_after_staging_keeps_staged_true(platform, gateway):
    platform.seed("p1", 3)
    service = _service(platform, gateway, call_timeout=0.05)
    commit = platform.update_payment
    writes = []

    async def update_payment(payment_id, expected_version, actions):
        record = await commit(payment_id, expected_version, actions)
        writes.append(expected_version)
        if len(writes) == 2:
            await asyncio.sleep(10)
        return record

    platform.update_payment = update_payment

    with pytest.raises(ExternalCallTimeoutException) as excinfo:
        await service.make_payment("p1", {"amount": 1})

    assert excinfo.value.details["stage"] == "applied"
    assert excinfo.value.details["staged"] is True
    assert excinfo.value.details["write_outcome"] == "indeterminate"


@pytest.mark.asyncio
async def test_fetch_timeout_stays_retryable(platform, gateway):
    platform.seed("p1", 3)

    async def hang(payment_id):
        await asyncio.sleep(10)

    platform.get_payment = hang

    with pytest.raises(ExternalCallTimeoutException) as excinfo:
        await _service(platform, gateway, call_timeout=0.01).make_payment("p1", {"amount": 1})

    assert excinfo.value.retryable is True
    assert excinfo.value.details["staged"] is False
    assert "write_outcome" not in excinfo.value.details
