import json

import pytest

from application.services.throttle_service import ThrottleGate, extract_subject
from domain.payment.entity import PaymentRecord


def _payment(field: str, body) -> dict:
    return {"id": "p1", "version": 3, "custom": {"fields": {field: body}}}


def test_extract_subject_from_json_string_field():
    payment = _payment("makePaymentRequest", json.dumps({"shopperReference": "shopper-1"}))
    assert extract_subject(payment) == "shopper-1"


def test_extract_subject_from_payment_methods_request():
    payment = _payment("getPaymentMethodsRequest", {"shopperReference": "shopper-2"})
    assert extract_subject(payment) == "shopper-2"


def test_extract_subject_from_record_top_level():
    record = PaymentRecord.from_platform({"id": "p1", "version": 1, "shopperReference": "shopper-3"})
    assert extract_subject(record) == "shopper-3"


@pytest.mark.parametrize("value", [None, "not-json", "[1, 2]", json.dumps({"amount": 10})])
def test_extract_subject_absent(value):
    assert extract_subject(_payment("makePaymentRequest", value)) is None


@pytest.mark.asyncio
async def test_listed_subject_is_delayed(denylist, sleep):
    gate = ThrottleGate(denylist, delay_ms=15_000, sleep=sleep)
    await denylist.add("shopper-1")

    delay = await gate.maybe_delay(_payment("makePaymentRequest", {"shopperReference": "shopper-1"}))

    assert delay == 15.0
    assert sleep.delays == [15.0]


@pytest.mark.asyncio
async def test_unlisted_subject_is_not_delayed(denylist, sleep):
    gate = ThrottleGate(denylist, sleep=sleep)
    await denylist.add("someone-else")

    assert await gate.maybe_delay(_payment("makePaymentRequest", {"shopperReference": "shopper-1"})) == 0.0
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_payment_without_subject_is_not_delayed(denylist, sleep):
    gate = ThrottleGate(denylist, sleep=sleep)
    await denylist.add("shopper-1")
    assert await gate.maybe_delay({"id": "p1", "version": 1}) == 0.0
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_lookup_failure_never_fails_the_cycle(sleep):
    class BrokenDenylist:
        async def contains(self, subject):
            raise RuntimeError("boom")

    gate = ThrottleGate(BrokenDenylist(), sleep=sleep)  # type: ignore[arg-type]
    assert await gate.maybe_delay(_payment("makePaymentRequest", {"shopperReference": "s"})) == 0.0
    assert sleep.delays == []
