import json

import httpx
import pytest

from core.settings import AdyenSettings, GatewaySettings
from domain.common.exceptions import DownstreamException
from domain.payment.entity import PaymentRecord
from infrastructure.external.payments import get_payment_gateway
from infrastructure.external.payments.adyen_client import AdyenClient


def _client(handler) -> AdyenClient:
    return AdyenClient(
        api_key="test-key",
        merchant_account="AcmeECOM",
        base_url="https://checkout.example.test/v71",
        interaction_type_key="interaction-type",
        retry={"max": 0, "base": 0},
        transport=httpx.MockTransport(handler),
    )


def _record(fields: dict) -> PaymentRecord:
    return PaymentRecord.from_platform({"id": "p1", "version": 8, "custom": {"type": {"id": "t"}, "fields": fields}})


@pytest.mark.asyncio
async def test_make_payment_posts_staged_request_and_records_outcome():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["key"] = request.headers["x-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"resultCode": "Authorised", "pspReference": "psp-1"})

    staged = _record({"makePaymentRequest": json.dumps({"amount": {"currency": "EUR", "value": 1000}})})
    async with _client(handler) as client:
        result = await client.make_payment(staged)

    assert seen["path"] == "/v71/payments"
    assert seen["key"] == "test-key"
    assert seen["body"]["merchantAccount"] == "AcmeECOM"

    actions = [a.to_platform() for a in result.actions]
    assert [a["action"] for a in actions] == [
        "setCustomField",
        "addInterfaceInteraction",
        "setStatusInterfaceCode",
    ]
    assert actions[0]["name"] == "makePaymentResponse"
    assert json.loads(actions[0]["value"])["pspReference"] == "psp-1"
    assert actions[1]["type"] == {"typeId": "type", "key": "interaction-type"}
    assert actions[1]["fields"]["type"] == "makePayment"
    assert actions[2]["interfaceCode"] == "Authorised"


@pytest.mark.asyncio
async def test_additional_details_does_not_add_merchant_account():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"resultCode": "Authorised"})

    staged = _record({"submitAdditionalPaymentDetailsRequest": json.dumps({"details": {"redirectResult": "x"}})})
    async with _client(handler) as client:
        await client.submit_additional_details(staged)

    assert seen["path"] == "/v71/payments/details"
    assert "merchantAccount" not in seen["body"]


@pytest.mark.asyncio
async def test_handle_payment_runs_first_unanswered_request():
    paths = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        return httpx.Response(200, json={"paymentMethods": []})

    payment = {
        "id": "p1",
        "version": 3,
        "custom": {"fields": {
            "getPaymentMethodsRequest": json.dumps({"countryCode": "DE"}),
            "getPaymentMethodsResponse": json.dumps({"paymentMethods": []}),
            "makePaymentRequest": json.dumps({"amount": {"currency": "EUR", "value": 1}}),
        }},
    }
    async with _client(handler) as client:
        result = await client.handle_payment(payment)

    assert paths == ["/v71/payments"]
    # no resultCode in the answer: no status action
    assert [a.action for a in result.actions] == ["setCustomField", "addInterfaceInteraction"]


@pytest.mark.asyncio
async def test_handle_payment_with_nothing_pending_returns_no_actions():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("gateway must not be called")

    async with _client(handler) as client:
        result = await client.handle_payment({"id": "p1", "version": 3})
    assert result.actions == []


@pytest.mark.asyncio
async def test_gateway_error_keeps_raw_payload():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(422, json={"status": 422, "errorCode": "14_0417", "message": "Invalid amount"})

    staged = _record({"makePaymentRequest": json.dumps({"amount": {}})})
    async with _client(handler) as client:
        with pytest.raises(DownstreamException) as excinfo:
            await client.make_payment(staged)

    exc = excinfo.value
    assert exc.source == "gateway"
    assert exc.status_code == 422
    assert exc.payload["errorCode"] == "14_0417"
    assert exc.message == "Invalid amount"


@pytest.mark.asyncio
async def test_missing_staged_request_is_rejected():
    async with _client(lambda r: httpx.Response(200, json={})) as client:
        with pytest.raises(DownstreamException):
            await client.make_payment(_record({}))


def test_factory_requires_api_key():
    with pytest.raises(RuntimeError):
        get_payment_gateway(config=GatewaySettings(adyen=AdyenSettings()))


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError):
        get_payment_gateway(provider="other", config=GatewaySettings())


def test_factory_builds_adyen_client():
    gateway = get_payment_gateway(config=GatewaySettings(adyen=AdyenSettings(api_key="k", merchant_account="M")))
    assert isinstance(gateway, AdyenClient)
    assert gateway.provider == "adyen"
