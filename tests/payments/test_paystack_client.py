import hashlib
import hmac
import json

import httpx
import pytest

from application.dtos.payments import OpenSession
from domain.common.exceptions import TransientUpstreamFailure
from domain.common.money import Money
from domain.payment.entity import GatewayStatus
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentSignatureError
from infrastructure.external.payments.paystack_client import SIGNATURE_HEADER, PaystackClient


SECRET = "sk_test_123"


def _client(handler) -> PaystackClient:
    return PaystackClient(secret_key=SECRET, base_url="https://paystack.test", transport=httpx.MockTransport(handler))


def _sign(body: bytes) -> str:
    return hmac.new(SECRET.encode(), body, hashlib.sha512).hexdigest()


@pytest.mark.asyncio
async def test_open_session_sends_kobo_and_bearer_token():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["authorization"]
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "status": True,
            "data": {"reference": "ps_ref_1", "authorization_url": "https://checkout.paystack.com/x", "access_code": "x"},
        })

    gw = _client(handler)
    session = await gw.open_session(
        OpenSession(buyer_email="buyer@example.com", amount=Money(1500000), metadata={"eventId": 1})
    )
    await gw.aclose()

    assert seen["auth"] == f"Bearer {SECRET}"
    assert seen["path"] == "/transaction/initialize"
    assert seen["body"]["amount"] == 1500000
    assert seen["body"]["metadata"] == {"eventId": 1}
    assert session.reference == "ps_ref_1"
    assert session.redirect_url == "https://checkout.paystack.com/x"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "provider_status, expected",
    [
        ("success", GatewayStatus.SUCCESS),
        ("abandoned", GatewayStatus.FAILED),
        ("ongoing", GatewayStatus.PENDING),
        ("something_new", GatewayStatus.PENDING),
    ],
)
async def test_get_status_maps_provider_status(provider_status, expected):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/transaction/verify/ps_ref_1"
        return httpx.Response(200, json={
            "status": True,
            "data": {
                "reference": "ps_ref_1",
                "status": provider_status,
                "amount": 1000000,
                "currency": "NGN",
                "paid_at": "2026-03-01T12:00:00.000Z",
                "customer": {"email": "buyer@example.com"},
            },
        })

    tx = await _client(handler).get_status("ps_ref_1")

    assert tx.status == expected
    assert tx.amount == Money(1000000, "NGN")
    assert tx.customer_email == "buyer@example.com"
    assert tx.paid_at is not None


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_transient():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502, json={"status": False})

    with pytest.raises(TransientUpstreamFailure):
        await _client(handler).get_status("ps_ref_1")
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_network_errors_are_transient():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(TransientUpstreamFailure):
        await _client(handler).get_status("ps_ref_1")


@pytest.mark.asyncio
async def test_client_errors_are_provider_errors():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})

    with pytest.raises(PaymentProviderError) as excinfo:
        await _client(handler).get_status("missing")
    assert "not found" in excinfo.value.message


def test_webhook_signature_accepted():
    body = json.dumps({"event": "charge.success", "data": {"id": 42, "reference": "ps_ref_1"}}).encode()
    gw = PaystackClient(secret_key=SECRET)

    event = gw.parse_webhook({"X-Paystack-Signature": _sign(body)}, body)

    assert event.type == "charge.success"
    assert event.id == "charge.success:42"
    assert event.data["reference"] == "ps_ref_1"


def test_webhook_signature_rejected():
    body = b'{"event":"charge.success","data":{"reference":"ps_ref_1"}}'
    gw = PaystackClient(secret_key=SECRET)

    with pytest.raises(PaymentSignatureError):
        gw.parse_webhook({SIGNATURE_HEADER: "0" * 128}, body)
    with pytest.raises(PaymentSignatureError):
        gw.parse_webhook({}, body)


def test_unknown_status_never_maps_to_success():
    class _Client(BasePaymentClient):
        provider = "paystack"

    c = _Client()
    assert c._map_status("SUCCESS") == GatewayStatus.SUCCESS
    assert c._map_status("") == GatewayStatus.PENDING
    assert c._map_status("reversed") == GatewayStatus.FAILED


def _session_response() -> httpx.Response:
    return httpx.Response(200, json={
        "status": True,
        "data": {"reference": "ps_ref_2", "authorization_url": "https://checkout.paystack.com/y", "access_code": "y"},
    })


@pytest.mark.asyncio
async def test_open_session_is_not_resent_after_read_timeout():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("no response", request=request)

    with pytest.raises(TransientUpstreamFailure):
        await _client(handler).open_session(OpenSession(buyer_email="buyer@example.com", amount=Money(500000)))
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_open_session_is_not_resent_after_server_error():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(503, json={"status": False})

    with pytest.raises(TransientUpstreamFailure):
        await _client(handler).open_session(OpenSession(buyer_email="buyer@example.com", amount=Money(500000)))
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_open_session_retries_when_connection_never_opened():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            raise httpx.ConnectError("refused", request=request)
        return _session_response()

    session = await _client(handler).open_session(OpenSession(buyer_email="buyer@example.com", amount=Money(500000)))

    assert session.reference == "ps_ref_2"
    assert len(calls) == 2
