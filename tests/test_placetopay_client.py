"""
Gateway client tests over httpx.MockTransport
"""

import json
from decimal import Decimal

import httpx
import pytest

from bus_ticketing.core.exceptions import ConfigurationError, PaymentGatewayError
from bus_ticketing.services.placetopay_client import PlaceToPayClient, build_buyer


def make_client(handler) -> PlaceToPayClient:
    return PlaceToPayClient(
        base_url="https://checkout.test",
        login="login",
        secret_key="secret",
        transport=httpx.MockTransport(handler)
    )


@pytest.mark.asyncio
class TestPlaceToPayClient:

    async def test_create_session_payload(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"requestId": 77, "processUrl": "https://checkout.test/p/77"})

        client = make_client(handler)
        data = await client.create_session(
            reference="RES-1",
            amount=Decimal("25.00"),
            description="Bus ticket",
            return_url="https://tickets.example.com/result",
            notification_url="https://tickets.example.com/api/v1/payments/notification",
            buyer=build_buyer("ana@example.com")
        )

        assert data["requestId"] == 77
        assert seen["url"] == "https://checkout.test/api/session"
        body = seen["body"]
        assert body["payment"] == {
            "reference": "RES-1",
            "description": "Bus ticket",
            "amount": {"currency": "USD", "total": 25.0},
        }
        assert body["notificationUrl"].endswith("/payments/notification")
        assert body["locale"] == "es_EC"
        assert body["buyer"]["documentType"] == "CI"
        assert set(body["auth"]) == {"login", "tranKey", "nonce", "seed"}

    async def test_get_session_status_path(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/session/TX1"
            return httpx.Response(200, json={"status": {"status": "APPROVED"}})

        data = await make_client(handler).get_session_status("TX1")
        assert data["status"]["status"] == "APPROVED"

    async def test_http_error_carries_gateway_status(self):
        client = make_client(lambda request: httpx.Response(401, json={"status": {"status": "FAILED"}}))

        with pytest.raises(PaymentGatewayError) as exc_info:
            await client.get_session_status("TX1")

        assert exc_info.value.status_code == 502
        assert exc_info.value.details["gateway_status"] == 401

    async def test_transport_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(PaymentGatewayError):
            await make_client(handler).get_session_status("TX1")

    async def test_non_json_response(self):
        client = make_client(lambda request: httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(PaymentGatewayError):
            await client.get_session_status("TX1")


@pytest.mark.unit
def test_missing_credentials_rejected():
    with pytest.raises(ConfigurationError):
        PlaceToPayClient(base_url="https://checkout.test", login="", secret_key="secret")
    with pytest.raises(ConfigurationError):
        PlaceToPayClient(base_url="https://checkout.test", login="login", secret_key="")


@pytest.mark.unit
def test_buyer_block_requires_email():
    assert build_buyer(None) is None
    assert build_buyer("ana@example.com", name="Ana")["name"] == "Ana"
