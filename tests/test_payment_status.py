"""
Payment status polling tests
"""

import asyncio
import json
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from bus_ticketing.models import Booking, BookingStatus, Payment, PaymentStatus

STATUS_URL = "/api/v1/payments/status"


def gateway_session(request_id, status, message="", nested=False):
    block = {"status": status, "reason": "00", "message": message, "date": "2025-06-01T10:00:00-05:00"}
    if nested:
        return {"requestId": request_id, "payment": [{"status": block}]}
    return {"requestId": request_id, "status": block}


async def load_state(session_factory, booking_id):
    async with session_factory() as session:
        booking = await session.get(Booking, booking_id)
        result = await session.execute(select(Payment).where(Payment.booking_id == booking_id))
        return booking, result.scalars().all()


@pytest.mark.integration
@pytest.mark.asyncio
class TestPaymentStatusPolling:

    async def test_unknown_booking_is_404(self, client):
        response = await client.post(STATUS_URL, json={"booking_id": str(uuid4())})
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    async def test_gateway_approval_is_reconciled(
        self, client, session_factory, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking, request_id="REQ-1")
        fake_gateway.status_responses["REQ-1"] = gateway_session("REQ-1", "APPROVED", "Approved")

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["payment_status"] == {"status": "APPROVED", "message": "Approved"}
        assert data["payment"]["status"] == "approved"
        assert data["booking"]["status"] == "confirmed"
        assert data["from_cache"] is False

        stored_booking, [payment] = await load_state(session_factory, booking.id)
        assert payment.status == PaymentStatus.APPROVED
        assert json.loads(payment.gateway_payload)["requestId"] == "REQ-1"
        assert stored_booking.status == BookingStatus.CONFIRMED

    async def test_nested_payment_shape(
        self, client, session_factory, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking, request_id="REQ-N")
        fake_gateway.status_responses["REQ-N"] = gateway_session("REQ-N", "REJECTED", nested=True)

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert response.json()["payment_status"]["status"] == "REJECTED"
        stored_booking, [payment] = await load_state(session_factory, booking.id)
        assert payment.status == PaymentStatus.REJECTED
        assert stored_booking.status == BookingStatus.CANCELLED

    async def test_request_id_argument_is_persisted(
        self, client, session_factory, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking)
        fake_gateway.status_responses["REQ-ARG"] = gateway_session("REQ-ARG", "PENDING")

        response = await client.post(
            STATUS_URL,
            json={"booking_id": str(booking.id), "request_id": "REQ-ARG"}
        )

        assert response.json()["payment"]["gateway_request_id"] == "REQ-ARG"
        assert fake_gateway.status_calls == ["REQ-ARG"]
        _, [payment] = await load_state(session_factory, booking.id)
        assert payment.gateway_request_id == "REQ-ARG"
        assert payment.status == PaymentStatus.PENDING

    async def test_request_id_from_stored_payload(
        self, client, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking, gateway_payload=json.dumps({"requestId": 555}))
        fake_gateway.status_responses["555"] = gateway_session("555", "PENDING")

        await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert fake_gateway.status_calls == ["555"]

    async def test_missing_payment_is_created(
        self, client, session_factory, fake_gateway, create_booking
    ):
        booking = await create_booking(seat_prices=(Decimal("10.00"), Decimal("7.50")))

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is False
        assert data["payment_status"]["status"] == "PENDING"
        assert fake_gateway.status_calls == []

        _, payments = await load_state(session_factory, booking.id)
        assert len(payments) == 1
        assert payments[0].status == PaymentStatus.PENDING
        assert float(payments[0].amount) == 17.5

    async def test_final_payment_answers_from_database(
        self, client, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking(status=BookingStatus.CONFIRMED)
        await create_payment(
            booking,
            request_id="REQ-DONE",
            status=PaymentStatus.APPROVED,
            gateway_payload=json.dumps(gateway_session("REQ-DONE", "APPROVED", "Approved"))
        )

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert response.json()["payment_status"]["status"] == "APPROVED"
        assert fake_gateway.status_calls == []

    async def test_approved_without_request_id(self, client, fake_gateway, create_booking, create_payment):
        booking = await create_booking(status=BookingStatus.CONFIRMED)
        await create_payment(booking, status=PaymentStatus.APPROVED)

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        data = response.json()
        assert data["success"] is True
        assert data["payment_status"]["status"] == "APPROVED"
        assert fake_gateway.status_calls == []


@pytest.mark.integration
@pytest.mark.asyncio
class TestPaymentStatusFailures:

    async def test_gateway_failure_falls_back_to_stored_status(
        self, client, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(
            booking,
            request_id="REQ-DOWN",
            gateway_payload=json.dumps(gateway_session("REQ-DOWN", "PENDING", "Waiting"))
        )
        fake_gateway.fail = True

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert response.status_code == 200
        data = response.json()
        assert data["from_cache"] is True
        assert data["payment_status"] == {"status": "PENDING", "message": "Waiting"}

    async def test_gateway_failure_without_stored_status(
        self, client, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking, request_id="REQ-DOWN")
        fake_gateway.fail = True

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "PAYMENT_GATEWAY_ERROR"


@pytest.mark.asyncio
class TestPaymentStatusCache:

    async def test_result_is_cached(self, client, redis_client, fake_gateway, create_booking, create_payment):
        booking = await create_booking()
        await create_payment(booking, request_id="REQ-C")
        fake_gateway.status_responses["REQ-C"] = gateway_session("REQ-C", "PENDING")
        body = {"booking_id": str(booking.id)}

        first = await client.post(STATUS_URL, json=body)
        second = await client.post(STATUS_URL, json=body)

        assert fake_gateway.status_calls == ["REQ-C"]
        assert second.json() == first.json()

        key = f"payment-status:{booking.id}:no-req"
        assert 10 < await redis_client.ttl(key) <= 30
        # Entry expired
        await redis_client.delete(key)
        await client.post(STATUS_URL, json=body)
        assert fake_gateway.status_calls == ["REQ-C", "REQ-C"]

    async def test_cache_key_includes_request_id(
        self, client, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking, request_id="REQ-A")
        fake_gateway.status_responses["REQ-A"] = gateway_session("REQ-A", "PENDING")
        fake_gateway.status_responses["REQ-B"] = gateway_session("REQ-B", "PENDING")

        await client.post(STATUS_URL, json={"booking_id": str(booking.id)})
        await client.post(STATUS_URL, json={"booking_id": str(booking.id), "request_id": "REQ-B"})

        assert fake_gateway.status_calls == ["REQ-A", "REQ-B"]

    async def test_inconclusive_result_is_cached_briefly(
        self, client, session_factory, redis_client, fake_gateway, create_booking
    ):
        booking = await create_booking()
        body = {"booking_id": str(booking.id)}
        await client.post(STATUS_URL, json=body)

        key = f"payment-status:{booking.id}:no-req"
        assert 0 < await redis_client.ttl(key) <= 10

        # A request id shows up later; the short-lived entry must not hide it
        async with session_factory() as session:
            payment = (await session.execute(select(Payment).where(Payment.booking_id == booking.id))).scalar_one()
            payment.gateway_request_id = "REQ-LATE"
            await session.commit()
        fake_gateway.status_responses["REQ-LATE"] = gateway_session("REQ-LATE", "APPROVED")

        await redis_client.delete(key)
        response = await client.post(STATUS_URL, json=body)

        assert fake_gateway.status_calls == ["REQ-LATE"]
        assert response.json()["booking"]["status"] == "confirmed"


@pytest.mark.concurrency
@pytest.mark.asyncio
class TestPaymentStatusLocking:

    async def test_busy_transaction_is_not_written(
        self, client, session_factory, guard, gateway_settings, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking, request_id="REQ-BUSY")
        fake_gateway.status_responses["REQ-BUSY"] = gateway_session("REQ-BUSY", "APPROVED", "Approved")
        gateway_settings(NOTIFICATION_LOCK_MAX_ATTEMPTS=2, NOTIFICATION_LOCK_INTERVAL_MS=10)
        guard.try_acquire_lock("REQ-BUSY")

        response = await client.post(STATUS_URL, json={"booking_id": str(booking.id)})

        assert response.status_code == 200
        data = response.json()
        assert data["payment_status"]["status"] == "APPROVED"
        assert data["payment"]["status"] == "pending"
        stored_booking, [payment] = await load_state(session_factory, booking.id)
        assert payment.status == PaymentStatus.PENDING
        assert stored_booking.status == BookingStatus.PENDING
        assert guard.is_locked("REQ-BUSY")

    async def test_poll_waits_for_notification_lock(
        self, client, session_factory, guard, fake_gateway, create_booking, create_payment
    ):
        booking = await create_booking()
        await create_payment(booking, request_id="REQ-WAIT")
        fake_gateway.status_responses["REQ-WAIT"] = gateway_session("REQ-WAIT", "APPROVED")
        guard.try_acquire_lock("REQ-WAIT")

        async def release_later():
            await asyncio.sleep(0.1)
            guard.release_lock("REQ-WAIT")

        response, _ = await asyncio.gather(
            client.post(STATUS_URL, json={"booking_id": str(booking.id)}),
            release_later(),
        )

        assert response.json()["booking"]["status"] == "confirmed"
        _, [payment] = await load_state(session_factory, booking.id)
        assert payment.status == PaymentStatus.APPROVED
        assert not guard.is_locked("REQ-WAIT")
