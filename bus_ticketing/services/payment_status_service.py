"""
Payment status polling

Used by the payment result page when no push notification has arrived yet.
Queries the gateway for the session status and reconciles through the same
state mapping as the notification handler. Writes take the NotificationGuard
lock for the request id, so a poll and a push for the same transaction never
interleave. A poll that cannot get the lock in time answers with the gateway
status and leaves the writes to the lock holder.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bus_ticketing.config import settings
from bus_ticketing.core.cache import ResultCache
from bus_ticketing.core.exceptions import BusTicketingException, NotFoundError, PaymentGatewayError
from bus_ticketing.core.metrics import GATEWAY_CALLS_TOTAL
from bus_ticketing.core.notification_guard import NotificationGuard
from bus_ticketing.models.booking import Booking
from bus_ticketing.models.payment import Payment, PaymentStatus
from bus_ticketing.schemas.payment import (
    BookingStatusResponse,
    PaymentResponse,
    PaymentStatusResult,
    StatusDetail
)
from bus_ticketing.services.placetopay_client import PlaceToPayClient
from bus_ticketing.services.reconciliation_service import ReconciliationService
from bus_ticketing.services.status_mapping import (
    FINAL_PAYMENT_STATUSES,
    PENDING_CODE,
    GatewayStatusSnapshot,
    normalize_gateway_response
)

logger = logging.getLogger(__name__)


def _load_payload(payment: Payment) -> Optional[Any]:
    if not payment.gateway_payload:
        return None
    try:
        return json.loads(payment.gateway_payload)
    except (TypeError, ValueError):
        logger.warning(f"Stored gateway payload of payment {payment.id} is not JSON")
        return None


def stored_snapshot(payload: Any) -> Optional[GatewayStatusSnapshot]:
    """Status recorded with the payment, if the stored payload carries one"""
    if not isinstance(payload, dict):
        return None
    snapshot = normalize_gateway_response(payload)
    if snapshot.status == PENDING_CODE and not isinstance(payload.get("status"), dict):
        return None
    return snapshot


class PaymentStatusService:
    """Resolves the current payment status of a booking"""

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[PlaceToPayClient],
        cache: ResultCache,
        guard: NotificationGuard
    ):
        self.session = session
        self.gateway = gateway
        self.cache = cache
        self.guard = guard
        self.short_ttl = max(1, cache.default_ttl // 3)
        self.reconciler = ReconciliationService(session)

    async def check(self, booking_id: UUID, request_id: Optional[str] = None) -> PaymentStatusResult:
        cache_key = self.cache.key(booking_id, request_id or "no-req")
        cached = await self.cache.get(cache_key, PaymentStatusResult)
        if cached is not None:
            logger.info(f"Returning cached payment status for {cache_key}")
            return cached

        booking = await self.session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError("Booking", booking_id)
        booking_view = BookingStatusResponse.model_validate(booking)

        payment = await self.reconciler.find_payment_by_booking(booking_id)
        if payment is None:
            logger.info(f"No payment for booking {booking_id}, creating one")
            payment = await self.reconciler.create_payment(booking_id, request_id)
            if payment is None:
                raise BusTicketingException(
                    message="Could not create payment record",
                    code="PAYMENT_RECORD_ERROR",
                    status_code=500
                )

        payment_view = PaymentResponse.model_validate(payment)
        payload = _load_payload(payment)
        stored = stored_snapshot(payload)

        if payment.status in FINAL_PAYMENT_STATUSES and stored is not None:
            logger.info(f"Payment {payment.id} already final ({payment.status}), gateway not queried")
            result = self._result(stored, payment_view, booking_view)
            await self.cache.set(cache_key, result)
            return result

        effective_id = request_id or payment.gateway_request_id
        if not effective_id and isinstance(payload, dict) and payload.get("requestId"):
            effective_id = str(payload["requestId"])

        if not effective_id:
            if payment.status == PaymentStatus.APPROVED:
                snapshot = GatewayStatusSnapshot("APPROVED", "The transaction was approved")
                result = self._result(snapshot, payment_view, booking_view)
                await self.cache.set(cache_key, result)
            else:
                snapshot = GatewayStatusSnapshot(
                    PENDING_CODE, "No information available to verify the payment status"
                )
                result = self._result(snapshot, payment_view, booking_view, success=False)
                await self.cache.set(cache_key, result, ttl=self.short_ttl)
            return result

        try:
            response = await self._query_gateway(effective_id)
        except PaymentGatewayError:
            if stored is not None:
                logger.warning(f"Gateway query failed, answering with stored status of payment {payment.id}")
                result = self._result(stored, payment_view, booking_view, from_cache=True)
                await self.cache.set(cache_key, result, ttl=self.short_ttl)
                return result
            raise

        snapshot = normalize_gateway_response(response)
        logger.info(f"Gateway status for booking {booking_id}: {snapshot.status} {snapshot.message}")

        acquired = await self.guard.acquire_lock_waiting(
            effective_id,
            settings.NOTIFICATION_LOCK_MAX_ATTEMPTS,
            settings.NOTIFICATION_LOCK_INTERVAL_MS
        )
        if not acquired:
            logger.warning(
                "Transaction busy, answering with gateway status without writing",
                extra={"transaction_id": effective_id, "booking_id": str(booking_id)}
            )
            result = self._result(snapshot, payment_view, booking_view)
            await self.cache.set(cache_key, result, ttl=self.short_ttl)
            return result

        try:
            # A notification may have moved either record while we waited
            await self.session.refresh(payment)
            await self.session.refresh(booking)
            payment_view = PaymentResponse.model_validate(payment)
            booking_view = BookingStatusResponse.model_validate(booking)

            if not payment_view.gateway_request_id:
                if await self.reconciler.set_request_id(payment_view.id, effective_id):
                    payment_view = payment_view.model_copy(update={"gateway_request_id": effective_id})

            outcome = await self.reconciler.apply_transition(
                payment_id=payment_view.id,
                current_payment_status=payment_view.status,
                booking_id=booking_view.id,
                current_booking_status=booking_view.status,
                status_code=snapshot.status,
                raw_payload=response,
            )
        finally:
            self.guard.release_lock(effective_id)

        payment_view = payment_view.model_copy(update={"status": outcome.payment_status})
        booking_view = booking_view.model_copy(update={"status": outcome.booking_status})

        result = self._result(snapshot, payment_view, booking_view)
        await self.cache.set(cache_key, result)
        return result

    async def _query_gateway(self, request_id: str) -> Any:
        if self.gateway is None:
            GATEWAY_CALLS_TOTAL.labels(operation="session_status", result="unconfigured").inc()
            raise PaymentGatewayError("Payment gateway is not configured")
        try:
            response = await self.gateway.get_session_status(request_id)
        except PaymentGatewayError:
            GATEWAY_CALLS_TOTAL.labels(operation="session_status", result="error").inc()
            raise
        GATEWAY_CALLS_TOTAL.labels(operation="session_status", result="ok").inc()
        return response

    @staticmethod
    def _result(
        snapshot: GatewayStatusSnapshot,
        payment: PaymentResponse,
        booking: BookingStatusResponse,
        success: bool = True,
        from_cache: bool = False
    ) -> PaymentStatusResult:
        return PaymentStatusResult(
            success=success,
            payment_status=StatusDetail(status=snapshot.status, message=snapshot.message),
            payment=payment,
            booking=booking,
            from_cache=from_cache,
            checked_at=datetime.now(timezone.utc),
        )
