"""
Payment/booking reconciliation

Resolves the Payment and Booking a gateway status refers to and moves both to
the state the status maps to. Payment and Booking are written with two
separate commits; a failed write is rolled back, logged and skipped so the
remaining steps still run. A booking can therefore be left behind its payment
until the next notification or poll.
"""

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bus_ticketing.config import settings
from bus_ticketing.models.booking import Booking, BookingSeat, BookingStatus
from bus_ticketing.models.notification_log import PaymentNotificationLog
from bus_ticketing.models.payment import Payment, PaymentStatus
from bus_ticketing.schemas.payment import GatewayNotification
from bus_ticketing.services.status_mapping import map_gateway_status, resolve_booking_status

logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    resolved: bool
    payment_id: Optional[UUID] = None
    booking_id: Optional[UUID] = None
    payment_status: Optional[PaymentStatus] = None
    booking_status: Optional[BookingStatus] = None
    payment_created: bool = False
    payment_updated: bool = False
    booking_updated: bool = False
    note: Optional[str] = None


def serialize_payload(payload: Any) -> str:
    """Gateway payloads are kept verbatim as JSON text"""
    return json.dumps(payload, default=str, ensure_ascii=False)


class ReconciliationService:
    """Lookup, state mapping and persistence for one session"""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Lookups

    async def find_payment_by_request_id(self, request_id: str) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment)
            .where(Payment.gateway_request_id == request_id)
            .order_by(Payment.created_at.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def find_payment_by_booking(self, booking_id: UUID) -> Optional[Payment]:
        result = await self.session.execute(
            select(Payment).where(Payment.booking_id == booking_id)
        )
        return result.scalar_one_or_none()

    async def find_booking_by_reference(self, reference: str) -> Optional[Booking]:
        """Exact match first, then trimmed, then case-insensitive"""
        result = await self.session.execute(
            select(Booking).where(Booking.reference_code == reference)
        )
        booking = result.scalar_one_or_none()
        if booking:
            return booking

        trimmed = reference.strip()
        if not trimmed:
            return None
        if trimmed != reference:
            result = await self.session.execute(
                select(Booking).where(Booking.reference_code == trimmed)
            )
            booking = result.scalar_one_or_none()
            if booking:
                logger.info(f"Booking matched on trimmed reference '{trimmed}'")
                return booking

        result = await self.session.execute(
            select(Booking)
            .where(func.lower(Booking.reference_code) == trimmed.lower())
            .limit(1)
        )
        booking = result.scalars().first()
        if booking:
            logger.info(f"Booking matched case-insensitively on reference '{trimmed}'")
        return booking

    async def booking_total(self, booking_id: UUID) -> Decimal:
        """Sum of the booking's seat-line prices"""
        result = await self.session.execute(
            select(func.coalesce(func.sum(BookingSeat.price), 0))
            .where(BookingSeat.booking_id == booking_id)
        )
        return Decimal(str(result.scalar() or 0))

    # Writes

    async def _persist(self, action: str, statement=None, **log_extra) -> bool:
        """Execute statement (if any) and commit; failures are rolled back and logged"""
        try:
            if statement is not None:
                await self.session.execute(statement)
            await self.session.commit()
            return True
        except SQLAlchemyError:
            await self.session.rollback()
            logger.error(f"Failed to {action}", exc_info=True, extra=log_extra)
            return False

    async def create_payment(
        self,
        booking_id: UUID,
        request_id: Optional[str],
        currency: Optional[str] = None
    ) -> Optional[Payment]:
        """Pending payment for a booking that has none, priced from its seats"""
        amount = await self.booking_total(booking_id)
        payment = Payment(
            booking_id=booking_id,
            gateway_request_id=request_id,
            amount=amount,
            currency=currency or settings.PAYMENT_CURRENCY,
            status=PaymentStatus.PENDING,
        )
        self.session.add(payment)
        if not await self._persist("create payment", booking_id=str(booking_id)):
            return None
        logger.info(
            f"Created payment {payment.id} for booking {booking_id} (amount {amount})",
            extra={"booking_id": str(booking_id), "transaction_id": request_id}
        )
        return payment

    async def set_request_id(self, payment_id: UUID, request_id: str) -> bool:
        return await self._persist(
            "update gateway request id",
            update(Payment)
            .where(Payment.id == payment_id)
            .values(gateway_request_id=request_id),
            transaction_id=request_id
        )

    async def apply_transition(
        self,
        payment_id: UUID,
        current_payment_status: PaymentStatus,
        booking_id: UUID,
        current_booking_status: Optional[BookingStatus],
        status_code: str,
        raw_payload: Any
    ) -> ReconciliationResult:
        """
        Move payment and booking to the state status_code maps to.
        Each record is only written when its status actually changes.
        """
        transition = map_gateway_status(status_code)
        target_booking_status = resolve_booking_status(transition, current_booking_status)
        result = ReconciliationResult(
            resolved=True,
            payment_id=payment_id,
            booking_id=booking_id,
            payment_status=current_payment_status,
            booking_status=current_booking_status,
        )

        if current_payment_status != transition.payment_status:
            written = await self._persist(
                "update payment status",
                update(Payment)
                .where(Payment.id == payment_id)
                .values(
                    status=transition.payment_status,
                    gateway_payload=serialize_payload(raw_payload)
                ),
                booking_id=str(booking_id)
            )
            if written:
                result.payment_updated = True
                result.payment_status = transition.payment_status
                logger.info(
                    f"Payment {payment_id}: {current_payment_status} -> {transition.payment_status}",
                    extra={"booking_id": str(booking_id)}
                )
        else:
            logger.info(f"Payment {payment_id} already {current_payment_status}, not updated")

        if current_booking_status != target_booking_status:
            written = await self._persist(
                "update booking status",
                update(Booking)
                .where(Booking.id == booking_id)
                .values(status=target_booking_status),
                booking_id=str(booking_id)
            )
            if written:
                result.booking_updated = True
                result.booking_status = target_booking_status
                logger.info(
                    f"Booking {booking_id}: {current_booking_status} -> {target_booking_status}",
                    extra={"booking_id": str(booking_id)}
                )

        return result

    async def record_notification(
        self,
        notification: GatewayNotification,
        raw_payload: Dict[str, Any],
        processed: bool,
        payment_id: Optional[UUID] = None,
        booking_id: Optional[UUID] = None,
        note: Optional[str] = None
    ) -> None:
        self.session.add(PaymentNotificationLog(
            transaction_id=notification.request_id,
            reference=notification.reference,
            gateway_status=notification.status.status,
            payload=serialize_payload(raw_payload),
            payment_id=payment_id,
            booking_id=booking_id,
            processed=processed,
            note=note,
        ))
        await self._persist("record notification", transaction_id=notification.request_id)

    # Entry point for push notifications

    async def reconcile_notification(
        self,
        notification: GatewayNotification,
        raw_payload: Dict[str, Any]
    ) -> ReconciliationResult:
        request_id = notification.request_id
        log_extra = {"transaction_id": request_id, "reference": notification.reference}

        booking: Optional[Booking] = None
        payment = await self.find_payment_by_request_id(request_id)
        created = False

        if payment:
            booking = await self.session.get(Booking, payment.booking_id)
            logger.info(f"Payment {payment.id} found by request id", extra=log_extra)
        elif notification.reference:
            booking = await self.find_booking_by_reference(notification.reference)

        if booking is None:
            logger.error("Notification does not match any booking", extra=log_extra)
            await self.record_notification(notification, raw_payload, processed=False, note="unresolved")
            return ReconciliationResult(resolved=False, note="unresolved")

        # A failed commit expires loaded rows, so keep plain values
        booking_id = booking.id
        booking_status = booking.status

        if payment is None:
            payment = await self.find_payment_by_booking(booking_id)
            if payment is None:
                logger.info(f"No payment for booking {booking_id}, creating one", extra=log_extra)
                payment = await self.create_payment(booking_id, request_id)
                created = payment is not None

        if payment is None:
            await self.record_notification(
                notification, raw_payload, processed=False,
                booking_id=booking_id, note="payment unavailable"
            )
            return ReconciliationResult(resolved=False, booking_id=booking_id, note="payment unavailable")

        payment_id = payment.id
        payment_status = payment.status

        if payment.gateway_request_id != request_id:
            logger.info(
                f"Payment {payment_id} request id {payment.gateway_request_id!r} -> {request_id!r}",
                extra=log_extra
            )
            await self.set_request_id(payment_id, request_id)

        result = await self.apply_transition(
            payment_id=payment_id,
            current_payment_status=payment_status,
            booking_id=booking_id,
            current_booking_status=booking_status,
            status_code=notification.status.status,
            raw_payload=raw_payload,
        )
        result.payment_created = created

        await self.record_notification(
            notification, raw_payload, processed=True,
            payment_id=payment_id, booking_id=booking_id
        )
        return result
