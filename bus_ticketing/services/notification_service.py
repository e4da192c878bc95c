"""
Gateway push notification handling

Validates and authenticates the notification, serializes work per
transaction through the NotificationGuard and hands off to the reconciler.
Only malformed payloads, signature mismatches and a missing shared secret are
reported as errors. Everything else is acknowledged as success, because the
gateway retries non-success answers indefinitely.
"""

import enum
import logging
import time
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from bus_ticketing.core.exceptions import (
    ConfigurationError,
    InvalidNotificationError,
    SignatureMismatchError
)
from bus_ticketing.core.metrics import NOTIFICATIONS_TOTAL, NOTIFICATION_DURATION
from bus_ticketing.core.notification_guard import NotificationGuard
from bus_ticketing.core.security import verify_notification_signature
from bus_ticketing.schemas.payment import GatewayNotification, NotificationAck
from bus_ticketing.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


class NotificationOutcome(str, enum.Enum):
    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    LOCK_TIMEOUT = "lock_timeout"
    UNRESOLVED = "unresolved"
    ERROR = "error"


class NotificationReceiver:
    """Per-request notification handler"""

    def __init__(
        self,
        session: AsyncSession,
        guard: NotificationGuard,
        secret_key: str,
        lock_max_attempts: int = 10,
        lock_interval_ms: int = 500
    ):
        self.session = session
        self.guard = guard
        self.secret_key = secret_key
        self.lock_max_attempts = lock_max_attempts
        self.lock_interval_ms = lock_interval_ms
        self.reconciler = ReconciliationService(session)

    @staticmethod
    def parse(payload: Any) -> GatewayNotification:
        if not isinstance(payload, dict):
            raise InvalidNotificationError("Notification body must be a JSON object")
        try:
            return GatewayNotification.model_validate(payload)
        except PydanticValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise InvalidNotificationError(details={"fields": fields}) from e

    def verify_signature(self, notification: GatewayNotification) -> None:
        if not (notification.signature and notification.status.date):
            logger.warning(
                "Notification without signature or status date, accepting unsigned",
                extra={"transaction_id": notification.request_id}
            )
            return

        if not self.secret_key:
            logger.error("PLACETOPAY_SECRET_KEY is not configured, cannot verify signature")
            raise ConfigurationError("PLACETOPAY_SECRET_KEY")

        valid = verify_notification_signature(
            notification.signature,
            notification.signed_request_id,
            notification.signed_status,
            notification.status.date,
            self.secret_key
        )
        if not valid:
            logger.error(
                f"Invalid notification signature: {notification.signature}",
                extra={"transaction_id": notification.request_id}
            )
            raise SignatureMismatchError(notification.request_id)

    async def handle(self, payload: Any) -> NotificationAck:
        """
        Process one notification body.

        Raises InvalidNotificationError, SignatureMismatchError or
        ConfigurationError before any side effect; never raises afterwards.
        """
        notification = self.parse(payload)
        self.verify_signature(notification)

        started = time.perf_counter()
        ack = NotificationAck(status=NotificationOutcome.ERROR.value, transaction_id=notification.request_id)
        try:
            ack = await self._process(notification, payload)
        except Exception:
            logger.error(
                "Unhandled error while processing notification, acknowledging anyway",
                exc_info=True,
                extra={"transaction_id": notification.request_id}
            )
        finally:
            NOTIFICATIONS_TOTAL.labels(outcome=ack.status).inc()
            NOTIFICATION_DURATION.labels(outcome=ack.status).observe(time.perf_counter() - started)
        return ack

    async def _process(self, notification: GatewayNotification, payload: dict) -> NotificationAck:
        tx = notification.request_id
        code = notification.status.status
        log_extra = {"transaction_id": tx, "reference": notification.reference}
        logger.info(f"Notification received: status={code}", extra=log_extra)

        if self.guard.should_skip_duplicate(tx, code):
            logger.info("Duplicate notification skipped", extra=log_extra)
            return self._ack(NotificationOutcome.DUPLICATE, tx)

        if self.guard.is_locked(tx):
            logger.info("Notification for this transaction in progress, waiting", extra=log_extra)
        acquired = await self.guard.acquire_lock_waiting(tx, self.lock_max_attempts, self.lock_interval_ms)
        if not acquired:
            logger.warning("Lock wait exhausted, notification dropped", extra=log_extra)
            return self._ack(NotificationOutcome.LOCK_TIMEOUT, tx)

        try:
            # The lock holder we waited for may have handled this exact status
            if self.guard.should_skip_duplicate(tx, code):
                logger.info("Duplicate notification skipped after wait", extra=log_extra)
                return self._ack(NotificationOutcome.DUPLICATE, tx)

            result = await self.reconciler.reconcile_notification(notification, payload)
            self.guard.mark_processed(tx, code)

            if not result.resolved:
                return self._ack(NotificationOutcome.UNRESOLVED, tx, booking_id=result.booking_id)

            logger.info(
                f"Notification processed: payment={result.payment_status} booking={result.booking_status}",
                extra=log_extra
            )
            return self._ack(
                NotificationOutcome.PROCESSED, tx,
                payment_id=result.payment_id,
                booking_id=result.booking_id
            )
        finally:
            self.guard.release_lock(tx)

    @staticmethod
    def _ack(outcome: NotificationOutcome, tx: str, payment_id=None, booking_id=None) -> NotificationAck:
        return NotificationAck(
            status=outcome.value,
            transaction_id=tx,
            payment_id=payment_id,
            booking_id=booking_id
        )
