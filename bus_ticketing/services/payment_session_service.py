"""
Checkout session creation
"""

import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from bus_ticketing.config import settings
from bus_ticketing.core.cache import RequestThrottle
from bus_ticketing.core.exceptions import ConfigurationError, PaymentGatewayError, ThrottledError
from bus_ticketing.core.metrics import GATEWAY_CALLS_TOTAL
from bus_ticketing.schemas.payment import PaymentSessionCreate, PaymentSessionResponse
from bus_ticketing.services.placetopay_client import PlaceToPayClient, build_buyer
from bus_ticketing.services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


class PaymentSessionService:
    """Opens a gateway checkout session and links it to the booking's payment"""

    def __init__(
        self,
        session: AsyncSession,
        gateway: Optional[PlaceToPayClient],
        throttle: RequestThrottle
    ):
        self.session = session
        self.gateway = gateway
        self.throttle = throttle
        self.reconciler = ReconciliationService(session)

    async def create(
        self,
        data: PaymentSessionCreate,
        notification_url: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Dict[str, Any]:
        if self.gateway is None:
            logger.error("Gateway credentials are not configured")
            raise ConfigurationError("PLACETOPAY_LOGIN/PLACETOPAY_SECRET_KEY")

        if not await self.throttle.hit(data.reference, data.amount):
            raise ThrottledError(settings.PAYMENT_SESSION_THROTTLE_SECONDS)

        try:
            response = await self.gateway.create_session(
                reference=data.reference,
                amount=data.amount,
                description=data.description,
                return_url=data.return_url,
                notification_url=notification_url,
                currency=data.currency or settings.PAYMENT_CURRENCY,
                expiration_minutes=data.expiration_minutes or settings.PAYMENT_SESSION_EXPIRATION_MINUTES,
                ip_address=ip_address or "127.0.0.1",
                user_agent=user_agent or "Mozilla/5.0",
                buyer=build_buyer(
                    data.buyer_email,
                    data.buyer_name,
                    data.buyer_surname,
                    data.buyer_document_type,
                    data.buyer_document,
                    data.buyer_mobile
                )
            )
        except PaymentGatewayError:
            GATEWAY_CALLS_TOTAL.labels(operation="create_session", result="error").inc()
            raise
        GATEWAY_CALLS_TOTAL.labels(operation="create_session", result="ok").inc()

        if not isinstance(response, dict) or not response.get("requestId"):
            logger.error(f"Gateway response for {data.reference} has no requestId")
            raise PaymentGatewayError("Gateway response did not include a requestId")

        session_info = PaymentSessionResponse.model_validate(response)
        await self._link_payment(data.reference, session_info.request_id)
        return response

    async def _link_payment(self, reference: str, request_id: str) -> None:
        """Record the session id on the booking's payment so notifications match directly"""
        booking = await self.reconciler.find_booking_by_reference(reference)
        if booking is None:
            logger.warning(f"No booking with reference {reference}, session not linked")
            return

        booking_id = booking.id
        payment = await self.reconciler.find_payment_by_booking(booking_id)
        if payment is None:
            await self.reconciler.create_payment(booking_id, request_id)
        elif payment.gateway_request_id != request_id:
            await self.reconciler.set_request_id(payment.id, request_id)
