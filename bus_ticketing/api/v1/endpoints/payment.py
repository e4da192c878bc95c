"""
Payment API Endpoints
Gateway notifications, checkout sessions and status polling
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from bus_ticketing.api.deps import (
    get_gateway_client,
    get_notification_guard,
    get_session_throttle,
    get_status_cache
)
from bus_ticketing.config import settings
from bus_ticketing.core.cache import RequestThrottle, ResultCache
from bus_ticketing.core.database import get_session
from bus_ticketing.core.exceptions import InvalidNotificationError
from bus_ticketing.core.notification_guard import NotificationGuard
from bus_ticketing.schemas.payment import (
    NotificationAck,
    PaymentSessionCreate,
    PaymentStatusQuery,
    PaymentStatusResult
)
from bus_ticketing.services.notification_service import NotificationReceiver
from bus_ticketing.services.payment_session_service import PaymentSessionService
from bus_ticketing.services.payment_status_service import PaymentStatusService
from bus_ticketing.services.placetopay_client import PlaceToPayClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/notification", response_model=NotificationAck, response_model_exclude_none=True)
async def receive_notification(
    request: Request,
    db: AsyncSession = Depends(get_session),
    guard: NotificationGuard = Depends(get_notification_guard)
):
    """Gateway push notification; acknowledged with 200 unless rejected outright"""
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidNotificationError("Notification body is not valid JSON")

    receiver = NotificationReceiver(
        db,
        guard,
        secret_key=settings.PLACETOPAY_SECRET_KEY,
        lock_max_attempts=settings.NOTIFICATION_LOCK_MAX_ATTEMPTS,
        lock_interval_ms=settings.NOTIFICATION_LOCK_INTERVAL_MS
    )
    return await receiver.handle(payload)


def _notification_url(request: Request) -> str:
    base = settings.PUBLIC_BASE_URL or str(request.base_url)
    return f"{base.rstrip('/')}{settings.API_PREFIX}/payments/notification"


@router.post("/session")
async def create_payment_session(
    data: PaymentSessionCreate,
    request: Request,
    db: AsyncSession = Depends(get_session),
    gateway: Optional[PlaceToPayClient] = Depends(get_gateway_client),
    throttle: RequestThrottle = Depends(get_session_throttle)
) -> Any:
    """Open a hosted checkout session for a booking reference"""
    service = PaymentSessionService(db, gateway, throttle)
    return await service.create(
        data,
        notification_url=data.notification_url or _notification_url(request),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent")
    )


@router.post("/status", response_model=PaymentStatusResult)
async def check_payment_status(
    query: PaymentStatusQuery,
    db: AsyncSession = Depends(get_session),
    gateway: Optional[PlaceToPayClient] = Depends(get_gateway_client),
    cache: ResultCache = Depends(get_status_cache),
    guard: NotificationGuard = Depends(get_notification_guard)
):
    """Poll the gateway for a booking's payment and reconcile the result"""
    service = PaymentStatusService(db, gateway, cache, guard)
    return await service.check(query.booking_id, query.request_id)
