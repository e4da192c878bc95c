"""
Shared FastAPI dependencies for app-owned state
"""

from typing import Optional

from fastapi import Depends, Request
from redis.asyncio import Redis

from bus_ticketing.config import settings
from bus_ticketing.core.cache import RequestThrottle, ResultCache
from bus_ticketing.core.notification_guard import NotificationGuard
from bus_ticketing.core.redis import get_redis
from bus_ticketing.services.placetopay_client import PlaceToPayClient


def get_notification_guard(request: Request) -> NotificationGuard:
    return request.app.state.notification_guard


def get_status_cache(client: Redis = Depends(get_redis)) -> ResultCache:
    return ResultCache(client, default_ttl=settings.STATUS_CHECK_CACHE_TTL_SECONDS)


def get_session_throttle(client: Redis = Depends(get_redis)) -> RequestThrottle:
    return RequestThrottle(client, window=settings.PAYMENT_SESSION_THROTTLE_SECONDS)


def get_gateway_client() -> Optional[PlaceToPayClient]:
    """Gateway client, or None when credentials are not configured"""
    if not settings.gateway_configured:
        return None
    return PlaceToPayClient.from_settings()
