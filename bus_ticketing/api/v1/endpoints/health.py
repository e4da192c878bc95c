"""
Health check endpoints
"""

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends
from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bus_ticketing.api.deps import get_notification_guard
from bus_ticketing.config import settings
from bus_ticketing.core.database import get_session
from bus_ticketing.core.notification_guard import NotificationGuard
from bus_ticketing.core.redis import get_redis
from bus_ticketing.schemas.response import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/live")
async def liveness() -> Any:
    """
    Kubernetes liveness probe
    """
    return {"status": "alive", "service": "bus-ticketing-api"}


@router.get("/ready", response_model=HealthResponse)
async def readiness(
    db: AsyncSession = Depends(get_session),
    guard: NotificationGuard = Depends(get_notification_guard),
    redis_client: Redis = Depends(get_redis)
) -> Any:
    """
    Kubernetes readiness probe - checks the database and Redis, reports guard state
    """
    checks = {"database": False, "redis": False, "api": True}

    try:
        result = await db.execute(text("SELECT 1"))
        checks["database"] = result.scalar() == 1
    except SQLAlchemyError as e:
        logger.error(f"Readiness database check failed: {str(e)}")

    try:
        checks["redis"] = bool(await redis_client.ping())
    except RedisError as e:
        logger.error(f"Readiness Redis check failed: {str(e)}")

    return HealthResponse(
        status="ready" if all(checks.values()) else "not ready",
        timestamp=datetime.now(timezone.utc),
        checks={**checks, "notification_guard": guard.stats()},
        version=settings.APP_VERSION
    )
