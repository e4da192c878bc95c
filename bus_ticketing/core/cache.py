"""
Redis-backed cache and throttle for the payment endpoints

Both fail open: when Redis is unreachable the cache reads as a miss and the
throttle lets the request through.
"""

import logging
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def make_key(prefix: str, *parts: object) -> str:
    return ":".join([prefix, *(str(p) for p in parts)])


class ResultCache:
    """
    Pydantic results stored as JSON with SET ... EX.

    Entries that no longer parse into the expected model are deleted and
    reported as a miss.
    """

    def __init__(self, client: Redis, default_ttl: int, prefix: str = "payment-status"):
        self.client = client
        self.default_ttl = default_ttl
        self.prefix = prefix

    def key(self, *parts: object) -> str:
        return make_key(self.prefix, *parts)

    async def get(self, key: str, response_model: Type[ModelT]) -> Optional[ModelT]:
        try:
            cached = await self.client.get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None
        if not cached:
            return None

        try:
            return response_model.model_validate_json(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry {key}: {e.error_count()} errors")
            try:
                await self.client.delete(key)
            except RedisError:
                pass
            return None

    async def set(self, key: str, value: BaseModel, ttl: Optional[int] = None) -> bool:
        ttl = self.default_ttl if ttl is None else ttl
        try:
            return bool(await self.client.set(key, value.model_dump_json(), ex=max(1, int(ttl))))
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")
            return False


class RequestThrottle:
    """Rejects a key seen again within `window` seconds (SET NX EX)"""

    def __init__(self, client: Redis, window: int, prefix: str = "payment-session"):
        self.client = client
        self.window = window
        self.prefix = prefix

    async def hit(self, *parts: object) -> bool:
        """Record the key; returns False when it was already seen in the window"""
        key = make_key(self.prefix, *parts)
        try:
            first = await self.client.set(key, "1", nx=True, ex=self.window)
        except RedisError as e:
            logger.error(f"Throttle check failed for {key}: {e}")
            return True
        if not first:
            logger.info(f"Throttled repeated request {key}")
            return False
        return True
