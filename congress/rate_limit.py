"""Redis-backed per-model rate limiting."""

from __future__ import annotations

import asyncio
import logging
import time

from redis.asyncio import Redis

from .config import Settings, settings
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60


class RedisRateLimiter:
    """Fixed-window request budget per model id.

    Redis being unavailable never blocks generation: the call is allowed.
    """

    def __init__(self, config: Settings = settings, redis: Redis | None = None) -> None:
        self._config = config
        self._redis = redis

    @property
    def redis(self) -> Redis:
        if self._redis is None:
            self._redis = get_redis_client(self._config.redis_url)
        return self._redis

    async def acquire(self, model_id: str) -> bool:
        """Take one request from the current window. Returns True if allowed."""
        bucket = int(time.time() // WINDOW_SECONDS)
        key = f"ratelimit:{model_id.lower()}:{bucket}"
        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.incr(key)
            pipe.expire(key, WINDOW_SECONDS)
            count, _ = await pipe.execute()
        return int(count) <= self._config.rate_limit_per_minute

    async def wait(self, model_id: str) -> bool:
        """Wait until a request is allowed or the configured wait elapses."""
        if not self._config.redis_rate_limit_enabled:
            return True

        deadline = time.time() + self._config.redis_rate_limit_wait_seconds
        while time.time() < deadline:
            try:
                if await self.acquire(model_id):
                    return True
            except Exception as exc:
                logger.warning("Rate limiter unavailable, allowing %s: %s", model_id, exc)
                return True
            await asyncio.sleep(1)

        return False
