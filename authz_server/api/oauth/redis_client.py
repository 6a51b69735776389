"""Redis client management for the Redis-backed OAuth stores"""

import redis.asyncio as redis

from .config import Settings
from ...shared.logger import log_info


class RedisManager:
    """Owns the Redis connection pool for the lifetime of the application.

    The client is created eagerly (no I/O happens until the first command) so
    the stores can be wired before the application starts; ``initialize``
    verifies the connection during startup.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._pool: redis.Redis = redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            password=settings.redis_password,
        )

    async def initialize(self):
        """Verify the server answers"""
        await self._pool.ping()
        log_info("Redis connection established", component="oauth_redis")

    async def close(self):
        """Close Redis connection pool"""
        await self._pool.aclose()

    @property
    def client(self) -> redis.Redis:
        return self._pool
