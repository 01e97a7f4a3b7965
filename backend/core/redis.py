"""
Redis Configuration and Connection Management
Backs Idempotency-Key replay for order submission
"""
import redis.asyncio as redis
from redis.exceptions import RedisError
import json
import logging
import hashlib
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Redis connection manager with connection pooling.

    The pool is created lazily on first use; constructing the manager does no
    network I/O.
    """

    def __init__(self, url: str, max_connections: int = 20):
        self.url = url
        self.max_connections = max_connections
        self._pool = None
        self._client = None

    async def get_client(self) -> redis.Redis:
        """Get Redis client with connection pooling"""
        if self._client is None:
            self._pool = redis.ConnectionPool.from_url(
                self.url,
                max_connections=self.max_connections,
                retry_on_timeout=True,
                socket_keepalive=True,
                health_check_interval=30,
                decode_responses=True,
            )
            self._client = redis.Redis(connection_pool=self._pool)
        return self._client

    async def ping(self) -> bool:
        try:
            client = await self.get_client()
            return bool(await client.ping())
        except (RedisError, OSError) as e:
            logger.warning(f"Redis PING failed: {e}")
            return False

    async def close(self):
        """Close Redis connections"""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.disconnect()
            self._pool = None


class RedisKeyManager:
    """
    Centralized Redis key management with consistent naming conventions
    """

    IDEMPOTENCY_PREFIX = "idempotency"

    @staticmethod
    def idempotency_key(scope: str, key: str) -> str:
        """Generate idempotency key; client-supplied keys are hashed to bound their size"""
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return f"{RedisKeyManager.IDEMPOTENCY_PREFIX}:{scope}:{digest}"


class IdempotencyStore:
    """
    Remembers the response of an accepted request under its Idempotency-Key.

    A key is first reserved with SET NX so concurrent requests carrying it
    cannot both publish; the reservation is replaced by the outcome on
    success and released on failure. Redis failures are logged and treated
    as a miss, so a cache outage costs replay protection but never
    availability.
    """

    def __init__(self, redis_manager: RedisManager, ttl_seconds: int = 86400,
                 reservation_ttl_seconds: int = 60):
        self.redis_manager = redis_manager
        self.ttl_seconds = ttl_seconds
        self.reservation_ttl_seconds = reservation_ttl_seconds

    async def get(self, scope: str, key: str) -> Optional[Dict[str, Any]]:
        redis_key = RedisKeyManager.idempotency_key(scope, key)
        try:
            client = await self.redis_manager.get_client()
            data = await client.get(redis_key)
        except (RedisError, OSError) as e:
            logger.error(f"Redis GET error for idempotency key {redis_key}: {e}")
            return None
        if not data:
            return None
        try:
            return json.loads(data)
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Discarding unreadable idempotency record {redis_key}: {e}")
            return None

    async def reserve(self, scope: str, key: str, value: Dict[str, Any]) -> bool:
        """Claim the key for an in-progress request. False if already claimed or Redis failed."""
        return await self._set(scope, key, value, ttl=self.reservation_ttl_seconds, nx=True)

    async def remember(self, scope: str, key: str, value: Dict[str, Any]) -> bool:
        return await self._set(scope, key, value, ttl=self.ttl_seconds, nx=False)

    async def release(self, scope: str, key: str) -> None:
        redis_key = RedisKeyManager.idempotency_key(scope, key)
        try:
            client = await self.redis_manager.get_client()
            await client.delete(redis_key)
        except (RedisError, OSError) as e:
            logger.error(f"Redis DELETE error for idempotency key {redis_key}: {e}")

    async def _set(self, scope: str, key: str, value: Dict[str, Any], ttl: int, nx: bool) -> bool:
        redis_key = RedisKeyManager.idempotency_key(scope, key)
        try:
            client = await self.redis_manager.get_client()
            return bool(await client.set(
                redis_key, json.dumps(value, sort_keys=True, default=str), ex=ttl, nx=nx
            ))
        except (RedisError, OSError) as e:
            logger.error(f"Redis SET error for idempotency key {redis_key}: {e}")
            return False
