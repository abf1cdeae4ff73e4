"""
Redis Configuration - session storage backend
"""

import json
from typing import Any, AsyncIterator, Awaitable, Optional, cast

import redis.asyncio as redis_async
from loguru import logger
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError

LOG_PREFIX = "[Redis]"


class RedisClient:
    """Redis Client Wrapper"""

    _pool: Optional[ConnectionPool] = None
    _client: Optional[redis_async.Redis] = None
    _is_available: bool = False

    @classmethod
    async def init(cls, url: str, pool_size: int = 10):
        """Initialize connection pool"""
        if cls._pool:
            return
        try:
            cls._pool = ConnectionPool.from_url(
                url,
                max_connections=pool_size,
                decode_responses=True,
            )
            cls._client = redis_async.Redis(connection_pool=cls._pool)

            # Health check
            await cls._client.ping()
            cls._is_available = True
            logger.info(f"{LOG_PREFIX} Connected (pool_size={pool_size})")
        except Exception as e:
            cls._is_available = False
            logger.error(f"{LOG_PREFIX} Connection failed: {e}")
            # Sessions cannot be saved without Redis; requests will fail with SessionStoreError

    @classmethod
    async def close(cls):
        """Close connection"""
        if cls._client:
            await cls._client.close()
            cls._client = None
        if cls._pool:
            await cls._pool.disconnect()
            cls._pool = None
        cls._is_available = False

    @classmethod
    def get_client(cls) -> Optional[redis_async.Redis]:
        """Get Redis client"""
        return cls._client

    @classmethod
    def is_available(cls) -> bool:
        """Check if Redis is available"""
        return cls._is_available

    @classmethod
    async def health_check(cls) -> bool:
        """Health check"""
        if not cls._client:
            return False
        try:
            ping_result: Awaitable[bool] = cast(Awaitable[bool], cls._client.ping())
            await ping_result
            cls._is_available = True
            return True
        except Exception:
            cls._is_available = False
            return False

    @classmethod
    async def get(cls, key: str) -> Optional[str]:
        """Stored string, or None when the key is missing or Redis is down."""
        if not cls._client:
            return None
        try:
            result = await cls._client.get(key)
        except RedisError as e:
            cls._is_available = False
            logger.error(f"{LOG_PREFIX} GET failed: {type(e).__name__}")
            return None
        return str(result) if result is not None else None

    @classmethod
    async def set(
        cls,
        key: str,
        value: Any,
        expire: int = 3600,
        keep_ttl: bool = False,
        only_existing: bool = False,
    ) -> bool:
        """
        Write with a TTL; False when Redis could not be reached.

        `keep_ttl` keeps the key's remaining TTL instead of `expire`; `only_existing` skips
        keys that are gone (a skipped write still returns True).
        """
        if not cls._client:
            return False

        if not isinstance(value, str):
            value = json.dumps(value, ensure_ascii=False)

        try:
            if keep_ttl:
                await cls._client.set(key, value, keepttl=True, xx=only_existing)
            else:
                await cls._client.set(key, value, ex=max(int(expire), 1), xx=only_existing)
        except RedisError as e:
            cls._is_available = False
            logger.error(f"{LOG_PREFIX} SET failed: {type(e).__name__}")
            return False
        return True

    @classmethod
    async def delete(cls, key: str) -> bool:
        """Delete key"""
        if not cls._client:
            return False
        try:
            await cls._client.delete(key)
        except RedisError as e:
            logger.error(f"{LOG_PREFIX} DEL failed: {type(e).__name__}")
            return False
        return True

    @classmethod
    async def scan_keys(cls, pattern: str, count: int = 500) -> AsyncIterator[str]:
        """Iterate keys matching `pattern` without blocking the server."""
        if not cls._client:
            return
        async for key in cls._client.scan_iter(match=pattern, count=count):
            yield str(key)
