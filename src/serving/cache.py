"""
Report Cache

Redis-backed cache for revenue reports. Reports are stored as JSON under
``<namespace>:<kind>:<start>:<end>[:<extra>...]`` with a TTL, and the whole
namespace is dropped after every load that wrote rows.

Redis is optional: when it is down or was never initialized, reports are
computed on every request.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from src.config import get_settings

logger = structlog.get_logger(__name__)

_redis: Optional[Redis] = None


async def init_redis() -> Redis:
    """Connect to Redis and verify the connection with a ping"""
    global _redis

    if _redis is not None:
        return _redis

    config = get_settings().redis
    pool = ConnectionPool.from_url(
        config.get_url(),
        max_connections=config.max_connections,
        socket_timeout=config.socket_timeout,
        decode_responses=True,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except RedisError:
        await client.aclose(close_connection_pool=True)
        raise

    _redis = client
    logger.info("Redis connection established", host=config.host, db=config.db)
    return _redis


async def close_redis() -> None:
    """Close the client and its pool"""
    global _redis

    if _redis is None:
        return
    await _redis.aclose(close_connection_pool=True)
    _redis = None
    logger.info("Redis connection closed")


def get_redis() -> Redis:
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def _encode(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


class CacheManager:
    """
    Namespaced JSON cache.

    Decimals and dates come back as strings; response models parse them
    back into their declared types.

    Example:
        cache = CacheManager("revenue", default_ttl=1800)
        report = await cache.get_or_set(cache.key("total", start, end), compute)
    """

    def __init__(self, namespace: str, default_ttl: int = 3600):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def key(self, kind: str, start: datetime, end: datetime, *extra: Any) -> str:
        """Report key for a kind and a date range, plus any extra parameters"""
        parts = [kind, start.date().isoformat(), end.date().isoformat()]
        parts.extend(str(e) for e in extra)
        return ":".join(parts)

    def _full_key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await get_redis().get(self._full_key(key))
        return None if raw is None else json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await get_redis().setex(
            self._full_key(key),
            ttl or self.default_ttl,
            json.dumps(value, default=_encode),
        )

    async def invalidate_all(self) -> int:
        """Delete every key in the namespace"""
        client = get_redis()
        keys = [key async for key in client.scan_iter(match=f"{self.namespace}:*")]
        if not keys:
            return 0
        return await client.delete(*keys)

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
    ) -> Any:
        """
        Cached value for ``key``, computing and storing it on a miss.

        Cache errors are logged and the value is computed uncached.
        """
        try:
            cached = await self.get(key)
        except (RedisError, RuntimeError) as e:
            logger.debug("Cache unavailable, computing uncached", key=key, error=str(e))
            return await factory()

        if cached is not None:
            logger.debug("Cache hit", key=key)
            return cached

        value = await factory()
        try:
            await self.set(key, value, ttl)
        except RedisError as e:
            logger.warning("Cache write failed", key=key, error=str(e))
        return value


revenue_cache = CacheManager("revenue", default_ttl=get_settings().cache.revenue_ttl_seconds)


async def invalidate_revenue_cache(result: Any = None) -> None:
    """Drop cached revenue reports; safe to call without Redis"""
    try:
        removed = await revenue_cache.invalidate_all()
    except (RedisError, RuntimeError) as e:
        logger.debug("Revenue cache not invalidated", error=str(e))
        return
    logger.info("Revenue cache invalidated", keys=removed)
