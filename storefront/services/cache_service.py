"""Redis-backed read cache for product and order detail endpoints.

Reads fall through to the database on any Redis error. Writes to the
underlying data never touch Redis directly: services call
``schedule_invalidation`` after commit and the cache worker deletes the keys.
"""
import json
from typing import Any, Optional

import redis
import structlog

from storefront.core.config import settings

logger = structlog.get_logger()

_client: Optional[redis.Redis] = None


def product_key(product_id: int) -> str:
    return f"cache:product:{product_id}"


def order_key(order_id: int) -> str:
    return f"cache:order:{order_id}"


def get_client() -> redis.Redis:
    global _client
    if _client is None:
        _client = redis.Redis.from_url(
            settings.REDIS_URL,
            socket_timeout=1,
            socket_connect_timeout=1,
            decode_responses=True,
        )
    return _client


def get_cached(key: str) -> Optional[Any]:
    if not settings.CACHE_ENABLED:
        return None
    try:
        raw = get_client().get(key)
    except redis.RedisError as exc:
        logger.warning("cache_read_failed", key=key, error=str(exc))
        return None
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        logger.warning("cache_payload_corrupt", key=key)
        return None


def set_cached(key: str, value: Any, ttl: int) -> None:
    if not settings.CACHE_ENABLED:
        return
    try:
        get_client().setex(key, ttl, json.dumps(value, default=str))
    except redis.RedisError as exc:
        logger.warning("cache_write_failed", key=key, error=str(exc))


def invalidate(*keys: str) -> int:
    """Delete keys now. Raises on Redis errors so the worker can retry."""
    if not keys:
        return 0
    return get_client().delete(*keys)


def schedule_invalidation(*keys: str) -> None:
    """Hand key invalidation to the cache worker. Never raises."""
    if not settings.CACHE_ENABLED or not keys:
        return

    from storefront.tasks.cache_tasks import invalidate_cache_keys

    try:
        invalidate_cache_keys.delay(sorted(set(keys)))
    except Exception as exc:
        logger.warning("cache_invalidation_enqueue_failed", keys=list(keys), error=str(exc))
