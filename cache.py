"""Redis-backed read cache with per-operation policies declared as data.

Each entry in ``CACHE_POLICIES`` says how one operation uses the cache: the
key its result is stored under, how long it lives, and which key patterns it
invalidates when it succeeds. Routers compose ``cached`` and ``invalidate``
around the service call; services themselves know nothing about caching.

The cache is an accelerator only. Every Redis failure is logged and treated
as a miss, so the database stays the source of truth.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple

import redis

from config import CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachePolicy:
    """How one operation reads from or invalidates the cache."""
    key_template: Optional[str] = None
    ttl: int = CACHE_TTL_SECONDS
    invalidates: Tuple[str, ...] = field(default_factory=tuple)


CACHE_POLICIES: Dict[str, CachePolicy] = {
    # Reads
    "list_products": CachePolicy(key_template="products:v1:list:{in_stock_only}", ttl=CACHE_TTL_SECONDS),
    "get_product": CachePolicy(key_template="products:v1:detail:{product_id}", ttl=CACHE_TTL_SECONDS),
    "list_orders": CachePolicy(key_template="orders:v1:list:{owner_id}", ttl=60),
    # Writes
    "create_product": CachePolicy(invalidates=("products:v1:list:*",)),
    "restock_product": CachePolicy(invalidates=("products:v1:list:*", "products:v1:detail:{product_id}")),
    "create_order": CachePolicy(invalidates=("products:v1:*", "orders:v1:list:{owner_id}")),
    "update_order_status": CachePolicy(invalidates=("orders:v1:list:{owner_id}",)),
}


class CacheService:
    """JSON values in Redis under TTL."""

    def __init__(self, redis_client: redis.Redis):
        """
        Initialize cache service.

        Args:
            redis_client: Redis client created with decode_responses=True
        """
        self.redis_client = redis_client

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self.redis_client.get(key)
        except redis.RedisError as e:
            logger.warning("Cache read failed", extra={"cache_key": key, "error": str(e)})
            return None
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            self.redis_client.setex(key, ttl, json.dumps(value))
        except redis.RedisError as e:
            logger.warning("Cache write failed", extra={"cache_key": key, "error": str(e)})

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns the number removed."""
        try:
            keys = list(self.redis_client.scan_iter(match=pattern))
            if not keys:
                return 0
            return self.redis_client.delete(*keys)
        except redis.RedisError as e:
            logger.warning("Cache invalidation failed", extra={"pattern": pattern, "error": str(e)})
            return 0


def cached(cache: Optional[CacheService], operation: str, loader: Callable[[], Any], **params: Any) -> Any:
    """
    Return the cached result of ``operation`` or load and store it.

    Args:
        cache: Cache service, or None to always call the loader
        operation: Key into CACHE_POLICIES
        loader: Zero-argument function producing a JSON-serializable value
        **params: Values substituted into the policy's key template

    Returns:
        Cached or freshly loaded value
    """
    policy = CACHE_POLICIES[operation]
    if cache is None or policy.key_template is None:
        return loader()

    key = policy.key_template.format(**params)
    value = cache.get(key)
    if value is not None:
        logger.debug("Cache hit", extra={"cache_key": key})
        return value

    value = loader()
    if value is not None:
        cache.set(key, value, policy.ttl)
    return value


def invalidate(cache: Optional[CacheService], operation: str, **params: Any) -> None:
    """Drop every cache entry that ``operation`` makes stale."""
    if cache is None:
        return
    for template in CACHE_POLICIES[operation].invalidates:
        cache.delete_pattern(template.format(**params))
