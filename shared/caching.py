"""
Redis Caching Layer

This module caches read-heavy aggregate data. Cache failures never
reach the caller: a read error is a miss and a write error is logged.

Features:
- Statistics caching (most used services, users by role)
- Pattern-based invalidation after writes
- TTL-based expiration
"""

import redis
import pickle
import hashlib
import logging
import os
from typing import Optional, Any

logger = logging.getLogger(__name__)

redis_client = redis.Redis(
    host=os.getenv('REDIS_HOST', 'localhost'),
    port=int(os.getenv('REDIS_PORT', 6379)),
    db=int(os.getenv('REDIS_CACHE_DB', 1)),
    socket_connect_timeout=1,
    socket_timeout=1,
    decode_responses=False
)

CACHE_TTL = {
    "service_stats": 300,   # 5 minutes
    "user_stats": 600,      # 10 minutes
}


def generate_cache_key(prefix: str, *args, **kwargs) -> str:
    """
    Generate unique cache key from function arguments.

    Args:
        prefix: Cache key prefix (e.g., "service_stats")
        *args: Positional arguments
        **kwargs: Keyword arguments

    Returns:
        str: Unique cache key

    Example:
        >>> generate_cache_key("service_stats", limit=5).startswith("cache:service_stats:")
        True
    """
    key_parts = [prefix]

    for arg in args:
        key_parts.append(str(arg))

    for k, v in sorted(kwargs.items()):
        key_parts.append(f"{k}={v}")

    key_string = ":".join(key_parts)
    key_hash = hashlib.md5(key_string.encode()).hexdigest()[:16]

    return f"cache:{prefix}:{key_hash}"


def invalidate_cache_pattern(pattern: str) -> int:
    """
    Invalidate all cache entries of one type.

    Args:
        pattern: Cache type (e.g., "service_stats")

    Returns:
        int: Number of keys deleted

    Example:
        # Drop every cached ranking after a reservation changes
        invalidate_cache_pattern("service_stats")
    """
    try:
        keys = redis_client.keys(f"cache:{pattern}:*")
        if keys:
            return redis_client.delete(*keys)
        return 0
    except redis.RedisError as e:
        logger.warning(f"Pattern invalidation error: {e}")
        return 0


class CacheManager:
    """
    Context manager for cache operations.

    Example:
        with CacheManager("service_stats") as cache:
            data = cache.get(limit=5)
            if data is None:
                data = compute_ranking()
                cache.set(data, limit=5)
    """

    def __init__(self, cache_type: str):
        """
        Initialize cache manager.

        Args:
            cache_type: Type of cache to manage
        """
        self.cache_type = cache_type

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        pass

    @property
    def client(self):
        # resolved per call so tests can swap the module-level client
        return redis_client

    def get(self, **kwargs) -> Optional[Any]:
        """
        Get data from cache.

        Returns:
            Cached data or None on a miss or a cache error
        """
        try:
            cached_data = self.client.get(generate_cache_key(self.cache_type, **kwargs))
            if cached_data:
                return pickle.loads(cached_data)
        except (redis.RedisError, pickle.UnpicklingError, TypeError) as e:
            logger.warning(f"Cache get error: {e}")
        return None

    def set(self, data: Any, ttl: Optional[int] = None, **kwargs) -> bool:
        """
        Set data in cache.

        Args:
            data: Data to cache
            ttl: Time to live in seconds
            **kwargs: Arguments to identify cache entry

        Returns:
            bool: True if successful
        """
        try:
            cache_key = generate_cache_key(self.cache_type, **kwargs)
            cache_ttl = ttl or CACHE_TTL.get(self.cache_type, 300)
            self.client.setex(cache_key, cache_ttl, pickle.dumps(data))
            return True
        except redis.RedisError as e:
            logger.warning(f"Cache set error: {e}")
            return False

    def invalidate_all(self) -> int:
        return invalidate_cache_pattern(self.cache_type)
