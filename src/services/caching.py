"""
Tag-based caching service using Redis.

This module provides:
- Read-through caching of query results grouped under tags
- Tag invalidation, published on a Redis channel for other consumers
- The best-effort invalidation signal fired after every schedule mutation
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, Optional
from datetime import datetime
import redis
from flask import current_app

logger = logging.getLogger(__name__)

# Cache tags
RUNNING_SCHEDULES_TAG = 'running-schedules'
COMBINED_CUSTOMER_DATA_TAG = 'combined-customer-data'

INVALIDATION_CHANNEL = 'cache-invalidation'


class CacheService:
    """Redis-based tag cache."""

    def __init__(self, redis_url: str = None, enabled: bool = True):
        """Initialize the cache service."""
        self.redis_url = redis_url or 'redis://localhost:6379/0'
        self.redis_client = None
        if enabled:
            self._connect()

    def _connect(self):
        """Connect to Redis."""
        try:
            self.redis_client = redis.from_url(self.redis_url, decode_responses=True)
            # Test connection
            self.redis_client.ping()
            logger.info("Successfully connected to Redis")
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            self.redis_client = None

    @staticmethod
    def tag_key(tag: str, key: Any) -> str:
        return f"tag:{tag}:{key}"

    def get(self, key: str) -> Optional[Any]:
        """Get a value from cache."""
        if not self.redis_client:
            return None

        try:
            value = self.redis_client.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.error(f"Error getting cache key {key}: {str(e)}")
            return None

    def set(self, key: str, value: Any, ttl: int = 300) -> bool:
        """Set a value in cache with TTL."""
        if not self.redis_client:
            return False

        try:
            serialized_value = json.dumps(value)
            return bool(self.redis_client.setex(key, ttl, serialized_value))
        except Exception as e:
            logger.error(f"Error setting cache key {key}: {str(e)}")
            return False

    def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a pattern."""
        if not self.redis_client:
            return 0

        try:
            keys = list(self.redis_client.scan_iter(match=pattern))
            if keys:
                return self.redis_client.delete(*keys)
            return 0
        except Exception as e:
            logger.error(f"Error deleting cache pattern {pattern}: {str(e)}")
            return 0

    def remember(self, tag: str, key: Any, ttl: int, loader: Callable[[], Any]) -> Any:
        """Return the cached value for ``key`` under ``tag``, loading and storing it on a miss."""
        cache_key = self.tag_key(tag, key)
        cached = self.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit for key: {cache_key}")
            return cached

        logger.debug(f"Cache miss for key: {cache_key}")
        value = loader()
        self.set(cache_key, value, ttl)
        return value

    def invalidate_tags(self, tags: Iterable[str]) -> Dict[str, int]:
        """Drop every entry cached under the given tags and announce it."""
        deleted = {}
        for tag in tags:
            deleted[tag] = self.delete_pattern(self.tag_key(tag, '*'))
            if self.redis_client:
                self.redis_client.publish(
                    INVALIDATION_CHANNEL,
                    json.dumps({'tag': tag, 'at': datetime.utcnow().isoformat()})
                )
            logger.info(f"Invalidated {deleted[tag]} cache entries for tag {tag}")
        return deleted

# Global cache service instance
cache_service = None

def get_cache_service() -> CacheService:
    """Get the global cache service instance."""
    global cache_service
    if cache_service is None:
        cache_service = CacheService(
            redis_url=current_app.config.get('REDIS_URL'),
            enabled=current_app.config.get('CACHE_ENABLED', True)
        )
    return cache_service

def signal_schedule_change():
    """
    Invalidate the schedule and customer views after a job mutation.

    Fire-and-forget: failures are logged and never reach the caller.
    """
    try:
        get_cache_service().invalidate_tags([RUNNING_SCHEDULES_TAG, COMBINED_CUSTOMER_DATA_TAG])
    except Exception as e:
        logger.warning(f"Cache invalidation failed: {str(e)}")
