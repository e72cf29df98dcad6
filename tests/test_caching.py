"""
Unit tests for the tag cache and the invalidation signal.
"""

import json
import pytest
from unittest.mock import Mock, patch

from src.services.caching import (
    COMBINED_CUSTOMER_DATA_TAG,
    INVALIDATION_CHANNEL,
    RUNNING_SCHEDULES_TAG,
    CacheService,
    signal_schedule_change
)


@pytest.fixture
def redis_client():
    """Mock Redis client returned by redis.from_url."""
    with patch('src.services.caching.redis') as mock_redis:
        client = Mock()
        mock_redis.from_url.return_value = client
        yield client


class TestCacheService:
    """Test CacheService against a mocked Redis."""

    def test_disabled_cache_never_connects(self):
        with patch('src.services.caching.redis') as mock_redis:
            cache = CacheService(enabled=False)

        mock_redis.from_url.assert_not_called()
        assert cache.redis_client is None
        assert cache.remember(RUNNING_SCHEDULES_TAG, 'user-1', 60, lambda: ['fresh']) == ['fresh']

    def test_failed_ping_disables_cache(self, redis_client):
        redis_client.ping.side_effect = ConnectionError('refused')

        cache = CacheService('redis://cache:6379/0')

        assert cache.redis_client is None
        assert cache.get('anything') is None

    def test_remember_miss_loads_and_stores(self, redis_client):
        redis_client.get.return_value = None
        loader = Mock(return_value=[{'id': 'job-1'}])

        cache = CacheService('redis://cache:6379/0')
        value = cache.remember(RUNNING_SCHEDULES_TAG, 'user-1', 300, loader)

        assert value == [{'id': 'job-1'}]
        loader.assert_called_once()
        redis_client.setex.assert_called_once_with(
            'tag:running-schedules:user-1', 300, json.dumps([{'id': 'job-1'}])
        )

    def test_remember_hit_skips_loader(self, redis_client):
        redis_client.get.return_value = json.dumps([{'id': 'job-1'}])
        loader = Mock()

        cache = CacheService('redis://cache:6379/0')
        value = cache.remember(RUNNING_SCHEDULES_TAG, 'user-1', 300, loader)

        assert value == [{'id': 'job-1'}]
        loader.assert_not_called()

    def test_invalidate_tags_deletes_and_publishes(self, redis_client):
        redis_client.scan_iter.return_value = iter(['tag:running-schedules:user-1', 'tag:running-schedules:user-2'])
        redis_client.delete.return_value = 2

        cache = CacheService('redis://cache:6379/0')
        deleted = cache.invalidate_tags([RUNNING_SCHEDULES_TAG])

        assert deleted == {RUNNING_SCHEDULES_TAG: 2}
        redis_client.scan_iter.assert_called_once_with(match='tag:running-schedules:*')
        channel, payload = redis_client.publish.call_args[0]
        assert channel == INVALIDATION_CHANNEL
        assert json.loads(payload)['tag'] == RUNNING_SCHEDULES_TAG


class TestSignalScheduleChange:
    """Test the best-effort invalidation signal."""

    def test_invalidates_both_tags(self):
        cache = Mock()
        with patch('src.services.caching.get_cache_service', return_value=cache):
            signal_schedule_change()

        cache.invalidate_tags.assert_called_once_with([RUNNING_SCHEDULES_TAG, COMBINED_CUSTOMER_DATA_TAG])

    def test_failures_are_swallowed(self):
        cache = Mock()
        cache.invalidate_tags.side_effect = RuntimeError('publish failed')
        with patch('src.services.caching.get_cache_service', return_value=cache):
            signal_schedule_change()

        cache.invalidate_tags.assert_called_once()
