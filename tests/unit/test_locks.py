"""Unit tests for the Redis mutex helpers."""

from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError, LockNotOwnedError

from transitdesk.src import exceptions, redis


class TestLocks:
    def test_lock_keys(self):
        assert redis.lockKey("driver") == "lock:driver"
        assert redis.lockKey("trip", 4) == "lock:trip:4"

    def test_acquire_row_lock(self):
        lock = redis.acquireLock("trip", 4)
        redis.redisClient.lock.assert_called_once()
        assert redis.redisClient.lock.call_args.args == ("lock:trip:4",)
        assert lock is redis.redisClient.lock.return_value

    def test_acquire_timeout(self):
        redis.redisClient.lock.return_value.acquire.return_value = False
        with pytest.raises(exceptions.LockAcquireTimeout) as error:
            redis.acquireLock("driver")
        assert error.value.status_code == 503

    def test_redis_unreachable(self):
        redis.redisClient.lock.side_effect = ConnectionError("refused")
        with pytest.raises(exceptions.RedisDBError):
            redis.acquireLock("driver")

    def test_release_nothing(self):
        redis.releaseLock(None)

    def test_release_expired(self):
        lock = MagicMock()
        lock.release.side_effect = LockNotOwnedError("expired")
        redis.releaseLock(lock)
        lock.release.assert_called_once()
