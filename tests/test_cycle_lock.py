"""Tests for the Redis-backed cycle lock."""

from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError, LockNotOwnedError

from services.cycle_lock import LOCK_NAME, RedisCycleLock


def make_lock(**lock_behaviour):
    redis_lock = MagicMock(**lock_behaviour)
    client = MagicMock()
    client.lock.return_value = redis_lock
    return RedisCycleLock(client, timeout=120), client, redis_lock


class TestRedisCycleLock:
    """Test suite for RedisCycleLock."""

    def test_lock_created_with_timeout(self) -> None:
        _, client, _ = make_lock()

        client.lock.assert_called_once_with(LOCK_NAME, timeout=120)

    def test_acquire_never_blocks(self) -> None:
        guard, _, redis_lock = make_lock()
        redis_lock.acquire.return_value = True

        assert guard.acquire() is True
        redis_lock.acquire.assert_called_once_with(blocking=False)

    def test_held_elsewhere(self) -> None:
        guard, _, redis_lock = make_lock()
        redis_lock.acquire.return_value = False

        assert guard.acquire() is False

    def test_unreachable_redis_counts_as_not_acquired(self) -> None:
        guard, _, redis_lock = make_lock()
        redis_lock.acquire.side_effect = RedisConnectionError("connection refused")

        assert guard.acquire() is False

    def test_release_after_expiry_is_tolerated(self) -> None:
        guard, _, redis_lock = make_lock()
        redis_lock.release.side_effect = LockNotOwnedError("lock expired")

        guard.release()

        redis_lock.release.assert_called_once()

    def test_release_with_redis_down_is_tolerated(self) -> None:
        guard, _, redis_lock = make_lock()
        redis_lock.release.side_effect = RedisConnectionError("connection reset")

        guard.release()
