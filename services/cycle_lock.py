# services/cycle_lock.py
"""
Cross-process guard for alert cycles

Each web worker process runs its own scheduler, and Celery may run several
workers; the Redis lock makes sure only one of them sends per tick.
"""

import logging

from redis.exceptions import LockError, RedisError

logger = logging.getLogger(__name__)

LOCK_NAME = 'rate-alerts:cycle-lock'


class RedisCycleLock:
    """Non-blocking redis-py lock with the acquire()/release() shape AlertCycle expects"""

    def __init__(self, client, name: str = LOCK_NAME, timeout: float = 3600):
        self.name = name
        self._lock = client.lock(name, timeout=timeout)

    def acquire(self) -> bool:
        """Take the lock without blocking; an unreachable Redis counts as not acquired"""
        try:
            return bool(self._lock.acquire(blocking=False))
        except RedisError as e:
            logger.error(f"Could not reach Redis for the cycle lock, skipping tick: {e}")
            return False

    def release(self) -> None:
        try:
            self._lock.release()
        except LockError as e:
            # Lock expired while the cycle ran
            logger.warning(f"Alert cycle lock already released: {e}")
        except RedisError as e:
            logger.error(f"Could not release cycle lock, it will expire on its own: {e}")
