import logging
from contextlib import contextmanager
from typing import Iterator, Optional

import redis
from redis.exceptions import LockError

from ...application.ports.keyed_lock import KeyedLock
from ...exceptions import ImageFamilyError

logger = logging.getLogger(__name__)


class RedisKeyedLock(KeyedLock):
    """Distributed per-key lock for derivation running across several workers."""

    def __init__(self, url: str, prefix: str = "imgfam:lock:", timeout: float = 60.0, blocking_timeout: Optional[float] = None) -> None:
        self.client = redis.Redis.from_url(url)
        self.prefix = prefix
        self.timeout = timeout
        self.blocking_timeout = blocking_timeout if blocking_timeout is not None else timeout

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.client.lock(f"{self.prefix}{key}", timeout=self.timeout, blocking_timeout=self.blocking_timeout)
        if not lock.acquire(blocking=True):
            raise ImageFamilyError(f"Could not acquire lock {key} within {self.blocking_timeout}s")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                logger.warning(f"Lock {key} expired before release: {e}")
