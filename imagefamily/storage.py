from typing import Optional

from .config import settings
from .application.ports.storage_repo import StorageRepository
from .application.ports.keyed_lock import KeyedLock
from .infrastructure.storage.local_storage import LocalStorageRepository
from .infrastructure.storage.timed_storage import TimedStorage
from .infrastructure.locks.memory_keyed_lock import InMemoryKeyedLock


_storage_instance: Optional[StorageRepository] = None
_lock_instance: Optional[KeyedLock] = None

def get_storage() -> StorageRepository:
    global _storage_instance
    if _storage_instance is None:
        _storage_instance = TimedStorage(LocalStorageRepository(), timeout=settings.STORAGE_TIMEOUT_SECONDS)
    return _storage_instance

def get_lock() -> KeyedLock:
    """Redis-backed when REDIS_URL is configured, otherwise a process-local lock."""
    global _lock_instance
    if _lock_instance is None:
        if settings.REDIS_URL:
            from .infrastructure.locks.redis_keyed_lock import RedisKeyedLock
            _lock_instance = RedisKeyedLock(settings.REDIS_URL, timeout=settings.LOCK_TIMEOUT_SECONDS)
        else:
            _lock_instance = InMemoryKeyedLock()
    return _lock_instance
