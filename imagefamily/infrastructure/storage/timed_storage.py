import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Callable, Optional

from ...config import settings
from ...application.ports.storage_repo import StorageRepository
from ...exceptions import StorageTimeout

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="storage-io")


class TimedStorage(StorageRepository):
    """Bounds every call on the wrapped storage with a timeout.

    A call that exceeds the limit raises StorageTimeout; the worker thread is
    left to finish on its own.
    """

    def __init__(self, inner: StorageRepository, timeout: Optional[float] = None) -> None:
        self.inner = inner
        self.timeout = timeout if timeout is not None else settings.STORAGE_TIMEOUT_SECONDS

    def _call(self, op: str, fn: Callable[..., Any], *args: Any) -> Any:
        future = _executor.submit(fn, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeout as e:
            logger.error(f"Storage {op} timed out after {self.timeout}s for {args[0] if args else ''}")
            raise StorageTimeout(f"Storage {op} timed out after {self.timeout}s", cause=e) from e

    def get(self, key: str) -> bytes:
        return self._call("get", self.inner.get, key)

    def put(self, key: str, data: bytes) -> str:
        return self._call("put", self.inner.put, key, data)

    def delete(self, key: str) -> None:
        self._call("delete", self.inner.delete, key)

    def exists(self, key: str) -> bool:
        return self._call("exists", self.inner.exists, key)

    def size(self, key: str) -> int:
        return self._call("size", self.inner.size, key)

    def url_for(self, key: str) -> str:
        return self.inner.url_for(key)
