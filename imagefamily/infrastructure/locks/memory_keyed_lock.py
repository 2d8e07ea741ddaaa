import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List

from ...application.ports.keyed_lock import KeyedLock


class InMemoryKeyedLock(KeyedLock):
    """Per-key mutex for a single process. Entries are dropped once no holder or waiter remains."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._store: Dict[str, List] = {}  # key -> [lock, refcount]

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            rec = self._store.setdefault(key, [threading.Lock(), 0])
            rec[1] += 1
        rec[0].acquire()
        try:
            yield
        finally:
            rec[0].release()
            with self._guard:
                rec[1] -= 1
                if rec[1] == 0:
                    self._store.pop(key, None)

    def active_keys(self) -> int:
        with self._guard:
            return len(self._store)
