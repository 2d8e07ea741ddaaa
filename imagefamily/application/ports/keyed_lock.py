from typing import Protocol, ContextManager


class KeyedLock(Protocol):
    def hold(self, key: str) -> ContextManager[None]:
        """Block until ``key`` is exclusively held; release on exit."""
        ...
