from typing import Protocol


class StorageRepository(Protocol):
    """Object storage keyed by filename. ``get`` raises FileNotFoundError for unknown keys."""

    def get(self, key: str) -> bytes:
        ...

    def put(self, key: str, data: bytes) -> str:
        ...

    def delete(self, key: str) -> None:
        ...

    def exists(self, key: str) -> bool:
        ...

    def size(self, key: str) -> int:
        ...

    def url_for(self, key: str) -> str:
        ...
