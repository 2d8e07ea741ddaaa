import os
import logging
from typing import Optional

from ...config import settings
from ...application.ports.storage_repo import StorageRepository

logger = logging.getLogger(__name__)


class LocalStorageRepository(StorageRepository):
    def __init__(self, upload_dir: Optional[str] = None, base_url: Optional[str] = None) -> None:
        self.upload_dir = upload_dir or settings.UPLOAD_DIR
        self.base_url = (base_url or settings.BASE_URL).rstrip("/")

    def _path(self, key: str) -> str:
        root = os.path.abspath(self.upload_dir)
        path = os.path.abspath(os.path.join(root, key))
        if os.path.commonpath([root, path]) != root:
            raise ValueError(f"Storage key escapes upload directory: {key}")
        return path

    def get(self, key: str) -> bytes:
        with open(self._path(key), "rb") as f:
            return f.read()

    def put(self, key: str, data: bytes) -> str:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        tmp_path = f"{path}.part"
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)
        return key

    def delete(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            logger.warning(f"Storage object {key} already missing on delete")

    def exists(self, key: str) -> bool:
        return os.path.exists(self._path(key))

    def size(self, key: str) -> int:
        return os.path.getsize(self._path(key))

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/uploads/{key}"
