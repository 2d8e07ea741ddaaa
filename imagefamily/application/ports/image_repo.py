from typing import Optional, List, Dict, Any, Iterable, ContextManager

from ...db.models import Image


class ImageRepository:
    """Record store for Image rows.

    ``find_by_folder_and_tags`` is the query primitive the family index is
    built on: an image matches when it is in ``folder`` and carries every tag
    in ``tags``.
    """

    def create(self, **attributes: Any) -> Image:
        ...

    def get(self, image_id: int) -> Optional[Image]:
        ...

    def find(self, image_id: int) -> Image:
        ...

    def find_by_folder_and_tags(self, folder: str, tags: Iterable[str]) -> List[Image]:
        ...

    def update(self, image_id: int, **attributes: Any) -> Image:
        ...

    def delete(self, image_id: int) -> None:
        ...

    def list_originals(self, folder: Optional[str] = None, tag: Optional[str] = None, search: Optional[str] = None) -> List[Image]:
        ...

    def list_folders(self) -> List[str]:
        ...

    def list_tags(self) -> List[str]:
        ...

    def stats(self) -> Dict[str, int]:
        ...

    def attach(self, image_id: int, attachable_type: str, attachable_id: int, is_primary: bool = False) -> None:
        ...

    def detach(self, image_id: int, attachable_type: str, attachable_id: int) -> int:
        ...

    def detach_all(self, image_id: int) -> int:
        ...

    def transaction(self) -> ContextManager[None]:
        ...
