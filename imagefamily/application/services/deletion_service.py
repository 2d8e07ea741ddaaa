import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..ports.image_repo import ImageRepository
from ..ports.storage_repo import StorageRepository
from ..ports.activity_log import ActivityLog
from .family_index import FamilyIndex
from ...db.models import Image
from ...exceptions import TransactionFailure, BulkDeletionFailure, ValidationError

logger = logging.getLogger(__name__)


class StagedStorageDeletes:
    """Deletes storage objects but keeps their bytes until the surrounding
    transaction settles, so a rollback can put them back."""

    def __init__(self, storage_repo: StorageRepository) -> None:
        self.storage_repo = storage_repo
        self._staged: List[Tuple[str, bytes]] = []

    def delete(self, key: str) -> None:
        if not self.storage_repo.exists(key):
            logger.warning(f"Storage object {key} is already gone")
            return
        backup = self.storage_repo.get(key)
        self.storage_repo.delete(key)
        self._staged.append((key, backup))

    def restore(self) -> None:
        for key, data in reversed(self._staged):
            try:
                self.storage_repo.put(key, data)
            except Exception as e:
                logger.error(f"Could not restore storage object {key} after rollback: {e}")
        self._staged = []


@dataclass
class BulkDeleteResult:
    success: bool
    deleted_count: int = 0
    deleted_items: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class DeletionService:
    image_repo: ImageRepository
    storage_repo: StorageRepository
    activity_log: ActivityLog
    family_index: Optional[FamilyIndex] = None

    def __post_init__(self) -> None:
        if self.family_index is None:
            self.family_index = FamilyIndex(image_repo=self.image_repo)

    def _delete_one(self, image: Image, staged: StagedStorageDeletes) -> Dict[str, Any]:
        detached = self.image_repo.detach_all(image.id)
        logger.info(f"Detached image {image.id} from {detached} relationship(s)")
        item = {"id": image.id, "title": image.display_title, "filename": image.filename, "detached": detached}
        self.activity_log.record(image.id, "image_deleted", item)
        self.image_repo.delete(image.id)
        staged.delete(image.filename)
        return item

    def _delete_all(self, images: List[Image], context: Image) -> List[Dict[str, Any]]:
        context_id, context_title = context.id, context.display_title
        staged = StagedStorageDeletes(self.storage_repo)
        deleted: List[Dict[str, Any]] = []
        try:
            with self.image_repo.transaction():
                for image in images:
                    deleted.append(self._delete_one(image, staged))
        except Exception as e:
            staged.restore()
            logger.error(f"Deletion for image {context_id} ({context_title}) rolled back: {e}")
            raise TransactionFailure(
                f"Failed to delete image '{context_title}': {e}",
                image_id=context_id,
                display_title=context_title,
                cause=e,
            ) from e
        return deleted

    def delete_image(self, image_id: int) -> Dict[str, Any]:
        """Delete one image record and its stored object. Variants are left alone."""
        image = self.image_repo.find(image_id)
        item = self._delete_all([image], image)[0]
        logger.info(f"Deleted image {image_id} ({item['title']})")
        return item

    def delete_variants(self, original_id: int) -> List[Dict[str, Any]]:
        """Delete every variant of an original in one all-or-nothing unit."""
        original = self.image_repo.find(original_id)
        variants = self.family_index.list_variants(original_id)
        if not variants:
            return []
        deleted = self._delete_all(variants, original)
        logger.info(f"Deleted {len(deleted)} variant(s) of image {original_id}")
        return deleted

    def delete_family(self, original_id: int) -> List[Dict[str, Any]]:
        """Opt-in cascade: variants first, then the original, all-or-nothing."""
        original = self.image_repo.find(original_id)
        if original.is_variant():
            raise ValidationError("delete_family expects an original image", image_id=original.id, display_title=original.display_title)
        variants = self.family_index.list_variants(original_id)
        deleted = self._delete_all(variants + [original], original)
        logger.info(f"Deleted family of image {original_id}: {len(deleted)} record(s)")
        return deleted

    def bulk_delete_images(self, image_ids: List[int]) -> BulkDeleteResult:
        if not image_ids:
            raise ValidationError("At least one image id is required")
        image_ids = list(dict.fromkeys(image_ids))

        staged = StagedStorageDeletes(self.storage_repo)
        deleted: List[Dict[str, Any]] = []
        errors: List[Dict[str, Any]] = []
        try:
            with self.image_repo.transaction():
                for image_id in image_ids:
                    image = self.image_repo.get(image_id)
                    if image is None:
                        errors.append({"id": image_id, "title": None, "error": f"Image {image_id} not found"})
                        continue
                    title = image.display_title
                    try:
                        deleted.append(self._delete_one(image, staged))
                    except Exception as e:
                        logger.error(f"Bulk delete failed for image {image_id} ({title}): {e}")
                        errors.append({"id": image_id, "title": title, "error": str(e)})
                if errors:
                    raise BulkDeletionFailure(errors)
        except BulkDeletionFailure:
            staged.restore()
            logger.warning(f"Bulk delete of {len(image_ids)} image(s) rolled back with {len(errors)} error(s)")
            return BulkDeleteResult(success=False, errors=errors)
        except Exception as e:
            staged.restore()
            logger.error(f"Bulk delete of {len(image_ids)} image(s) rolled back: {e}")
            errors.append({"id": None, "title": None, "error": str(e)})
            return BulkDeleteResult(success=False, errors=errors)

        logger.info(f"Bulk deleted {len(deleted)} image(s)")
        return BulkDeleteResult(success=True, deleted_count=len(deleted), deleted_items=deleted)
