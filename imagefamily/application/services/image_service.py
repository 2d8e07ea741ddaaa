import re
import uuid
import logging
import mimetypes
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..ports.image_repo import ImageRepository
from ..ports.storage_repo import StorageRepository
from ..ports.activity_log import ActivityLog
from .family_index import ORIGINAL_TAG_RE, SIZE_CLASS_RANK, VARIANT_MARKER_TAG
from .variant_service import VariantService, DerivationResult
from ...config import settings
from ...db.models import Image, VARIANTS_FOLDER
from ...exceptions import ValidationError, SourceUnavailable, StorageWriteFailure
from ... import imaging

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"^[A-Za-z0-9 _\-]+$")
MAX_TAG_LENGTH = 50
TAG_OPERATIONS = ("add", "replace", "remove")


def validate_tag(tag: str) -> Optional[str]:
    """Return an error message for an invalid tag, None when it is acceptable."""
    if len(tag) > MAX_TAG_LENGTH:
        return f"Tags must be {MAX_TAG_LENGTH} characters or fewer."
    if not TAG_RE.match(tag):
        return "Only letters, numbers, spaces, hyphens, and underscores allowed in tags."
    return None


def is_reserved_tag(tag: str) -> bool:
    """Size classes, the variant marker and original-{id} belong to the variant engine."""
    return tag in SIZE_CLASS_RANK or tag == VARIANT_MARKER_TAG or bool(ORIGINAL_TAG_RE.match(tag))


def clean_tags(tags: List[str], allow_reserved: bool = False) -> List[str]:
    """Trim, collapse whitespace, drop empties and duplicates; reject invalid tokens.

    Reserved family tags are rejected unless ``allow_reserved`` is set, which
    only tag removal does.
    """
    cleaned: List[str] = []
    for raw in tags or []:
        tag = re.sub(r"\s+", " ", str(raw)).strip()
        if not tag:
            continue
        error = validate_tag(tag)
        if error:
            raise ValidationError(f"Invalid tag '{tag}': {error}")
        if not allow_reserved and is_reserved_tag(tag):
            raise ValidationError(f"Tag '{tag}' is reserved for generated variants")
        if tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def family_tags(image: Image) -> List[str]:
    """Tags that tie a variant to its family; bulk edits never strip these."""
    if not image.is_variant():
        return []
    return [t for t in (image.tags or []) if is_reserved_tag(t)]


@dataclass
class ImageService:
    image_repo: ImageRepository
    storage_repo: StorageRepository
    activity_log: ActivityLog
    variant_service: VariantService

    def upload_original(
        self,
        data: bytes,
        original_filename: str,
        content_type: str,
        folder: Optional[str] = None,
        tags: Optional[List[str]] = None,
        title: Optional[str] = None,
        alt_text: Optional[str] = None,
    ) -> Image:
        if content_type not in settings.ALLOWED_IMAGE_TYPES:
            raise ValidationError(f"File type {content_type} not allowed", display_title=original_filename)
        if not data:
            raise ValidationError("Uploaded file is empty", display_title=original_filename)
        if len(data) > settings.MAX_FILE_SIZE:
            raise ValidationError(f"File too large (max {settings.MAX_FILE_SIZE // (1024*1024)}MB)", display_title=original_filename)
        folder = self._clean_folder(folder)
        cleaned_tags = clean_tags(tags or [])

        extension = os.path.splitext(original_filename or "")[1].lower() or mimetypes.guess_extension(content_type) or ".jpg"
        filename = f"images/{uuid.uuid4().hex}{extension}"
        try:
            self.storage_repo.put(filename, data)
        except Exception as e:
            raise StorageWriteFailure(f"Could not store upload {original_filename}", display_title=original_filename, cause=e) from e

        try:
            with self.image_repo.transaction():
                image = self.image_repo.create(
                    filename=filename,
                    original_filename=original_filename,
                    url=self.storage_repo.url_for(filename),
                    size=len(data),
                    mime_type=content_type,
                    folder=folder,
                    tags=cleaned_tags,
                    title=title,
                    alt_text=alt_text,
                )
                self.activity_log.record(image.id, "image_uploaded", {"filename": filename, "original_filename": original_filename})
        except Exception:
            self.storage_repo.delete(filename)
            raise
        logger.info(f"Uploaded image {image.id} as {filename}")

        try:
            image = self.extract_metadata(image.id)
        except (ValidationError, SourceUnavailable) as e:
            logger.warning(f"Could not get image dimensions for {image.id}: {e.message}")
        return image

    def extract_metadata(self, image_id: int) -> Image:
        image = self.image_repo.find(image_id)
        try:
            data = self.storage_repo.get(image.filename)
        except SourceUnavailable:
            raise
        except Exception as e:
            raise SourceUnavailable(f"Source object {image.filename} is unavailable", image_id=image.id, display_title=image.display_title, cause=e) from e
        try:
            info = imaging.read_info(data)
        except ValueError as e:
            raise ValidationError(f"{image.display_title} is not a readable image", image_id=image.id, display_title=image.display_title, cause=e) from e

        with self.image_repo.transaction():
            image = self.image_repo.update(image.id, width=info.width, height=info.height, size=info.size, mime_type=info.mime_type)
            self.activity_log.record(image.id, "metadata_extracted", {"width": info.width, "height": info.height, "size": info.size, "mime_type": info.mime_type})
        return image

    def reprocess(self, image_id: int, generate_variants: bool = True) -> Dict[str, Any]:
        """Refresh metadata, then derive the default variants for large enough originals."""
        image = self.extract_metadata(image_id)
        derivation: Optional[DerivationResult] = None
        threshold = settings.REPROCESS_MIN_DIMENSION
        if generate_variants and image.is_original() and (image.width > threshold or image.height > threshold):
            derivation = self.variant_service.derive_variants(image.id)
        return {"image": image, "derivation": derivation}

    def update_image(self, image_id: int, **fields: Any) -> Image:
        image = self.image_repo.find(image_id)
        if "folder" in fields:
            folder = self._clean_folder(fields["folder"]) if image.is_original() else fields["folder"]
            if image.is_variant() and folder != VARIANTS_FOLDER:
                raise ValidationError("Variants must stay in the variants folder", image_id=image.id, display_title=image.display_title)
            fields["folder"] = folder
        if "tags" in fields:
            keep = family_tags(image)
            fields["tags"] = keep + clean_tags([t for t in (fields["tags"] or []) if t not in keep])
        with self.image_repo.transaction():
            image = self.image_repo.update(image_id, **fields)
            self.activity_log.record(image_id, "image_updated", {"fields": sorted(fields)})
        return image

    def bulk_tag(self, image_ids: List[int], tags: List[str], operation: str = "add") -> Dict[str, Any]:
        if not image_ids:
            raise ValidationError("Image IDs array is required and cannot be empty")
        if operation not in TAG_OPERATIONS:
            raise ValidationError("Operation must be 'add', 'replace', or 'remove'")
        cleaned = clean_tags(tags, allow_reserved=operation == "remove")
        if not cleaned:
            raise ValidationError("At least one tag is required")

        updated = 0
        with self.image_repo.transaction():
            for image_id in dict.fromkeys(image_ids):
                image = self.image_repo.find(image_id)
                current = list(image.tags or [])
                keep = family_tags(image)
                if operation == "add":
                    new_tags = current + [t for t in cleaned if t not in current]
                elif operation == "replace":
                    new_tags = keep + [t for t in cleaned if t not in keep]
                else:
                    new_tags = [t for t in current if t not in cleaned or t in keep]
                if new_tags != current:
                    self.image_repo.update(image_id, tags=new_tags)
                    self.activity_log.record(image_id, "bulk_tag", {"operation": operation, "tags": cleaned})
                    updated += 1
        logger.info(f"Bulk tag ({operation}) {cleaned} on {len(image_ids)} image(s): {updated} updated")
        return {"requested_count": len(image_ids), "updated_count": updated, "operation": operation, "tags": cleaned}

    def bulk_move(self, image_ids: List[int], folder: str) -> Dict[str, Any]:
        if not image_ids:
            raise ValidationError("Image IDs array is required and cannot be empty")
        target = self._clean_folder(folder)
        if not target:
            raise ValidationError("Target folder is required")

        moved = 0
        with self.image_repo.transaction():
            for image_id in dict.fromkeys(image_ids):
                image = self.image_repo.find(image_id)
                if image.is_variant():
                    raise ValidationError("Variants cannot be moved out of the variants folder", image_id=image.id, display_title=image.display_title)
                if image.folder != target:
                    self.image_repo.update(image_id, folder=target)
                    self.activity_log.record(image_id, "moved", {"from": image.folder, "to": target})
                    moved += 1
        logger.info(f"Moved {moved} image(s) to folder '{target}'")
        return {"requested_count": len(image_ids), "moved_count": moved, "folder": target}

    def attach(self, image_id: int, attachable_type: str, attachable_id: int, is_primary: bool = False) -> None:
        with self.image_repo.transaction():
            self.image_repo.attach(image_id, attachable_type, attachable_id, is_primary=is_primary)
            self.activity_log.record(image_id, "attached", {"type": attachable_type, "id": attachable_id})

    def detach(self, image_id: int, attachable_type: str, attachable_id: int) -> int:
        with self.image_repo.transaction():
            count = self.image_repo.detach(image_id, attachable_type, attachable_id)
            if count:
                self.activity_log.record(image_id, "detached", {"type": attachable_type, "id": attachable_id})
        return count

    def list_originals(self, folder: Optional[str] = None, tag: Optional[str] = None, search: Optional[str] = None) -> List[Image]:
        return self.image_repo.list_originals(folder=folder, tag=tag, search=search)

    def list_folders(self) -> List[str]:
        return self.image_repo.list_folders()

    def list_tags(self) -> List[str]:
        return self.image_repo.list_tags()

    def stats(self) -> Dict[str, int]:
        return self.image_repo.stats()

    @staticmethod
    def _clean_folder(folder: Optional[str]) -> Optional[str]:
        if folder is None:
            return None
        folder = folder.strip()
        if folder == VARIANTS_FOLDER:
            raise ValidationError(f"'{VARIANTS_FOLDER}' is reserved for generated variants")
        return folder or None
