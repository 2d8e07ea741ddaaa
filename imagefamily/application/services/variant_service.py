import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..ports.image_repo import ImageRepository
from ..ports.storage_repo import StorageRepository
from ..ports.keyed_lock import KeyedLock
from ..ports.activity_log import ActivityLog
from .family_index import (
    FamilyIndex,
    ORIGINAL_TAG_RE,
    SIZE_CLASS_RANK,
    VARIANT_MARKER_TAG,
    original_tag,
)
from ...config import settings
from ...db.models import Image, VARIANTS_FOLDER
from ...exceptions import (
    ImageFamilyError,
    InvalidVariantType,
    SourceUnavailable,
    StorageWriteFailure,
    DuplicateVariant,
    TransactionFailure,
    ValidationError,
)
from ... import imaging

logger = logging.getLogger(__name__)


def variant_filename(original_filename: str, variant_type: str) -> str:
    """{basename}-{type}{ext}; the source extension is kept even though the bytes are JPEG."""
    base, ext = os.path.splitext(original_filename)
    return f"{base}-{variant_type}{ext or '.jpg'}"


def variant_tags(original: Image, variant_type: str) -> List[str]:
    inherited = [
        t for t in (original.tags or [])
        if t not in SIZE_CLASS_RANK and t != VARIANT_MARKER_TAG and not ORIGINAL_TAG_RE.match(t)
    ]
    tags: List[str] = []
    for t in inherited + [variant_type, VARIANT_MARKER_TAG, original_tag(original.id)]:
        if t not in tags:
            tags.append(t)
    return tags


@dataclass
class VariantFailure:
    variant_type: str
    error: ImageFamilyError

    @property
    def message(self) -> str:
        return self.error.message


@dataclass
class DerivationResult:
    original: Image
    requested_types: List[str]
    generated: List[Image] = field(default_factory=list)
    created_types: List[str] = field(default_factory=list)
    reused_types: List[str] = field(default_factory=list)
    skipped_types: List[str] = field(default_factory=list)
    failures: List[VariantFailure] = field(default_factory=list)

    @property
    def generated_count(self) -> int:
        return len(self.generated)


@dataclass
class VariantService:
    image_repo: ImageRepository
    storage_repo: StorageRepository
    lock: KeyedLock
    activity_log: ActivityLog
    family_index: Optional[FamilyIndex] = None
    sizes: Dict[str, int] = field(default_factory=lambda: dict(settings.VARIANT_SIZES))
    default_types: List[str] = field(default_factory=lambda: list(settings.DEFAULT_VARIANT_TYPES))
    quality: int = settings.VARIANT_JPEG_QUALITY

    def __post_init__(self) -> None:
        if self.family_index is None:
            self.family_index = FamilyIndex(image_repo=self.image_repo)

    def validate_types(self, types: Optional[List[str]]) -> List[str]:
        requested: List[str] = []
        for t in (types if types is not None else self.default_types):
            if t not in self.sizes:
                raise InvalidVariantType(t, list(self.sizes))
            if t not in requested:
                requested.append(t)
        return requested

    def derive_variants(self, original_id: int, types: Optional[List[str]] = None) -> DerivationResult:
        requested = self.validate_types(types)
        original = self.image_repo.find(original_id)
        if original.is_variant():
            raise ValidationError("Variants can only be derived from original images", image_id=original.id, display_title=original.display_title)

        result = DerivationResult(original=original, requested_types=requested)
        for variant_type in requested:
            try:
                variant, created = self.derive_variant(original, variant_type)
            except ImageFamilyError as e:
                logger.error(f"Failed to derive {variant_type} variant for image {original.id}: {e.message}")
                result.failures.append(VariantFailure(variant_type=variant_type, error=e))
                continue
            if variant is None:
                result.skipped_types.append(variant_type)
                continue
            result.generated.append(variant)
            (result.created_types if created else result.reused_types).append(variant_type)

        logger.info(
            f"Derived variants for image {original.id}: created={result.created_types} "
            f"reused={result.reused_types} skipped={result.skipped_types} failed={[f.variant_type for f in result.failures]}"
        )
        return result

    def derive_variant(self, original: Image, variant_type: str) -> Tuple[Optional[Image], bool]:
        """Produce or reuse one variant. Returns (variant, created); variant is None when skipped."""
        if variant_type not in self.sizes:
            raise InvalidVariantType(variant_type, list(self.sizes))
        target = self.sizes[variant_type]

        dimensions_known = original.width > 0 and original.height > 0
        if dimensions_known and not imaging.needs_resize(original.width, original.height, target):
            logger.info(f"Skipping {variant_type} for image {original.id}: {original.width}x{original.height} fits in {target}px")
            return None, False

        with self.lock.hold(f"{original.id}:{variant_type}"):
            existing = self.family_index.find_variant(original.id, variant_type)
            if existing is not None:
                return existing, False

            source = self._read_source(original)
            if not dimensions_known:
                info = self._probe(original, source)
                if not imaging.needs_resize(info.width, info.height, target):
                    logger.info(f"Skipping {variant_type} for image {original.id}: {info.width}x{info.height} fits in {target}px")
                    return None, False

            try:
                data, width, height = imaging.resize_to_fit(source, target, quality=self.quality)
            except ValueError as e:
                raise SourceUnavailable(f"Could not decode source for {original.display_title}", image_id=original.id, display_title=original.display_title, cause=e) from e

            filename = variant_filename(original.filename, variant_type)
            try:
                self.storage_repo.put(filename, data)
            except Exception as e:
                raise StorageWriteFailure(f"Could not store {variant_type} variant {filename}", image_id=original.id, display_title=original.display_title, cause=e) from e

            try:
                return self._create_record(original, variant_type, filename, data, width, height), True
            except DuplicateVariant:
                winner = self.family_index.find_variant(original.id, variant_type)
                if winner is None:
                    raise
                logger.info(f"Variant {variant_type} for image {original.id} was created concurrently; reusing {winner.id}")
                return winner, False
            except ImageFamilyError:
                self._discard_object(filename)
                raise
            except Exception as e:
                self._discard_object(filename)
                raise TransactionFailure(
                    f"Could not record {variant_type} variant for '{original.display_title}': {e}",
                    image_id=original.id,
                    display_title=original.display_title,
                    cause=e,
                ) from e

    def _read_source(self, original: Image) -> bytes:
        try:
            return self.storage_repo.get(original.filename)
        except SourceUnavailable:
            raise
        except Exception as e:
            raise SourceUnavailable(f"Source object {original.filename} is unavailable", image_id=original.id, display_title=original.display_title, cause=e) from e

    def _probe(self, original: Image, source: bytes) -> imaging.ImageInfo:
        try:
            return imaging.read_info(source)
        except ValueError as e:
            raise SourceUnavailable(f"Could not decode source for {original.display_title}", image_id=original.id, display_title=original.display_title, cause=e) from e

    def _create_record(self, original: Image, variant_type: str, filename: str, data: bytes, width: int, height: int) -> Image:
        suffix = f" ({variant_type})"
        with self.image_repo.transaction():
            variant = self.image_repo.create(
                filename=filename,
                original_filename=original.original_filename,
                url=self.storage_repo.url_for(filename),
                size=len(data),
                width=width,
                height=height,
                mime_type=imaging.OUTPUT_MIME_TYPE,
                folder=VARIANTS_FOLDER,
                tags=variant_tags(original, variant_type),
                title=f"{original.title}{suffix}" if original.title else None,
                alt_text=f"{original.alt_text}{suffix}" if original.alt_text else None,
                description=f"Generated {variant_type} variant of: {original.display_title}",
                parent_image_id=original.id,
                size_class=variant_type,
            )
            self.activity_log.record(original.id, "variant_generated", {"variant_id": variant.id, "type": variant_type, "filename": filename})
        logger.info(f"Created {variant_type} variant {variant.id} ({width}x{height}) for image {original.id}")
        return variant

    def _discard_object(self, filename: str) -> None:
        try:
            self.storage_repo.delete(filename)
        except Exception as e:
            logger.error(f"Could not remove orphaned variant object {filename}: {e}")

    def get_variant(self, original_id: int, variant_type: str) -> Optional[Image]:
        if variant_type not in self.sizes:
            raise InvalidVariantType(variant_type, list(self.sizes))
        return self.family_index.find_variant(original_id, variant_type)
