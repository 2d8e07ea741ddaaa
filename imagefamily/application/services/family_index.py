import re
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from ..ports.image_repo import ImageRepository
from ...db.models import Image, VARIANTS_FOLDER

logger = logging.getLogger(__name__)

ORIGINAL_TAG_PREFIX = "original-"
ORIGINAL_TAG_RE = re.compile(r"^original-(\d+)$")
VARIANT_MARKER_TAG = "variant"
SIZE_CLASS_RANK = {"thumb": 1, "small": 2, "medium": 3, "large": 4}
UNRANKED = 5

MALFORMED_FAMILY_TAG = "malformed_family_tag"
ORIGINAL_MISSING = "original_missing"


def original_tag(original_id: int) -> str:
    return f"{ORIGINAL_TAG_PREFIX}{original_id}"


def is_variant(image: Image) -> bool:
    return image.folder == VARIANTS_FOLDER


def parse_original_id(tags: List[str]) -> Optional[int]:
    """Return the id from the single original-{id} tag, or None if there are zero or several."""
    matches = [m for m in (ORIGINAL_TAG_RE.match(t) for t in (tags or [])) if m]
    if len(matches) != 1:
        return None
    return int(matches[0].group(1))


def variant_rank(image: Image) -> int:
    ranks = [SIZE_CLASS_RANK[t] for t in (image.tags or []) if t in SIZE_CLASS_RANK]
    return min(ranks) if ranks else UNRANKED


def sort_variants(variants: List[Image]) -> List[Image]:
    return sorted(variants, key=lambda v: (variant_rank(v), v.created_at, v.id or 0))


@dataclass
class ResolvedOriginal:
    original: Image
    is_fallback: bool = False


@dataclass
class FallbackSelf:
    """The image stands in for its own original. ``reason`` is one of
    MALFORMED_FAMILY_TAG or ORIGINAL_MISSING."""

    original: Image
    reason: str
    parsed_original_id: Optional[int] = None
    is_fallback: bool = True


Resolution = Union[ResolvedOriginal, FallbackSelf]


@dataclass
class FamilyView:
    original: Image
    variants: List[Image] = field(default_factory=list)
    resolution: Optional[Resolution] = None

    @property
    def all(self) -> List[Image]:
        return [self.original] + list(self.variants)

    @property
    def is_fallback(self) -> bool:
        return bool(self.resolution and self.resolution.is_fallback)


@dataclass
class FamilyIndex:
    image_repo: ImageRepository

    def resolve_original(self, image: Image) -> Resolution:
        if not is_variant(image):
            return ResolvedOriginal(original=image)

        original_id = parse_original_id(image.tags)
        if original_id is None:
            logger.warning(f"Variant image {image.id} has malformed family tags {image.tags}; treating it as its own original")
            return FallbackSelf(original=image, reason=MALFORMED_FAMILY_TAG)

        original = self.image_repo.get(original_id)
        if original is None:
            logger.warning(f"Original image {original_id} for variant {image.id} no longer exists; treating variant as its own original")
            return FallbackSelf(original=image, reason=ORIGINAL_MISSING, parsed_original_id=original_id)
        return ResolvedOriginal(original=original)

    def list_variants(self, original_id: int) -> List[Image]:
        variants = self.image_repo.find_by_folder_and_tags(VARIANTS_FOLDER, [original_tag(original_id)])
        return sort_variants(variants)

    def find_variant(self, original_id: int, size_class: str) -> Optional[Image]:
        matches = self.image_repo.find_by_folder_and_tags(VARIANTS_FOLDER, [original_tag(original_id), size_class])
        if len(matches) > 1:
            logger.warning(f"Found {len(matches)} '{size_class}' variants for image {original_id}; using the oldest")
        return sort_variants(matches)[0] if matches else None

    def variant_count(self, original_id: int) -> int:
        return len(self.image_repo.find_by_folder_and_tags(VARIANTS_FOLDER, [original_tag(original_id)]))

    def get_family(self, image: Image) -> FamilyView:
        resolution = self.resolve_original(image)
        original = resolution.original
        variants = [] if resolution.is_fallback and is_variant(original) else self.list_variants(original.id)
        return FamilyView(original=original, variants=variants, resolution=resolution)

    def get_family_by_id(self, image_id: int) -> FamilyView:
        return self.get_family(self.image_repo.find(image_id))
