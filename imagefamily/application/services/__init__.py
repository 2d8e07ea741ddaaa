# Services package (re-export feature modules for stable imports)
from .family_index import FamilyIndex, FamilyView, ResolvedOriginal, FallbackSelf
from .variant_service import VariantService, DerivationResult, VariantFailure
from .deletion_service import DeletionService, BulkDeleteResult
from .image_service import ImageService
from .activity_service import ActivityService

__all__ = [
    "FamilyIndex",
    "FamilyView",
    "ResolvedOriginal",
    "FallbackSelf",
    "VariantService",
    "DerivationResult",
    "VariantFailure",
    "DeletionService",
    "BulkDeleteResult",
    "ImageService",
    "ActivityService",
]
