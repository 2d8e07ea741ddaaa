# Models package (re-export feature modules for stable imports)
from .media.image import Image, VARIANTS_FOLDER
from .media.attachment import ImageAttachment
from .media.activity import ImageActivity

__all__ = [
    "Image",
    "ImageAttachment",
    "ImageActivity",
    "VARIANTS_FOLDER",
]
