import io
import logging
from dataclasses import dataclass
from typing import Tuple

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

OUTPUT_FORMAT = "JPEG"
OUTPUT_MIME_TYPE = "image/jpeg"


@dataclass
class ImageInfo:
    width: int
    height: int
    mime_type: str
    size: int


def read_info(image_data: bytes) -> ImageInfo:
    """
    Probe dimensions and content type of encoded image bytes
    """
    try:
        with Image.open(io.BytesIO(image_data)) as img:
            width, height = img.size
            mime_type = Image.MIME.get(img.format or "", "application/octet-stream")
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not decode image: {e}") from e
    return ImageInfo(width=width, height=height, mime_type=mime_type, size=len(image_data))


def needs_resize(width: int, height: int, target: int) -> bool:
    """False when the source already fits inside target x target (no upscaling)."""
    return not (width <= target and height <= target)


def resize_to_fit(image_data: bytes, target: int, quality: int = 85) -> Tuple[bytes, int, int]:
    """
    Scale to fit within target x target keeping aspect ratio, re-encode as JPEG
    """
    try:
        with Image.open(io.BytesIO(image_data)) as img:
            # Convert to RGB if necessary
            if img.mode not in ('RGB', 'L'):
                img = img.convert('RGB')

            img.thumbnail((target, target), Image.Resampling.LANCZOS)
            width, height = img.size

            output = io.BytesIO()
            img.save(output, format=OUTPUT_FORMAT, quality=quality, optimize=True)
            return output.getvalue(), width, height
    except (UnidentifiedImageError, OSError) as e:
        logger.error(f"Error resizing image to {target}px: {e}")
        raise ValueError(f"Could not resize image: {e}") from e
