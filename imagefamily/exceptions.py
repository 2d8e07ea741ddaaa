from typing import Any, Dict, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse


class ImageFamilyError(Exception):
    """Base error for the image family core.

    Carries enough context (image id, display title, underlying cause) for a
    caller to render a specific message.
    """

    status_code: int = 500

    def __init__(self, message: str, image_id: Optional[int] = None, display_title: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.image_id = image_id
        self.display_title = display_title
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "image_id": self.image_id,
            "display_title": self.display_title,
            "cause": str(self.cause) if self.cause else None,
        }


class ValidationError(ImageFamilyError):
    status_code = 422


class InvalidVariantType(ValidationError):
    def __init__(self, variant_type: str, allowed: List[str]):
        super().__init__(f"Unknown variant type '{variant_type}' (allowed: {', '.join(allowed)})")
        self.variant_type = variant_type


class ImageNotFound(ImageFamilyError):
    status_code = 404

    def __init__(self, image_id: int):
        super().__init__(f"Image {image_id} not found", image_id=image_id)


class SourceUnavailable(ImageFamilyError):
    status_code = 502


class StorageTimeout(SourceUnavailable):
    status_code = 504


class StorageWriteFailure(ImageFamilyError):
    status_code = 502


class DuplicateVariant(ImageFamilyError):
    """Raised by the record store when (parent_image_id, size_class) already exists."""

    status_code = 409

    def __init__(self, parent_image_id: int, size_class: str, cause: Optional[BaseException] = None):
        super().__init__(f"Variant '{size_class}' already exists for image {parent_image_id}", image_id=parent_image_id, cause=cause)
        self.parent_image_id = parent_image_id
        self.size_class = size_class


class TransactionFailure(ImageFamilyError):
    status_code = 500


class BulkDeletionFailure(ImageFamilyError):
    status_code = 500

    def __init__(self, errors: List[Dict[str, Any]]):
        super().__init__(f"Bulk deletion rolled back: {len(errors)} image(s) failed")
        self.errors = errors

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["errors"] = self.errors
        return data


def create_error_response(error_message: str, details: Optional[Dict[str, Any]] = None) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": details,
        "error": error_message
    }

def create_success_response(data: Any) -> dict:
    """Create a standardized success response"""
    return {
        "success": True,
        "data": data,
        "error": None
    }

async def image_family_exception_handler(request: Request, exc: ImageFamilyError) -> JSONResponse:
    """Render domain errors with the standard envelope"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message, exc.to_dict())
    )
