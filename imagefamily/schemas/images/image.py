# imagefamily/schemas/images/image.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

class ImageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    filename: str
    original_filename: Optional[str] = None
    url: str
    size: int
    width: int
    height: int
    mime_type: Optional[str] = None
    folder: Optional[str] = None
    tags: List[str] = []
    title: Optional[str] = None
    alt_text: Optional[str] = None
    description: Optional[str] = None
    is_primary: bool = False
    sort_order: int = 0
    imageable_type: Optional[str] = None
    imageable_id: Optional[int] = None
    parent_image_id: Optional[int] = None
    size_class: Optional[str] = None
    display_title: str
    created_at: datetime
    updated_at: datetime

class ResolutionResponse(BaseModel):
    status: str  # 'resolved' | 'fallback_self'
    reason: Optional[str] = None
    parsed_original_id: Optional[int] = None

class FamilyResponse(BaseModel):
    original: ImageResponse
    variants: List[ImageResponse]
    all: List[ImageResponse]
    resolution: ResolutionResponse

class VariantFailureResponse(BaseModel):
    variant_type: str
    error: str
    message: str

class DerivationResponse(BaseModel):
    original_id: int
    requested_types: List[str]
    generated: List[ImageResponse]
    generated_count: int
    created_types: List[str] = []
    reused_types: List[str] = []
    skipped_types: List[str] = []
    failures: List[VariantFailureResponse] = []

class DeriveVariantsRequest(BaseModel):
    types: Optional[List[str]] = Field(None, description="Variant types to derive; defaults to thumb, small, medium")

class BulkIdsRequest(BaseModel):
    ids: List[int] = Field(..., min_length=1)

class BulkDeleteResponse(BaseModel):
    success: bool
    deleted_count: int
    deleted_items: List[Dict[str, Any]]
    errors: List[Dict[str, Any]]

class BulkTagRequest(BulkIdsRequest):
    tags: List[str] = Field(..., min_length=1)
    operation: str = Field("add", description="add | replace | remove")

    @field_validator('operation')
    @classmethod
    def validate_operation(cls, v):
        if v not in ('add', 'replace', 'remove'):
            raise ValueError("Operation must be 'add', 'replace', or 'remove'")
        return v

class BulkMoveRequest(BulkIdsRequest):
    folder: str = Field(..., min_length=1, max_length=100)

class ImageUpdateRequest(BaseModel):
    title: Optional[str] = Field(None, max_length=255)
    alt_text: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = None
    folder: Optional[str] = Field(None, max_length=100)
    tags: Optional[List[str]] = None
    is_primary: Optional[bool] = None
    sort_order: Optional[int] = None

class AttachRequest(BaseModel):
    attachable_type: str = Field(..., description="product | product_variant")
    attachable_id: int
    is_primary: bool = False

    @field_validator('attachable_type')
    @classmethod
    def validate_attachable_type(cls, v):
        if v not in ('product', 'product_variant'):
            raise ValueError("attachable_type must be 'product' or 'product_variant'")
        return v

class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    image_id: int
    action: str
    details: Dict[str, Any]
    created_at: datetime

class LibraryStatsResponse(BaseModel):
    total: int
    originals: int
    variants: int
    unattached: int
    folders: int
