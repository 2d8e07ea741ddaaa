# imagefamily/db/models/media/image.py
from typing import Optional, List
from sqlmodel import SQLModel, Field
from datetime import datetime
from sqlalchemy import Column, JSON, UniqueConstraint

VARIANTS_FOLDER = "variants"


class Image(SQLModel, table=True):
    __tablename__ = "images"
    __table_args__ = (
        UniqueConstraint("parent_image_id", "size_class", name="uq_images_parent_size_class"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    filename: str = Field(max_length=255, index=True)
    original_filename: Optional[str] = Field(default=None, max_length=255)
    url: str = Field(max_length=500)
    size: int = 0
    width: int = 0
    height: int = 0
    mime_type: Optional[str] = Field(default=None, max_length=100)
    folder: Optional[str] = Field(default=None, max_length=100, index=True)
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False, default=list))
    title: Optional[str] = Field(default=None, max_length=255)
    alt_text: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    is_primary: bool = False
    sort_order: int = 0
    imageable_type: Optional[str] = Field(default=None, max_length=100)
    imageable_id: Optional[int] = None
    # Mirrors the original-{id} tag; intentionally not a foreign key so originals can go without their variants.
    parent_image_id: Optional[int] = Field(default=None, index=True)
    size_class: Optional[str] = Field(default=None, max_length=20)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def display_title(self) -> str:
        return self.title or self.original_filename or self.filename

    def is_variant(self) -> bool:
        return self.folder == VARIANTS_FOLDER

    def is_original(self) -> bool:
        return not self.is_variant()
