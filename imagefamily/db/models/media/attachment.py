# imagefamily/db/models/media/attachment.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
from sqlalchemy import UniqueConstraint

class ImageAttachment(SQLModel, table=True):
    __tablename__ = "image_attachments"
    __table_args__ = (
        UniqueConstraint("image_id", "attachable_type", "attachable_id", name="uq_image_attachments_target"),
    )
    id: Optional[int] = Field(default=None, primary_key=True)
    image_id: int = Field(index=True)
    attachable_type: str = Field(max_length=100)  # product | product_variant
    attachable_id: int = Field(index=True)
    is_primary: bool = False
    sort_order: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
