# imagefamily/db/models/media/activity.py
from typing import Optional, Dict, Any
from sqlmodel import SQLModel, Field
from datetime import datetime
from sqlalchemy import Column, JSON

class ImageActivity(SQLModel, table=True):
    __tablename__ = "image_activity"
    id: Optional[int] = Field(default=None, primary_key=True)
    image_id: int = Field(index=True)
    action: str = Field(max_length=100)
    details: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False, default=dict))
    created_at: datetime = Field(default_factory=datetime.utcnow)
