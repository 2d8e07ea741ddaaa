import logging
from typing import Optional, Dict, Any, List, Iterable

from sqlmodel import Session, select

from .....db.models import ImageActivity
from .....application.ports.activity_log import ActivityLog, ActivityRecord

logger = logging.getLogger(__name__)


class SqlActivityRepository(ActivityLog):
    """Activity rows share the caller's session so they commit or roll back with the work they describe."""

    def __init__(self, session: Session):
        self.session = session

    def record(self, image_id: int, action: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.session.add(ImageActivity(image_id=image_id, action=action, details=details or {}))
        self.session.flush()
        logger.info(f"ACTIVITY: image={image_id} action={action} details={details or {}}")

    def list_for_images(self, image_ids: Iterable[int]) -> List[ActivityRecord]:
        ids = list(image_ids)
        if not ids:
            return []
        rows = self.session.exec(
            select(ImageActivity)
            .where(ImageActivity.image_id.in_(ids))
            .order_by(ImageActivity.created_at.desc(), ImageActivity.id.desc())
        ).all()
        return [
            ActivityRecord(id=r.id, image_id=r.image_id, action=r.action, details=dict(r.details or {}), created_at=r.created_at)
            for r in rows
        ]
