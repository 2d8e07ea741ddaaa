from typing import Optional, Dict, Any, List, Iterable, Protocol
from dataclasses import dataclass
from datetime import datetime


@dataclass
class ActivityRecord:
    id: int
    image_id: int
    action: str
    details: Dict[str, Any]
    created_at: datetime


class ActivityLog(Protocol):
    def record(self, image_id: int, action: str, details: Optional[Dict[str, Any]] = None) -> None:
        ...

    def list_for_images(self, image_ids: Iterable[int]) -> List[ActivityRecord]:
        ...
