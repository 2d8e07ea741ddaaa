from dataclasses import dataclass
from typing import List

from ..ports.activity_log import ActivityLog, ActivityRecord
from .family_index import FamilyIndex


@dataclass
class ActivityService:
    family_index: FamilyIndex
    activity_log: ActivityLog

    def activity_for_family(self, image_id: int) -> List[ActivityRecord]:
        """Activity of every member of the image's family, newest first."""
        family = self.family_index.get_family_by_id(image_id)
        ids = [member.id for member in family.all]
        if image_id not in ids:
            ids.append(image_id)
        return self.activity_log.list_for_images(ids)
