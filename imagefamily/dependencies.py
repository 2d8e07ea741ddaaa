from fastapi import Depends
from sqlmodel import Session

from .database import get_session
from .storage import get_storage, get_lock
from .application.ports.storage_repo import StorageRepository
from .application.ports.keyed_lock import KeyedLock
from .application.services import (
    FamilyIndex,
    VariantService,
    DeletionService,
    ImageService,
    ActivityService,
)
from .infrastructure.persistence.sqlalchemy.repositories.image_repository_sql import SqlImageRepository
from .infrastructure.persistence.sqlalchemy.repositories.activity_repository_sql import SqlActivityRepository


class Services:
    """Per-request service graph sharing one session, so activity rows commit with the work they describe."""

    def __init__(self, session: Session, storage: StorageRepository, lock: KeyedLock):
        self.image_repo = SqlImageRepository(session)
        self.activity_log = SqlActivityRepository(session)
        self.family_index = FamilyIndex(image_repo=self.image_repo)
        self.variants = VariantService(
            image_repo=self.image_repo,
            storage_repo=storage,
            lock=lock,
            activity_log=self.activity_log,
            family_index=self.family_index,
        )
        self.deletion = DeletionService(
            image_repo=self.image_repo,
            storage_repo=storage,
            activity_log=self.activity_log,
            family_index=self.family_index,
        )
        self.images = ImageService(
            image_repo=self.image_repo,
            storage_repo=storage,
            activity_log=self.activity_log,
            variant_service=self.variants,
        )
        self.activity = ActivityService(family_index=self.family_index, activity_log=self.activity_log)


def get_services(session: Session = Depends(get_session)) -> Services:
    return Services(session, get_storage(), get_lock())
