import io
import threading
from typing import Dict

import pytest
from PIL import Image as PILImage
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine

from imagefamily.db import models  # noqa: F401
from imagefamily.db.models import Image, VARIANTS_FOLDER
from imagefamily.infrastructure.locks.memory_keyed_lock import InMemoryKeyedLock
from imagefamily.infrastructure.persistence.sqlalchemy.repositories.image_repository_sql import SqlImageRepository
from imagefamily.infrastructure.persistence.sqlalchemy.repositories.activity_repository_sql import SqlActivityRepository
from imagefamily.application.services import FamilyIndex, VariantService, DeletionService, ImageService, ActivityService


def make_image_bytes(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    buf = io.BytesIO()
    PILImage.new(mode, (width, height), color=(200, 30, 30) if mode == "RGB" else None).save(buf, format=fmt)
    return buf.getvalue()


class FakeStorage:
    def __init__(self):
        self.objects: Dict[str, bytes] = {}
        self.puts = []
        self.deletes = []
        self.fail_get = False
        self.fail_put = False
        self.fail_delete = False
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes:
        if self.fail_get:
            raise OSError("storage offline")
        with self._lock:
            if key not in self.objects:
                raise FileNotFoundError(key)
            return self.objects[key]

    def put(self, key: str, data: bytes) -> str:
        if self.fail_put:
            raise OSError("disk full")
        with self._lock:
            self.objects[key] = data
            self.puts.append(key)
        return key

    def delete(self, key: str) -> None:
        if self.fail_delete:
            raise OSError("permission denied")
        with self._lock:
            self.objects.pop(key, None)
            self.deletes.append(key)

    def exists(self, key: str) -> bool:
        return key in self.objects

    def size(self, key: str) -> int:
        return len(self.objects[key])

    def url_for(self, key: str) -> str:
        return f"http://test/uploads/{key}"


class Env:
    def __init__(self, session: Session, storage: FakeStorage):
        self.session = session
        self.storage = storage
        self.repo = SqlImageRepository(session)
        self.activity_log = SqlActivityRepository(session)
        self.lock = InMemoryKeyedLock()
        self.index = FamilyIndex(image_repo=self.repo)
        self.variants = VariantService(
            image_repo=self.repo,
            storage_repo=storage,
            lock=self.lock,
            activity_log=self.activity_log,
            family_index=self.index,
        )
        self.deletion = DeletionService(image_repo=self.repo, storage_repo=storage, activity_log=self.activity_log, family_index=self.index)
        self.images = ImageService(image_repo=self.repo, storage_repo=storage, activity_log=self.activity_log, variant_service=self.variants)
        self.activity = ActivityService(family_index=self.index, activity_log=self.activity_log)

    def add_original(self, width: int = 2000, height: int = 1000, filename: str = "images/photo.png", store: bool = True, **attrs) -> Image:
        if store:
            self.storage.put(filename, make_image_bytes(width or 800, height or 400))
        return self.repo.create(
            filename=filename,
            original_filename=attrs.pop("original_filename", "photo.png"),
            url=self.storage.url_for(filename),
            width=width,
            height=height,
            mime_type="image/png",
            **attrs,
        )

    def add_variant_row(self, original_id: int, size_class: str, **attrs) -> Image:
        tags = attrs.pop("tags", [size_class, "variant", f"original-{original_id}"])
        filename = attrs.pop("filename", f"images/manual-{original_id}-{size_class}.png")
        return self.repo.create(
            filename=filename,
            url=f"http://test/uploads/{filename}",
            folder=VARIANTS_FOLDER,
            tags=tags,
            **attrs,
        )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def env(session, storage):
    return Env(session, storage)


@pytest.fixture
def image_bytes():
    return make_image_bytes
