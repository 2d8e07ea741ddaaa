import json
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterable, Iterator

from sqlalchemy import String, cast, or_, func
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .....db.models import Image, ImageAttachment, VARIANTS_FOLDER
from .....application.ports.image_repo import ImageRepository
from .....exceptions import ValidationError, ImageNotFound, DuplicateVariant

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = {
    "original_filename", "url", "size", "width", "height", "mime_type", "folder", "tags",
    "title", "alt_text", "description", "is_primary", "sort_order", "imageable_type", "imageable_id",
}

LIKE_ESCAPE = "\\"


def _escape_like(text: str) -> str:
    return text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")


def _tag_filter(tag: str):
    # Serialized tags carry \uXXXX escapes for non-ASCII text, so the backslash must be literal.
    return cast(Image.tags, String).like(f"%{_escape_like(json.dumps(tag))}%", escape=LIKE_ESCAPE)


class SqlImageRepository(ImageRepository):
    def __init__(self, session: Session):
        self.session = session
        self._depth = 0

    def _commit(self) -> None:
        # Inside transaction() the outermost block owns the commit.
        if self._depth:
            self.session.flush()
        else:
            self.session.commit()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.session.rollback()
            raise
        self._depth -= 1
        if self._depth == 0:
            self.session.commit()

    def create(self, **attributes: Any) -> Image:
        if not attributes.get("filename"):
            raise ValidationError("filename is required")
        if not attributes.get("url"):
            raise ValidationError("url is required", display_title=attributes.get("filename"))
        attributes["tags"] = list(attributes.get("tags") or [])

        record = Image(**attributes)
        self.session.add(record)
        try:
            self._commit()
        except IntegrityError as e:
            self.session.rollback()
            if record.parent_image_id is not None and record.size_class:
                raise DuplicateVariant(record.parent_image_id, record.size_class, cause=e) from e
            raise ValidationError(f"Could not create image record: {e.orig}", display_title=record.filename, cause=e) from e
        if not self._depth:
            self.session.refresh(record)
        return record

    def get(self, image_id: int) -> Optional[Image]:
        return self.session.get(Image, image_id)

    def find(self, image_id: int) -> Image:
        record = self.get(image_id)
        if record is None:
            raise ImageNotFound(image_id)
        return record

    def find_by_folder_and_tags(self, folder: str, tags: Iterable[str]) -> List[Image]:
        wanted = list(tags)
        stmt = select(Image).where(Image.folder == folder)
        # Text prefilter on the serialized JSON; exact containment is checked below.
        for tag in wanted:
            stmt = stmt.where(_tag_filter(tag))
        stmt = stmt.order_by(Image.created_at, Image.id)
        rows = self.session.exec(stmt).all()
        return [r for r in rows if set(wanted).issubset(set(r.tags or []))]

    def update(self, image_id: int, **attributes: Any) -> Image:
        record = self.find(image_id)
        for key, value in attributes.items():
            if key not in UPDATABLE_FIELDS:
                raise ValidationError(f"Field '{key}' cannot be updated", image_id=image_id, display_title=record.display_title)
            if key == "tags":
                value = list(value or [])
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        self.session.add(record)
        self._commit()
        if not self._depth:
            self.session.refresh(record)
        return record

    def delete(self, image_id: int) -> None:
        record = self.find(image_id)
        self.session.delete(record)
        self._commit()

    def list_originals(self, folder: Optional[str] = None, tag: Optional[str] = None, search: Optional[str] = None) -> List[Image]:
        stmt = select(Image).where(or_(Image.folder != VARIANTS_FOLDER, Image.folder.is_(None)))
        if folder:
            stmt = stmt.where(Image.folder == folder)
        if tag:
            stmt = stmt.where(_tag_filter(tag))
        if search:
            pattern = f"%{_escape_like(search)}%"
            stmt = stmt.where(or_(
                Image.title.ilike(pattern, escape=LIKE_ESCAPE),
                Image.original_filename.ilike(pattern, escape=LIKE_ESCAPE),
                Image.filename.ilike(pattern, escape=LIKE_ESCAPE),
            ))
        stmt = stmt.order_by(Image.created_at.desc(), Image.id.desc())
        rows = self.session.exec(stmt).all()
        if tag:
            rows = [r for r in rows if tag in (r.tags or [])]
        return list(rows)

    def list_folders(self) -> List[str]:
        rows = self.session.exec(
            select(Image.folder).where(Image.folder.is_not(None), Image.folder != "").distinct()
        ).all()
        return sorted(rows)

    def list_tags(self) -> List[str]:
        tags = set()
        for row in self.session.exec(select(Image.tags)).all():
            tags.update(row or [])
        return sorted(tags)

    def stats(self) -> Dict[str, int]:
        total = self.session.exec(select(func.count(Image.id))).one()
        variants = self.session.exec(select(func.count(Image.id)).where(Image.folder == VARIANTS_FOLDER)).one()
        attached_ids = select(ImageAttachment.image_id)
        unattached = self.session.exec(
            select(func.count(Image.id)).where(Image.imageable_id.is_(None), Image.id.not_in(attached_ids))
        ).one()
        folders = self.session.exec(
            select(func.count(func.distinct(Image.folder))).where(Image.folder.is_not(None))
        ).one()
        return {
            "total": total,
            "originals": total - variants,
            "variants": variants,
            "unattached": unattached,
            "folders": folders,
        }

    def attach(self, image_id: int, attachable_type: str, attachable_id: int, is_primary: bool = False) -> None:
        self.find(image_id)
        existing = self.session.exec(
            select(ImageAttachment).where(
                ImageAttachment.image_id == image_id,
                ImageAttachment.attachable_type == attachable_type,
                ImageAttachment.attachable_id == attachable_id,
            )
        ).first()
        if existing:
            existing.is_primary = is_primary
            self.session.add(existing)
        else:
            self.session.add(ImageAttachment(
                image_id=image_id,
                attachable_type=attachable_type,
                attachable_id=attachable_id,
                is_primary=is_primary,
            ))
        self._commit()

    def detach(self, image_id: int, attachable_type: str, attachable_id: int) -> int:
        rows = self.session.exec(
            select(ImageAttachment).where(
                ImageAttachment.image_id == image_id,
                ImageAttachment.attachable_type == attachable_type,
                ImageAttachment.attachable_id == attachable_id,
            )
        ).all()
        for row in rows:
            self.session.delete(row)
        self._commit()
        return len(rows)

    def detach_all(self, image_id: int) -> int:
        rows = self.session.exec(select(ImageAttachment).where(ImageAttachment.image_id == image_id)).all()
        for row in rows:
            self.session.delete(row)
        count = len(rows)
        record = self.get(image_id)
        if record is not None and record.imageable_id is not None:
            record.imageable_type = None
            record.imageable_id = None
            self.session.add(record)
            count += 1
        self._commit()
        return count
