"""
Catalog collaborators: chapter storage, page file storage and notifications.

Ingestion only talks to these through the protocols below; the SQL and
local-filesystem implementations are what the service runs with.
"""
import logging
import os
from dataclasses import dataclass, field
from typing import List, Protocol

from sqlalchemy.exc import IntegrityError

from config import settings
from database import SessionLocal
from errors import DuplicateChapter, WorkNotFound
from models import Chapter, Work

logger = logging.getLogger(__name__)


@dataclass
class WorkRecord:
    id: int
    title: str


@dataclass
class ChapterRecord:
    id: int
    work_id: int
    identifier: str
    name: str
    pages: List[str] = field(default_factory=list)


class CatalogStore(Protocol):

    def find_work(self, work_id: int) -> WorkRecord:
        ...

    def create_work(self, fields: dict) -> WorkRecord:
        ...

    def set_cover(self, work_id: int, cover_url: str) -> None:
        ...

    def list_chapters(self, work_id: int) -> List[ChapterRecord]:
        ...

    def create_chapter(self, work_id: int, identifier: str, name: str, source_url: str = None) -> ChapterRecord:
        ...

    def append_pages(self, chapter_id: int, paths: List[str]) -> None:
        ...

    def delete_chapter(self, chapter_id: int) -> None:
        ...


class AssetStore(Protocol):

    def write_file(self, path: str, data: bytes) -> str:
        ...

    def delete(self, path: str) -> None:
        ...


class Notifier(Protocol):

    def notify_new_chapter(self, work_id: int, chapter_id: int, identifier: str, work_name: str) -> None:
        ...


def _chapter_record(chapter: Chapter) -> ChapterRecord:
    return ChapterRecord(
        id=chapter.id,
        work_id=chapter.work_id,
        identifier=chapter.identifier,
        name=chapter.name,
        pages=list(chapter.pages or []),
    )


class SqlCatalogStore:
    """Catalog backed by the ``works`` and ``chapters`` tables."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def find_work(self, work_id: int) -> WorkRecord:
        db = self.session_factory()
        try:
            work = db.query(Work).filter_by(id=work_id).first()
            if not work:
                raise WorkNotFound(f"Work {work_id} not found")
            return WorkRecord(id=work.id, title=work.title)
        finally:
            db.close()

    def create_work(self, fields: dict) -> WorkRecord:
        """Insert a work from imported metadata."""
        db = self.session_factory()
        try:
            work = Work(**fields)
            db.add(work)
            db.commit()
            logger.info(f"Created work {work.id}: {work.title}")
            return WorkRecord(id=work.id, title=work.title)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def set_cover(self, work_id: int, cover_url: str) -> None:
        db = self.session_factory()
        try:
            updated = db.query(Work).filter_by(id=work_id).update({Work.cover_url: cover_url})
            if not updated:
                raise WorkNotFound(f"Work {work_id} not found")
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def list_chapters(self, work_id: int) -> List[ChapterRecord]:
        db = self.session_factory()
        try:
            chapters = db.query(Chapter).filter_by(work_id=work_id).order_by(Chapter.id).all()
            return [_chapter_record(chapter) for chapter in chapters]
        finally:
            db.close()

    def create_chapter(self, work_id: int, identifier: str, name: str, source_url: str = None) -> ChapterRecord:
        """
        Insert an empty chapter.

        Raises:
            DuplicateChapter: if the work already has this identifier
        """
        db = self.session_factory()
        try:
            chapter = Chapter(
                work_id=work_id,
                identifier=identifier,
                name=name,
                pages=[],
                source_url=source_url,
            )
            db.add(chapter)
            db.commit()
            logger.debug(f"Created chapter {chapter.id} ({identifier}) for work {work_id}")
            return _chapter_record(chapter)
        except IntegrityError as e:
            db.rollback()
            raise DuplicateChapter(f"Work {work_id} already has chapter {identifier}") from e
        finally:
            db.close()

    def append_pages(self, chapter_id: int, paths: List[str]) -> None:
        db = self.session_factory()
        try:
            chapter = db.query(Chapter).filter_by(id=chapter_id).first()
            if not chapter:
                raise ValueError(f"Chapter {chapter_id} not found")
            # Reassign so the JSON column is flagged dirty
            chapter.pages = list(chapter.pages or []) + list(paths)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete_chapter(self, chapter_id: int) -> None:
        db = self.session_factory()
        try:
            db.query(Chapter).filter_by(id=chapter_id).delete()
            db.commit()
            logger.info(f"Deleted chapter {chapter_id}")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


class LocalAssetStore:
    """Writes page files under the uploads directory and returns their public path."""

    def __init__(self, root: str = None):
        self.root = root or settings.uploads_dir

    def _full_path(self, path: str) -> str:
        return os.path.join(self.root, path.lstrip('/'))

    def write_file(self, path: str, data: bytes) -> str:
        full_path = self._full_path(path)
        os.makedirs(os.path.dirname(full_path), exist_ok=True)
        with open(full_path, 'wb') as f:
            f.write(data)
        return '/' + path.lstrip('/')

    def delete(self, path: str) -> None:
        full_path = self._full_path(path)
        if os.path.exists(full_path):
            os.remove(full_path)


class LogNotifier:
    """Notifier that only records the event; fan-out lives outside this service."""

    def notify_new_chapter(self, work_id: int, chapter_id: int, identifier: str, work_name: str) -> None:
        logger.info(f"New chapter {identifier} ({chapter_id}) for '{work_name}' (work {work_id})")
