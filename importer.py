"""Create catalog chapters for newly found chapters and attach their pages."""
import logging
from dataclasses import dataclass
from typing import List, Optional

from catalog import CatalogStore, Notifier, WorkRecord
from downloader import AssetDownloadPipeline
from errors import DuplicateChapter, NoAssetsFound
from matching import format_identifier, require_number
from progress import ProgressCallback, ProgressEvent, emit
from sources import ChapterRef

logger = logging.getLogger(__name__)


@dataclass
class ImportedChapter:
    chapter_id: int
    identifier: str
    name: str
    page_count: int


class ChapterImporter:
    """
    Per new chapter: create record, download pages, append pages, notify.

    A chapter whose pages cannot be downloaded is deleted again so the
    catalog never holds an empty chapter.
    """

    def __init__(self, catalog: CatalogStore, pipeline: AssetDownloadPipeline, notifier: Notifier):
        self.catalog = catalog
        self.pipeline = pipeline
        self.notifier = notifier

    def import_chapters(
            self,
            work: WorkRecord,
            chapter_refs: List[ChapterRef],
            progress: Optional[ProgressCallback] = None,
    ) -> List[ImportedChapter]:
        refs = sorted(chapter_refs, key=require_number)
        imported: List[ImportedChapter] = []

        for position, ref in enumerate(refs, start=1):
            emit(progress, ProgressEvent(
                stage='chapter', status='started',
                message=f"Importing '{ref.name}'",
                current=position, total=len(refs),
            ))
            result = self.import_chapter(work, ref, progress)
            if result is None:
                emit(progress, ProgressEvent(
                    stage='chapter', status='skipped',
                    message=f"Skipped '{ref.name}'",
                    current=position, total=len(refs),
                ))
                continue

            imported.append(result)
            emit(progress, ProgressEvent(
                stage='chapter', status='completed',
                message=f"Imported '{ref.name}' ({result.page_count} pages)",
                current=position, total=len(refs),
                data={"chapter_id": result.chapter_id},
            ))

        logger.info(f"Imported {len(imported)}/{len(refs)} chapters for '{work.title}'")
        return imported

    def import_chapter(
            self,
            work: WorkRecord,
            ref: ChapterRef,
            progress: Optional[ProgressCallback] = None,
    ) -> Optional[ImportedChapter]:
        identifier = format_identifier(require_number(ref))

        try:
            chapter = self.catalog.create_chapter(work.id, identifier, ref.name, source_url=ref.locator)
        except DuplicateChapter as e:
            # Another run imported it first
            logger.info(f"Skipping chapter {identifier}: {e}")
            return None

        paths: List[str] = []
        try:
            paths = self.pipeline.download_chapter_assets(ref, chapter.id, progress)
            self.catalog.append_pages(chapter.id, paths)
        except NoAssetsFound as e:
            logger.warning(f"Rolling back chapter {identifier} of '{work.title}': {e}")
            self.catalog.delete_chapter(chapter.id)
            return None
        except Exception:
            logger.error(f"Failed to import chapter {identifier} of '{work.title}', rolling back")
            self.pipeline.discard(paths)
            self.catalog.delete_chapter(chapter.id)
            raise

        try:
            self.notifier.notify_new_chapter(work.id, chapter.id, identifier, work.title)
        except Exception as e:
            logger.warning(f"Notification for chapter {chapter.id} failed: {e}")

        return ImportedChapter(
            chapter_id=chapter.id,
            identifier=identifier,
            name=ref.name,
            page_count=len(paths),
        )
