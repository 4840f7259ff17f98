"""Try a job's sources in order until one yields new chapters."""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from catalog import CatalogStore
from errors import NoSourceAvailable, SourceEmpty, SourceUnavailable, UnsupportedSource
from importer import ChapterImporter, ImportedChapter
from job_store import JobStore
from matching import select_new_chapters
from models import IngestionJob
from progress import ProgressCallback, ProgressEvent, emit
from sources import SourceRegistry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class ResolutionResult:
    imported: List[ImportedChapter] = field(default_factory=list)
    used_source_index: Optional[int] = None
    used_source_locator: Optional[str] = None
    errors: List[str] = field(default_factory=list)


def try_order(sources: List[str], last_used_index: Optional[int]) -> List[Tuple[int, str]]:
    """
    ``(index, locator)`` pairs in the order they should be tried.

    The last source that worked goes first; the rest keep their original order.
    """
    indexed = list(enumerate(sources))
    if last_used_index is None or not 0 <= last_used_index < len(sources):
        return indexed
    return [indexed[last_used_index]] + [item for item in indexed if item[0] != last_used_index]


class ResolutionController:
    """
    Resolve one job run against its ordered sources.

    A source that fails or lists no chapters is recorded and skipped. The
    first source with at least one new chapter wins and its new chapters
    are imported. If sources answered but none had anything new, only the
    bookkeeping is written. If no source answered, ``NoSourceAvailable``
    is raised and nothing is written.
    """

    def __init__(
            self,
            registry: SourceRegistry,
            catalog: CatalogStore,
            job_store: JobStore,
            importer: ChapterImporter,
            inter_source_delay: float = 1.0,
            sleep=time.sleep,
            clock: Callable[[], datetime] = _utcnow,
    ):
        self.registry = registry
        self.catalog = catalog
        self.job_store = job_store
        self.importer = importer
        self.inter_source_delay = inter_source_delay
        self.sleep = sleep
        self.clock = clock

    def resolve(self, job: IngestionJob, progress: Optional[ProgressCallback] = None) -> ResolutionResult:
        sources = job.source_list()
        if not sources:
            raise NoSourceAvailable([], message=f"Job {job.id} has no sources")

        work = self.catalog.find_work(job.work_id)
        existing = [chapter.identifier for chapter in self.catalog.list_chapters(job.work_id)]
        order = try_order(sources, job.last_used_source_index)

        errors: List[str] = []
        answered: Optional[Tuple[int, str]] = None

        for attempt, (index, locator) in enumerate(order):
            if attempt > 0:
                self.sleep(self.inter_source_delay)

            emit(progress, ProgressEvent(
                stage='source', status='started',
                message=f"Checking {locator}",
                current=attempt + 1, total=len(order),
                data={"index": index, "locator": locator},
            ))

            try:
                parsed = self.registry.parse(locator)
            except (UnsupportedSource, SourceUnavailable, SourceEmpty) as e:
                logger.warning(f"Job {job.id}: source {locator} failed: {e}")
                errors.append(f"{locator}: {e}")
                emit(progress, ProgressEvent(
                    stage='source', status='error', message=str(e),
                    data={"index": index, "locator": locator},
                ))
                continue

            answered = (index, locator)
            new_chapters = select_new_chapters(parsed.chapters, existing)
            if not new_chapters:
                logger.info(f"Job {job.id}: no new chapters on {locator}")
                emit(progress, ProgressEvent(
                    stage='source', status='completed',
                    message=f"No new chapters on {locator}",
                    data={"index": index, "locator": locator, "new_chapters": 0},
                ))
                continue

            logger.info(f"Job {job.id}: {len(new_chapters)} new chapters on {locator}")
            emit(progress, ProgressEvent(
                stage='source', status='completed',
                message=f"{len(new_chapters)} new chapters on {locator}",
                data={"index": index, "locator": locator, "new_chapters": len(new_chapters)},
            ))
            imported = self.importer.import_chapters(work, new_chapters, progress)
            self.job_store.record_check(job.id, self.clock(), index, locator)
            return ResolutionResult(
                imported=imported,
                used_source_index=index,
                used_source_locator=locator,
                errors=errors,
            )

        if answered is None:
            raise NoSourceAvailable(errors)

        index, locator = answered
        self.job_store.record_check(job.id, self.clock(), index, locator)
        return ResolutionResult(used_source_index=index, used_source_locator=locator, errors=errors)
