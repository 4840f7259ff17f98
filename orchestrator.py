"""Runs ingestion jobs: scheduled dispatch, manual runs and one-off imports."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from catalog import CatalogStore, LocalAssetStore, LogNotifier, SqlCatalogStore, WorkRecord
from config import settings
from database import SessionLocal
from downloader import AssetDownloadPipeline
from errors import IngestionError, SourceEmpty
from importer import ChapterImporter, ImportedChapter
from job_store import JobStore
from matching import in_selection, parse_chapter_selection, select_new_chapters
from models import IngestionJob
from progress import ProgressCallback
from resolver import ResolutionController, ResolutionResult
from scheduling import due_windows, job_seed, schedule_hour_for
from sources import ParsedSource, SourceRegistry, build_registry
from sources.http import HttpClient

logger = logging.getLogger(__name__)


@dataclass
class DispatchReport:
    """Outcome of one scheduler tick."""
    due: int = 0
    succeeded: int = 0
    failed: int = 0
    imported: int = 0
    errors: Dict[int, str] = field(default_factory=dict)


@dataclass
class WorkImport:
    """A work created from a source page and the chapters imported into it."""
    work: WorkRecord
    imported: List[ImportedChapter] = field(default_factory=list)
    cover_url: Optional[str] = None


@dataclass
class SourceCheck:
    job_id: int
    locator: str
    title: Optional[str] = None
    chapter_count: int = 0
    error: Optional[str] = None


class IngestionOrchestrator:
    """Entry point shared by the scheduler, the RQ worker, the API and the CLI."""

    def __init__(
            self,
            job_store: JobStore,
            catalog: CatalogStore,
            registry: SourceRegistry,
            importer: ChapterImporter,
            resolver: ResolutionController,
            max_workers: int = 1,
            weekly_weekday: int = 6,
            legacy_daily_hours=(0, 6, 12, 18),
    ):
        self.job_store = job_store
        self.catalog = catalog
        self.registry = registry
        self.importer = importer
        self.resolver = resolver
        self.max_workers = max(1, max_workers)
        self.weekly_weekday = weekly_weekday
        self.legacy_daily_hours = tuple(legacy_daily_hours)

    def run_job(self, job_id: int, progress: Optional[ProgressCallback] = None) -> Optional[ResolutionResult]:
        """
        Run one job now.

        Returns:
            ResolutionResult, or None if the job is disabled

        Raises:
            JobNotFound: unknown job id
            NoSourceAvailable: every source of the job failed
        """
        job = self.job_store.get(job_id)
        if not job.enabled:
            logger.info(f"Job {job_id} is disabled, skipping")
            return None
        return self._run(job, progress)

    def _run(self, job: IngestionJob, progress: Optional[ProgressCallback] = None) -> ResolutionResult:
        logger.info(f"Running job {job.id} for work {job.work_id} ({len(job.source_list())} sources)")
        started = time.monotonic()
        result = self.resolver.resolve(job, progress)
        logger.info(
            f"Job {job.id} finished in {time.monotonic() - started:.1f}s: "
            f"{len(result.imported)} chapters imported from {result.used_source_locator}"
        )
        return result

    def due_jobs(self, now: datetime) -> List[IngestionJob]:
        jobs: List[IngestionJob] = []
        for window in due_windows(now, self.weekly_weekday, self.legacy_daily_hours):
            found = self.job_store.find_due_jobs(window.frequency, window.schedule_hour, window.legacy)
            if found:
                logger.debug(f"{len(found)} jobs due in {window}")
            jobs.extend(found)
        return jobs

    def dispatch(self, now: datetime) -> DispatchReport:
        """
        Run every job due at ``now``.

        One job failing never affects the others; failures are logged and
        counted in the report.
        """
        jobs = self.due_jobs(now)
        report = DispatchReport(due=len(jobs))
        logger.info(f"Tick {now.isoformat()}: {len(jobs)} jobs due")
        if not jobs:
            return report

        if self.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                outcomes = list(executor.map(self._run_isolated, jobs))
        else:
            outcomes = [self._run_isolated(job) for job in jobs]

        for job, (result, error) in zip(jobs, outcomes):
            if error is not None:
                report.failed += 1
                report.errors[job.id] = error
            else:
                report.succeeded += 1
                report.imported += len(result.imported)

        logger.info(
            f"Tick done: {report.succeeded} succeeded, {report.failed} failed, "
            f"{report.imported} chapters imported"
        )
        return report

    def _run_isolated(self, job: IngestionJob):
        try:
            return self._run(job), None
        except IngestionError as e:
            logger.error(f"Job {job.id} failed: {e}")
            return None, str(e)
        except Exception as e:
            logger.exception(f"Job {job.id} crashed: {e}")
            return None, f"{type(e).__name__}: {e}"

    def backfill_schedule_hours(self) -> int:
        """Give every job without a schedule hour its derived hour, in one write."""
        missing = self.job_store.find_missing_schedule_hour()
        if not missing:
            return 0
        hours = {job.id: schedule_hour_for(job_seed(job.work_id, job.id)) for job in missing}
        count = self.job_store.bulk_set_schedule_hours(hours)
        logger.info(f"Assigned schedule hours to {count} jobs")
        return count

    def preview(self, locator: str, selection: Optional[List[str]] = None) -> ParsedSource:
        """
        Parse a source without touching the catalog.

        Raises:
            SourceEmpty: if the selection matches no chapter
        """
        parsed = self.registry.parse(locator)
        if selection:
            numbers = parse_chapter_selection(selection)
            parsed.chapters = [c for c in parsed.chapters if in_selection(c, numbers)]
            if not parsed.chapters:
                raise SourceEmpty(f"No chapters of {locator} match {', '.join(selection)}")
        return parsed

    def import_from_source(
            self,
            work_id: int,
            locator: str,
            selection: Optional[List[str]] = None,
            progress: Optional[ProgressCallback] = None,
    ) -> List[ImportedChapter]:
        """Import chapters of one locator into a work, skipping those already present."""
        work = self.catalog.find_work(work_id)
        parsed = self.preview(locator, selection)
        existing = [chapter.identifier for chapter in self.catalog.list_chapters(work_id)]
        new_chapters = select_new_chapters(parsed.chapters, existing)
        if not new_chapters:
            logger.info(f"Nothing new to import from {locator} for '{work.title}'")
            return []
        return self.importer.import_chapters(work, new_chapters, progress)

    def import_work(
            self,
            locator: str,
            selection: Optional[List[str]] = None,
            overrides: Optional[Dict[str, Any]] = None,
            progress: Optional[ProgressCallback] = None,
    ) -> WorkImport:
        """
        Create a work from a source page and import its chapters.

        ``overrides`` may replace ``title``, ``description``, ``genres`` and
        ``type``. A cover that cannot be downloaded leaves the work without one.

        Raises:
            UnsupportedSource, SourceUnavailable: source cannot be parsed
            SourceEmpty: no chapters, or none match the selection
        """
        parsed = self.preview(locator, selection)
        chapters = select_new_chapters(parsed.chapters, [])
        if not chapters:
            raise SourceEmpty(f"No numbered chapters found on {locator}")

        overrides = {key: value for key, value in (overrides or {}).items() if value}
        title = overrides.get('title') or parsed.title
        work = self.catalog.create_work({
            'title': title,
            'alternative_titles': [t for t in parsed.alternative_titles if t != title],
            'description': overrides.get('description') or parsed.description or f"Imported from {locator}",
            'genres': list(overrides.get('genres') or parsed.genres or ['Unknown']),
            'type': overrides.get('type') or parsed.type,
            'author': parsed.author,
            'artist': parsed.artist,
            'release_year': parsed.release_year,
            'source_url': locator,
        })

        cover = None
        if parsed.cover_url:
            cover = self.importer.pipeline.download_cover(parsed.cover_url, work.id)
            if cover:
                self.catalog.set_cover(work.id, cover)

        imported = self.importer.import_chapters(work, chapters, progress)
        logger.info(f"Imported work {work.id} '{work.title}' from {locator}: {len(imported)} chapters")
        return WorkImport(work=work, imported=imported, cover_url=cover)

    def check_sources(self) -> List[SourceCheck]:
        """Parse every source of every job and report what each returns."""
        checks: List[SourceCheck] = []
        for job in self.job_store.list_jobs():
            for locator in job.source_list():
                check = SourceCheck(job_id=job.id, locator=locator)
                try:
                    parsed = self.registry.parse(locator)
                    check.title = parsed.title
                    check.chapter_count = len(parsed.chapters)
                except IngestionError as e:
                    check.error = str(e)
                checks.append(check)
        return checks


def build_orchestrator(session_factory=SessionLocal, http: Optional[HttpClient] = None) -> IngestionOrchestrator:
    """Wire the orchestrator with the SQL catalog, local assets and live sources."""
    http = http or HttpClient()
    registry = build_registry(http)
    catalog = SqlCatalogStore(session_factory)
    job_store = JobStore(session_factory)
    pipeline = AssetDownloadPipeline(registry, LocalAssetStore(), http=http)
    importer = ChapterImporter(catalog, pipeline, LogNotifier())
    resolver = ResolutionController(
        registry,
        catalog,
        job_store,
        importer,
        inter_source_delay=settings.inter_source_delay,
    )
    return IngestionOrchestrator(
        job_store,
        catalog,
        registry,
        importer,
        resolver,
        max_workers=settings.max_workers,
        weekly_weekday=settings.weekly_weekday,
        legacy_daily_hours=settings.legacy_daily_hours,
    )
