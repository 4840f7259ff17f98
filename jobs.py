"""Registration and management of ingestion jobs."""
import logging
from typing import Dict, List, Optional

from catalog import CatalogStore
from errors import InvalidJob, JobConflict
from job_store import JobStore
from models import IngestionJob, ParsingFrequency
from scheduling import job_seed, schedule_hour_for
from sources import SourceRegistry

logger = logging.getLogger(__name__)


def _derive_hour(job: IngestionJob) -> int:
    return schedule_hour_for(job_seed(job.work_id, job.id))


class JobService:
    """One ingestion job per work, each with at least one supported source."""

    def __init__(self, job_store: JobStore, catalog: CatalogStore, registry: SourceRegistry):
        self.job_store = job_store
        self.catalog = catalog
        self.registry = registry

    def _check_sources(self, sources: List[str]) -> None:
        if not sources:
            raise InvalidJob("Either sources or url must be provided")
        unsupported = [s for s in sources if not self.registry.is_supported(s)]
        if len(unsupported) == len(sources):
            raise InvalidJob(f"No supported source among: {', '.join(sources)}")
        for locator in unsupported:
            logger.warning(f"Source {locator} is not supported and will be skipped at run time")

    def create(
            self,
            work_id: int,
            sources: Optional[List[str]] = None,
            url: Optional[str] = None,
            frequency: ParsingFrequency = ParsingFrequency.DAILY,
            enabled: bool = True,
            schedule_hour: Optional[int] = None,
    ) -> IngestionJob:
        """
        Register a job for a work.

        Raises:
            WorkNotFound: if the work does not exist
            JobConflict: if the work already has a job
            InvalidJob: if no usable source was given
        """
        self.catalog.find_work(work_id)

        if self.job_store.get_by_work(work_id) is not None:
            raise JobConflict(f"Work {work_id} already has an ingestion job")

        sources = [s.strip() for s in (sources or []) if s and s.strip()]
        self._check_sources(sources or ([url] if url else []))

        return self.job_store.create(
            {
                "work_id": work_id,
                "sources": sources,
                "url": None if sources else url,
                "frequency": frequency,
                "enabled": enabled,
                "schedule_hour": schedule_hour,
            },
            hour_fn=_derive_hour,
        )

    def update(self, job_id: int, changes: Dict) -> IngestionJob:
        changes = {key: value for key, value in changes.items() if value is not None}

        if 'sources' in changes:
            changes['sources'] = [s.strip() for s in changes['sources'] if s and s.strip()]
            if changes['sources']:
                # New-style sources replace the deprecated single url
                changes['url'] = None
            else:
                del changes['sources']
        if 'url' in changes and changes['url'] is not None:
            self._check_sources([changes['url']])
        if changes.get('sources'):
            self._check_sources(changes['sources'])

        job = self.job_store.update(job_id, changes)
        if job.schedule_hour is None:
            job = self.job_store.update(job_id, {"schedule_hour": _derive_hour(job)})
        return job

    def remove(self, job_id: int) -> None:
        self.job_store.delete(job_id)

    def get(self, job_id: int) -> IngestionJob:
        return self.job_store.get(job_id)

    def list(self, enabled: Optional[bool] = None) -> List[IngestionJob]:
        return self.job_store.list_jobs(enabled=enabled)
