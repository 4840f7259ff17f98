"""Persistence for ingestion jobs."""
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError

from database import SessionLocal
from errors import JobConflict, JobNotFound
from models import IngestionJob, ParsingFrequency

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('url', 'sources', 'frequency', 'enabled', 'schedule_hour')


class JobStore:
    """
    CRUD and scheduling queries over the ``ingestion_jobs`` table.

    Returned jobs are detached from their session; mutate them only
    through this store.
    """

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def get(self, job_id: int) -> IngestionJob:
        db = self.session_factory()
        try:
            job = db.query(IngestionJob).filter_by(id=job_id).first()
            if not job:
                raise JobNotFound(f"Ingestion job {job_id} not found")
            return job
        finally:
            db.close()

    def get_by_work(self, work_id: int) -> Optional[IngestionJob]:
        db = self.session_factory()
        try:
            return db.query(IngestionJob).filter_by(work_id=work_id).first()
        finally:
            db.close()

    def list_jobs(self, enabled: Optional[bool] = None) -> List[IngestionJob]:
        db = self.session_factory()
        try:
            query = db.query(IngestionJob)
            if enabled is not None:
                query = query.filter(IngestionJob.enabled == enabled)
            return query.order_by(IngestionJob.id).all()
        finally:
            db.close()

    def create(self, fields: Dict, hour_fn: Optional[Callable[[IngestionJob], int]] = None) -> IngestionJob:
        """
        Insert a job.

        ``hour_fn`` derives ``schedule_hour`` from the flushed row (its id is
        part of the seed) when the caller supplied none.

        Raises:
            JobConflict: if the work already has a job
        """
        db = self.session_factory()
        try:
            job = IngestionJob(**fields)
            db.add(job)
            db.flush()
            if job.schedule_hour is None and hour_fn is not None:
                job.schedule_hour = hour_fn(job)
            db.commit()
            db.refresh(job)
            logger.info(f"Created ingestion job {job.id} for work {job.work_id}")
            return job
        except IntegrityError as e:
            db.rollback()
            raise JobConflict(f"Work {fields.get('work_id')} already has an ingestion job") from e
        finally:
            db.close()

    def update(self, job_id: int, changes: Dict) -> IngestionJob:
        db = self.session_factory()
        try:
            job = db.query(IngestionJob).filter_by(id=job_id).first()
            if not job:
                raise JobNotFound(f"Ingestion job {job_id} not found")
            for key, value in changes.items():
                if key not in UPDATABLE_FIELDS:
                    raise ValueError(f"Field '{key}' cannot be updated")
                setattr(job, key, value)
            db.commit()
            db.refresh(job)
            return job
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def delete(self, job_id: int) -> None:
        db = self.session_factory()
        try:
            deleted = db.query(IngestionJob).filter_by(id=job_id).delete()
            if not deleted:
                raise JobNotFound(f"Ingestion job {job_id} not found")
            db.commit()
            logger.info(f"Deleted ingestion job {job_id}")
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def find_due_jobs(
            self,
            frequency: ParsingFrequency,
            schedule_hour: Optional[int] = None,
            legacy: bool = False,
    ) -> List[IngestionJob]:
        """
        Enabled jobs of ``frequency`` at ``schedule_hour``, or, with
        ``legacy=True``, enabled jobs of ``frequency`` that have no hour yet.
        """
        db = self.session_factory()
        try:
            query = db.query(IngestionJob).filter(
                IngestionJob.enabled.is_(True),
                IngestionJob.frequency == frequency,
            )
            if legacy:
                query = query.filter(IngestionJob.schedule_hour.is_(None))
            else:
                query = query.filter(IngestionJob.schedule_hour == schedule_hour)
            return query.order_by(IngestionJob.id).all()
        finally:
            db.close()

    def find_missing_schedule_hour(self) -> List[IngestionJob]:
        db = self.session_factory()
        try:
            return db.query(IngestionJob).filter(IngestionJob.schedule_hour.is_(None)).all()
        finally:
            db.close()

    def bulk_set_schedule_hours(self, hours: Dict[int, int]) -> int:
        """Write ``{job_id: hour}`` in one batched statement."""
        if not hours:
            return 0
        db = self.session_factory()
        try:
            db.bulk_update_mappings(
                IngestionJob,
                [{"id": job_id, "schedule_hour": hour} for job_id, hour in hours.items()],
            )
            db.commit()
            return len(hours)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def record_check(
            self,
            job_id: int,
            checked_at: datetime,
            source_index: Optional[int],
            source_url: Optional[str],
    ) -> None:
        """Single-row bookkeeping write after a run that reached a source."""
        db = self.session_factory()
        try:
            db.query(IngestionJob).filter_by(id=job_id).update({
                IngestionJob.last_checked: checked_at,
                IngestionJob.last_used_source_index: source_index,
                IngestionJob.last_used_source_url: source_url,
            })
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
