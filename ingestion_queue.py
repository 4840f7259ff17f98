"""Redis queue for manually triggered ingestion runs."""
import logging
from typing import Optional

from redis import Redis
from rq import Queue

from config import settings
from errors import IngestionError
from job_store import JobStore

logger = logging.getLogger(__name__)

# Redis connection
redis_conn = Redis.from_url(settings.redis_url)
# RQ Queue
job_queue = Queue(settings.queue_name, connection=redis_conn)


class IngestionQueue:
    """
    Redis-based ingestion queue manager using RQ.

    Enqueues job runs to Redis for background worker processing.
    """

    def __init__(self, queue: Queue = None, job_store: Optional[JobStore] = None):
        """
        Initialize queue.

        Args:
            queue: RQ Queue instance (uses default if None)
            job_store: Job lookup used to reject unknown ids before queueing
        """
        self.queue = queue or job_queue
        self.job_store = job_store or JobStore()

    def enqueue_job(self, job_id: int) -> str:
        """
        Enqueue a run of an ingestion job.

        Non-blocking - returns immediately after queueing.

        Args:
            job_id: ID of the ingestion job

        Returns:
            RQ job id

        Raises:
            JobNotFound: if the ingestion job does not exist
        """
        self.job_store.get(job_id)

        logger.info(f"Enqueueing job {job_id} to Redis")
        rq_job = self.queue.enqueue(
            'ingestion_queue.process_job',  # Function to call
            job_id,  # Arguments
            job_timeout='1h',  # Max execution time
            result_ttl=86400,  # Keep result for 24 hours
            failure_ttl=604800,  # Keep failures for 7 days
        )
        logger.info(f"Job {job_id} enqueued as {rq_job.id}")
        return rq_job.id


# Worker function (called by RQ worker)
def process_job(job_id: int) -> dict:
    """
    Run a single ingestion job.

    This function is called by RQ workers. Ingestion failures are returned
    as the job result; anything else propagates so RQ marks the job failed.

    Args:
        job_id: ID of the ingestion job to run
    """
    from orchestrator import build_orchestrator

    logger.info(f"WORKER: Starting job {job_id}")
    orchestrator = build_orchestrator()

    try:
        result = orchestrator.run_job(job_id)
    except IngestionError as e:
        logger.error(f"WORKER: Job {job_id} failed: {e}")
        return {"job_id": job_id, "success": False, "error": str(e), "errors": getattr(e, 'errors', [])}

    if result is None:
        return {"job_id": job_id, "success": False, "error": "Job is disabled", "errors": []}

    logger.info(f"WORKER: Job {job_id} imported {len(result.imported)} chapters")
    return {
        "job_id": job_id,
        "success": True,
        "imported": [chapter.identifier for chapter in result.imported],
        "source": result.used_source_locator,
        "errors": result.errors,
    }
