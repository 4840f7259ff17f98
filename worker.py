"""
RQ Worker for processing queued ingestion runs.

Runs `ingestion_queue.process_job` for every job run queued via the API
or `cli.py enqueue`.

Usage:
    python worker.py

    Or with RQ directly:
    rq worker ingestion --url redis://localhost:6379/0

The queue name comes from QUEUE_NAME (default "ingestion").

Multiple workers can run at once; a job run is processed by exactly one.
"""
import logging
import os

from redis import Redis
from rq import Worker
from config import settings

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    """Start an RQ worker that runs queued ingestion jobs."""
    logger.info(f"Starting RQ worker for queue '{settings.queue_name}' on {settings.redis_url}")

    redis_conn = Redis.from_url(settings.redis_url)
    worker = Worker([settings.queue_name], connection=redis_conn, name=f"manga-ingestion-{os.getpid()}")

    logger.info("Worker ready, waiting for job runs")
    worker.work(with_scheduler=False)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Worker shutting down...")
    except Exception as e:
        logger.error(f"Worker error: {e}")
        raise
