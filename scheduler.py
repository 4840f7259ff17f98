"""
Hourly ingestion scheduler.

Usage:
    python scheduler.py

Fires at minute 0 of every hour (UTC) and runs the jobs due at that hour.
"""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from config import settings
from orchestrator import IngestionOrchestrator, build_orchestrator

logger = logging.getLogger(__name__)


def tick(orchestrator: IngestionOrchestrator):
    try:
        orchestrator.dispatch(datetime.now(timezone.utc))
    except Exception as e:
        # Loading due jobs failed; the next tick tries again
        logger.exception(f"Scheduler tick failed: {e}")


def create_scheduler(orchestrator: IngestionOrchestrator) -> BlockingScheduler:
    scheduler = BlockingScheduler(timezone=timezone.utc)
    scheduler.add_job(
        tick,
        trigger=CronTrigger(minute=0, timezone=timezone.utc),
        args=[orchestrator],
        id="ingestion-tick",
        replace_existing=True,
        # A slow tick may still be running when the next one fires
        max_instances=2,
        coalesce=True,
        misfire_grace_time=300,
    )
    return scheduler


def main():
    """Backfill schedule hours, then block on the hourly tick."""
    orchestrator = build_orchestrator()
    orchestrator.backfill_schedule_hours()

    scheduler = create_scheduler(orchestrator)
    logger.info("Scheduler started, ticking hourly at minute 0 (UTC)")
    scheduler.start()


if __name__ == "__main__":
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        main()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler shutting down...")
