from datetime import timezone

from apscheduler.triggers.cron import CronTrigger

from scheduler import create_scheduler, tick


class StubOrchestrator:

    def __init__(self, error=None):
        self.error = error
        self.ticks = []

    def dispatch(self, now):
        if self.error:
            raise self.error
        self.ticks.append(now)


def test_tick_dispatches_in_utc():
    orchestrator = StubOrchestrator()

    tick(orchestrator)

    assert len(orchestrator.ticks) == 1
    assert orchestrator.ticks[0].tzinfo == timezone.utc


def test_tick_survives_dispatch_failure():
    tick(StubOrchestrator(error=RuntimeError("database is locked")))


def test_scheduler_fires_hourly():
    scheduler = create_scheduler(StubOrchestrator())

    job = scheduler.get_job("ingestion-tick")

    assert isinstance(job.trigger, CronTrigger)
    assert str(job.trigger.fields[job.trigger.FIELD_NAMES.index("minute")]) == "0"
    assert job.max_instances == 2
