import ingestion_queue
import orchestrator as orchestrator_module
import worker
from config import settings
from conftest import FakeSource

X = "https://x.test/manga/solo"


class RecordingWorker:
    created = []

    def __init__(self, queues, connection=None, name=None):
        self.queues = queues
        self.name = name
        self.worked = False
        RecordingWorker.created.append(self)

    def work(self, with_scheduler=False):
        self.worked = True


def test_worker_listens_on_configured_queue(monkeypatch):
    RecordingWorker.created = []
    monkeypatch.setattr(worker, "Worker", RecordingWorker)
    monkeypatch.setattr(worker.Redis, "from_url", staticmethod(lambda url: object()))
    monkeypatch.setattr(settings, "queue_name", "ingestion-test")

    worker.main()

    assert RecordingWorker.created[0].queues == ["ingestion-test"]
    assert RecordingWorker.created[0].name.startswith("manga-ingestion-")
    assert RecordingWorker.created[0].worked


def test_process_job_reports_imported_chapters(build, make_work, make_job, monkeypatch):
    job = make_job(make_work(identifiers=["1"]), [X])
    built = build(FakeSource("x", "x.test", chapters=[1, 2]))
    monkeypatch.setattr(orchestrator_module, "build_orchestrator", lambda: built)

    result = ingestion_queue.process_job(job.id)

    assert result["success"] is True
    assert result["imported"] == ["2"]
    assert result["source"] == X


def test_process_job_returns_ingestion_errors(build, make_work, make_job, monkeypatch):
    job = make_job(make_work(), ["https://broken.test/manga/solo"])
    built = build(FakeSource("broken", "broken.test", error="HTTP 500"))
    monkeypatch.setattr(orchestrator_module, "build_orchestrator", lambda: built)

    result = ingestion_queue.process_job(job.id)

    assert result["success"] is False
    assert result["errors"] == ["https://broken.test/manga/solo: HTTP 500"]
