import pytest

from conftest import FakeSource
from errors import InvalidJob, JobConflict, JobNotFound, WorkNotFound
from jobs import JobService
from models import ParsingFrequency
from scheduling import job_seed, schedule_hour_for
from sources import SourceRegistry

X = "https://x.test/manga/solo"
Y = "https://y.test/manga/solo"


@pytest.fixture
def service(job_store, catalog):
    registry = SourceRegistry([FakeSource("x", "x.test"), FakeSource("y", "y.test")])
    return JobService(job_store, catalog, registry)


def test_create_derives_schedule_hour(service, make_work):
    work_id = make_work()

    job = service.create(work_id, sources=[X, Y], frequency=ParsingFrequency.WEEKLY)

    assert job.sources == [X, Y]
    assert job.url is None
    assert job.schedule_hour == schedule_hour_for(job_seed(work_id, job.id))
    assert job.created_at is not None


def test_create_keeps_explicit_hour(service, make_work):
    job = service.create(make_work(), sources=[X], schedule_hour=21)

    assert job.schedule_hour == 21


def test_one_job_per_work(service, make_work):
    work_id = make_work()
    service.create(work_id, sources=[X])

    with pytest.raises(JobConflict):
        service.create(work_id, sources=[Y])


def test_create_requires_existing_work(service):
    with pytest.raises(WorkNotFound):
        service.create(404, sources=[X])


def test_create_requires_a_source(service, make_work):
    with pytest.raises(InvalidJob):
        service.create(make_work(), sources=[])


def test_create_rejects_only_unsupported_sources(service, make_work):
    with pytest.raises(InvalidJob):
        service.create(make_work(), sources=["https://unknown.test/manga/solo"])


def test_create_with_deprecated_url(service, make_work):
    job = service.create(make_work(), url=X)

    assert job.sources == []
    assert job.source_list() == [X]


def test_update_sources_clears_deprecated_url(service, make_work):
    job = service.create(make_work(), url=X)

    updated = service.update(job.id, {"sources": [Y, X]})

    assert updated.url is None
    assert updated.source_list() == [Y, X]


def test_update_backfills_missing_hour(service, make_work, make_job):
    work_id = make_work()
    job = make_job(work_id, [X])

    updated = service.update(job.id, {"enabled": False})

    assert updated.enabled is False
    assert updated.schedule_hour == schedule_hour_for(job_seed(work_id, job.id))


def test_remove(service, make_work):
    job = service.create(make_work(), sources=[X])

    service.remove(job.id)

    with pytest.raises(JobNotFound):
        service.get(job.id)
