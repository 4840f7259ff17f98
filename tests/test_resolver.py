import pytest

from conftest import FakeSource
from errors import NoSourceAvailable
from resolver import try_order

X = "https://x.test/manga/solo"
Y = "https://y.test/manga/solo"


def identifiers(catalog, work_id):
    return sorted(c.identifier for c in catalog.list_chapters(work_id))


def test_try_order_puts_last_used_source_first():
    assert try_order(["a", "b", "c"], 2) == [(2, "c"), (0, "a"), (1, "b")]
    assert try_order(["a", "b"], None) == [(0, "a"), (1, "b")]
    assert try_order(["a", "b"], 5) == [(0, "a"), (1, "b")]


def test_imports_only_missing_chapter_from_first_source(build, make_work, make_job, catalog, job_store):
    work_id = make_work(identifiers=["1", "2"])
    job = make_job(work_id, [X, Y])
    y_calls = []
    orchestrator = build(
        FakeSource("x", "x.test", chapters=[1, 2, 3]),
        FakeSource("y", "y.test", chapters=[1, 2, 3, 4], calls=y_calls),
    )

    result = orchestrator.run_job(job.id)

    assert [c.identifier for c in result.imported] == ["3"]
    assert result.used_source_index == 0
    assert result.used_source_locator == X
    assert y_calls == []
    assert identifiers(catalog, work_id) == ["1", "2", "3"]

    stored = job_store.get(job.id)
    assert stored.last_used_source_index == 0
    assert stored.last_used_source_url == X
    assert stored.last_checked is not None


def test_single_empty_source_fails_without_writes(build, make_work, make_job, catalog, job_store, asset_store):
    work_id = make_work(identifiers=["1"])
    job = make_job(work_id, [X])
    orchestrator = build(FakeSource("x", "x.test", chapters=[]))

    with pytest.raises(NoSourceAvailable) as exc_info:
        orchestrator.run_job(job.id)

    assert len(exc_info.value.errors) == 1
    assert exc_info.value.errors[0].startswith(X)
    assert job_store.get(job.id).last_checked is None
    assert identifiers(catalog, work_id) == ["1"]
    assert asset_store.files == {}


def test_last_successful_source_is_queried_first(build, make_work, make_job):
    work_id = make_work()
    job = make_job(work_id, [X, Y], last_used_source_index=1)
    calls = []
    orchestrator = build(
        FakeSource("x", "x.test", chapters=[1], calls=calls),
        FakeSource("y", "y.test", chapters=[1], calls=calls),
    )

    orchestrator.run_job(job.id)

    assert calls == [Y]


def test_failing_source_falls_back_to_next(build, make_work, make_job, job_store):
    work_id = make_work()
    job = make_job(work_id, [X, Y])
    orchestrator = build(
        FakeSource("x", "x.test", error="HTTP 503"),
        FakeSource("y", "y.test", chapters=[1, 2]),
    )

    result = orchestrator.run_job(job.id)

    assert [c.identifier for c in result.imported] == ["1", "2"]
    assert result.used_source_index == 1
    assert result.errors == [f"{X}: HTTP 503"]
    assert job_store.get(job.id).last_used_source_index == 1


def test_source_without_new_chapters_does_not_stop_the_search(build, make_work, make_job, catalog):
    work_id = make_work(identifiers=["1", "2"])
    job = make_job(work_id, [X, Y])
    orchestrator = build(
        FakeSource("x", "x.test", chapters=[1, 2]),
        FakeSource("y", "y.test", chapters=[1, 2, 3]),
    )

    result = orchestrator.run_job(job.id)

    assert result.used_source_locator == Y
    assert identifiers(catalog, work_id) == ["1", "2", "3"]


def test_nothing_new_anywhere_records_last_answering_source(build, make_work, make_job, job_store):
    work_id = make_work(identifiers=["1"])
    job = make_job(work_id, [X, Y])
    orchestrator = build(
        FakeSource("x", "x.test", chapters=[1]),
        FakeSource("y", "y.test", error="layout changed"),
    )

    result = orchestrator.run_job(job.id)

    assert result.imported == []
    assert result.used_source_index == 0
    stored = job_store.get(job.id)
    assert stored.last_used_source_url == X
    assert stored.last_checked is not None


def test_second_run_creates_nothing(build, make_work, make_job, catalog, notifier):
    work_id = make_work()
    job = make_job(work_id, [X])
    orchestrator = build(FakeSource("x", "x.test", chapters=[1, 2, 2.5]))

    first = orchestrator.run_job(job.id)
    second = orchestrator.run_job(job.id)

    assert len(first.imported) == 3
    assert second.imported == []
    assert identifiers(catalog, work_id) == ["1", "2", "2.5"]
    assert len(notifier.sent) == 3


def test_deprecated_url_is_used_when_sources_are_empty(build, make_work, make_job):
    work_id = make_work()
    job = make_job(work_id, [], url=X)
    orchestrator = build(FakeSource("x", "x.test", chapters=[1]))

    result = orchestrator.run_job(job.id)

    assert result.used_source_locator == X


def test_unsupported_host_is_reported_as_source_error(build, make_work, make_job):
    work_id = make_work()
    job = make_job(work_id, ["https://unknown.test/manga/solo", X])
    orchestrator = build(FakeSource("x", "x.test", chapters=[1]))

    result = orchestrator.run_job(job.id)

    assert result.used_source_index == 1
    assert result.errors[0].startswith("https://unknown.test/manga/solo: Unsupported source")
