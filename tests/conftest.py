"""Shared fixtures: in-memory database, fake sources and a fake HTTP client."""
import pytest
import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models
from catalog import SqlCatalogStore
from database import Base
from downloader import AssetDownloadPipeline
from errors import SourceEmpty, SourceUnavailable
from importer import ChapterImporter
from job_store import JobStore
from models import IngestionJob, ParsingFrequency, Work
from orchestrator import IngestionOrchestrator
from resolver import ResolutionController
from sources import ChapterRef, ParsedSource, SourceRegistry


class FakeSource:
    """Source adapter serving canned chapters; records every parse call."""

    def __init__(self, family, host, chapters=(), error=None, pages=None, mirror_host=None, calls=None,
                 metadata=None):
        self.family = family
        self.hosts = (host,)
        self.host = host
        self.chapters = list(chapters)
        self.error = error
        self.pages = pages if pages is not None else 3
        self.mirror_host = mirror_host
        self.calls = calls if calls is not None else []
        self.metadata = metadata or {}

    def parse(self, locator):
        self.calls.append(locator)
        if self.error:
            raise SourceUnavailable(self.error)
        if not self.chapters:
            raise SourceEmpty(f"No chapters found on {locator}")
        return ParsedSource(
            title=f"Title on {self.host}",
            chapters=[
                ChapterRef(name=f"Глава {n:g}", number=n, locator=f"{locator}/chapter/{n:g}", source=locator)
                for n in self.chapters
            ],
            **self.metadata,
        )

    def page_urls(self, chapter):
        if isinstance(self.pages, list):
            return list(self.pages)
        return [f"https://{self.host}/img/{chapter.number:g}/{i}.jpg" for i in range(1, self.pages + 1)]

    def image_headers(self, chapter):
        return {"Referer": f"https://{self.host}/"}

    def mirror_url(self, url):
        if not self.mirror_host:
            return None
        return url.replace(self.host, self.mirror_host, 1)


class FakeHttp:
    """Stands in for HttpClient in the asset pipeline."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.requested = []

    def get_bytes(self, url, headers=None):
        self.requested.append(url)
        if url in self.failing:
            raise requests.ConnectionError(f"connection refused: {url}")
        return b"\x89PNG" + url.encode()


class MemoryAssetStore:

    def __init__(self):
        self.files = {}

    def write_file(self, path, data):
        self.files[path] = data
        return "/" + path

    def delete(self, path):
        self.files.pop(path.lstrip("/"), None)


class RecordingNotifier:

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    def notify_new_chapter(self, work_id, chapter_id, identifier, work_name):
        if self.fail:
            raise RuntimeError("notification service down")
        self.sent.append((work_id, chapter_id, identifier, work_name))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(engine, expire_on_commit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def catalog(session_factory):
    return SqlCatalogStore(session_factory)


@pytest.fixture
def job_store(session_factory):
    return JobStore(session_factory)


@pytest.fixture
def make_work(session_factory):
    def _make(title="Solo Leveling", identifiers=()):
        db = session_factory()
        try:
            work = Work(title=title)
            db.add(work)
            db.flush()
            for identifier in identifiers:
                db.add(models.Chapter(
                    work_id=work.id,
                    identifier=identifier,
                    name=f"Глава {identifier}",
                    pages=[f"/chapters/x/{identifier}.jpg"],
                ))
            db.commit()
            return work.id
        finally:
            db.close()
    return _make


@pytest.fixture
def make_job(session_factory):
    def _make(work_id, sources, frequency=ParsingFrequency.DAILY, schedule_hour=None,
              enabled=True, url=None, last_used_source_index=None):
        db = session_factory()
        try:
            job = IngestionJob(
                work_id=work_id,
                sources=list(sources),
                url=url,
                frequency=frequency,
                schedule_hour=schedule_hour,
                enabled=enabled,
                last_used_source_index=last_used_source_index,
            )
            db.add(job)
            db.commit()
            db.refresh(job)
            return job
        finally:
            db.close()
    return _make


@pytest.fixture
def asset_store():
    return MemoryAssetStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def build(catalog, job_store, asset_store, notifier):
    """Wire the real pipeline around the given fake sources."""
    def _build(*adapters, http=None):
        registry = SourceRegistry(adapters)
        pipeline = AssetDownloadPipeline(
            registry, asset_store, http=http or FakeHttp(), page_delay=0, sleep=lambda s: None,
        )
        importer = ChapterImporter(catalog, pipeline, notifier)
        resolver = ResolutionController(
            registry, catalog, job_store, importer, inter_source_delay=0, sleep=lambda s: None,
        )
        return IngestionOrchestrator(job_store, catalog, registry, importer, resolver)
    return _build
