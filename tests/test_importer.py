import pytest

from conftest import FakeHttp, FakeSource, MemoryAssetStore, RecordingNotifier
from downloader import AssetDownloadPipeline
from errors import DuplicateChapter
from importer import ChapterImporter
from sources import ChapterRef, SourceRegistry

SOURCE = "https://x.test/manga/solo"


def chapter(number):
    return ChapterRef(name=f"Глава {number:g}", number=number, locator=f"{SOURCE}/{number:g}", source=SOURCE)


def make_importer(catalog, adapter, http=None, notifier=None):
    pipeline = AssetDownloadPipeline(
        SourceRegistry([adapter]), MemoryAssetStore(), http=http or FakeHttp(), page_delay=0, sleep=lambda s: None,
    )
    return ChapterImporter(catalog, pipeline, notifier or RecordingNotifier())


def test_chapters_are_imported_in_ascending_order(catalog, make_work):
    work = catalog.find_work(make_work())
    importer = make_importer(catalog, FakeSource("x", "x.test", pages=2))

    imported = importer.import_chapters(work, [chapter(3), chapter(1), chapter(2)])

    assert [c.identifier for c in imported] == ["1", "2", "3"]
    stored = catalog.list_chapters(work.id)
    assert [c.identifier for c in stored] == ["1", "2", "3"]
    assert stored[0].pages == [f"/chapters/{stored[0].id}/001.jpg", f"/chapters/{stored[0].id}/002.jpg"]


def test_zero_assets_leaves_no_chapter_record(catalog, make_work):
    work = catalog.find_work(make_work())
    importer = make_importer(catalog, FakeSource("x", "x.test", pages=[]))

    imported = importer.import_chapters(work, [chapter(1)])

    assert imported == []
    assert catalog.list_chapters(work.id) == []


def test_unexpected_failure_rolls_back_and_propagates(catalog, make_work):
    work = catalog.find_work(make_work())

    class BrokenStore(MemoryAssetStore):
        def write_file(self, path, data):
            raise OSError("disk full")

    pipeline = AssetDownloadPipeline(
        SourceRegistry([FakeSource("x", "x.test")]), BrokenStore(), http=FakeHttp(), page_delay=0, sleep=lambda s: None,
    )
    importer = ChapterImporter(catalog, pipeline, RecordingNotifier())

    with pytest.raises(OSError):
        importer.import_chapters(work, [chapter(1)])

    assert catalog.list_chapters(work.id) == []


def test_existing_identifier_is_skipped(catalog, make_work):
    work = catalog.find_work(make_work(identifiers=["1"]))
    importer = make_importer(catalog, FakeSource("x", "x.test"))

    imported = importer.import_chapters(work, [chapter(1.0), chapter(2)])

    assert [c.identifier for c in imported] == ["2"]


def test_create_chapter_conflict_raises_duplicate(catalog, make_work):
    work_id = make_work(identifiers=["4"])

    with pytest.raises(DuplicateChapter):
        catalog.create_chapter(work_id, "4", "Глава 4")


def test_notification_failure_does_not_undo_import(catalog, make_work):
    work = catalog.find_work(make_work())
    importer = make_importer(catalog, FakeSource("x", "x.test"), notifier=RecordingNotifier(fail=True))

    imported = importer.import_chapters(work, [chapter(1)])

    assert len(imported) == 1
    assert len(catalog.list_chapters(work.id)) == 1


class FailingOnWrite(MemoryAssetStore):

    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on
        self.writes = 0

    def write_file(self, path, data):
        self.writes += 1
        if self.writes == self.fail_on:
            raise OSError("disk full")
        return super().write_file(path, data)


def test_failed_page_write_removes_written_files(catalog, make_work):
    work = catalog.find_work(make_work())
    store = FailingOnWrite(fail_on=3)
    pipeline = AssetDownloadPipeline(
        SourceRegistry([FakeSource("x", "x.test", pages=5)]), store, http=FakeHttp(), page_delay=0, sleep=lambda s: None,
    )
    importer = ChapterImporter(catalog, pipeline, RecordingNotifier())

    with pytest.raises(OSError):
        importer.import_chapters(work, [chapter(1)])

    assert store.files == {}
    assert catalog.list_chapters(work.id) == []


def test_failed_page_attach_removes_written_files(catalog, make_work):
    work = catalog.find_work(make_work())
    store = MemoryAssetStore()

    class BrokenAttach:
        def __getattr__(self, name):
            return getattr(catalog, name)

        def append_pages(self, chapter_id, paths):
            raise RuntimeError("database went away")

    pipeline = AssetDownloadPipeline(
        SourceRegistry([FakeSource("x", "x.test", pages=3)]), store, http=FakeHttp(), page_delay=0, sleep=lambda s: None,
    )
    importer = ChapterImporter(BrokenAttach(), pipeline, RecordingNotifier())

    with pytest.raises(RuntimeError):
        importer.import_chapters(work, [chapter(1)])

    assert store.files == {}
    assert catalog.list_chapters(work.id) == []
