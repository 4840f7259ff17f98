import pytest

from conftest import FakeHttp, FakeSource, MemoryAssetStore
from downloader import AssetDownloadPipeline, page_extension, page_path
from errors import NoAssetsFound
from sources import ChapterRef, SourceRegistry

SOURCE = "https://senkuro.test/manga/solo"


def chapter_ref():
    return ChapterRef(name="Глава 5", number=5, locator="glava-5", source=SOURCE)


def make_pipeline(adapter, http, store=None):
    return AssetDownloadPipeline(
        SourceRegistry([adapter]), store or MemoryAssetStore(), http=http, page_delay=0, sleep=lambda s: None,
    )


def test_page_path_layout():
    assert page_path(42, 7, "https://cdn.test/p/7.webp?x=1") == "chapters/42/007.webp"
    assert page_extension("https://cdn.test/p/7") == "jpg"


def test_page_failing_on_primary_and_mirror_is_skipped():
    urls = [f"https://senkuro.test/img/{i}.jpg" for i in range(1, 11)]
    adapter = FakeSource("senkuro", "senkuro.test", pages=urls, mirror_host="sencuro.test")
    http = FakeHttp(failing={urls[3], "https://sencuro.test/img/4.jpg"})
    store = MemoryAssetStore()

    paths = make_pipeline(adapter, http, store).download_chapter_assets(chapter_ref(), 99)

    assert len(paths) == 9
    assert "/chapters/99/004.jpg" not in paths
    assert paths[3] == "/chapters/99/005.jpg"
    assert "https://sencuro.test/img/4.jpg" in http.requested


def test_mirror_rescues_failed_page():
    urls = ["https://senkuro.test/img/1.jpg", "https://senkuro.test/img/2.jpg"]
    adapter = FakeSource("senkuro", "senkuro.test", pages=urls, mirror_host="sencuro.test")
    http = FakeHttp(failing={urls[1]})

    paths = make_pipeline(adapter, http).download_chapter_assets(chapter_ref(), 1)

    assert paths == ["/chapters/1/001.jpg", "/chapters/1/002.jpg"]


def test_without_mirror_failed_page_is_not_retried():
    urls = ["https://senkuro.test/img/1.jpg", "https://senkuro.test/img/2.jpg"]
    adapter = FakeSource("senkuro", "senkuro.test", pages=urls)
    http = FakeHttp(failing={urls[0]})

    paths = make_pipeline(adapter, http).download_chapter_assets(chapter_ref(), 1)

    assert paths == ["/chapters/1/002.jpg"]
    assert http.requested == urls


def test_no_page_urls_raises():
    adapter = FakeSource("senkuro", "senkuro.test", pages=[])

    with pytest.raises(NoAssetsFound):
        make_pipeline(adapter, FakeHttp()).download_chapter_assets(chapter_ref(), 1)


def test_all_pages_failing_raises():
    urls = ["https://senkuro.test/img/1.jpg"]
    adapter = FakeSource("senkuro", "senkuro.test", pages=urls)

    with pytest.raises(NoAssetsFound):
        make_pipeline(adapter, FakeHttp(failing=set(urls))).download_chapter_assets(chapter_ref(), 1)


def test_progress_events_per_page():
    adapter = FakeSource("senkuro", "senkuro.test", pages=3)
    events = []

    make_pipeline(adapter, FakeHttp()).download_chapter_assets(chapter_ref(), 1, progress=events.append)

    assert [(e.stage, e.current, e.total) for e in events] == [("page", 1, 3), ("page", 2, 3), ("page", 3, 3)]
    assert events[-1].percentage == 100
